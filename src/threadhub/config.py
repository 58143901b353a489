"""Load ThreadHub settings from YAML.

The file is optional for library use (``AppConfig()`` holds every default);
the CLI and ``get_config`` read ``config/config.yaml`` unless
``THREADHUB_CONFIG_PATH`` points elsewhere. Settings only seed the objects a
ThreadHub builds; nothing reloads them into a running hub.

Usage:
    from threadhub.config import get_config
    from threadhub.hub import ThreadHub

    hub = ThreadHub.from_config(get_config())
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from threadhub.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from threadhub.core.errors import ConfigLoadError, ConfigValidationError
from threadhub.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")
CONFIG_PATH_ENV = "THREADHUB_CONFIG_PATH"

# pydantic error type -> message template
_ERROR_TEMPLATES = {
    "missing": "'{field}' is required",
    "int_type": "'{field}' must be an integer",
    "int_parsing": "'{field}' must be an integer",
    "float_type": "'{field}' must be a number",
    "float_parsing": "'{field}' must be a number",
    "bool_type": "'{field}' must be true or false",
    "bool_parsing": "'{field}' must be true or false",
    "extra_forbidden": "'{field}' is not a known setting",
}

_lock = threading.Lock()
_cached: AppConfig | None = None


def resolve_config_path(path: Path | None = None) -> Path:
    """Explicit path, else $THREADHUB_CONFIG_PATH, else the default."""
    if path is not None:
        return path
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def _describe(error: ValidationError) -> str:
    lines = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail["loc"]) or "<root>"
        template = _ERROR_TEMPLATES.get(detail["type"])
        if template is None:
            lines.append(f"  - '{field}': {detail['msg']}")
        else:
            lines.append("  - " + template.format(field=field))
    return "\n".join(lines)


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigLoadError(
            f"Configuration file not found: {path} "
            "(start from config/config.yaml.example)"
        ) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"{path}: top level must be a mapping of sections, got {type(data).__name__}"
        )
    return data


def load_config(path: Path | None = None) -> AppConfig:
    """Read and validate a config file, bypassing the cache.

    Raises:
        ConfigLoadError: Missing file, bad YAML, or a non-mapping document
        ConfigValidationError: Settings that fail the schema
    """
    config_path = resolve_config_path(path)
    data = _read_mapping(config_path)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid settings in {config_path}:\n{_describe(e)}") from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"{config_path}: schema_version {config.schema_version} is newer than supported "
            f"version {CURRENT_SCHEMA_VERSION}"
        )

    logger.info(
        "config_loaded",
        path=str(config_path),
        time_window_hours=config.threading.time_window_hours,
        cache_max_size=config.cache.max_size,
        batch_size=config.batching.batch_size,
    )
    return config


def get_config() -> AppConfig:
    """Config from the resolved path, loaded once per process."""
    global _cached
    with _lock:
        if _cached is None:
            _cached = load_config()
        return _cached


def reset_config() -> None:
    global _cached
    with _lock:
        _cached = None


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Check a config file and summarize it.

    Returns:
        (is_valid, message) where message is a summary or the failure reason
    """
    try:
        config = load_config(path)
    except ConfigLoadError as e:
        return False, f"Load error: {e}"
    except ConfigValidationError as e:
        return False, f"Validation error: {e}"

    return True, (
        f"Configuration valid (schema version {config.schema_version})\n"
        f"  - time window: {config.threading.time_window_hours}h\n"
        f"  - cache: {config.cache.max_size} entries, TTL {config.cache.ttl_hours}h\n"
        f"  - batching: size {config.batching.batch_size}, "
        f"concurrency {config.batching.concurrency_limit}"
    )
