"""structlog setup and the per-run correlation id.

Every process_messages / optimize call starts a run: a fresh ``run_id`` is
bound into structlog's context variables, so all events emitted while that
run is in progress (engine and performance layer alike) carry it.

Usage:
    from threadhub.core.logging import configure_logging, get_logger, start_run

    configure_logging("DEBUG", json_output=False)
    logger = get_logger(__name__)

    run_id = start_run()
    logger.info("thread_created", thread_id="thread_ab12", messages=1)
"""

import logging
import sys
import uuid

import structlog

RUN_ID_KEY = "run_id"


def start_run() -> str:
    """Bind a new run id to the current context and return it."""
    run_id = uuid.uuid4().hex
    structlog.contextvars.bind_contextvars(**{RUN_ID_KEY: run_id})
    return run_id


def current_run_id() -> str | None:
    return structlog.contextvars.get_contextvars().get(RUN_ID_KEY)


def end_run() -> None:
    structlog.contextvars.unbind_contextvars(RUN_ID_KEY)


def _renderer(json_output: bool) -> list[structlog.types.Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_output: One JSON object per line when True, console format otherwise
    """
    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_renderer(json_output),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
