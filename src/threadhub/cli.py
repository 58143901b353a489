"""Command-line interface for ThreadHub.

Provides commands for configuration validation, threading, cross-source
linking, and analytics over a message export.

Usage:
    python -m threadhub validate-config
    python -m threadhub thread messages.json
    python -m threadhub link messages.jsonl --json
    python -m threadhub analyze messages.json
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from threadhub.config import DEFAULT_CONFIG_PATH, load_config, validate_config_file
from threadhub.config_schema import AppConfig
from threadhub.core.errors import ThreadHubError
from threadhub.core.logging import configure_logging
from threadhub.engine.linker import compute_analytics
from threadhub.engine.models import CrossSourceThread, Thread, ThreadAnalytics
from threadhub.hub import ThreadHub

console = Console()


def _load_cli_config(config_path: Path | None) -> AppConfig:
    """Load config from an explicit path, the default path, or defaults.

    An explicit path must exist; a missing default config means defaults.
    """
    if config_path is not None:
        return load_config(config_path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


def read_messages(path: Path) -> list[dict[str, Any]]:
    """Read raw messages from a JSON array or a JSON-lines file.

    Raises:
        click.BadParameter: If the file is neither format
    """
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{path}: invalid JSON: {e}") from e
        if not all(isinstance(item, dict) for item in data):
            raise click.BadParameter(f"{path}: every array element must be an object")
        return data

    messages = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{path}:{line_number}: invalid JSON: {e}") from e
        if not isinstance(item, dict):
            raise click.BadParameter(f"{path}:{line_number}: expected an object")
        messages.append(item)
    return messages


def _thread_to_dict(thread: Thread) -> dict[str, Any]:
    return {
        "id": thread.id,
        "subject": thread.subject,
        "participants": thread.participants,
        "message_ids": thread.message_ids,
        "last_activity": thread.last_activity.isoformat(),
        "status": thread.status,
        "sources": thread.sources,
    }


def _analytics_to_dict(analytics: ThreadAnalytics) -> dict[str, Any]:
    return {
        "conversation_depth": analytics.conversation_depth,
        "average_response_time_hours": analytics.average_response_time_hours,
        "participant_engagement": analytics.participant_engagement,
        "thread_velocity": analytics.thread_velocity,
        "last_activity": analytics.last_activity.isoformat() if analytics.last_activity else None,
        "thread_health": analytics.thread_health,
    }


def _link_to_dict(linked: CrossSourceThread) -> dict[str, Any]:
    return {
        "id": linked.id,
        "member_thread_ids": linked.member_thread_ids,
        "platforms": linked.platforms,
        "unified_subject": linked.unified_subject,
        "participants": linked.participants,
        "message_ids": [m.id for m in linked.messages],
        "analytics": _analytics_to_dict(linked.analytics),
    }


def _print_rejected(hub: ThreadHub) -> None:
    for rejected in hub.rejected:
        console.print(f"[yellow]Skipped item {rejected.index}:[/yellow] {rejected.reason}")


def _build_hub(ctx: click.Context, window_hours: int | None, consolidate: bool) -> ThreadHub:
    config: AppConfig = ctx.obj["config"]
    threading_config = config.threading.model_copy(
        update={
            "consolidate_after_process": consolidate,
            **({"time_window_hours": window_hours} if window_hours else {}),
        }
    )
    return ThreadHub.from_config(config.model_copy(update={"threading": threading_config}))


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml if present)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: Path | None) -> None:
    """ThreadHub - cross-source conversation threading."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if ctx.invoked_subcommand == "validate-config":
        configure_logging(log_level="DEBUG" if debug else "WARNING", json_output=False)
        return

    try:
        config = _load_cli_config(config_path)
    except ThreadHubError as e:
        console.print(f"[red]Config error:[/red] {e}")
        sys.exit(1)

    log_level = "DEBUG" if debug else config.logging.level
    # Human-readable output for the CLI
    configure_logging(log_level=log_level, json_output=False)
    ctx.obj["config"] = config


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
@click.pass_context
def validate_config(ctx: click.Context, config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    config_path = config_path or ctx.obj["config_path"]
    console.print(f"Validating config: [cyan]{config_path or DEFAULT_CONFIG_PATH}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("thread")
@click.argument("messages_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--window-hours", type=int, default=None, help="Time window for matching (hours)")
@click.option(
    "--consolidate/--no-consolidate",
    default=True,
    help="Merge near-duplicate threads after processing",
)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@click.pass_context
def thread_command(
    ctx: click.Context,
    messages_file: Path,
    window_hours: int | None,
    consolidate: bool,
    as_json: bool,
) -> None:
    """Group messages from a JSON or JSON-lines file into threads."""
    hub = _build_hub(ctx, window_hours, consolidate)
    try:
        threads = hub.process_messages(read_messages(messages_file))
    finally:
        hub.close()

    if as_json:
        click.echo(json.dumps([_thread_to_dict(t) for t in threads], indent=2))
        return

    _print_rejected(hub)
    table = Table(box=None, padding=(0, 2))
    table.add_column("Thread", style="cyan")
    table.add_column("Subject")
    table.add_column("Messages", justify="right")
    table.add_column("Participants", justify="right")
    table.add_column("Last activity")
    table.add_column("Sources")
    for thread in threads:
        table.add_row(
            thread.id,
            thread.subject,
            str(len(thread.messages)),
            str(len(thread.participants)),
            thread.last_activity.isoformat(timespec="minutes"),
            ", ".join(thread.sources),
        )
    console.print(table)
    console.print(f"\n[bold]{len(threads)}[/bold] threads")


@cli.command("link")
@click.argument("messages_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@click.pass_context
def link_command(ctx: click.Context, messages_file: Path, as_json: bool) -> None:
    """Thread messages, then link equivalent threads across sources."""
    hub = _build_hub(ctx, None, True)
    try:
        hub.process_messages(read_messages(messages_file))
        linked = hub.link_cross_platform_threads()
    finally:
        hub.close()

    if as_json:
        click.echo(json.dumps([_link_to_dict(x) for x in linked], indent=2))
        return

    _print_rejected(hub)
    if not linked:
        console.print("No cross-source threads found.")
        return

    table = Table(box=None, padding=(0, 2))
    table.add_column("Link", style="cyan")
    table.add_column("Subject")
    table.add_column("Platforms")
    table.add_column("Threads", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Health")
    for item in linked:
        table.add_row(
            item.id,
            item.unified_subject,
            ", ".join(item.platforms),
            str(len(item.member_thread_ids)),
            str(item.analytics.conversation_depth),
            item.analytics.thread_health,
        )
    console.print(table)


@cli.command("analyze")
@click.argument("messages_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def analyze_command(ctx: click.Context, messages_file: Path) -> None:
    """Compute per-thread analytics through the cache and batch scheduler."""
    hub = _build_hub(ctx, None, True)
    try:
        threads = hub.process_messages(read_messages(messages_file))
        results = asyncio.run(_analyze(hub, threads))
        metrics = hub.get_metrics()
        trend = hub.get_trends()
        cache_stats = hub.get_cache_stats()
    except ThreadHubError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)
    finally:
        hub.close()

    _print_rejected(hub)
    table = Table(box=None, padding=(0, 2))
    table.add_column("Thread", style="cyan")
    table.add_column("Depth", justify="right")
    table.add_column("Avg response (h)", justify="right")
    table.add_column("Velocity (/day)", justify="right")
    table.add_column("Health")
    for thread_id, analytics in results:
        table.add_row(
            thread_id,
            str(analytics.conversation_depth),
            f"{analytics.average_response_time_hours:.1f}",
            f"{analytics.thread_velocity:.2f}",
            analytics.thread_health,
        )
    console.print(table)

    console.print("\n[bold]Performance[/bold]")
    for name, value in metrics.model_dump(by_alias=True).items():
        console.print(f"  {name}: {value:.2f}" if isinstance(value, float) else f"  {name}: {value}")
    console.print(f"  reliabilityScore: {trend.reliability_score:.1f}")
    console.print(
        f"  cache: {cache_stats.size}/{cache_stats.max_size} entries, "
        f"~{cache_stats.memory_usage_bytes} bytes"
    )


async def _analyze(hub: ThreadHub, threads: list[Thread]) -> list[tuple[str, ThreadAnalytics]]:
    now = datetime.now(UTC)

    def analyze(thread: Thread) -> tuple[str, ThreadAnalytics]:
        return thread.id, compute_analytics(thread.messages, thread.participants, now)

    return await hub.optimize_threads(threads, analyze)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
