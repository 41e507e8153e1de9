"""CLI for telegram-logger.

Usage:
    telegram-logger monitor
    telegram-logger monitor --levels ERROR,CRITICAL --dry-run
    telegram-logger monitor --reset
    telegram-logger watch --interval 60
    telegram-logger send "Deploy finished" --level INFO
    telegram-logger cache clear
"""

from datetime import datetime
from pathlib import Path

import click

from telegram_logger.alerter import (
    MonitorError,
    Notifier,
    RunStatus,
    SqliteStore,
    create_monitor,
    watch,
)
from telegram_logger.alerter.monitor import MonitorResult, Outcome
from telegram_logger.config import DEFAULT_CONFIG_PATH, Config, split_list
from telegram_logger.logging import configure_logging, get_logger

log = get_logger(__name__)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    help="Config file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path, verbose: bool) -> None:
    """Send application log errors to Telegram."""
    configure_logging("telegram-logger", "DEBUG" if verbose else "INFO")
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config.from_file(config_path)
    ctx.obj["verbose"] = verbose
    log.debug("Loaded configuration", path=str(config_path), exists=config_path.exists())


# --- Monitor Commands ---


@main.command("monitor")
@click.option("--log-path", type=click.Path(path_type=Path), help="Path to log file")
@click.option("--levels", help="Comma-separated log levels to monitor")
@click.option("--dry-run", is_flag=True, help="Parse and display errors without sending")
@click.option("--reset", is_flag=True, help="Reset the file position tracker")
@click.pass_context
def monitor(
    ctx: click.Context,
    log_path: Path | None,
    levels: str | None,
    dry_run: bool,
    reset: bool,
) -> None:
    """Monitor the log file for new errors and send Telegram notifications.

    Meant to be run periodically (e.g. every minute from cron). Only one run
    per log file should be active at a time.
    """
    config = ctx.obj["config"]
    log_monitor = create_monitor(config, log_path=log_path)
    level_list = split_list(levels) if levels else None

    try:
        result = log_monitor.run(levels=level_list, dry_run=dry_run, reset=reset)
    except MonitorError as e:
        click.secho(str(e), fg="red", err=True)
        raise SystemExit(1) from e
    finally:
        log_monitor.notifier.close()

    print_result(result)


@main.command("watch")
@click.option("--log-path", type=click.Path(path_type=Path), help="Path to log file")
@click.option("--interval", default=60, type=int, help="Seconds between runs")
@click.pass_context
def watch_command(ctx: click.Context, log_path: Path | None, interval: int) -> None:
    """Run the monitor repeatedly, for hosts without cron."""
    config = ctx.obj["config"]
    log_monitor = create_monitor(config, log_path=log_path)

    click.echo("Watching log file...")
    click.echo(f"  Log file: {log_monitor.tracker.log_path}")
    click.echo(f"  Levels: {', '.join(config.monitor_levels)}")
    click.echo(f"  Interval: {interval}s")
    click.echo("")

    try:
        watch(log_monitor, interval_seconds=interval)
    finally:
        log_monitor.notifier.close()


def print_result(result: MonitorResult) -> None:
    """Print a human-readable summary of a monitor run."""
    if result.status == RunStatus.RESET:
        click.echo("Position tracker reset.")
        return
    if result.status == RunStatus.MISSING:
        click.secho(f"Log file not found: {result.log_path}", fg="yellow")
        return
    if result.status == RunStatus.NO_NEW_DATA:
        click.echo("No new log entries.")
        return

    if not result.results:
        click.echo("No matching log entries found.")
        return

    click.echo(f"Found {len(result.results)} error(s).")
    for item in result.results:
        entry = item.entry
        preview = entry.message[:50]

        if item.outcome == Outcome.DRY_RUN:
            click.echo("---")
            click.echo(f"[{entry.level}] {entry.timestamp} ({entry.environment})")
            click.echo(entry.message)
            if entry.stacktrace:
                suffix = "..." if len(entry.stacktrace) > 200 else ""
                click.echo(f"Stack trace: {entry.stacktrace[:200]}{suffix}")
        elif item.outcome == Outcome.SENT:
            click.secho(f"Sent notification: {preview}...", fg="green")
        else:
            click.secho(f"Skipped (throttled/filtered): {preview}...", fg="yellow")


# --- Notification Commands ---


@main.command("send")
@click.argument("message")
@click.option("--level", default="ERROR", help="Log level shown in the notification")
@click.pass_context
def send(ctx: click.Context, message: str, level: str) -> None:
    """Send a custom message to Telegram."""
    config = ctx.obj["config"]
    notifier = Notifier(config, SqliteStore(config.cache_path))

    try:
        sent = notifier.send(message, level.upper())
    finally:
        notifier.close()

    if sent:
        click.echo("Message sent!")
    else:
        click.echo("Failed to send message (check credentials, environment and throttle)")
        raise SystemExit(1)


@main.command("test")
@click.pass_context
def send_test(ctx: click.Context) -> None:
    """Send a test notification to verify the bot configuration."""
    config = ctx.obj["config"]
    notifier = Notifier(config, SqliteStore(config.cache_path))

    # Unique text so the throttle never swallows a test
    time_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")
    message = f"Test notification from telegram-logger ({time_str}). Configuration is working."

    try:
        sent = notifier.send(message, "INFO", context={"log_path": str(config.log_path)})
    finally:
        notifier.close()

    if sent:
        click.echo("Test notification sent successfully!")
    else:
        click.echo("Failed to send test notification")
        raise SystemExit(1)


# --- Cache Commands ---


@main.group()
def cache() -> None:
    """Manage the local cache (throttle markers and cached positions)."""
    pass


@cache.command("clear")
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Clear all throttle markers and cached positions.

    With position_storage 'cache', the next monitor run reads the log file
    from the beginning.
    """
    config = ctx.obj["config"]

    if not yes:
        click.confirm(f"Clear cache at {config.cache_path}?", abort=True)

    count = SqliteStore(config.cache_path).clear()
    click.echo(f"Cleared {count} cache entries")


if __name__ == "__main__":
    main()
