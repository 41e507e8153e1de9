"""Periodic monitor runs for deployments without cron."""

import threading
import time

import schedule
import structlog

from .monitor import LogMonitor, MonitorError, MonitorResult

log = structlog.get_logger()


def run_once(monitor: LogMonitor) -> MonitorResult | None:
    """Run the monitor, logging read failures instead of raising."""
    try:
        return monitor.run()
    except MonitorError as e:
        log.error("Monitor run failed", path=str(e.path), error=str(e.error))
        return None


def watch(
    monitor: LogMonitor,
    interval_seconds: int = 60,
    stop_event: threading.Event | None = None,
    poll_seconds: float = 1.0,
) -> None:
    """Run the monitor every interval_seconds until stop_event is set.

    Runs happen one at a time on the calling thread, so a run never overlaps
    the previous one for the same log file.

    Args:
        monitor: Monitor to run
        interval_seconds: Seconds between runs
        stop_event: Set to stop the loop (default: run until interrupted)
        poll_seconds: How often to check for pending runs
    """
    stop_event = stop_event or threading.Event()
    scheduler = schedule.Scheduler()
    scheduler.every(interval_seconds).seconds.do(run_once, monitor)

    log.info(
        "Watching log file",
        path=str(monitor.tracker.log_path),
        interval_seconds=interval_seconds,
    )

    # First run immediately instead of waiting a full interval
    run_once(monitor)

    try:
        while not stop_event.is_set():
            scheduler.run_pending()
            time.sleep(poll_seconds)
    except KeyboardInterrupt:
        log.info("Received shutdown signal")
    finally:
        scheduler.clear()
        log.info("Stopped watching", path=str(monitor.tracker.log_path))
