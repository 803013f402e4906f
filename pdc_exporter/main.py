"""Main entry point for the Power Datacenter exporter.

This module handles:
- Loading configuration from flags, environment variables and .env
- Logging in to the Power Datacenter portal
- Starting the HTTP server for scrapes
- Scheduling periodic polls with APScheduler
"""

import logging
import sys
from typing import Optional, Sequence

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pdc_exporter.config import describe, load_config
from pdc_exporter.errors import ConfigError, PDCError
from pdc_exporter.exporter import PDCExporter
from pdc_exporter.server import create_app, parse_listen_address, start_server
from pdc_exporter.session import PDCSession

# Configure module logger
logger = logging.getLogger(__name__)


def setup_logging(level: str = "info") -> None:
    """Configure the root logger.

    Args:
        level: Log level name, case-insensitive
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # APScheduler logs every job run at INFO
    if level.lower() != "debug":
        logging.getLogger("apscheduler").setLevel(logging.WARNING)


def create_scheduler(exporter: PDCExporter, interval: int) -> BlockingScheduler:
    """Create a scheduler that polls the exporter every interval seconds.

    A poll that overruns the interval delays the next one; missed runs are
    coalesced rather than queued, and polls never overlap.

    Args:
        exporter: Exporter to poll
        interval: Seconds between polls

    Returns:
        Configured (not started) scheduler
    """
    scheduler = BlockingScheduler()
    scheduler.add_job(
        exporter.poll,
        trigger=IntervalTrigger(seconds=interval),
        id="poll",
        name=f"Poll work info every {interval}s",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=None,
    )
    return scheduler


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point.

    1. Load and validate configuration
    2. Log in (a failed login is fatal)
    3. Register metrics and start the HTTP server
    4. Run an initial poll, then poll on the configured interval

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    setup_logging()

    try:
        config = load_config(argv)
    except ConfigError as e:
        logger.error(f"Configuration failed: {e}")
        return 1

    setup_logging(config.log_level)
    logger.info(f"Configuration loaded: {', '.join(describe(config))}")

    session = PDCSession(config.base_url, config.serial_number)

    try:
        session.login(config.username, config.password)
    except PDCError as e:
        logger.error(f"Login failed, exiting: {e}")
        return 1

    exporter = PDCExporter(session)

    try:
        host, port = parse_listen_address(config.listen_address)
        httpd, _ = start_server(create_app(exporter, config.metrics_path), host, port)
    except (ValueError, OSError) as e:
        logger.error(f"Error starting HTTP server: {e}")
        return 1

    logger.info(f"Starting power-datacenter Exporter at {config.listen_address}")

    scheduler = create_scheduler(exporter, config.interval)

    logger.info("Running initial poll at startup")
    exporter.poll()

    logger.info("Starting scheduler, press Ctrl+C to exit")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received interrupt, shutting down")
        scheduler.shutdown(wait=False)
    finally:
        httpd.shutdown()
        httpd.server_close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
