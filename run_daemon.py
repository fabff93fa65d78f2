"""
Run the tunnel-autopilot daemon (the long-lived instance).

Holds the instance lock, runs the scheduler and, unless disabled, serves the
local control API.
"""

import argparse
import asyncio
import signal
import sys

import uvicorn

from api.main import create_app
from core.config import get_config
from core.context import build_context
from core.env_validator import validate_and_exit
from core.logger import get_logger, setup_logging
from modules.jobs.instance_lock import InstanceLock, InstanceLockError

logger = get_logger(__name__)


def signal_handler(sig, frame):
    """Handle shutdown signals."""
    logger.info("Received shutdown signal", signal=sig)
    sys.exit(0)


async def run_headless(context):
    """Scheduler-only loop, used when the API is disabled."""
    context.engine.ensure_status_record()
    context.scheduler.start()

    logger.info("Daemon started without API. Press Ctrl+C to stop.")

    try:
        while True:
            await asyncio.sleep(1)
    finally:
        context.scheduler.stop()
        logger.info("Daemon stopped")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Automatic VPN tunnel management daemon")
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not serve the local control API"
    )
    args = parser.parse_args(argv)

    # Validate configuration before starting
    validate_and_exit(exit_on_error=True)

    config = get_config()
    setup_logging(log_level=config.log_level, log_file=config.log_file)

    serve_api = config.api_enabled and not args.no_api

    lock = InstanceLock(config.data_path)
    try:
        lock.acquire(api_port=config.api_port if serve_api else None)
    except InstanceLockError as e:
        logger.warning("Another instance is already running, exiting", owner=e.owner)
        print(f"❌ {e}")
        return 1

    context = build_context(get_config)

    try:
        if serve_api:
            logger.info("Starting daemon", host=config.api_host, port=config.api_port)
            uvicorn.run(
                create_app(context),
                host=config.api_host,
                port=config.api_port,
                log_level=config.log_level.lower()
            )
        else:
            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)
            try:
                asyncio.run(run_headless(context))
            except KeyboardInterrupt:
                logger.info("Received keyboard interrupt")
    finally:
        lock.release()

    return 0


if __name__ == "__main__":
    sys.exit(main())
