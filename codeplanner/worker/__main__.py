# FILE: codeplanner/worker/__main__.py
"""
Worker process entry point.

    python -m codeplanner.worker
"""

import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

# Load .env before reading settings
load_dotenv()

from codeplanner.config import Settings
from codeplanner.errors import CodePlannerError
from codeplanner.worker.runner import close_worker, start_worker

logger = logging.getLogger("codeplanner.worker")


async def main() -> int:
    # Startup failures of config, broker or store are fatal
    try:
        settings = Settings.from_env()
        logging.getLogger().setLevel(settings.log_level)
        worker, schedulers, broker, engine = await start_worker(settings)
    except CodePlannerError as e:
        logger.error("[worker] startup failed: %s", e.message)
        return 1

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    waiter = asyncio.create_task(stop.wait())
    consumer = asyncio.create_task(worker.wait_closed())
    done, _ = await asyncio.wait({waiter, consumer}, return_when=asyncio.FIRST_COMPLETED)
    exit_code = 0
    if consumer in done and consumer.exception() is not None:
        logger.error("[worker] job consumer stopped: %s", consumer.exception())
        exit_code = 1

    logger.info("[worker] shutting down")
    waiter.cancel()
    await close_worker(worker, schedulers, broker)
    await asyncio.gather(consumer, return_exceptions=True)
    engine.dispose()
    return exit_code


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
