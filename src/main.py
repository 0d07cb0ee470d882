import asyncio
import contextlib
import logging

from config import CFG
from logging_setup import configure_logging

LOG_SETTINGS = configure_logging("loyalty-core")

from api_server import create_api_app, start_api_server, stop_api_server
from database import DocumentStore
from subscriptions.maintenance import subscription_reset_loop

logger = logging.getLogger(__name__)


async def main():
    """Application entry point."""
    logger.info("Starting loyalty-core (db=%s, log=%s)", CFG.db_path, LOG_SETTINGS.log_path)
    store = DocumentStore(CFG.db_path)
    await store.init()

    api_app = create_api_app(store, CFG)
    api_runner = await start_api_server(api_app)

    background: list[asyncio.Task] = []
    if CFG.subscription_reset_enabled:
        background.append(
            asyncio.create_task(
                subscription_reset_loop(store, interval_sec=CFG.subscription_reset_interval_sec)
            )
        )
    else:
        logger.info("Subscription counter reset loop disabled (SUBSCRIPTION_RESET_ENABLED=0).")

    try:
        await asyncio.Event().wait()
    finally:
        for task in background:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await stop_api_server(api_runner)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
