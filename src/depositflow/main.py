"""Main entry point - runs the API and the ledger outbox forwarder."""

import asyncio
import logging
import signal

import uvicorn

from depositflow.api.app import create_app
from depositflow.config import get_settings
from depositflow.ledger.database import close_db, init_db
from depositflow.services.outbox import LedgerOutboxForwarder

logger = logging.getLogger(__name__)


class Application:
    """Main application that runs the API and background workers."""

    def __init__(self):
        self.settings = get_settings()
        self.forwarder = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting depositflow...")
        logger.info(f"Environment: {self.settings.environment}")

        await init_db()
        logger.info("Database initialized")

        tasks = [asyncio.create_task(self._run_api())]
        logger.info("API task created")

        if self.settings.ledger_webhook_url:
            self.forwarder = LedgerOutboxForwarder()
            tasks.append(asyncio.create_task(self.forwarder.run()))
            logger.info("Outbox forwarder task created")
        else:
            logger.warning("LEDGER_WEBHOOK_URL not set - ledger instructions stay pending")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        if self.forwarder:
            self.forwarder.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self._cleanup()

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    async def _cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    app = Application()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
