"""askpane entry point."""

import asyncio
import logging
import signal

from src.api.server import ApiServer
from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    server = ApiServer()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    try:
        await stop.wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the local API server and run until interrupted."""
    logger.info(
        "Starting askpane with model %s (embeddings: %s)",
        settings.gemini_model,
        settings.embedding_model,
    )
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
