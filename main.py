"""
Comic Generator - Entry Point

Starts:
1. Comic service (pipeline event loop + ledger eviction)
2. Flask JSON API

Usage:
    python main.py

Requires .env file with ANTHROPIC_API_KEY and MINIMAX_API_KEY.
Optional settings live in config/comic.yaml.
"""

import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from comic_strip.config import load_settings
from comic_strip.server import create_app
from comic_strip.service import ComicService

Path("data").mkdir(exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler("data/comic_server.log", encoding="utf-8"),
    ],
)
logger = logging.getLogger("comic_server")


def main():
    settings = load_settings()

    # Check for required keys
    if not settings.minimax_api_key:
        logger.error("MINIMAX_API_KEY environment variable is required")
        sys.exit(1)
    if not settings.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY environment variable is required")
        sys.exit(1)

    service = ComicService.from_settings(settings)
    service.start()

    def signal_handler(signum, frame):
        logger.info("Shutting down comic server...")
        service.close()
        sys.exit(0)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, signal_handler)

    app = create_app(service)

    logger.info("=" * 60)
    logger.info(f"Comic Generator running on http://localhost:{settings.port}")
    logger.info(f"  Text model: {settings.text_model}")
    logger.info(f"  Image model: {settings.image_model}")
    logger.info("Ready to create 4-panel comics!")
    logger.info("=" * 60)

    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
