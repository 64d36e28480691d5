"""Co-Pilot Board entry point."""

import logging

from aiohttp import web

from copilot_board.config import Settings
from copilot_board.server import build_services, create_app

logger = logging.getLogger(__name__)


def main() -> None:
    """Load settings once, wire the services and serve HTTP."""
    settings = Settings()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; chat and meta requests will fail")
    if settings.uses_turso:
        logger.info("Using Turso database %s", settings.turso_database_url)
    else:
        logger.info("Using local database %s", settings.database_path)

    app = create_app(build_services(settings))
    logger.info(
        "Starting Co-Pilot Board on %s:%d with model %s...",
        settings.host,
        settings.port,
        settings.chat_model,
    )
    web.run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
