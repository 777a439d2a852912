"""Root logging setup. Called once from the FastAPI lifespan and run_server."""
import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO, including Graph API URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
