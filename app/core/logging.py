import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Root logger setup shared by the API process and the Celery worker."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL or "INFO").upper(),
        format=LOG_FORMAT,
    )
