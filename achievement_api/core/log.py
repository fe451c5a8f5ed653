# achievement_api/core/log.py
import logging

from achievement_api.config import settings

INTEGRITY_LOGGER = "achievement_api.integrity"
AUDIT_LOGGER = "achievement_api.audit"


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # uvicorn installs its own handlers; keep SQL echo out of INFO unless DEBUG
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
