import sys
from loguru import logger
from .config import settings


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """
    Configure the loguru sink used by the API, the jobs and the scheduler.

    Structured fields passed as keyword arguments (``logger.info("...", invoice_id=1)``)
    end up in ``record["extra"]`` and are rendered after the message.
    """
    level = level or settings.log_level
    serialize = settings.log_json if serialize is None else serialize

    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        serialize=serialize,
        backtrace=False,
        diagnose=False,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> {extra}"
        ),
    )
    logger.debug("Logging configured", level=level.upper(), serialize=serialize)
    return logger
