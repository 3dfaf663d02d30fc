import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from ..config.settings import Settings
from ..core.audit import AuditLog, AuditLogHandler

_AUDIT_HANDLER_NAME = "licensegate-audit"


def configure_logging(config: Settings, audit: Optional[AuditLog] = None) -> logging.Logger:
    """Set up the ``licensegate`` logger tree from settings.

    Records go to stderr, to ``LOG_FILE`` when one is set, and into the
    audit ring buffer when one is given. Calling this again replaces the
    audit handler so only the latest context receives records.
    """
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.LOG_FORMAT)

    logger = logging.getLogger("licensegate")
    logger.setLevel(level)

    if config.LOG_FILE and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        file_handler = RotatingFileHandler(config.LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
        logger.addHandler(file_handler)

    for handler in list(logger.handlers):
        if handler.get_name() == _AUDIT_HANDLER_NAME:
            logger.removeHandler(handler)
    if audit is not None:
        audit_handler = AuditLogHandler(audit)
        audit_handler.set_name(_AUDIT_HANDLER_NAME)
        logger.addHandler(audit_handler)

    return logger
