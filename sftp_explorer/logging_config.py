import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import Settings


FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(settings: Settings):
    logger = logging.getLogger()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    # Called again on app reload; drop our previous handlers first
    for handler in [h for h in logger.handlers if getattr(h, "_sftp_explorer", False)]:
        logger.removeHandler(handler)
        handler.close()

    handlers = []

    # Console Handler (stdout)
    c_handler = logging.StreamHandler(sys.stdout)
    c_handler.setLevel(level)
    c_handler.setFormatter(logging.Formatter(FORMAT))
    handlers.append(c_handler)

    # File Handler (Rotating)
    if settings.log_file:
        # Max 2MB per file, keep only 1 backup (total ~4MB)
        f_handler = RotatingFileHandler(settings.log_file, maxBytes=2*1024*1024, backupCount=1, encoding='utf-8')
        f_handler.setLevel(level)
        f_handler.setFormatter(logging.Formatter(FORMAT))
        handlers.append(f_handler)

    for handler in handlers:
        handler._sftp_explorer = True
        logger.addHandler(handler)

    # Uvicorn logs go through the same handlers
    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).handlers = list(handlers)
        logging.getLogger(name).propagate = False

    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    logging.info("Logging configured. Writing to %s", settings.log_file or "stdout")
