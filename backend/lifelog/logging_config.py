import logging
import sys
import os
from logging.handlers import RotatingFileHandler

from lifelog.config import settings

# Define log directory and file
LOG_DIR = settings.LOG_DIR
LOG_FILE = os.path.join(LOG_DIR, "lifelog.log")


def setup_logging():
    """
    Configures logging for the application.
    Outputs to console and a file with a detailed format.
    """
    os.makedirs(LOG_DIR, exist_ok=True)

    log_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)

    # 5MB per file, 2 backups
    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1024*1024*5, backupCount=2)
    file_handler.setFormatter(log_formatter)

    # Avoid adding handlers multiple times (worker and app both call this)
    if not root_logger.handlers:
        root_logger.addHandler(console_handler)
        root_logger.addHandler(file_handler)
    else:
        has_file_handler = any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
        if not has_file_handler:
            root_logger.addHandler(file_handler)
        has_console_handler = any(
            isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
            for h in root_logger.handlers
        )
        if not has_console_handler:
            root_logger.addHandler(console_handler)

    logging.getLogger("lifelog").setLevel(logging.INFO)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # httpx logs every request line at INFO, including provider URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.info("Logging configured successfully (console and file).")
