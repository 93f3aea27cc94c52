import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

CONSOLE_FORMAT = logging.Formatter("%(levelname)s | %(name)s | %(message)s")

FILE_FORMAT = logging.Formatter(
    "%(asctime)s [%(levelname)s] [%(name)s.%(funcName)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Every module logs below this namespace
app_logger = logging.getLogger("mediavault")
app_logger.propagate = True


def setup_logging(level="INFO", log_dir=None):
    """Attach console (and optional daily-rotating file) handlers once."""
    effective_level = getattr(logging, str(level or "INFO").upper(), logging.INFO)

    if app_logger.handlers:
        app_logger.setLevel(effective_level)
        for h in app_logger.handlers:
            h.setLevel(effective_level)
        return

    app_logger.setLevel(effective_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CONSOLE_FORMAT)
    console_handler.setLevel(effective_level)
    app_logger.addHandler(console_handler)

    if not log_dir:
        return

    log_file = Path(log_dir) / "mediavault.log"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(log_file, when="midnight", interval=1, backupCount=30, encoding="utf-8")
        file_handler.setFormatter(FILE_FORMAT)
        file_handler.setLevel(effective_level)
        app_logger.addHandler(file_handler)
    except OSError as e:
        app_logger.error("Failed to setup file logging: %s", e)
        return

    app_logger.info("Logging initialized (Level: %s) -> %s", logging.getLevelName(effective_level), log_file)


def get_logger(name):
    """Get a logger within the 'mediavault' namespace."""
    if not name.startswith("mediavault"):
        name = f"mediavault.{name}"
    return logging.getLogger(name)
