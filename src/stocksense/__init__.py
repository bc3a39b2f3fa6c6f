import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "1.0.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("STOCKSENSE_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "stocksense.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _resolve_level(raw: str | None) -> int:
    """Map a level name such as ``"debug"`` to its numeric value (INFO if unknown)."""

    level = logging.getLevelName((raw or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _build_file_handler(formatter: logging.Formatter, level: int) -> logging.Handler | None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        print(
            f"Warning: unable to initialize log file at '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _configure_logging() -> logging.Logger:
    """Attach the rotating file and stderr handlers to the package logger once.

    ``STOCKSENSE_LOG_DIR`` relocates the log file and ``STOCKSENSE_LOG_LEVEL``
    changes the threshold of both handlers.
    """

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = _resolve_level(os.environ.get("STOCKSENSE_LOG_LEVEL"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = _build_file_handler(formatter, level)
    if file_handler is not None:
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.info("Logger initialized for the 'stocksense' package (version %s).", __version__)
