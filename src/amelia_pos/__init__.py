"""Amelia POS: inventory, cart and sales tools for Librería Amelia."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR_ENV = "AMELIA_POS_LOG_DIR"
LOG_FILE_NAME = "amelia_pos.log"


def resolve_log_file() -> Path:
    """Return the rotating log path, honouring ``AMELIA_POS_LOG_DIR``."""

    override = os.environ.get(LOG_DIR_ENV, "").strip()
    log_dir = Path(override).expanduser() if override else PROJECT_ROOT / ".logs"
    return log_dir / LOG_FILE_NAME


LOG_FILE = resolve_log_file()


def _configure_logging(log_file: Path) -> logging.Logger:
    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=512_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(f"amelia-pos: cannot write log file '{log_file}' ({exc}); logging to stderr only", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging(LOG_FILE)
log.info("Amelia POS logging to '%s'", LOG_FILE)
