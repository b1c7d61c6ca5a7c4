import logging
import os
from datetime import datetime
from pathlib import Path

LOG_DIR = Path(os.getenv("STREAMALERTS_LOG_DIR", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

_LOGGERS = {}


def get_logger(
    name: str,
    *,
    runtime: str = "streamalerts",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.router, overlay.display_queue)
    - runtime: log file prefix (streamalerts | adapters | tests)

    All loggers of one runtime share a single log file per process run.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler
    # ------------------------------
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(_console_level())
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    logger.addHandler(_file_handler(runtime, formatter))

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger


_FILE_HANDLERS = {}


def _file_handler(runtime: str, formatter: logging.Formatter) -> logging.Handler:
    handler = _FILE_HANDLERS.get(runtime)
    if handler is not None:
        return handler

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    logfile = LOG_DIR / f"{runtime}-{timestamp}.log"

    handler = logging.FileHandler(logfile, encoding="utf-8")
    handler.setFormatter(formatter)
    _FILE_HANDLERS[runtime] = handler
    return handler


def _console_level() -> int:
    raw = os.getenv("STREAMALERTS_LOG_LEVEL", "INFO").strip().upper()
    return getattr(logging, raw, logging.INFO)
