"""Centralized logging configuration for the AI Gateway."""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# SDK loggers that echo every HTTP request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(
    log_level: str = "INFO",
    log_file: str | None = None,
    log_dir: str | Path = "./tmp",
) -> None:
    """Configure root logger with console + optional file handler.

    Args:
        log_level: Standard Python logging level name.
        log_file: If provided, logs are also written to <log_dir>/<log_file>.
        log_dir: Directory for the log file, created on demand.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    fmt = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicate handlers on repeated calls
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(fmt)
        root.addHandler(console)

    if log_file:
        log_path = (Path(log_dir) / log_file).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if not any(isinstance(h, logging.FileHandler) and h.baseFilename == str(log_path) for h in root.handlers):
            fh = logging.FileHandler(log_path)
            fh.setLevel(level)
            fh.setFormatter(fmt)
            root.addHandler(fh)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
