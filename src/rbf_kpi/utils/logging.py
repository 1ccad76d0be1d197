import logging
import os

from rich.logging import RichHandler

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# per-page request logs from the HTTP stack drown out the fetch summaries
NOISY_LOGGERS = ("urllib3", "requests", "httpx")


def get_logger(name: str) -> logging.Logger:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(name)
