import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler

from . import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] [%(request_id)s] %(message)s"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request being served ("-" outside one)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging():
    """Configure application-wide logging with console + optional rotating file."""
    root = logging.getLogger()
    if any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        # Avoid double configuration if reloaded
        return

    root.setLevel(config.log_level())
    fmt = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(fmt)
    console.addFilter(RequestIdFilter())
    root.addHandler(console)

    log_dir = config.log_dir()
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, "bank.log"), when="midnight", backupCount=7, encoding="utf-8"
        )
        file_handler.setFormatter(fmt)
        file_handler.addFilter(RequestIdFilter())
        root.addHandler(file_handler)
