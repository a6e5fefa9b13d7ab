import logging
import sys
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "N/A"
        return True


def setup_logging(log_level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    if any(isinstance(f, RequestIDFilter) for h in root_logger.handlers for f in h.filters):
        root_logger.setLevel(log_level.upper())
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(RequestIDFilter())

    root_logger.setLevel(log_level.upper())
    root_logger.addHandler(handler)

