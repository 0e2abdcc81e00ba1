"""
core/logs.py -- Logging setup and per-request correlation ids.

The request id is held in a ContextVar so every log line emitted while a
request is being handled can carry it without threading the value through
function arguments. RequestIdFilter copies it onto each LogRecord; records
emitted outside a request get "-".

Layer rule: core/ is the kernel. No imports from api/, auth/, or domains/.
"""

import logging
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s [%(request_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once.

    basicConfig is a no-op when the root logger already has handlers (e.g.
    under pytest or uvicorn's own config), so the filter is attached to
    whatever handlers exist afterwards. Adding it twice is harmless but we
    skip handlers that already carry one.
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
