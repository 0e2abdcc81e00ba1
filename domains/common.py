"""
domains/common.py -- Helpers shared by the domain service modules.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from core.errors import StoreError

logger = logging.getLogger("commitstreams.domains")


@contextmanager
def store_guard(action: str) -> Iterator[None]:
    """Turn unexpected SQLAlchemy failures into StoreError with context.

    Expected database errors (IntegrityError on a unique key, for example)
    must be caught inside the block; anything that escapes is logged with the
    traceback and surfaced to the client as a generic 500.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store operation failed: %s", action)
        raise StoreError(f"Failed to {action}") from exc
