"""Session helpers shared by the SQL-backed stores."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from hubspace.core.errors import InfrastructureError, MembershipError

logger = logging.getLogger(__name__)


@contextmanager
def store_operation(session, description: str) -> Iterator[None]:
    """Roll back on failure and surface driver errors as ``InfrastructureError``."""
    try:
        yield
    except MembershipError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Store operation failed: %s", description)
        raise InfrastructureError(f"{description} failed: store unavailable") from exc
