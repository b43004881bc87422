"""Commit helper shared by the ledger-writing services."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from livebase.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def commit_or_raise(db: Session, operation: str, **context: Any) -> None:
    """Commit, or roll back and raise ``PersistenceError`` chained to the driver error."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database error during %s %s", operation, context, exc_info=True)
        raise PersistenceError(operation, **context) from e
