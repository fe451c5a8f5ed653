# achievement_api/services/store_errors.py
"""Translate store driver errors into core error kinds at the gateway boundary."""
import logging
from contextlib import contextmanager
from typing import Iterator

from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError, PyMongoError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from achievement_api.core.errors import NotFound, StoreUnavailable, ValidationFailed

logger = logging.getLogger(__name__)


@contextmanager
def sql_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        logger.warning("relational constraint violated op=%s: %s", operation, exc.orig)
        raise ValidationFailed(f"{operation}: constraint violated") from exc
    except SQLAlchemyError as exc:
        logger.error("relational store error op=%s: %s", operation, exc)
        raise StoreUnavailable(f"{operation} failed") from exc


@contextmanager
def mongo_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except InvalidId as exc:
        raise NotFound("achievement not found") from exc
    except DuplicateKeyError as exc:
        raise ValidationFailed(f"{operation}: duplicate key") from exc
    except PyMongoError as exc:
        logger.error("document store error op=%s: %s", operation, exc)
        raise StoreUnavailable(f"{operation} failed") from exc
