# bloodbank/transactions.py
"""
Unit-of-work helper for operations that touch more than one record.
"""
import logging
from functools import wraps

from django.db import DatabaseError, IntegrityError, transaction

from algorithms.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)


def atomic_operation(func):
    """
    Run func in a single database transaction.

    Either every write inside func is committed or none is. Database failures
    surface as domain errors: constraint violations become ValidationError,
    anything else becomes StorageError with the original exception chained.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except IntegrityError as exc:
            logger.warning(f"{func.__name__} rejected by a database constraint: {exc}")
            raise ValidationError(f"Conflicts with an existing record: {exc}") from exc
        except DatabaseError as exc:
            logger.exception(f"{func.__name__} failed at the storage layer")
            raise StorageError(str(exc)) from exc
    return wrapper
