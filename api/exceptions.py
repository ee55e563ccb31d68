# api/exceptions.py
"""
Maps blood bank domain errors to HTTP responses.
Installed through REST_FRAMEWORK['EXCEPTION_HANDLER'].
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from algorithms.exceptions import (
    BloodBankError,
    IncompatibleBloodType,
    InvalidTransition,
    NotFound,
    ProtectedRecord,
    StorageError,
    UnitUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order, first match wins
STATUS_CODES = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (UnitUnavailable, status.HTTP_409_CONFLICT),
    (ProtectedRecord, status.HTTP_409_CONFLICT),
    (IncompatibleBloodType, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(exc):
    for error_class, code in STATUS_CODES:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_400_BAD_REQUEST


def domain_exception_handler(exc, context):
    """Render BloodBankError subclasses; everything else goes to DRF's handler"""
    if not isinstance(exc, BloodBankError):
        return exception_handler(exc, context)

    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{context['view'].__class__.__name__}: {exc.message}")

    return Response(
        {
            'success': False,
            'error': exc.message,
            'code': type(exc).__name__,
        },
        status=code,
    )
