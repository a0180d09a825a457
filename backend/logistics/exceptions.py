"""
Maps dispatch engine errors to HTTP responses.

Registered as REST_FRAMEWORK["EXCEPTION_HANDLER"]. DRF's own exceptions
go through the default handler; engine errors become
{"error": <class name>, "detail": <message>, "retryable": <bool>}.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from dispatch.state_machines.driver_state import DriverStateException
from orders.exceptions import (
    ActiveOrderExists,
    ConcurrentModification,
    DriverUnavailable,
    InvalidTransition,
    NoPendingAcknowledgement,
    NoDriverAvailable,
    OrderEngineError,
    OrderNotFound,
    PosPaymentNotAllowed,
    TankSizeNotFound,
    TransitionNotPermitted,
)

logger = logging.getLogger(__name__)

# first match wins, so subclasses come before their parents
STATUS_CODES = (
    (ActiveOrderExists, status.HTTP_409_CONFLICT),
    (PosPaymentNotAllowed, status.HTTP_400_BAD_REQUEST),
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (TankSizeNotFound, status.HTTP_404_NOT_FOUND),
    (NoPendingAcknowledgement, status.HTTP_404_NOT_FOUND),
    (TransitionNotPermitted, status.HTTP_403_FORBIDDEN),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (DriverUnavailable, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (NoDriverAvailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_code_for(exc: OrderEngineError) -> int:
    for error_class, code in STATUS_CODES:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_400_BAD_REQUEST


def order_engine_exception_handler(exc, context):
    if isinstance(exc, OrderEngineError):
        code = status_code_for(exc)
        logger.info("%s -> %d: %s", type(exc).__name__, code, exc)
        return Response(
            {"error": type(exc).__name__, "detail": str(exc), "retryable": exc.retryable},
            status=code,
        )

    if isinstance(exc, DriverStateException):
        return Response(
            {"error": type(exc).__name__, "detail": str(exc), "retryable": False},
            status=status.HTTP_400_BAD_REQUEST,
        )

    return exception_handler(exc, context)
