"""
Purpose: Package entry + stable exports.
What it does:

Marks orders as a Python package.

Re-exports the domain models and errors so other modules can do:

from orders import Order, OrderStatus, ActiveOrderExists

Should not contain business logic. The lifecycle and repository are
imported from their own modules (orders.lifecycle, orders.repository)
since they depend on dispatch, which depends back on these models.

Public API:
- Domain models: Order, OrderStatus, PaymentMethod, PaymentStatus, Actor, ActorRole,
  TankSize, AssignmentAlarm, AlarmStatus
- Errors: OrderEngineError and its subclasses
"""
from .models import Actor, ActorRole, AlarmStatus, AssignmentAlarm, Order, OrderStatus, PaymentMethod, PaymentStatus, TankSize
from .exceptions import (
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

__all__ = ["Order",
           "OrderStatus",
             "PaymentMethod",
               "PaymentStatus",
               "Actor",
               "ActorRole",
               "TankSize",
               "AssignmentAlarm",
               "AlarmStatus",
               "OrderEngineError",
               "ActiveOrderExists",
               "PosPaymentNotAllowed",
               "NoDriverAvailable",
               "DriverUnavailable",
               "InvalidTransition",
               "TransitionNotPermitted",
               "OrderNotFound",
               "ConcurrentModification",
               "TankSizeNotFound",
               "NoPendingAcknowledgement",
               ]
