from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    PARTIAL = 'partial'
    COMPLETE = 'complete'
    REFUNDED = 'refunded'


class BookingStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


# Bookings in these states hold a bed in the room.
OCCUPYING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.APPROVED.value)

PAYMENT_STATUS_VALUES = tuple(item.value for item in PaymentStatus)
BOOKING_STATUS_VALUES = tuple(item.value for item in BookingStatus)


@dataclass
class StatusValidation:
    is_valid: bool
    payment_status: str | None = None
    booking_status: str | None = None
    errors: list[str] = field(default_factory=list)


def is_valid_payment_status(value: str) -> bool:
    return value in PAYMENT_STATUS_VALUES


def is_valid_booking_status(value: str) -> bool:
    return value in BOOKING_STATUS_VALUES


def default_payment_status() -> str:
    return PaymentStatus.PENDING.value


def default_booking_status() -> str:
    return BookingStatus.PENDING.value


def is_occupying(status: str) -> bool:
    return status in OCCUPYING_STATUSES


def validate_booking_statuses(payment_status: str, booking_status: str) -> StatusValidation:
    errors = []
    if not is_valid_payment_status(payment_status):
        errors.append(
            f"Invalid payment status: {payment_status}. Must be one of: {', '.join(PAYMENT_STATUS_VALUES)}"
        )
    if not is_valid_booking_status(booking_status):
        errors.append(
            f"Invalid booking status: {booking_status}. Must be one of: {', '.join(BOOKING_STATUS_VALUES)}"
        )
    if errors:
        return StatusValidation(is_valid=False, errors=errors)
    return StatusValidation(is_valid=True, payment_status=payment_status, booking_status=booking_status)
