from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from dormmate.utils.booking import PAYMENT_STATUS_VALUES, is_valid_payment_status


class MealType(str, Enum):
    BREAKFAST = 'breakfast'
    LUNCH = 'lunch'
    DINNER = 'dinner'
    SNACKS = 'snacks'


MEAL_TYPE_VALUES = tuple(item.value for item in MealType)
DAYS_OF_WEEK = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

# Last hour of the day (inclusive) at which a meal can still be booked.
BOOKING_CUTOFF_HOURS = {
    MealType.BREAKFAST.value: 20,
    MealType.LUNCH.value: 9,
    MealType.DINNER.value: 15,
    MealType.SNACKS.value: 16,
}


@dataclass
class MessBookingValidation:
    is_valid: bool
    meal_type: str | None = None
    booking_date: date | None = None
    payment_status: str | None = None
    errors: list[str] = field(default_factory=list)


def normalize_meal_type(value: str) -> str:
    return (value or '').strip().lower()


def is_valid_meal_type(value: str) -> bool:
    return normalize_meal_type(value) in MEAL_TYPE_VALUES


def normalize_day(value: str) -> str:
    return (value or '').strip().capitalize()


def is_valid_day(value: str) -> bool:
    return normalize_day(value) in DAYS_OF_WEEK


def day_index(value: str) -> int:
    day = normalize_day(value)
    return DAYS_OF_WEEK.index(day) if day in DAYS_OF_WEEK else len(DAYS_OF_WEEK)


def meal_index(value: str) -> int:
    meal = normalize_meal_type(value)
    return MEAL_TYPE_VALUES.index(meal) if meal in MEAL_TYPE_VALUES else len(MEAL_TYPE_VALUES)


def validate_mess_booking(meal_type: str, booking_date, payment_status: str) -> MessBookingValidation:
    errors = []
    if not is_valid_meal_type(meal_type):
        errors.append(f"Invalid meal type: {meal_type}. Must be one of: {', '.join(MEAL_TYPE_VALUES)}")
    if not isinstance(booking_date, date):
        errors.append('Invalid booking date')
    if not is_valid_payment_status(payment_status):
        errors.append(
            f"Invalid payment status: {payment_status}. Must be one of: {', '.join(PAYMENT_STATUS_VALUES)}"
        )
    if errors:
        return MessBookingValidation(is_valid=False, errors=errors)
    return MessBookingValidation(
        is_valid=True,
        meal_type=normalize_meal_type(meal_type),
        booking_date=booking_date,
        payment_status=payment_status,
    )


def is_valid_booking_time(meal_type: str, booking_at: datetime, now: datetime) -> bool:
    if booking_at < now:
        return False
    cutoff = BOOKING_CUTOFF_HOURS.get(normalize_meal_type(meal_type))
    if cutoff is None:
        return False
    return booking_at.hour <= cutoff
