from __future__ import annotations

from enum import Enum


class HostelSize(str, Enum):
    SMALL = 'small'  # up to 50 rooms
    MEDIUM = 'medium'  # 51-100 rooms
    LARGE = 'large'  # 101+ rooms


class LocationTier(str, Enum):
    TIER_1 = 'tier_1'  # city centre, near universities
    TIER_2 = 'tier_2'  # good transport links
    TIER_3 = 'tier_3'  # standard


BASE_COMMISSION_RATE = 0.10
MIN_COMMISSION_RATE = 0.05
STUDENT_DISCOUNT = 0.05

_SIZE_ADJUSTMENTS = {
    HostelSize.SMALL.value: 0.02,
    HostelSize.MEDIUM.value: 0.0,
    HostelSize.LARGE.value: -0.01,
}

_LOCATION_ADJUSTMENTS = {
    LocationTier.TIER_1.value: 0.02,
    LocationTier.TIER_2.value: 0.0,
    LocationTier.TIER_3.value: -0.01,
}

_LOCATION_TIER_NAMES = {
    LocationTier.TIER_1.value: 'Premium Location',
    LocationTier.TIER_2.value: 'Good Location',
    LocationTier.TIER_3.value: 'Standard Location',
}


def get_commission_rate(size: str, location_tier: str) -> float:
    size_value = HostelSize(size).value
    tier_value = LocationTier(location_tier).value
    rate = BASE_COMMISSION_RATE + _SIZE_ADJUSTMENTS[size_value] + _LOCATION_ADJUSTMENTS[tier_value]
    return round(max(MIN_COMMISSION_RATE, rate), 4)


def location_tier_name(tier: str) -> str:
    return _LOCATION_TIER_NAMES.get(tier, tier)


def apply_student_discount(amount: float) -> float:
    return round(float(amount) * (1 - STUDENT_DISCOUNT), 2)
