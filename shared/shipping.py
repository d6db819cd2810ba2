"""
shipping.py - Distance and Shipping Fee Calculation

PURPOSE:
    Pure, deterministic helpers shared by the cart service and the client cart store:
    - calculate_distance: haversine great-circle distance in kilometers
    - calculate_shipping_fee: step function over the canonical fee table
    - describe_shipping: human readable label for a quoted distance

FEE TABLE (KES, upper bound inclusive):
    - 0-10 km:     500  (Local)
    - 10-25 km:    800  (Regional)
    - 25-50 km:   1200  (Regional+)
    - 50-100 km:  1800  (Long Distance)
    - 100+ km:    2500  (Extra Long)

    This is the only fee table. Deployments override it through the
    SHIPPING_FEE_TIERS setting, never per call site.
"""

import math
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

EARTH_RADIUS_KM = 6371
CURRENCY = "KES"


class Coordinates(BaseModel):
    """Latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class FeeTier(BaseModel):
    """One distance band. ``max_distance_km`` of None marks the unbounded last band."""

    max_distance_km: Optional[float] = None
    fee: int
    label: str = ""


class FeeSchedule:
    """Ordered, validated list of fee tiers."""

    def __init__(self, tiers: Sequence[FeeTier]):
        tiers = list(tiers)
        if not tiers:
            raise ValueError("Fee schedule needs at least one tier")
        if tiers[-1].max_distance_km is not None:
            raise ValueError("Last fee tier must be unbounded (max_distance_km=None)")

        previous_bound = -math.inf
        previous_fee = -math.inf
        for tier in tiers[:-1]:
            if tier.max_distance_km is None:
                raise ValueError("Only the last fee tier may be unbounded")
            if tier.max_distance_km <= previous_bound:
                raise ValueError("Fee tier thresholds must be strictly ascending")
            previous_bound = tier.max_distance_km
        for tier in tiers:
            if tier.fee < 0:
                raise ValueError("Fee tier amounts must be non-negative")
            if tier.fee < previous_fee:
                raise ValueError("Fee tier amounts must not decrease with distance")
            previous_fee = tier.fee

        self.tiers: List[FeeTier] = tiers

    def tier_for(self, distance_km: float) -> FeeTier:
        for tier in self.tiers:
            if tier.max_distance_km is None or distance_km <= tier.max_distance_km:
                return tier
        return self.tiers[-1]


DEFAULT_FEE_TIERS: List[FeeTier] = [
    FeeTier(max_distance_km=10, fee=500, label="Local"),
    FeeTier(max_distance_km=25, fee=800, label="Regional"),
    FeeTier(max_distance_km=50, fee=1200, label="Regional+"),
    FeeTier(max_distance_km=100, fee=1800, label="Long Distance"),
    FeeTier(max_distance_km=None, fee=2500, label="Extra Long"),
]

DEFAULT_FEE_SCHEDULE = FeeSchedule(DEFAULT_FEE_TIERS)


def calculate_distance(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance between two points in kilometers, rounded to 2 decimals."""
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude)) * math.cos(math.radians(b.latitude)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_KM * c, 2)


def calculate_shipping_fee(distance_km: float, schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE) -> int:
    """Flat fee for the first band whose upper bound covers ``distance_km``."""
    return schedule.tier_for(distance_km).fee


def describe_shipping(distance_km: float, schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE) -> str:
    """Label for UI display, e.g. ``"18km (Regional) - 800 KES"``."""
    tier = schedule.tier_for(distance_km)
    label = f" ({tier.label})" if tier.label else ""
    return f"{round(distance_km)}km{label} - {tier.fee} {CURRENCY}"
