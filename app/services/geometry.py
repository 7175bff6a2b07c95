"""
Distance metric and fare calculation.
"""
from typing import NamedTuple

# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------
INITIAL_FARE = 500
FARE_PER_DISTANCE = 100


class Point(NamedTuple):
    latitude: int
    longitude: int


def distance(a, b) -> int:
    """Manhattan distance between two coordinates (anything with latitude/longitude)."""
    return abs(a.latitude - b.latitude) + abs(a.longitude - b.longitude)


# ---------------------------------------------------------------------------
# Fare calculation
# ---------------------------------------------------------------------------

def metered_fare(pickup, destination) -> int:
    """Undiscounted fare: flat initial fare plus the distance-metered part."""
    return INITIAL_FARE + FARE_PER_DISTANCE * distance(pickup, destination)


def apply_discount(fare: int, discount: int) -> int:
    return max(fare - discount, 0)


def discounted_fare(pickup, destination, discount: int) -> int:
    """
    The discount only eats into the metered part; the initial fare is always charged.
    """
    metered = FARE_PER_DISTANCE * distance(pickup, destination)
    return INITIAL_FARE + apply_discount(metered, discount)
