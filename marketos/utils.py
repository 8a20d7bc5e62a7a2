"""
Small shared helpers: clock and rounding.
"""
import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def safe_div(numerator: float, denominator: float) -> float:
    """Ratio that resolves to 0 whenever the denominator is not positive."""
    if denominator > 0:
        return numerator / denominator
    return 0.0
