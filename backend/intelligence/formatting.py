"""Display formatting shared by the feed and the simulation report."""

import math


def finite(value, default: float = 0.0) -> float:
    """Coerce to a finite float; NaN, Infinity and junk become `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return parsed if math.isfinite(parsed) else default


def format_money(value) -> str:
    return f"${finite(value):.2f}"


def format_pct(ratio, decimals: int = 1) -> str:
    """0.35 → "35.0%"."""
    return f"{finite(ratio) * 100:.{decimals}f}%"


def format_units(value) -> str:
    return f"{finite(value):.0f} und"
