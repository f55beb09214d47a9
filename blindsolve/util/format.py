from typing import Tuple


def _sexagesimal(value: float, precision: int) -> Tuple[int, int, float]:
    """Split ``abs(value)`` into whole units, minutes and rounded seconds."""
    total_seconds = round(abs(value) * 3600.0, precision)
    whole = int(total_seconds // 3600)
    minutes = int((total_seconds - whole * 3600) // 60)
    seconds = total_seconds - whole * 3600 - minutes * 60
    return whole, minutes, seconds


def _seconds_field(seconds: float, precision: int) -> str:
    width = 3 + precision if precision > 0 else 2
    return f"{seconds:0{width}.{precision}f}"


def deg_to_hms(ra_deg: float, precision: int = 2) -> str:
    hours, minutes, seconds = _sexagesimal((ra_deg / 15.0) % 24.0, precision)
    # Rounding up to 24h wraps to 00h.
    return f"{hours % 24:02d}:{minutes:02d}:{_seconds_field(seconds, precision)}"


def deg_to_dms(dec_deg: float, precision: int = 2) -> str:
    sign = "-" if dec_deg < 0 else "+"
    degrees, minutes, seconds = _sexagesimal(dec_deg, precision)
    return f"{sign}{degrees:02d}:{minutes:02d}:{_seconds_field(seconds, precision)}"
