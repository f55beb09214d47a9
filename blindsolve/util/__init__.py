from .format import deg_to_dms, deg_to_hms

__all__ = [
    "deg_to_dms",
    "deg_to_hms",
]
