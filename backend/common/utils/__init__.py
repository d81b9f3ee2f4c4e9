"""Common utility functions."""

from .geo import calculate_distance, bounding_box, within_radius
from .cities import normalize_city, same_city

__all__ = [
    "calculate_distance",
    "bounding_box",
    "within_radius",
    "normalize_city",
    "same_city",
]
