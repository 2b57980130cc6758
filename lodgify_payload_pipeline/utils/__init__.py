"""Utils module for the Lodgify payload pipeline."""

from .date_range import (
    custom_range,
    default_stay_categories,
    format_for_wire,
    horizon,
    monthly_chunks,
    validate_date_range,
)
from .progress import ProgressTracker

__all__ = [
    "custom_range",
    "default_stay_categories",
    "format_for_wire",
    "horizon",
    "monthly_chunks",
    "validate_date_range",
    "ProgressTracker",
]
