"""Configuration module for the Lodgify payload pipeline."""

from .settings import Settings

__all__ = [
    "Settings",
]
