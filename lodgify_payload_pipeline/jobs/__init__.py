"""Jobs module for the Lodgify payload pipeline."""

from .generate_payloads import audit_overrides, generate_and_validate

__all__ = [
    "audit_overrides",
    "generate_and_validate",
]
