"""
Pipeline d'export des grilles tarifaires vers Lodgify.

Ce package contient :
- la génération des plages de dates et des chunks mensuels,
- la récupération des prix auprès du calculateur (avec repli jour par jour),
- la compression des prix journaliers en plages de dates,
- la validation des payloads (structure, règles métier, overrides).
"""

from .exceptions import (
    GenerationCancelled,
    InvalidRange,
    PayloadGenerationError,
    PropertiesNotFound,
    PropertyGenerationFailed,
)
from .models import GenerationOptions, LodgifyPayload, LodgifyRate
from .payload_service import PayloadGenerationService

__all__ = [
    "GenerationCancelled",
    "InvalidRange",
    "PayloadGenerationError",
    "PropertiesNotFound",
    "PropertyGenerationFailed",
    "GenerationOptions",
    "LodgifyPayload",
    "LodgifyRate",
    "PayloadGenerationService",
]
