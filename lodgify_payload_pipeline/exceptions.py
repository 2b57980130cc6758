"""
Erreurs typées du pipeline de génération de payloads Lodgify.

Chaque erreur porte une catégorie (`type`) reprise dans les rapports :
- 'input' : paramètres invalides (plage de dates, propriétés inconnues),
- 'database' : échec de construction d'une propriété,
- 'cancelled' : annulation demandée par l'utilisateur.
"""

from typing import Iterable, List, Optional


class PayloadGenerationError(Exception):
    """Erreur de base du pipeline."""

    type: str = "database"

    def __init__(self, message: str, property_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.property_id = property_id


class InvalidRange(PayloadGenerationError, ValueError):
    """Plage de dates invalide (début après la fin, plage trop grande)."""

    type = "input"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class PropertiesNotFound(PayloadGenerationError):
    """Des propriétés demandées explicitement sont absentes du catalogue."""

    type = "input"

    def __init__(self, missing_ids: Iterable[str]):
        self.missing_ids = list(missing_ids)
        super().__init__(f"Properties not found: {', '.join(self.missing_ids)}")


class GenerationCancelled(PayloadGenerationError):
    """Génération annulée par l'appelant."""

    type = "cancelled"

    def __init__(self, message: str = "Generation cancelled by user"):
        super().__init__(message)


class PropertyGenerationFailed(PayloadGenerationError):
    """Erreur inattendue pendant la construction du payload d'une propriété."""

    type = "database"

    def __init__(self, property_id: str, cause: BaseException):
        self.cause = cause
        super().__init__(
            f"Failed to generate payload for property {property_id}: {cause}",
            property_id=property_id,
        )
