"""
Suivi de progression d'une génération.

Calcule le temps écoulé, l'estimation du temps restant et transmet des
`GenerationProgress` au callback de l'appelant (synchrone ou async).
"""

import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from ..models import GenerationPhase, GenerationProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[GenerationProgress], Union[None, Awaitable[None]]]

# Part de la barre de progression réservée au calcul des prix
CALCULATION_SHARE = 80.0
PHASE_PERCENTAGES = {
    GenerationPhase.LOADING: 0.0,
    GenerationPhase.OPTIMIZING: 85.0,
    GenerationPhase.VALIDATING: 95.0,
    GenerationPhase.COMPLETE: 100.0,
}


class ProgressTracker:
    """
    Émet les événements de progression d'un run.

    Une instance par appel à `generate` ; elle ne doit pas être partagée.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.total_properties = 0
        self.completed_properties = 0
        self._started_at = time.monotonic()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started_at) * 1000)

    def estimate_remaining_ms(self) -> Optional[int]:
        """Temps moyen par propriété terminée x propriétés restantes."""
        if self.completed_properties == 0 or self.total_properties == 0:
            return None
        per_property = self.elapsed_ms() / self.completed_properties
        remaining = self.total_properties - self.completed_properties
        return int(per_property * remaining)

    def property_done(self) -> None:
        self.completed_properties += 1

    async def report(
        self,
        phase: GenerationPhase,
        current_property: Optional[int] = None,
        property_id: Optional[str] = None,
        current_date: Optional[str] = None,
    ) -> Optional[GenerationProgress]:
        """Construit et transmet un événement de progression."""
        if current_property is None:
            current_property = self.completed_properties

        if phase == GenerationPhase.CALCULATING:
            total = max(self.total_properties, 1)
            percentage = (max(current_property - 1, 0) / total) * CALCULATION_SHARE
        elif phase == GenerationPhase.ERROR:
            percentage = 0.0
        else:
            percentage = PHASE_PERCENTAGES[phase]

        progress = GenerationProgress(
            phase=phase,
            current_property=current_property,
            total_properties=self.total_properties,
            percentage=round(percentage, 2),
            time_elapsed_ms=self.elapsed_ms(),
            estimated_remaining_ms=self.estimate_remaining_ms() if phase == GenerationPhase.CALCULATING else None,
            property_id=property_id,
            current_date=current_date,
        )

        if self.callback is None:
            return progress

        result = self.callback(progress)
        if inspect.isawaitable(result):
            await result
        return progress
