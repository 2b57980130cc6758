"""
Interfaces des collaborateurs externes du pipeline.

Le pipeline ne connaît que ces contrats étroits ; les implémentations
Supabase se trouvent dans `data_access.py` et les tests utilisent des faux.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..models import PriceOverride, Property


class PropertyCatalog(ABC):
    """Catalogue des propriétés à exporter."""

    @abstractmethod
    async def get_all(self) -> List[Property]:
        pass


class PriceCalculator(ABC):
    """
    Calculateur de prix distant.

    Les lignes retournées sont brutes (dict), au format du calculateur :
    - aperçu groupé : `check_date`, `final_price_per_night`, `base_price`,
      `seasonal_adjustment_percent`, `last_minute_discount_percent`,
      `min_price_enforced`,
    - prix unitaire : `final_price_per_night`, `base_price`,
      `seasonal_adjustment`, `last_minute_discount`, `min_price_enforced`.
    """

    @abstractmethod
    async def get_pricing_preview(
        self,
        property_external_id: str,
        start_date: str,
        end_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        """Prix de chaque nuit entre start_date et end_date (bornes incluses)."""
        pass

    @abstractmethod
    async def calculate_price(
        self,
        property_external_id: str,
        check_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        """Prix d'une seule nuit ; seul le premier élément est utilisé."""
        pass


class OverrideSource(ABC):
    """Source des prix saisis manuellement (lecture seule)."""

    @abstractmethod
    async def get_active_overrides(
        self,
        property_external_id: str,
        start_date: str,
        end_date: str,
    ) -> List[PriceOverride]:
        pass
