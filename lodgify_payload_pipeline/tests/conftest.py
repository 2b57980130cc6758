"""
Fixtures partagées pour les tests.
"""

import asyncio
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from unittest.mock import Mock

import pytest

from lodgify_payload_pipeline.config.settings import Settings
from lodgify_payload_pipeline.interfaces.base import PriceCalculator, PropertyCatalog
from lodgify_payload_pipeline.models import (
    DatePriceData,
    PriceOverride,
    Property,
    StayLengthCategory,
)


class FakeCatalog(PropertyCatalog):
    """Catalogue en mémoire."""

    def __init__(self, properties: List[Property]):
        self.properties = properties
        self.calls = 0

    async def get_all(self) -> List[Property]:
        self.calls += 1
        return list(self.properties)


class FakeCalculator(PriceCalculator):
    """
    Calculateur en mémoire.

    - `price_for(day, stay_length)` donne le prix d'une nuit,
    - `failing_chunks` : dates de début de chunk dont l'appel groupé échoue,
    - `failing_days` : dates dont le calcul unitaire échoue,
    - `slow_chunks` / `slow_days` : appels qui dépassent n'importe quel timeout.
    """

    def __init__(
        self,
        price_for: Optional[Callable[[date, int], float]] = None,
        failing_chunks: Iterable[str] = (),
        failing_days: Iterable[str] = (),
        slow_chunks: Iterable[str] = (),
        slow_days: Iterable[str] = (),
    ):
        self.price_for = price_for or (lambda day, stay_length: 100.0)
        self.failing_chunks: Set[str] = set(failing_chunks)
        self.failing_days: Set[str] = set(failing_days)
        self.slow_chunks: Set[str] = set(slow_chunks)
        self.slow_days: Set[str] = set(slow_days)
        self.preview_calls: List[tuple] = []
        self.single_calls: List[tuple] = []

    async def get_pricing_preview(
        self,
        property_external_id: str,
        start_date: str,
        end_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        self.preview_calls.append((property_external_id, start_date, end_date, stay_length))
        if start_date in self.slow_chunks:
            await asyncio.sleep(10)
        if start_date in self.failing_chunks:
            raise RuntimeError(f"Failed to get pricing preview: chunk {start_date}")

        rows = []
        day = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
        while day <= end:
            rows.append({
                "check_date": day.isoformat(),
                "final_price_per_night": self.price_for(day, stay_length),
                "base_price": 100.0,
                "seasonal_adjustment_percent": 0,
                "last_minute_discount_percent": 0,
                "min_price_enforced": False,
            })
            day += timedelta(days=1)
        return rows

    async def calculate_price(
        self,
        property_external_id: str,
        check_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        self.single_calls.append((property_external_id, check_date, stay_length))
        if check_date in self.slow_days:
            await asyncio.sleep(10)
        if check_date in self.failing_days:
            raise RuntimeError(f"Failed to calculate price: {check_date}")

        day = date.fromisoformat(check_date)
        return [{
            "final_price_per_night": self.price_for(day, stay_length),
            "base_price": 100.0,
            "seasonal_adjustment": 0,
            "last_minute_discount": 0,
            "min_price_enforced": False,
        }]


@pytest.fixture
def settings():
    """Settings de test (pas de Supabase réel, timeouts courts)."""
    return Settings(
        supabase_url="https://mock.supabase.co",
        supabase_key="mock_key",
        request_timeout=0.2,
    )


@pytest.fixture
def mock_supabase_client():
    """Mock du client Supabase."""
    client = Mock()
    client.table.return_value = Mock()
    return client


@pytest.fixture
def sample_property():
    """Propriété exportable de test."""
    return Property(
        id="uuid-1",
        external_property_id="327020",
        external_room_type_id=398340,
        base_price_per_day=100.0,
    )


@pytest.fixture
def single_category():
    return [StayLengthCategory(name="1-7 nights", min_stay=1, max_stay=7, stay_length=3)]


@pytest.fixture
def fake_catalog(sample_property):
    return FakeCatalog([sample_property])


@pytest.fixture
def make_catalog():
    return FakeCatalog


@pytest.fixture
def make_calculator():
    return FakeCalculator


@pytest.fixture
def make_records():
    """Fabrique de DatePriceData à partir de (date ISO, prix)."""
    def _make(
        days: Iterable[tuple],
        min_stay: int = 1,
        max_stay: int = 7,
        stay_length: int = 3,
    ) -> List[DatePriceData]:
        return [
            DatePriceData(
                date=date.fromisoformat(day) if isinstance(day, str) else day,
                price=price,
                min_stay=min_stay,
                max_stay=max_stay,
                stay_length=stay_length,
                base_price=100.0,
            )
            for day, price in days
        ]
    return _make


@pytest.fixture
def sample_overrides():
    return [
        PriceOverride(property_id="327020", override_date="2025-07-10", override_price=120.0),
    ]
