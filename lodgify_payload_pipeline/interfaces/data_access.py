"""
Accès Supabase pour le pipeline d'export Lodgify.

Ce module fournit les implémentations concrètes des collaborateurs :
- catalogue des propriétés (table `properties`),
- overrides de prix actifs (table `price_overrides`),
- calculateur de prix (fonctions RPC `preview_pricing_calendar` et
  `calculate_final_price`).

IMPORTANT :
- Le client Python Supabase est synchrone : les requêtes sur les tables sont
  exécutées dans le thread pool pour ne pas bloquer l'event loop.
- Les appels RPC du calculateur passent directement par l'endpoint PostgREST
  avec aiohttp, afin que chaque requête porte son propre timeout et puisse
  être réellement annulée.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from supabase import Client, create_client  # type: ignore

from ..config.settings import Settings
from ..models import PriceOverride, Property
from .base import OverrideSource, PriceCalculator, PropertyCatalog

logger = logging.getLogger(__name__)


_supabase_client: Optional[Client] = None


def get_supabase_client(settings: Optional[Settings] = None) -> Client:
    """
    Retourne un client Supabase initialisé (singleton de module).
    """
    global _supabase_client

    if _supabase_client is not None:
        return _supabase_client

    settings = settings or Settings.from_env()
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError(
            "Les variables d'environnement SUPABASE_URL et SUPABASE_SERVICE_ROLE_KEY/SUPABASE_KEY "
            "doivent être configurées pour générer les payloads Lodgify."
        )

    _supabase_client = create_client(settings.supabase_url, settings.supabase_key)
    return _supabase_client


def _safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _response_data(response: Any) -> List[Dict[str, Any]]:
    # Vérifier si response.data existe (compatible avec différentes versions de Supabase)
    if not hasattr(response, "data"):
        raise RuntimeError("Réponse Supabase invalide: pas d'attribut 'data'")
    return response.data or []


class SupabasePropertyCatalog(PropertyCatalog):
    """Catalogue des propriétés lu dans la table `properties`."""

    def __init__(self, client: Optional[Client] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client(self.settings)
        return self._client

    async def get_all(self) -> List[Property]:
        client = self._get_client()
        query = (
            client.table("properties")
            .select("id, lodgify_property_id, lodgify_room_type_id, base_price_per_day")
            .order("lodgify_property_id", desc=False)
        )

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, lambda: query.execute())
        rows = _response_data(response)

        properties = [
            Property(
                id=str(row.get("id")),
                external_property_id=(
                    str(row["lodgify_property_id"]) if row.get("lodgify_property_id") else None
                ),
                external_room_type_id=_safe_int(row.get("lodgify_room_type_id")),
                base_price_per_day=_safe_float(row.get("base_price_per_day")),
            )
            for row in rows
        ]

        logger.info(f"Retrieved {len(properties)} properties from Supabase")
        return properties


class SupabaseOverrideSource(OverrideSource):
    """Overrides de prix actifs, table `price_overrides`."""

    def __init__(self, client: Optional[Client] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client(self.settings)
        return self._client

    async def get_active_overrides(
        self,
        property_external_id: str,
        start_date: str,
        end_date: str,
    ) -> List[PriceOverride]:
        client = self._get_client()
        query = (
            client.table("price_overrides")
            .select("property_id, override_date, override_price, is_active")
            .eq("property_id", property_external_id)
            .eq("is_active", True)
            .gte("override_date", start_date)
            .lte("override_date", end_date)
            .order("override_date", desc=False)
        )

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, lambda: query.execute())

        # override_price peut arriver en string (colonne numeric)
        return [
            PriceOverride(
                property_id=str(row.get("property_id", property_external_id)),
                override_date=str(row["override_date"])[:10],
                override_price=_safe_float(row.get("override_price")),
                is_active=bool(row.get("is_active", True)),
            )
            for row in _response_data(response)
        ]


class SupabaseRpcPriceCalculator(PriceCalculator):
    """
    Calculateur de prix exposé par les fonctions RPC Supabase.

    S'utilise comme context manager async pour partager une session HTTP :

        async with SupabaseRpcPriceCalculator(settings) as calculator:
            rows = await calculator.get_pricing_preview("327020", "2025-01-01", "2025-01-31", 3)
    """

    def __init__(self, settings: Optional[Settings] = None, timeout: Optional[float] = None):
        self.settings = settings or Settings.from_env()
        self.timeout = timeout or self.settings.request_timeout
        self.session: Optional[aiohttp.ClientSession] = None

        if not self.settings.supabase_url or not self.settings.supabase_key:
            raise RuntimeError("Supabase URL or key not configured for the price calculator")

    async def __aenter__(self):
        """Context manager entry."""
        self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def get_pricing_preview(
        self,
        property_external_id: str,
        start_date: str,
        end_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        return await self._call_rpc(
            "preview_pricing_calendar",
            {
                "p_property_id": property_external_id,
                "p_start_date": start_date,
                "p_end_date": end_date,
                "p_nights": stay_length,
            },
        )

    async def calculate_price(
        self,
        property_external_id: str,
        check_date: str,
        stay_length: int,
    ) -> List[Dict[str, Any]]:
        return await self._call_rpc(
            "calculate_final_price",
            {
                "p_property_id": property_external_id,
                "p_check_date": check_date,
                "p_nights": stay_length,
            },
        )

    async def _call_rpc(self, function_name: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Appelle une fonction RPC PostgREST.

        Raises:
            aiohttp.ClientResponseError: Pour erreurs HTTP
            aiohttp.ClientError: Pour erreurs réseau
            asyncio.TimeoutError: Si le timeout est dépassé
        """
        if not self.session:
            self.session = aiohttp.ClientSession()

        url = f"{self.settings.supabase_url.rstrip('/')}/rest/v1/rpc/{function_name}"
        headers = {
            "apikey": self.settings.supabase_key,
            "Authorization": f"Bearer {self.settings.supabase_key}",
            "Content-Type": "application/json",
        }
        timeout_obj = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with self.session.post(url, headers=headers, json=params, timeout=timeout_obj) as response:
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ClientResponseError as e:
            logger.error(f"HTTP {e.status} error for RPC {function_name}: {e.message}")
            raise
        except asyncio.TimeoutError:
            logger.error(f"Timeout for RPC {function_name}")
            raise

        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)
