"""
Sous-package `interfaces` du pipeline d'export Lodgify.

Responsabilités :
- définir les contrats des collaborateurs externes (catalogue, calculateur,
  overrides),
- fournir leurs implémentations Supabase,
- faciliter le test (les faux implémentent les mêmes classes abstraites).
"""

from .base import OverrideSource, PriceCalculator, PropertyCatalog
from .data_access import (
    SupabaseOverrideSource,
    SupabasePropertyCatalog,
    SupabaseRpcPriceCalculator,
    get_supabase_client,
)

__all__ = [
    "OverrideSource",
    "PriceCalculator",
    "PropertyCatalog",
    "SupabaseOverrideSource",
    "SupabasePropertyCatalog",
    "SupabaseRpcPriceCalculator",
    "get_supabase_client",
]
