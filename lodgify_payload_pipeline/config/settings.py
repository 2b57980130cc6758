"""
Configuration générale du pipeline d'export Lodgify.
"""

import os
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv
from pathlib import Path

# Charger .env depuis la racine du projet
project_root = Path(__file__).parent.parent.parent
load_dotenv(dotenv_path=project_root / ".env")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass
class Settings:
    """Configuration globale du pipeline."""

    # Base de données
    supabase_url: str = ""
    supabase_key: str = ""

    # Timezone utilisée pour déterminer "aujourd'hui" (UTC par défaut, pas la
    # timezone de l'hôte ; mettre celle des propriétés, ex: Europe/Paris)
    default_timezone: str = "UTC"

    # Horizon d'export (jours après aujourd'hui)
    horizon_days: int = 730

    # Plage personnalisée maximale acceptée (un peu de marge au-delà de 730 jours)
    max_range_days: int = 800

    # Timeout de chaque appel au calculateur de prix (secondes)
    request_timeout: float = 30.0

    # Réduction minimale exigée pour accepter la version optimisée (0.6 = 60 %)
    min_optimization_reduction: float = 0.6

    # Nombre d'échecs consécutifs tolérés dans le fallback jour par jour
    # avant d'abandonner le reste du chunk (None ou 0 = pas de limite)
    fallback_max_consecutive_failures: Optional[int] = 5

    # Bornes de prix "raisonnables" (avertissements uniquement)
    min_reasonable_price: float = 10.0
    max_reasonable_price: float = 10000.0

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Valide la configuration."""
        if self.horizon_days < 0:
            raise ValueError("horizon_days must be positive")
        if self.max_range_days <= 0:
            raise ValueError("max_range_days must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if not 0.0 <= self.min_optimization_reduction <= 1.0:
            raise ValueError("min_optimization_reduction must be between 0 and 1")
        if self.fallback_max_consecutive_failures is not None and self.fallback_max_consecutive_failures < 0:
            raise ValueError("fallback_max_consecutive_failures must be positive")
        if self.min_reasonable_price > self.max_reasonable_price:
            raise ValueError("min_reasonable_price must not exceed max_reasonable_price")

    @classmethod
    def from_env(cls) -> "Settings":
        """Crée une instance Settings depuis les variables d'environnement."""
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", os.getenv("SUPABASE_KEY", "")),
            default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
            horizon_days=_env_int("PAYLOAD_HORIZON_DAYS", 730),
            request_timeout=_env_float("PAYLOAD_REQUEST_TIMEOUT", 30.0),
            min_optimization_reduction=_env_float("PAYLOAD_MIN_OPTIMIZATION_REDUCTION", 0.6),
            fallback_max_consecutive_failures=_env_int("PAYLOAD_FALLBACK_MAX_CONSECUTIVE_FAILURES", 5),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
