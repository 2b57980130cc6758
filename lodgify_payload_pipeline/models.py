"""
Structures de données du pipeline d'export Lodgify.

Toutes les structures sont recréées à chaque génération et ne sont jamais
persistées. Les dates internes sont des `datetime.date` ; seules les
structures "wire" (`LodgifyRate`, `LodgifyPayload`) manipulent des chaînes
`YYYY-MM-DD`.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

# Valeurs imposées par le contrat Lodgify pour la tarification des invités
DEFAULT_RATE_MIN_STAY = 2
DEFAULT_RATE_MAX_STAY = 6
PRICE_PER_ADDITIONAL_GUEST = 5.0
ADDITIONAL_GUESTS_STARTS_FROM = 2

_CENT = Decimal("0.01")


def round_money(value: Any) -> float:
    """
    Arrondit un montant au centime (arrondi commercial, 0.005 -> 0.01).

    Passe par `str()` pour éviter le bruit binaire des floats
    (ex: 279.33000000000004 -> 279.33).
    """
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class StayLengthCategory:
    """Tranche de durées de séjour tarifée avec une durée représentative."""

    name: str
    min_stay: int
    max_stay: int
    stay_length: int


@dataclass(frozen=True)
class DateChunk:
    """Sous-plage (inclusive) alignée sur un mois calendaire."""

    start: date
    end: date


@dataclass(frozen=True)
class DatePriceData:
    """Prix d'une nuit pour un couple (propriété, catégorie de séjour)."""

    date: date
    price: float
    min_stay: int
    max_stay: int
    stay_length: int
    base_price: float = 0.0
    seasonal_adjustment_percent: float = 0.0
    last_minute_discount_percent: float = 0.0
    min_price_enforced: bool = False


@dataclass(frozen=True)
class OptimizedRange:
    """Plage contiguë de dates (bornes incluses) partageant prix et conditions de séjour."""

    start_date: date
    end_date: date
    price: float
    min_stay: int
    max_stay: int
    stay_length: int

    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass
class LodgifyRate:
    """Règle tarifaire au format de l'API Lodgify."""

    is_default: bool
    price_per_day: float
    min_stay: int
    max_stay: int
    price_per_additional_guest: float = PRICE_PER_ADDITIONAL_GUEST
    additional_guests_starts_from: int = ADDITIONAL_GUESTS_STARTS_FROM
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def default_rate(cls, base_price: float) -> "LodgifyRate":
        """Tarif par défaut obligatoire (sans dates) basé sur le prix de base de la propriété."""
        return cls(
            is_default=True,
            price_per_day=round_money(base_price),
            min_stay=DEFAULT_RATE_MIN_STAY,
            max_stay=DEFAULT_RATE_MAX_STAY,
        )

    @classmethod
    def from_range(cls, optimized_range: OptimizedRange) -> "LodgifyRate":
        return cls(
            is_default=False,
            start_date=optimized_range.start_date.isoformat(),
            end_date=optimized_range.end_date.isoformat(),
            price_per_day=round_money(optimized_range.price),
            min_stay=optimized_range.min_stay,
            max_stay=optimized_range.max_stay,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"is_default": self.is_default}
        if not self.is_default:
            data["start_date"] = self.start_date
            data["end_date"] = self.end_date
        data.update(
            {
                "price_per_day": self.price_per_day,
                "min_stay": self.min_stay,
                "max_stay": self.max_stay,
                "price_per_additional_guest": self.price_per_additional_guest,
                "additional_guests_starts_from": self.additional_guests_starts_from,
            }
        )
        return data


@dataclass
class LodgifyPayload:
    """Unité d'export : toutes les règles tarifaires d'une propriété."""

    property_id: int
    room_type_id: int
    rates: List[LodgifyRate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property_id": self.property_id,
            "room_type_id": self.room_type_id,
            "rates": [rate.to_dict() for rate in self.rates],
        }


@dataclass
class Property:
    """Propriété du catalogue, avec ses identifiants côté Lodgify."""

    id: str
    external_property_id: Optional[str]
    external_room_type_id: Optional[int]
    base_price_per_day: float

    def is_exportable(self) -> bool:
        return bool(self.external_property_id) and bool(self.external_room_type_id) and self.external_room_type_id > 0


@dataclass
class PriceOverride:
    """Prix saisi manuellement pour une propriété et une date."""

    property_id: str
    override_date: str
    override_price: float
    is_active: bool = True


@dataclass
class GenerationOptions:
    """
    Paramètres d'une génération.

    `property_ids` vide = toutes les propriétés exportables. Les dates ne sont
    prises en compte que si les deux bornes sont fournies ; sinon l'horizon
    par défaut est utilisé.
    """

    property_ids: List[str] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    stay_categories: Optional[List[StayLengthCategory]] = None
    include_default_rate: bool = True
    optimize_ranges: bool = True


class GenerationPhase(Enum):
    """Phases successives d'une génération."""
    LOADING = "loading"
    CALCULATING = "calculating"
    OPTIMIZING = "optimizing"
    VALIDATING = "validating"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class GenerationProgress:
    phase: GenerationPhase
    current_property: int
    total_properties: int
    percentage: float
    time_elapsed_ms: int
    estimated_remaining_ms: Optional[int] = None
    property_id: Optional[str] = None
    current_date: Optional[str] = None


@dataclass
class GenerationStatistics:
    total_properties: int
    total_dates: int
    total_rates_generated: int
    optimization_applied: bool
    entries_before_optimization: int
    entries_after_optimization: int
    optimization_reduction: float
    generation_time_ms: int
    memory_used_mb: Optional[float] = None


@dataclass
class GenerationResult:
    payloads: List[LodgifyPayload]
    statistics: GenerationStatistics


@dataclass
class PayloadValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ValidationSummary:
    valid: bool
    total_payloads: int
    valid_payloads: int
    invalid_payloads: int
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class OverrideInclusionResult:
    valid: bool
    included_count: int = 0
    missing_count: int = 0
    missing_dates: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
