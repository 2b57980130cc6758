"""
Compression des prix journaliers en plages de dates.

Ce module est responsable de :
- fusionner les jours consécutifs ayant le même prix et les mêmes conditions
  de séjour (`optimize`),
- vérifier que la fusion ne perd ni n'ajoute aucune date
  (`validate_optimization`),
- décider si la compression vaut la peine (`meets_threshold`),
- fournir la représentation de repli, un jour = une plage
  (`to_individual_entries`).

Les quatre fonctions sont pures et indépendantes ; c'est le service de
génération qui les enchaîne.
"""

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Iterable, List, Optional, Set, Tuple

from .models import DatePriceData, OptimizedRange, round_money

DEFAULT_MIN_REDUCTION = 0.6


@dataclass
class OptimizationValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


def _merge_key(record: DatePriceData) -> Tuple[float, int, int, int]:
    return (round_money(record.price), record.min_stay, record.max_stay, record.stay_length)


def optimize(records: Iterable[DatePriceData]) -> List[OptimizedRange]:
    """
    Fusionne les jours consécutifs de prix identique en plages.

    Un seul passage sur les enregistrements triés par date : la plage
    courante est étendue tant que le jour suivant a la même clé
    (prix arrondi au centime, min/max stay, durée représentative) et suit
    immédiatement la fin de la plage.
    """
    sorted_records = sorted(records, key=lambda r: r.date)
    ranges: List[OptimizedRange] = []

    current: Optional[OptimizedRange] = None
    current_key = None

    for record in sorted_records:
        key = _merge_key(record)
        if (
            current is not None
            and key == current_key
            and current.end_date + timedelta(days=1) == record.date
        ):
            current = replace(current, end_date=record.date)
            continue

        if current is not None:
            ranges.append(current)
        current = _single_day_range(record)
        current_key = key

    if current is not None:
        ranges.append(current)
    return ranges


def expand_ranges(ranges: Iterable[OptimizedRange]) -> List[date]:
    """Liste toutes les dates couvertes par les plages (doublons conservés)."""
    dates: List[date] = []
    for optimized_range in ranges:
        current = optimized_range.start_date
        while current <= optimized_range.end_date:
            dates.append(current)
            current += timedelta(days=1)
    return dates


def validate_optimization(
    original: Iterable[DatePriceData],
    optimized: Iterable[OptimizedRange],
) -> OptimizationValidation:
    """
    Vérifie que les plages couvrent exactement les dates d'origine.

    Les plages sont ré-expansées jour par jour puis comparées, en tant
    qu'ensembles, aux dates d'entrée.
    """
    original_dates: Set[date] = {record.date for record in original}
    optimized_dates: Set[date] = set(expand_ranges(optimized))

    errors = [
        f"Missing date in optimization: {missing.isoformat()}"
        for missing in sorted(original_dates - optimized_dates)
    ]
    errors.extend(
        f"Extra date in optimization: {extra.isoformat()}"
        for extra in sorted(optimized_dates - original_dates)
    )

    return OptimizationValidation(valid=not errors, errors=errors)


def meets_threshold(
    original_count: int,
    optimized_count: int,
    min_reduction: float = DEFAULT_MIN_REDUCTION,
) -> bool:
    """True si la compression réduit le nombre d'entrées d'au moins `min_reduction`."""
    if original_count == 0:
        return True

    reduction = (original_count - optimized_count) / original_count
    return reduction >= min_reduction


def to_individual_entries(records: Iterable[DatePriceData]) -> List[OptimizedRange]:
    """Repli sans compression : une plage d'un jour par enregistrement."""
    return [_single_day_range(record) for record in records]


def calculate_optimization_stats(original_count: int, optimized_count: int) -> Tuple[int, float]:
    """
    Returns:
        (nombre d'entrées économisées, réduction en pourcentage arrondie à 2 décimales)
    """
    reduction = original_count - optimized_count
    effective = (reduction / original_count) * 100 if original_count > 0 else 0.0
    return reduction, round(effective, 2)


def _single_day_range(record: DatePriceData) -> OptimizedRange:
    return OptimizedRange(
        start_date=record.date,
        end_date=record.date,
        price=round_money(record.price),
        min_stay=record.min_stay,
        max_stay=record.max_stay,
        stay_length=record.stay_length,
    )
