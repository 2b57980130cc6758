"""
Génération des plages de dates de l'export.

Fonctions pures :
- horizon de 730 jours à partir d'aujourd'hui (minuit local),
- plages personnalisées,
- découpage en chunks mensuels pour borner la taille des appels au calculateur,
- catégories de durée de séjour par défaut.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

import pytz
from dateutil.relativedelta import relativedelta

from ..exceptions import InvalidRange
from ..models import DateChunk, StayLengthCategory

DEFAULT_HORIZON_DAYS = 730
DEFAULT_MAX_RANGE_DAYS = 800
WIRE_DATE_FORMAT = "%Y-%m-%d"


def today_in_timezone(timezone: Optional[str] = None) -> date:
    """Retourne la date du jour dans la timezone donnée (UTC par défaut)."""
    tz = pytz.timezone(timezone or "UTC")
    return datetime.now(tz).date()


def custom_range(start: date, end: date) -> List[date]:
    """
    Génère toutes les dates entre `start` et `end` (bornes incluses).

    Raises:
        InvalidRange: si start > end
    """
    if start > end:
        raise InvalidRange(f"Start date {start} must not be after end date {end}")

    dates: List[date] = []
    current = start
    while current <= end:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def horizon(
    days: int = DEFAULT_HORIZON_DAYS,
    today: Optional[date] = None,
    timezone: Optional[str] = None,
) -> List[date]:
    """
    Génère les dates d'aujourd'hui jusqu'à aujourd'hui + `days` (inclus).

    "Aujourd'hui" est la date à minuit dans `timezone` (nom pytz). Sans
    timezone, c'est la date UTC et non celle de l'hôte : le service passe
    toujours `settings.default_timezone` (variable DEFAULT_TIMEZONE).

    L'arithmétique est calendaire : les années bissextiles sont gérées
    naturellement, 730 jours ne correspondent pas forcément à deux fois 365.
    """
    start = today or today_in_timezone(timezone)
    return custom_range(start, start + timedelta(days=days))


def monthly_chunks(start: date, end: date) -> List[DateChunk]:
    """
    Découpe [start, end] en chunks alignés sur les mois calendaires.

    Le premier chunk commence à `start`, le dernier se termine à `end`,
    les autres couvrent exactement un mois (du 1er au dernier jour).
    """
    if start > end:
        raise InvalidRange(f"Start date {start} must not be after end date {end}")

    chunks: List[DateChunk] = []
    current = start
    while current <= end:
        next_month = current.replace(day=1) + relativedelta(months=1)
        chunk_end = min(next_month - timedelta(days=1), end)
        chunks.append(DateChunk(start=current, end=chunk_end))
        current = next_month
    return chunks


def default_stay_categories() -> List[StayLengthCategory]:
    """Catégories de séjour par défaut : 1-7, 8-14 et 15+ nuits."""
    return [
        StayLengthCategory(name="1-7 nights", min_stay=1, max_stay=7, stay_length=3),
        StayLengthCategory(name="8-14 nights", min_stay=8, max_stay=14, stay_length=10),
        StayLengthCategory(name="15+ nights", min_stay=15, max_stay=1000, stay_length=21),
    ]


def format_for_wire(value: date) -> str:
    """Format canonique `YYYY-MM-DD` attendu par le calculateur et par Lodgify."""
    return value.strftime(WIRE_DATE_FORMAT)


def parse_wire_date(value: str) -> date:
    return datetime.strptime(value, WIRE_DATE_FORMAT).date()


def is_consecutive_day(end: date, next_date: date) -> bool:
    return end + timedelta(days=1) == next_date


def days_in_range(start: date, end: date) -> int:
    """Nombre de jours entre start et end, bornes incluses."""
    return (end - start).days + 1


def validate_date_range(
    start: date,
    end: date,
    max_days: int = DEFAULT_MAX_RANGE_DAYS,
) -> List[str]:
    """
    Valide une plage personnalisée.

    Returns:
        Liste d'erreurs (vide si la plage est valide)
    """
    errors: List[str] = []

    if start > end:
        errors.append("Start date must be before end date")
        return errors

    span = days_in_range(start, end)
    if span > max_days:
        errors.append(f"Date range too large: {span} days (maximum {max_days})")

    return errors
