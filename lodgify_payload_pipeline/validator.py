"""
Validation des payloads Lodgify.

Deux couches indépendantes :
1. validation structurelle selon le contrat de l'API Lodgify (erreurs
   bloquantes, au format "<chemin>: <message>"),
2. règles métier (avertissements non bloquants).

Plus un audit des overrides : chaque prix saisi manuellement doit se
retrouver dans le payload compressé.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .models import (
    LodgifyPayload,
    OverrideInclusionResult,
    PayloadValidationResult,
    PriceOverride,
    ValidationSummary,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DEFAULT_MIN_REASONABLE_PRICE = 10.0
DEFAULT_MAX_REASONABLE_PRICE = 10000.0
OVERRIDE_PRICE_TOLERANCE = 0.01

PayloadLike = Union[LodgifyPayload, Dict[str, Any]]

# Schéma d'une règle tarifaire : champ -> (entier exigé, minimum)
RATE_NUMERIC_SCHEMA: Dict[str, Tuple[bool, float]] = {
    "price_per_day": (False, 0),
    "min_stay": (True, 1),
    "max_stay": (True, 1),
    "price_per_additional_guest": (False, 0),
    "additional_guests_starts_from": (True, 0),
}
RATE_REQUIRED_FIELDS = ["is_default"] + list(RATE_NUMERIC_SCHEMA)
RATE_DATE_FIELDS = ["start_date", "end_date"]
MONEY_FIELDS = ["price_per_day", "price_per_additional_guest"]


def _as_dict(payload: PayloadLike) -> Any:
    if isinstance(payload, LodgifyPayload):
        return payload.to_dict()
    return payload


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_wire_date(value: Any) -> bool:
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def has_valid_decimals(value: float) -> bool:
    """
    Vérifie qu'un montant a au plus 2 décimales significatives.

    Le bruit des floats est toléré : au-delà des centimes, les chiffres
    restants doivent être tous nuls, ou des zéros suivis d'un unique
    chiffre final < 5 (ex: 279.33000000000004).
    """
    text = repr(float(value))
    if "e" in text or "E" in text:
        text = format(float(value), ".20f").rstrip("0")

    if "." not in text:
        return True

    decimals = text.split(".", 1)[1]
    if len(decimals) <= 2:
        return True

    extra = decimals[2:]
    return re.fullmatch(r"0*", extra) is not None or re.fullmatch(r"0*[1-4]", extra) is not None


def _validate_rate(rate: Any, path: str) -> List[str]:
    if not isinstance(rate, dict):
        return [f"{path}: must be object"]

    errors: List[str] = []
    for field_name in RATE_REQUIRED_FIELDS:
        if field_name not in rate:
            errors.append(f"{path}: must have required property '{field_name}'")

    is_default = rate.get("is_default")
    if "is_default" in rate and not isinstance(is_default, bool):
        errors.append(f"{path}/is_default: must be boolean")

    for field_name, (integer, minimum) in RATE_NUMERIC_SCHEMA.items():
        if field_name not in rate:
            continue
        value = rate[field_name]
        if integer and not _is_integer(value):
            errors.append(f"{path}/{field_name}: must be integer")
        elif not integer and not _is_number(value):
            errors.append(f"{path}/{field_name}: must be number")
        elif value < minimum:
            errors.append(f"{path}/{field_name}: must be >= {minimum}")

    for field_name in RATE_DATE_FIELDS:
        value = rate.get(field_name)
        if value is not None and not _is_wire_date(value):
            errors.append(f'{path}/{field_name}: must match format "date" (YYYY-MM-DD)')

    # Les tarifs datés doivent avoir leurs deux bornes, le tarif par défaut aucune
    if is_default is False:
        for field_name in RATE_DATE_FIELDS:
            if rate.get(field_name) is None:
                errors.append(f"{path}: must have required property '{field_name}'")
    elif is_default is True:
        for field_name in RATE_DATE_FIELDS:
            if rate.get(field_name) is not None:
                errors.append(f"{path}: default rate must NOT have property '{field_name}'")

    return errors


def validate_structure(payload: PayloadLike) -> List[str]:
    """Validation structurelle d'un payload selon le contrat Lodgify."""
    data = _as_dict(payload)
    if not isinstance(data, dict):
        return ["root: must be object"]

    errors: List[str] = []
    for field_name in ("property_id", "room_type_id", "rates"):
        if field_name not in data:
            errors.append(f"root: must have required property '{field_name}'")

    for field_name in ("property_id", "room_type_id"):
        if field_name not in data:
            continue
        value = data[field_name]
        if not _is_integer(value):
            errors.append(f"/{field_name}: must be integer")
        elif value < 1:
            errors.append(f"/{field_name}: must be >= 1")

    rates = data.get("rates")
    if "rates" in data:
        if not isinstance(rates, list):
            errors.append("/rates: must be array")
        elif not rates:
            errors.append("/rates: must NOT have fewer than 1 items")
        else:
            for index, rate in enumerate(rates):
                errors.extend(_validate_rate(rate, f"/rates/{index}"))

    return errors


def validate_decimals(payload: PayloadLike) -> List[str]:
    """Contrôle de précision (2 décimales) des montants d'un payload structurellement valide."""
    data = _as_dict(payload)
    errors: List[str] = []
    for index, rate in enumerate(data.get("rates", [])):
        for field_name in MONEY_FIELDS:
            value = rate.get(field_name)
            if value and not has_valid_decimals(value):
                errors.append(
                    f"/rates/{index}/{field_name}: has more than 2 decimal places ({value})"
                )
    return errors


def validate_business_rules(
    payload: PayloadLike,
    min_price: float = DEFAULT_MIN_REASONABLE_PRICE,
    max_price: float = DEFAULT_MAX_REASONABLE_PRICE,
) -> List[str]:
    """
    Règles métier (avertissements uniquement) :
    - exactement un tarif par défaut,
    - prix dans des bornes raisonnables,
    - min_stay <= max_stay,
    - pas de chevauchement entre tarifs datés de même tranche de séjour.
    """
    data = _as_dict(payload)
    rates: List[Dict[str, Any]] = data.get("rates", [])
    warnings: List[str] = []

    default_count = sum(1 for rate in rates if rate.get("is_default"))
    if default_count == 0:
        warnings.append("No default rate found (is_default: true is required)")
    elif default_count > 1:
        warnings.append(f"Multiple default rates found: {default_count} (only one allowed)")

    prices = [rate["price_per_day"] for rate in rates]
    if prices:
        if max(prices) > max_price:
            warnings.append(f"Very high price detected: €{max(prices)} per day")
        if min(prices) < min_price:
            warnings.append(f"Very low price detected: €{min(prices)} per day")

    for rate in rates:
        if rate["min_stay"] > rate["max_stay"]:
            warnings.append(
                f"Invalid stay range: min_stay ({rate['min_stay']}) > max_stay ({rate['max_stay']})"
            )

    warnings.extend(_find_overlaps(rates))
    return warnings


def _find_overlaps(rates: Sequence[Dict[str, Any]]) -> List[str]:
    """
    Un avertissement par paire de tarifs datés qui se chevauchent dans une
    même tranche (min_stay, max_stay).

    Balayage trié : chaque plage n'est comparée qu'aux plages précédentes
    encore ouvertes à sa date de début.
    """
    bands: Dict[Tuple[int, int], List[Tuple[str, str]]] = {}
    for rate in rates:
        if rate.get("is_default") or not rate.get("start_date") or not rate.get("end_date"):
            continue
        key = (rate["min_stay"], rate["max_stay"])
        bands.setdefault(key, []).append((rate["start_date"], rate["end_date"]))

    warnings: List[str] = []
    for (min_stay, max_stay), spans in bands.items():
        spans.sort()
        open_spans: List[Tuple[str, str]] = []
        for start, end in spans:
            # Dates ISO : l'ordre lexicographique est l'ordre chronologique
            open_spans = [span for span in open_spans if span[1] >= start]
            for open_start, open_end in open_spans:
                warnings.append(
                    f"Date range overlap detected for stay length {min_stay}-{max_stay} nights: "
                    f"{open_start}..{open_end} and {start}..{end}"
                )
            open_spans.append((start, end))
    return warnings


def validate_payload(
    payload: PayloadLike,
    min_price: float = DEFAULT_MIN_REASONABLE_PRICE,
    max_price: float = DEFAULT_MAX_REASONABLE_PRICE,
) -> PayloadValidationResult:
    """
    Valide un payload : structure, précision des montants, puis règles métier.

    Seules les erreurs structurelles et de précision rendent le payload invalide.
    """
    errors = validate_structure(payload)
    if errors:
        return PayloadValidationResult(valid=False, errors=errors)

    errors = validate_decimals(payload)
    if errors:
        return PayloadValidationResult(valid=False, errors=errors)

    warnings = validate_business_rules(payload, min_price=min_price, max_price=max_price)
    return PayloadValidationResult(valid=True, warnings=warnings)


def validate_payloads(
    payloads: Iterable[PayloadLike],
    min_price: float = DEFAULT_MIN_REASONABLE_PRICE,
    max_price: float = DEFAULT_MAX_REASONABLE_PRICE,
) -> List[PayloadValidationResult]:
    return [validate_payload(p, min_price=min_price, max_price=max_price) for p in payloads]


def validate_complete_payload(
    payloads: Sequence[PayloadLike],
    min_price: float = DEFAULT_MIN_REASONABLE_PRICE,
    max_price: float = DEFAULT_MAX_REASONABLE_PRICE,
) -> ValidationSummary:
    """Valide un lot de payloads et agrège erreurs / avertissements par propriété."""
    results = validate_payloads(payloads, min_price=min_price, max_price=max_price)

    valid_count = 0
    invalid_count = 0
    all_errors: List[str] = []
    all_warnings: List[str] = []

    for index, (payload, result) in enumerate(zip(payloads, results)):
        data = _as_dict(payload)
        label = data.get("property_id", index + 1) if isinstance(data, dict) else index + 1
        if result.valid:
            valid_count += 1
            if result.warnings:
                all_warnings.append(f"Property {label}: {', '.join(result.warnings)}")
        else:
            invalid_count += 1
            all_errors.append(f"Property {label}: {', '.join(result.errors)}")

    if invalid_count:
        logger.warning(f"{invalid_count}/{len(results)} payloads failed validation")

    return ValidationSummary(
        valid=invalid_count == 0,
        total_payloads=len(results),
        valid_payloads=valid_count,
        invalid_payloads=invalid_count,
        errors=all_errors,
        warnings=all_warnings,
    )


def validate_override_inclusion(
    payload: PayloadLike,
    overrides: Optional[Iterable[PriceOverride]],
    max_price: float = DEFAULT_MAX_REASONABLE_PRICE,
) -> OverrideInclusionResult:
    """
    Vérifie que chaque override actif se retrouve dans le payload.

    Pour chaque date d'override :
    - si un tarif daté la couvre, l'un des tarifs couvrants doit avoir le
      prix de l'override (à 1 centime près),
    - sinon, c'est le tarif par défaut qui s'appliquera et son prix est comparé.

    La compression pourrait fusionner un jour overridé avec ses voisins :
    cet audit sert précisément à détecter ce cas.
    """
    active = [o for o in (overrides or []) if o.is_active]
    result = OverrideInclusionResult(valid=True)
    if not active:
        return result

    data = _as_dict(payload)
    rates: List[Dict[str, Any]] = data.get("rates", [])
    spans = [
        (rate["start_date"], rate["end_date"], rate["price_per_day"])
        for rate in rates
        if not rate.get("is_default") and rate.get("start_date") and rate.get("end_date")
    ]
    default_rate = next((rate for rate in rates if rate.get("is_default")), None)

    for override in active:
        override_date = override.override_date
        covering = [price for start, end, price in spans if start <= override_date <= end]

        if covering:
            if any(abs(price - override.override_price) < OVERRIDE_PRICE_TOLERANCE for price in covering):
                result.included_count += 1
                continue
            result.warnings.append(
                f"Override for {override_date} (€{override.override_price}) not reflected in payload"
            )
        else:
            if default_rate is not None and abs(
                default_rate["price_per_day"] - override.override_price
            ) < OVERRIDE_PRICE_TOLERANCE:
                # Le tarif par défaut porte déjà le prix de l'override
                result.included_count += 1
                continue
            result.warnings.append(
                f"Override for {override_date} not found in payload (will use default rate)"
            )

        result.missing_count += 1
        result.missing_dates.append(override_date)

    override_prices = [o.override_price for o in active]
    if max(override_prices) > max_price:
        result.warnings.append(f"Very high override price detected: €{max(override_prices)}")
    if min(override_prices) < 0:
        result.warnings.append(f"Invalid negative override price detected: €{min(override_prices)}")

    result.valid = result.missing_count == 0
    if not result.valid:
        logger.warning(
            f"{result.missing_count} override(s) missing from payload "
            f"{data.get('property_id')}: {', '.join(result.missing_dates)}"
        )
    return result
