"""
Job de génération des payloads Lodgify.

Génère les payloads de toutes les propriétés exportables, les valide,
audite l'inclusion des overrides puis écrit le JSON final.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..config.settings import Settings
from ..exceptions import PayloadGenerationError
from ..interfaces.base import OverrideSource, PriceCalculator, PropertyCatalog
from ..interfaces.data_access import (
    SupabaseOverrideSource,
    SupabasePropertyCatalog,
    SupabaseRpcPriceCalculator,
)
from ..models import GenerationOptions, GenerationProgress, LodgifyPayload
from ..payload_service import PayloadGenerationService
from ..validator import validate_complete_payload, validate_override_inclusion

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _log_progress(progress: GenerationProgress) -> None:
    eta = f", ~{progress.estimated_remaining_ms / 1000:.0f}s remaining" if progress.estimated_remaining_ms else ""
    logger.info(
        f"[{progress.phase.value}] {progress.percentage:.0f}% "
        f"({progress.current_property}/{progress.total_properties}){eta}"
    )


def _payload_date_bounds(payload: LodgifyPayload) -> Optional[Dict[str, str]]:
    dated = [rate for rate in payload.rates if not rate.is_default and rate.start_date and rate.end_date]
    if not dated:
        return None
    return {
        "start_date": min(rate.start_date for rate in dated),
        "end_date": max(rate.end_date for rate in dated),
    }


async def audit_overrides(
    payloads: List[LodgifyPayload],
    override_source: OverrideSource,
    settings: Settings,
) -> List[Dict[str, Any]]:
    """Audite l'inclusion des overrides actifs pour chaque payload."""
    audits: List[Dict[str, Any]] = []
    for payload in payloads:
        bounds = _payload_date_bounds(payload)
        if bounds is None:
            continue

        overrides = await override_source.get_active_overrides(
            str(payload.property_id), bounds["start_date"], bounds["end_date"]
        )
        result = validate_override_inclusion(payload, overrides, max_price=settings.max_reasonable_price)
        audits.append({"property_id": payload.property_id, **asdict(result)})
    return audits


async def generate_and_validate(
    options: GenerationOptions,
    settings: Optional[Settings] = None,
    check_overrides: bool = False,
    catalog: Optional[PropertyCatalog] = None,
    calculator: Optional[PriceCalculator] = None,
    override_source: Optional[OverrideSource] = None,
) -> Dict[str, Any]:
    """
    Génère, valide et audite les payloads.

    Returns:
        Rapport avec statut, statistiques, validation, audits et payloads
    """
    settings = settings or Settings.from_env()
    start_time = datetime.now()

    report: Dict[str, Any] = {
        "start_time": start_time.isoformat(),
        "end_time": None,
        "duration_seconds": 0,
        "status": "failed",
        "statistics": None,
        "validation": None,
        "override_audits": [],
        "payloads": [],
        "errors": [],
    }

    owns_calculator = calculator is None
    calculator = calculator or SupabaseRpcPriceCalculator(settings)
    catalog = catalog or SupabasePropertyCatalog(settings=settings)

    try:
        service = PayloadGenerationService(catalog, calculator, settings)
        result = await service.generate(options, on_progress=_log_progress)

        summary = validate_complete_payload(
            result.payloads,
            min_price=settings.min_reasonable_price,
            max_price=settings.max_reasonable_price,
        )
        report["statistics"] = asdict(result.statistics)
        report["validation"] = asdict(summary)
        report["payloads"] = [payload.to_dict() for payload in result.payloads]

        if check_overrides:
            report["override_audits"] = await audit_overrides(
                result.payloads,
                override_source or SupabaseOverrideSource(settings=settings),
                settings,
            )

        missing_overrides = any(not audit["valid"] for audit in report["override_audits"])
        if not summary.valid:
            report["status"] = "failed"
        elif summary.warnings or missing_overrides:
            report["status"] = "partial"
        else:
            report["status"] = "success"

    except PayloadGenerationError as e:
        logger.error(f"Payload generation failed ({e.type}): {e}")
        report["errors"].append({"type": e.type, "property_id": e.property_id, "error": str(e)})
    finally:
        if owns_calculator:
            await calculator.close()
        end_time = datetime.now()
        report["end_time"] = end_time.isoformat()
        report["duration_seconds"] = (end_time - start_time).total_seconds()

    return report


def main():
    """Point d'entrée CLI."""
    parser = argparse.ArgumentParser(
        description="Generate, validate and export Lodgify rate payloads"
    )

    parser.add_argument(
        "--properties",
        nargs="+",
        default=[],
        help="Lodgify property ids to export (default: all)"
    )

    parser.add_argument(
        "--start-date",
        help="Start date (YYYY-MM-DD, default: today)"
    )

    parser.add_argument(
        "--end-date",
        help="End date (YYYY-MM-DD, default: today + horizon)"
    )

    parser.add_argument(
        "--no-default-rate",
        action="store_true",
        help="Do not add the mandatory default rate"
    )

    parser.add_argument(
        "--no-optimize",
        action="store_true",
        help="Keep one rate per day instead of merging consecutive days"
    )

    parser.add_argument(
        "--check-overrides",
        action="store_true",
        help="Audit that active price overrides are reflected in the payloads"
    )

    parser.add_argument(
        "--output",
        help="Write payloads JSON to this file (default: stdout)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output report as JSON"
    )

    args = parser.parse_args()

    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level.upper())

    options = GenerationOptions(
        property_ids=args.properties,
        start_date=date.fromisoformat(args.start_date) if args.start_date else None,
        end_date=date.fromisoformat(args.end_date) if args.end_date else None,
        include_default_rate=not args.no_default_rate,
        optimize_ranges=not args.no_optimize,
    )

    try:
        report = asyncio.run(generate_and_validate(
            options,
            settings=settings,
            check_overrides=args.check_overrides,
        ))
    except KeyboardInterrupt:
        logger.warning("Generation interrupted by user")
        print("\n⚠️  Generation interrupted")
        return 130
    except Exception as e:
        logger.error(f"Generation failed: {e}", exc_info=True)
        print(f"\n❌ Generation failed: {e}")
        return 1

    payloads = report.pop("payloads")
    if report["status"] != "failed":
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                json.dump(payloads, f, indent=2)
            logger.info(f"Wrote {len(payloads)} payloads to {args.output}")
        elif not args.json:
            print(json.dumps(payloads, indent=2))

    # Afficher le rapport
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        print("\n" + "=" * 60, file=sys.stderr)
        print("LODGIFY PAYLOAD REPORT", file=sys.stderr)
        print("=" * 60, file=sys.stderr)
        print(f"Status: {report['status']}", file=sys.stderr)
        print(f"Duration: {report['duration_seconds']:.2f}s", file=sys.stderr)

        stats = report["statistics"]
        if stats:
            print(f"Properties: {stats['total_properties']}", file=sys.stderr)
            print(f"Rates generated: {stats['total_rates_generated']}", file=sys.stderr)
            print(
                f"Entries: {stats['entries_before_optimization']} -> {stats['entries_after_optimization']} "
                f"({stats['optimization_reduction']}% reduction)",
                file=sys.stderr,
            )

        validation = report["validation"]
        if validation:
            print(
                f"Valid payloads: {validation['valid_payloads']}/{validation['total_payloads']}",
                file=sys.stderr,
            )
            for message in (validation["errors"] + validation["warnings"])[:5]:  # Afficher les 5 premiers
                print(f"  - {message}", file=sys.stderr)

        for audit in report["override_audits"]:
            if not audit["valid"]:
                print(
                    f"Property {audit['property_id']}: {audit['missing_count']} override(s) missing "
                    f"({', '.join(audit['missing_dates'][:5])})",
                    file=sys.stderr,
                )

        for error in report["errors"]:
            print(f"❌ {error['error']}", file=sys.stderr)

    # Exit code basé sur le statut
    if report["status"] == "failed":
        return 1
    elif report["status"] == "partial":
        return 2  # Warning
    else:
        return 0


if __name__ == "__main__":
    sys.exit(main())
