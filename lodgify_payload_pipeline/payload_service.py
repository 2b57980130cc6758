"""
Service de génération des payloads Lodgify.

Orchestration d'un run :
1. chargement des propriétés exportables,
2. calcul de la plage de dates et des catégories de séjour,
3. pour chaque propriété / catégorie / chunk mensuel : appel groupé au
   calculateur, avec repli jour par jour si le chunk échoue,
4. compression des prix en plages (avec validation et seuil, repli sur
   une entrée par jour),
5. assemblage d'un `LodgifyPayload` par propriété et statistiques du run.

Tout est séquentiel : un seul appel distant en vol à la fois, ce qui garde
la progression et l'annulation déterministes et ménage le calculateur.
"""

import asyncio
import logging
import time
import tracemalloc
from datetime import date
from typing import List, Optional, Sequence, Set, Tuple

from .config.settings import Settings
from .exceptions import (
    GenerationCancelled,
    InvalidRange,
    PropertiesNotFound,
    PropertyGenerationFailed,
)
from .interfaces.base import PriceCalculator, PropertyCatalog
from .models import (
    DateChunk,
    DatePriceData,
    GenerationOptions,
    GenerationPhase,
    GenerationResult,
    GenerationStatistics,
    LodgifyPayload,
    LodgifyRate,
    OptimizedRange,
    Property,
    StayLengthCategory,
    round_money,
)
from .optimizer import (
    calculate_optimization_stats,
    meets_threshold,
    optimize,
    to_individual_entries,
    validate_optimization,
)
from .utils.date_range import (
    custom_range,
    default_stay_categories,
    format_for_wire,
    horizon,
    monthly_chunks,
    parse_wire_date,
    validate_date_range,
)
from .utils.progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)


class PayloadGenerationService:
    """
    Génère les payloads Lodgify de toutes les propriétés demandées.

    L'état d'un run (payloads, compteurs) est local à `generate` ; un second
    appel concurrent doit être refusé ou mis en file par l'appelant.
    """

    def __init__(
        self,
        catalog: PropertyCatalog,
        calculator: PriceCalculator,
        settings: Optional[Settings] = None,
    ):
        self.catalog = catalog
        self.calculator = calculator
        self.settings = settings or Settings.from_env()
        self._cancel_requested = False

    def cancel(self) -> None:
        """Demande l'arrêt du run en cours au prochain point de contrôle."""
        logger.info("Cancellation requested")
        self._cancel_requested = True

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise GenerationCancelled()

    async def generate(
        self,
        options: GenerationOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        """
        Génère un payload par propriété.

        Raises:
            PropertiesNotFound: des ids demandés sont absents du catalogue
            InvalidRange: plage de dates personnalisée invalide
            GenerationCancelled: annulation demandée pendant le run
            PropertyGenerationFailed: erreur inattendue sur une propriété (fatale)
        """
        self._cancel_requested = False
        tracker = ProgressTracker(on_progress)
        started_at = time.monotonic()
        memory_before = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else None

        try:
            await tracker.report(GenerationPhase.LOADING)

            properties = await self._load_properties(options.property_ids)
            tracker.total_properties = len(properties)

            dates = self._build_dates(options)
            stay_categories = list(options.stay_categories or default_stay_categories())

            logger.info(
                f"Generating Lodgify payloads for {len(properties)} properties, "
                f"{len(dates)} dates ({dates[0]} to {dates[-1]}), "
                f"{len(stay_categories)} stay categories"
            )

            payloads: List[LodgifyPayload] = []
            entries_before = 0
            entries_after = 0

            for index, prop in enumerate(properties, start=1):
                self._check_cancelled()

                try:
                    payload, before, after = await self._generate_property_payload(
                        prop, dates, stay_categories, options, tracker, index
                    )
                except GenerationCancelled:
                    raise
                except Exception as e:
                    logger.error(
                        f"Failed to generate payload for property {prop.external_property_id}: {e}",
                        exc_info=True,
                    )
                    raise PropertyGenerationFailed(str(prop.external_property_id), e) from e

                payloads.append(payload)
                entries_before += before
                entries_after += after
                tracker.property_done()

            if options.optimize_ranges:
                await tracker.report(GenerationPhase.OPTIMIZING)
            await tracker.report(GenerationPhase.VALIDATING)

            _, reduction_percent = calculate_optimization_stats(entries_before, entries_after)
            memory_used_mb = None
            if memory_before is not None and tracemalloc.is_tracing():
                memory_used_mb = round((tracemalloc.get_traced_memory()[0] - memory_before) / (1024 * 1024), 2)

            statistics = GenerationStatistics(
                total_properties=len(properties),
                total_dates=len(dates),
                total_rates_generated=sum(len(p.rates) for p in payloads),
                optimization_applied=options.optimize_ranges,
                entries_before_optimization=entries_before,
                entries_after_optimization=entries_after,
                optimization_reduction=reduction_percent,
                generation_time_ms=int((time.monotonic() - started_at) * 1000),
                memory_used_mb=memory_used_mb,
            )

            await tracker.report(GenerationPhase.COMPLETE)
            logger.info(
                f"Generated {statistics.total_rates_generated} rates for {statistics.total_properties} "
                f"properties in {statistics.generation_time_ms}ms "
                f"({entries_before} -> {entries_after} entries, {reduction_percent}% reduction)"
            )
            return GenerationResult(payloads=payloads, statistics=statistics)

        except Exception as e:
            logger.error(f"Payload generation aborted: {e}")
            await tracker.report(GenerationPhase.ERROR)
            raise

    async def _load_properties(self, property_ids: Sequence[str]) -> List[Property]:
        """Charge les propriétés exportables, filtrées sur les ids demandés."""
        all_properties = await self.catalog.get_all()

        valid = [p for p in all_properties if p.is_exportable()]
        skipped = len(all_properties) - len(valid)
        if skipped:
            logger.warning(f"Skipping {skipped} properties without Lodgify property/room type ids")

        if not property_ids:
            return valid

        requested = list(dict.fromkeys(str(pid) for pid in property_ids))
        by_external_id = {p.external_property_id: p for p in valid}
        missing = [pid for pid in requested if pid not in by_external_id]
        if missing:
            raise PropertiesNotFound(missing)

        return [by_external_id[pid] for pid in requested]

    def _build_dates(self, options: GenerationOptions) -> List[date]:
        if options.start_date and options.end_date:
            errors = validate_date_range(
                options.start_date, options.end_date, max_days=self.settings.max_range_days
            )
            if errors:
                raise InvalidRange("; ".join(errors), errors)
            return custom_range(options.start_date, options.end_date)

        if options.start_date or options.end_date:
            logger.warning("Both start_date and end_date are required for a custom range, using default horizon")

        return horizon(self.settings.horizon_days, timezone=self.settings.default_timezone)

    async def _generate_property_payload(
        self,
        prop: Property,
        dates: List[date],
        stay_categories: List[StayLengthCategory],
        options: GenerationOptions,
        tracker: ProgressTracker,
        index: int,
    ) -> Tuple[LodgifyPayload, int, int]:
        """
        Construit le payload d'une propriété.

        Un événement `calculating` est émis au début de chaque chunk ;
        l'annulation est vérifiée juste après, avant tout appel distant.

        Returns:
            (payload, nombre de prix journaliers, nombre de plages émises)
        """
        rates: List[LodgifyRate] = []
        if options.include_default_rate:
            rates.append(LodgifyRate.default_rate(prop.base_price_per_day))

        chunks = monthly_chunks(dates[0], dates[-1])
        entries_before = 0
        entries_after = 0

        for category in stay_categories:
            pricing_data: List[DatePriceData] = []
            for chunk in chunks:
                await tracker.report(
                    GenerationPhase.CALCULATING,
                    current_property=index,
                    property_id=prop.external_property_id,
                    current_date=format_for_wire(chunk.start),
                )
                self._check_cancelled()
                pricing_data.extend(await self._fetch_chunk(prop, chunk, category))

            ranges = self._compress(prop, category, pricing_data, options.optimize_ranges)
            entries_before += len(pricing_data)
            entries_after += len(ranges)
            rates.extend(LodgifyRate.from_range(r) for r in ranges)

        payload = LodgifyPayload(
            property_id=int(prop.external_property_id),
            room_type_id=int(prop.external_room_type_id),
            rates=rates,
        )
        return payload, entries_before, entries_after

    def _compress(
        self,
        prop: Property,
        category: StayLengthCategory,
        pricing_data: List[DatePriceData],
        optimize_ranges: bool,
    ) -> List[OptimizedRange]:
        """
        Compresse les prix d'une catégorie, ou les garde jour par jour.

        La compression n'est qu'une optimisation : si la vérification de
        couverture échoue ou si le gain est sous le seuil, on repasse sur une
        entrée par jour au lieu de lever une erreur.
        """
        if not optimize_ranges or not pricing_data:
            return to_individual_entries(pricing_data)

        optimized = optimize(pricing_data)

        validation = validate_optimization(pricing_data, optimized)
        if not validation.valid:
            logger.warning(
                f"Optimization failed validation for {prop.external_property_id} ({category.name}), "
                f"using individual entries: {'; '.join(validation.errors[:5])}"
            )
            return to_individual_entries(pricing_data)

        threshold = self.settings.min_optimization_reduction
        if not meets_threshold(len(pricing_data), len(optimized), threshold):
            logger.info(
                f"Optimization below {threshold:.0%} threshold for {prop.external_property_id} "
                f"({category.name}): {len(pricing_data)} -> {len(optimized)}, using individual entries"
            )
            return to_individual_entries(pricing_data)

        return optimized

    async def _fetch_chunk(
        self,
        prop: Property,
        chunk: DateChunk,
        category: StayLengthCategory,
    ) -> List[DatePriceData]:
        """Prix groupés d'un chunk ; repli jour par jour en cas d'échec ou de timeout."""
        start_str = format_for_wire(chunk.start)
        end_str = format_for_wire(chunk.end)

        try:
            rows = await asyncio.wait_for(
                self.calculator.get_pricing_preview(
                    prop.external_property_id, start_str, end_str, category.stay_length
                ),
                timeout=self.settings.request_timeout,
            )
            records = [self._from_preview_row(row, category) for row in rows or []]
            return self._keep_chunk_dates(prop, chunk, records)
        except asyncio.TimeoutError:
            logger.warning(
                f"Bulk pricing timed out for {prop.external_property_id} in chunk {start_str} to {end_str}, "
                "falling back to daily calculations"
            )
        except Exception as e:
            logger.warning(
                f"Failed to calculate bulk prices for {prop.external_property_id} in chunk "
                f"{start_str} to {end_str}: {e}. Falling back to daily calculations"
            )

        return await self._fallback_to_daily(prop, chunk, category)

    async def _fallback_to_daily(
        self,
        prop: Property,
        chunk: DateChunk,
        category: StayLengthCategory,
    ) -> List[DatePriceData]:
        """
        Calcule les prix du chunk un jour à la fois.

        Un jour en échec est journalisé puis omis. Après
        `fallback_max_consecutive_failures` échecs consécutifs, le reste du
        chunk est abandonné.
        """
        max_failures = self.settings.fallback_max_consecutive_failures
        records: List[DatePriceData] = []
        consecutive_failures = 0

        for day in custom_range(chunk.start, chunk.end):
            day_str = format_for_wire(day)
            try:
                rows = await asyncio.wait_for(
                    self.calculator.calculate_price(prop.external_property_id, day_str, category.stay_length),
                    timeout=self.settings.request_timeout,
                )
                if not rows:
                    raise ValueError("calculator returned no price")
                records.append(self._from_single_row(rows[0], day, category))
                consecutive_failures = 0
            except asyncio.TimeoutError:
                consecutive_failures += 1
                logger.warning(f"Price calculation timed out for {prop.external_property_id} on {day_str}")
            except Exception as e:
                consecutive_failures += 1
                logger.warning(f"Failed to calculate price for {prop.external_property_id} on {day_str}: {e}")

            if max_failures and consecutive_failures >= max_failures:
                logger.warning(
                    f"Abandoning daily fallback for {prop.external_property_id} after "
                    f"{consecutive_failures} consecutive failures (last date tried: {day_str}, "
                    f"chunk end: {format_for_wire(chunk.end)})"
                )
                break

        logger.info(
            f"Daily fallback recovered {len(records)}/{(chunk.end - chunk.start).days + 1} days "
            f"for {prop.external_property_id} ({category.name})"
        )
        return records

    @staticmethod
    def _keep_chunk_dates(
        prop: Property,
        chunk: DateChunk,
        records: List[DatePriceData],
    ) -> List[DatePriceData]:
        """Écarte les lignes hors du chunk et les dates répétées (première ligne conservée)."""
        kept: List[DatePriceData] = []
        seen: Set[date] = set()
        for record in records:
            if not chunk.start <= record.date <= chunk.end or record.date in seen:
                continue
            seen.add(record.date)
            kept.append(record)

        dropped = len(records) - len(kept)
        if dropped:
            logger.warning(
                f"Dropped {dropped} bulk pricing rows outside chunk {format_for_wire(chunk.start)} to "
                f"{format_for_wire(chunk.end)} or with a repeated date for {prop.external_property_id}"
            )
        return kept

    @staticmethod
    def _from_preview_row(row: dict, category: StayLengthCategory) -> DatePriceData:
        return DatePriceData(
            date=parse_wire_date(str(row["check_date"])[:10]),
            price=round_money(row["final_price_per_night"]),
            min_stay=category.min_stay,
            max_stay=category.max_stay,
            stay_length=category.stay_length,
            base_price=round_money(row.get("base_price") or 0),
            seasonal_adjustment_percent=float(row.get("seasonal_adjustment_percent") or 0),
            last_minute_discount_percent=float(row.get("last_minute_discount_percent") or 0),
            min_price_enforced=bool(row.get("min_price_enforced") or False),
        )

    @staticmethod
    def _from_single_row(row: dict, day: date, category: StayLengthCategory) -> DatePriceData:
        return DatePriceData(
            date=day,
            price=round_money(row["final_price_per_night"]),
            min_stay=category.min_stay,
            max_stay=category.max_stay,
            stay_length=category.stay_length,
            base_price=round_money(row.get("base_price") or 0),
            seasonal_adjustment_percent=float(row.get("seasonal_adjustment") or 0),
            last_minute_discount_percent=float(row.get("last_minute_discount") or 0),
            min_price_enforced=bool(row.get("min_price_enforced") or False),
        )
