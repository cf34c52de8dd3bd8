"""
Hierarchical Aggregation Engine

Groups booking rows (or precomputed summary rows) by a dimension, sums
metrics at the level they belong to, and derives the statistics and
business KPIs the narrative and the fact validator rely on.

Bookings carry identity, routing and status; detail lines carry TEU, units
and weight. A detail-level pass visits every line exactly once, a
booking-level pass counts every booking exactly once per key. Cancelled
bookings are skipped here regardless of the filters that produced the rows.
"""
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Set

import structlog

from bookingiq.analytics.geography import country_name, determine_trade
from bookingiq.models.booking import ContractType, status_label
from bookingiq.schemas.query import AggregationLevel, AggregationSpec, DateRange, GroupBy, Metric
from bookingiq.schemas.results import (
    AggregationRow,
    BookingRecord,
    BusinessKPIs,
    CargoMix,
    ClientBreakdown,
    ContractMix,
    DetailRecord,
    QueryResult,
    Statistics,
    SummaryRecord,
)

logger = structlog.get_logger()

UNKNOWN = "Unknown"
CONCENTRATION_TOP_N = 5


# ==================== Group keys ====================

def client_key(booking) -> str:
    return booking.client_code or booking.client_name or UNKNOWN


def pol_key(booking) -> str:
    return booking.pol_code or booking.origin or UNKNOWN


def pod_key(booking) -> str:
    return booking.pod_code or booking.destination or UNKNOWN


def trade_key(booking) -> str:
    return determine_trade(booking) or UNKNOWN


def date_key(booking) -> str:
    return booking.confirmation_date.isoformat() if booking.confirmation_date else UNKNOWN


def status_key(booking) -> str:
    return status_label(booking.job_status)


def commodity_key(detail: DetailRecord) -> str:
    return detail.commodity_description or detail.commodity_code or UNKNOWN


BOOKING_KEYS: Dict[GroupBy, Callable[[BookingRecord], str]] = {
    GroupBy.CLIENT: client_key,
    GroupBy.POL: pol_key,
    GroupBy.POD: pod_key,
    GroupBy.TRADE: trade_key,
    GroupBy.DATE: date_key,
    GroupBy.STATUS: status_key,
}


def keys_for(booking: BookingRecord, dimension: GroupBy, detail: Optional[DetailRecord] = None) -> List[str]:
    """
    Group keys of a booking (or of one of its lines) along ``dimension``.

    Commodity is the only line-level dimension: a booking belongs to every
    commodity among its lines.
    """
    if dimension is GroupBy.COMMODITY:
        if detail is not None:
            return [commodity_key(detail)]
        keys = []
        for line in booking.details:
            key = commodity_key(line)
            if key not in keys:
                keys.append(key)
        return keys or [UNKNOWN]
    return [BOOKING_KEYS[dimension](booking)]


# ==================== Accumulation ====================

class _Bucket:
    __slots__ = ("bookings", "booking_total", "lines", "teu", "units", "weight")

    def __init__(self):
        self.bookings: Set[str] = set()
        self.booking_total = 0  # used for precomputed rows, where identities are gone
        self.lines = 0
        self.teu = 0.0
        self.units = 0.0
        self.weight = 0.0

    def add_line(self, detail: DetailRecord) -> None:
        self.lines += 1
        self.teu += detail.teu or 0.0
        self.units += detail.units or 0
        self.weight += detail.net_weight or 0.0

    @property
    def booking_count(self) -> int:
        return len(self.bookings) + self.booking_total

    def to_row(self, key: str) -> AggregationRow:
        bookings = self.booking_count
        return AggregationRow(
            key=key,
            line_count=self.lines,
            booking_count=bookings,
            teu=round(self.teu, 2),
            units=round(self.units, 2),
            weight=round(self.weight, 2),
            avg_teu_per_booking=round(self.teu / bookings, 2) if bookings else 0.0,
            avg_teu_per_line=round(self.teu / self.lines, 2) if self.lines else 0.0,
        )


def metric_value(row: AggregationRow, metric: Metric) -> float:
    if metric is Metric.TEU:
        return row.teu
    if metric is Metric.UNITS:
        return row.units
    if metric is Metric.WEIGHT:
        return row.weight
    return float(row.booking_count)


def _sorted_rows(buckets: Dict[str, _Bucket], metric: Metric) -> List[AggregationRow]:
    rows = [bucket.to_row(key) for key, bucket in buckets.items()]
    # Descending by metric, ties broken by key so output is deterministic.
    rows.sort(key=lambda row: (-metric_value(row, metric), row.key))
    return rows


def _aggregate_rows(rows: Iterable[BookingRecord], spec: AggregationSpec) -> Dict[str, _Bucket]:
    buckets: Dict[str, _Bucket] = defaultdict(_Bucket)
    skipped = 0
    for booking in rows:
        if booking.is_cancelled:
            skipped += 1
            continue
        if spec.level is AggregationLevel.DETAIL:
            for detail in booking.details:
                for key in keys_for(booking, spec.group_by, detail):
                    bucket = buckets[key]
                    bucket.bookings.add(booking.job_reference)
                    bucket.add_line(detail)
        else:
            for key in keys_for(booking, spec.group_by):
                bucket = buckets[key]
                bucket.bookings.add(booking.job_reference)
                for detail in booking.details:
                    if spec.group_by is GroupBy.COMMODITY and commodity_key(detail) != key:
                        continue
                    bucket.add_line(detail)
    if skipped:
        logger.debug("Cancelled bookings skipped during aggregation", skipped=skipped)
    return buckets


def _aggregate_summaries(summaries: Iterable[SummaryRecord]) -> Dict[str, _Bucket]:
    buckets: Dict[str, _Bucket] = defaultdict(_Bucket)
    for summary in summaries:
        bucket = buckets[summary.key]
        bucket.booking_total += summary.booking_count
        bucket.lines += summary.line_count
        bucket.teu += summary.teu
        bucket.units += summary.units
        bucket.weight += summary.weight
    return buckets


def aggregate(result: QueryResult, spec: Optional[AggregationSpec]) -> Optional[List[AggregationRow]]:
    """
    Group the result along ``spec.group_by``.

    Returns ``None`` when no grouping was requested. Precomputed summary
    rows are re-aggregated by their own key (the planner only serves
    groupings a summary table can answer).
    """
    if spec is None or spec.group_by is None:
        return None
    if result.is_precomputed:
        buckets = _aggregate_summaries(result.summaries)
    else:
        buckets = _aggregate_rows(result.rows, spec)
    rows = _sorted_rows(buckets, spec.metric)
    logger.info(
        "Aggregation completed",
        group_by=spec.group_by.value,
        metric=spec.metric.value,
        level=spec.level.value,
        groups=len(rows),
        path=result.path,
    )
    return rows


# ==================== Statistics & KPIs ====================

def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def client_concentration(value_by_client: Dict[str, float], total: float) -> float:
    """Share of ``total`` held by the top five clients, in [0, 100]."""
    if total <= 0:
        return 0.0
    top = sorted(value_by_client.values(), reverse=True)[:CONCENTRATION_TOP_N]
    return max(0.0, min(100.0, round(sum(top) / total * 100, 2)))


def _concentration(by_client: Dict[str, ClientBreakdown], totals: Dict[Metric, float], metric: Metric) -> float:
    return client_concentration({key: b.value(metric) for key, b in by_client.items()}, totals[metric])


def cargo_category(detail: DetailRecord) -> str:
    """One category per line; hazardous takes precedence over reefer, then out-of-gauge."""
    if detail.is_hazardous:
        return "hazardous"
    if detail.is_reefer:
        return "reefer"
    if detail.is_oog:
        return "oog"
    return "standard"


def _statistics_from_rows(result: QueryResult, metric: Metric) -> Statistics:
    by_client: Dict[str, ClientBreakdown] = {}
    by_pol: Dict[str, int] = defaultdict(int)
    by_pod: Dict[str, int] = defaultdict(int)
    by_trade: Dict[str, int] = defaultdict(int)
    contract_teu = {ContractType.SPOT.value: 0.0, ContractType.LONG_TERM.value: 0.0}
    contract_bookings = {ContractType.SPOT.value: 0, ContractType.LONG_TERM.value: 0}
    cargo_teu = {"standard": 0.0, "reefer": 0.0, "hazardous": 0.0, "oog": 0.0}

    total = lines = 0
    total_teu = total_units = total_weight = 0.0
    dates = []

    for booking in result.rows:
        if booking.is_cancelled:
            continue
        total += 1
        booking_teu = booking_units = booking_weight = 0.0
        for detail in booking.details:
            lines += 1
            teu = detail.teu or 0.0
            booking_teu += teu
            booking_units += detail.units or 0
            booking_weight += detail.net_weight or 0.0
            cargo_teu[cargo_category(detail)] += teu
        total_teu += booking_teu
        total_units += booking_units
        total_weight += booking_weight

        breakdown = by_client.setdefault(client_key(booking), ClientBreakdown())
        breakdown.count += 1
        breakdown.teu += booking_teu
        breakdown.units += booking_units
        breakdown.weight += booking_weight
        by_pol[pol_key(booking)] += 1
        by_pod[pod_key(booking)] += 1
        by_trade[trade_key(booking)] += 1

        contract = (booking.contract_type or "").upper()
        if contract in contract_teu:
            contract_teu[contract] += booking_teu
            contract_bookings[contract] += 1
        if booking.confirmation_date:
            dates.append(booking.confirmation_date)

    for breakdown in by_client.values():
        breakdown.teu = round(breakdown.teu, 2)
        breakdown.units = round(breakdown.units, 2)
        breakdown.weight = round(breakdown.weight, 2)

    totals = {Metric.TEU: total_teu, Metric.UNITS: total_units, Metric.WEIGHT: total_weight, Metric.COUNT: total}
    kpis = BusinessKPIs(
        client_concentration_index=_concentration(by_client, totals, metric),
        concentration_metric=metric,
        avg_teu_per_booking=round(total_teu / total, 2) if total else 0.0,
        contract_mix=ContractMix(
            spot_pct=_pct(contract_teu["SPOT"], total_teu),
            long_term_pct=_pct(contract_teu["LONG_TERM"], total_teu),
            spot_bookings=contract_bookings["SPOT"],
            long_term_bookings=contract_bookings["LONG_TERM"],
        ),
        cargo_mix=CargoMix(
            standard_pct=_pct(cargo_teu["standard"], total_teu),
            reefer_pct=_pct(cargo_teu["reefer"], total_teu),
            hazardous_pct=_pct(cargo_teu["hazardous"], total_teu),
            oog_pct=_pct(cargo_teu["oog"], total_teu),
        ),
        mix_available=True,
    )

    return Statistics(
        total=total,
        total_count=result.total_count,
        total_lines=lines,
        total_teu=round(total_teu, 2),
        total_units=round(total_units, 2),
        total_weight=round(total_weight, 2),
        by_client=by_client,
        by_pol=dict(by_pol),
        by_pod=dict(by_pod),
        by_trade=dict(by_trade),
        date_range=DateRange(start=min(dates), end=max(dates)) if dates else result.period,
        kpis=kpis,
    )


def _statistics_from_summaries(result: QueryResult, metric: Metric) -> Statistics:
    by_client: Dict[str, ClientBreakdown] = {}
    by_pol: Dict[str, int] = defaultdict(int)
    by_pod: Dict[str, int] = defaultdict(int)
    total = lines = 0
    total_teu = total_units = total_weight = 0.0

    for summary in result.summaries:
        total += summary.booking_count
        lines += summary.line_count
        total_teu += summary.teu
        total_units += summary.units
        total_weight += summary.weight
        if summary.dimension == "client":
            breakdown = by_client.setdefault(summary.key, ClientBreakdown())
            breakdown.count += summary.booking_count
            breakdown.teu = round(breakdown.teu + summary.teu, 2)
            breakdown.units = round(breakdown.units + summary.units, 2)
            breakdown.weight = round(breakdown.weight + summary.weight, 2)
        elif summary.dimension == "load_country":
            by_pol[summary.key] += summary.booking_count
        else:
            by_pod[summary.key] += summary.booking_count

    totals = {Metric.TEU: total_teu, Metric.UNITS: total_units, Metric.WEIGHT: total_weight, Metric.COUNT: total}
    kpis = BusinessKPIs(
        client_concentration_index=_concentration(by_client, totals, metric),
        concentration_metric=metric,
        avg_teu_per_booking=round(total_teu / total, 2) if total else 0.0,
        mix_available=False,
    )
    return Statistics(
        total=total,
        total_count=result.total_count,
        total_lines=lines,
        total_teu=round(total_teu, 2),
        total_units=round(total_units, 2),
        total_weight=round(total_weight, 2),
        by_client=by_client,
        by_pol=dict(by_pol),
        by_pod=dict(by_pod),
        by_trade={},
        date_range=result.period,
        kpis=kpis,
    )


def compute_statistics(result: QueryResult, metric: Metric = Metric.TEU) -> Statistics:
    """
    Global totals, per-dimension breakdowns and KPIs for a query result.
    Client concentration is measured in ``metric``, the metric the query asked for.
    """
    if result.is_precomputed:
        return _statistics_from_summaries(result, metric)
    return _statistics_from_rows(result, metric)


def location_label(key: str) -> str:
    """Display label for a breakdown key that may be a country code."""
    return country_name(key) or key
