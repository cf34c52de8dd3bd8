"""
Query Execution Planner

Chooses between the precomputed monthly summaries (fast path) and a
filtered scan of bookings with their detail lines (standard path), runs
the reads with timeout and retry, and returns a path-agnostic QueryResult.
"""
import asyncio
import calendar
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from bookingiq.analytics.geography import resolve_country, resolve_trade_lane
from bookingiq.config import Settings, get_settings
from bookingiq.errors import DataStoreError
from bookingiq.retry import call_with_retry, describe
from bookingiq.schemas.query import DateRange, GroupBy, QueryFilters, StatusFilter, StructuredQuery
from bookingiq.schemas.results import AppliedFilters, BookingRecord, DetailRecord, QueryResult, SummaryRecord
from bookingiq.tools.booking_tools import BookingCriteria, BookingStore, PortMatch, StatusMode, is_transient_db_error

logger = structlog.get_logger()


@dataclass
class FastPathPlan:
    dimension: str  # client, load, discharge
    keys: List[Optional[str]]


def resolve_status_mode(query: StructuredQuery) -> StatusMode:
    """
    Explicit status filters are honoured; otherwise analytic queries exclude
    cancelled bookings and raw listings return every status.
    """
    status = query.filters.status
    if status is None:
        return StatusMode.EXCLUDE_CANCELLED if query.is_analytic else StatusMode.ALL
    wanted = set(status)
    if wanted == {StatusFilter.CANCELLED}:
        return StatusMode.ONLY_CANCELLED
    if wanted == {StatusFilter.ACTIVE, StatusFilter.CANCELLED}:
        return StatusMode.ALL
    return StatusMode.EXCLUDE_CANCELLED


def _port_matches(values: List[str]) -> List[PortMatch]:
    return [PortMatch(value=v, country=resolve_country(v)) for v in values]


def build_criteria(query: StructuredQuery) -> BookingCriteria:
    filters = query.filters
    lanes = []
    for trade in filters.trades:
        lane = resolve_trade_lane(trade)
        if lane is None:
            logger.warning("Unknown trade lane ignored", trade=trade)
        elif lane not in lanes:
            lanes.append(lane)
    return BookingCriteria(
        status=resolve_status_mode(query),
        date_range=filters.date_range,
        clients=list(filters.clients),
        load_ports=_port_matches(filters.load_ports),
        discharge_ports=_port_matches(filters.discharge_ports),
        trade_lanes=lanes,
        commodities=list(filters.commodities),
        flags=filters.flags,
    )


def _is_month_aligned(date_range: Optional[DateRange]) -> bool:
    if date_range is None:
        return True
    last_day = calendar.monthrange(date_range.end.year, date_range.end.month)[1]
    return date_range.start.day == 1 and date_range.end.day == last_day


def plan_fast_path(query: StructuredQuery, criteria: BookingCriteria) -> Optional[FastPathPlan]:
    """
    A summary table can answer the query only when the filter set is a date
    range plus one dimension that table is keyed by, with the cancelled
    exclusion the summaries were built with.
    """
    filters = query.filters
    if not query.is_analytic or criteria.status is not StatusMode.EXCLUDE_CANCELLED:
        return None
    if filters.trades or filters.has_detail_filters:
        return None
    if not _is_month_aligned(filters.date_range):
        return None

    group_by = query.group_by
    has_ports = bool(criteria.load_ports or criteria.discharge_ports)

    if not has_ports and (group_by is GroupBy.CLIENT or (filters.clients and group_by is None)):
        return FastPathPlan(dimension="client", keys=list(filters.clients) or [None])

    if filters.clients or group_by is not None:
        return None
    if bool(criteria.load_ports) == bool(criteria.discharge_ports):
        return None
    side, ports = ("load", criteria.load_ports) if criteria.load_ports else ("discharge", criteria.discharge_ports)
    if not all(p.is_country for p in ports):
        return None
    countries = []
    for port in ports:
        if port.country not in countries:
            countries.append(port.country)
    return FastPathPlan(dimension=side, keys=countries)


def _line_matches(detail: DetailRecord, filters: QueryFilters) -> bool:
    if filters.commodities:
        description = (detail.commodity_description or "").lower()
        code = (detail.commodity_code or "").lower()
        if not any(c.lower() in description or c.lower() == code for c in filters.commodities):
            return False
    flags = filters.flags
    if flags.hazardous is not None and detail.is_hazardous != flags.hazardous:
        return False
    if flags.reefer is not None and detail.is_reefer != flags.reefer:
        return False
    if flags.oog is not None and detail.is_oog != flags.oog:
        return False
    return True


def apply_detail_filters(rows: List[BookingRecord], filters: QueryFilters) -> List[BookingRecord]:
    """
    Keep matching lines only; bookings left without lines drop out. The store
    already selects bookings with at least one matching line, so this trims
    lines without changing the booking count.
    """
    if not filters.has_detail_filters:
        return rows
    kept = []
    for booking in rows:
        lines = [d for d in booking.details if _line_matches(d, filters)]
        if lines:
            kept.append(booking.model_copy(update={"details": lines}))
    return kept


def _applied_filters(query: StructuredQuery, criteria: BookingCriteria) -> AppliedFilters:
    filters = query.filters
    flags = {name: value for name, value in filters.flags.model_dump().items() if value is not None}
    return AppliedFilters(
        date_range=filters.date_range,
        status=criteria.status.value,
        clients=list(criteria.clients),
        load_ports=[p.value for p in criteria.load_ports if not p.is_country],
        load_countries=[p.country for p in criteria.load_ports if p.is_country],
        discharge_ports=[p.value for p in criteria.discharge_ports if not p.is_country],
        discharge_countries=[p.country for p in criteria.discharge_ports if p.is_country],
        trades=[lane.name for lane in criteria.trade_lanes],
        commodities=list(filters.commodities),
        flags=flags,
    )


def _summary_period(summaries: List[SummaryRecord], date_range: Optional[DateRange]) -> Optional[DateRange]:
    if not summaries:
        return date_range
    first = min(s.month for s in summaries)
    last = max(s.month for s in summaries)
    end = last.replace(day=calendar.monthrange(last.year, last.month)[1])
    if date_range:
        first = max(first, date_range.start)
        end = min(end, date_range.end)
    return DateRange(start=first, end=end)


class QueryPlanner:
    """Executes a StructuredQuery against a booking store."""

    def __init__(self, store: BookingStore, settings: Settings = None):
        self.store = store
        self.settings = settings or get_settings()

    async def _read(self, operation, label: str):
        try:
            return await call_with_retry(
                operation,
                timeout=self.settings.db_timeout_seconds,
                attempts=self.settings.db_retry_attempts,
                backoff=self.settings.db_retry_backoff_seconds,
                is_transient=is_transient_db_error,
                label=label,
            )
        except DataStoreError:
            raise
        except Exception as e:
            logger.error("Booking store read failed", call=label, error=describe(e))
            raise DataStoreError(f"Booking store read failed ({label}): {describe(e)}") from e

    async def execute(self, query: StructuredQuery) -> QueryResult:
        criteria = build_criteria(query)
        plan = plan_fast_path(query, criteria)
        if plan is not None:
            result = await self._execute_precomputed(query, criteria, plan)
        else:
            result = await self._execute_standard(query, criteria)
        logger.info(
            "Query executed",
            path=result.path,
            count=result.count,
            total_count=result.total_count,
            truncated=result.truncated,
            rows_analyzed=result.rows_analyzed,
        )
        return result

    async def _execute_standard(self, query: StructuredQuery, criteria: BookingCriteria) -> QueryResult:
        limit = self.settings.booking_row_cap
        rows, total = await self._read(
            lambda: self.store.fetch_bookings(criteria, limit),
            label="fetch_bookings",
        )
        truncated = total > len(rows)
        if truncated:
            logger.warning("Booking scan truncated", returned=len(rows), total=total, cap=limit)

        rows = apply_detail_filters(rows, query.filters)
        dates = [r.confirmation_date for r in rows if r.confirmation_date]
        return QueryResult(
            path="standard",
            rows=rows,
            count=len(rows),
            total_count=total,
            truncated=truncated,
            filters_applied=_applied_filters(query, criteria),
            period=DateRange(start=min(dates), end=max(dates)) if dates else query.filters.date_range,
            rows_analyzed=len(rows) + sum(len(r.details) for r in rows),
        )

    async def _execute_precomputed(self, query: StructuredQuery, criteria: BookingCriteria,
                                   plan: FastPathPlan) -> QueryResult:
        date_range = query.filters.date_range

        def fetch(key):
            if plan.dimension == "client":
                return lambda: self.store.fetch_client_summaries(key, date_range)
            return lambda: self.store.fetch_country_summaries(plan.dimension, key, date_range)

        # One independent read per key; results merged in a fixed order below.
        batches = await asyncio.gather(*[
            self._read(fetch(key), label=f"fetch_{plan.dimension}_summaries")
            for key in plan.keys
        ])

        merged: Dict[Tuple[str, str, object], SummaryRecord] = {}
        for batch in batches:
            for summary in batch:
                merged.setdefault((summary.dimension, summary.key, summary.month), summary)
        summaries = sorted(merged.values(), key=lambda s: (s.key, s.month))

        bookings = sum(s.booking_count for s in summaries)
        return QueryResult(
            path="precomputed",
            summaries=summaries,
            count=len(summaries),
            total_count=bookings,
            truncated=False,
            filters_applied=_applied_filters(query, criteria),
            period=_summary_period(summaries, date_range),
            rows_analyzed=bookings + sum(s.line_count for s in summaries),
        )