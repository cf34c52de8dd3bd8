from datetime import date

import pytest

from bookingiq.analytics.aggregation import aggregate
from bookingiq.analytics.planner import (
    QueryPlanner,
    apply_detail_filters,
    build_criteria,
    plan_fast_path,
    resolve_status_mode,
)
from bookingiq.errors import DataStoreError
from bookingiq.schemas.query import (
    AggregationSpec,
    CargoFlags,
    DateRange,
    GroupBy,
    Metric,
    QueryFilters,
    QueryIntent,
    StatusFilter,
    StructuredQuery,
)
from bookingiq.tools.booking_tools import StatusMode

Q1_2026 = DateRange(start=date(2026, 1, 1), end=date(2026, 3, 31))


def analytic_query(group_by=None, metric=Metric.TEU, **filters):
    filters.setdefault("status", [StatusFilter.ACTIVE])
    return StructuredQuery(
        intent=QueryIntent.REPORT,
        filters=QueryFilters(**filters),
        aggregation=AggregationSpec(group_by=group_by, metric=metric) if group_by else None,
    )


# ==================== Status handling ====================

def test_status_mode_defaults():
    assert resolve_status_mode(StructuredQuery(intent=QueryIntent.REPORT)) is StatusMode.EXCLUDE_CANCELLED
    assert resolve_status_mode(StructuredQuery(intent=QueryIntent.SEARCH)) is StatusMode.ALL


def test_status_mode_explicit():
    only_cancelled = StructuredQuery(intent=QueryIntent.REPORT,
                                     filters=QueryFilters(status=[StatusFilter.CANCELLED]))
    both = StructuredQuery(intent=QueryIntent.SEARCH,
                           filters=QueryFilters(status=[StatusFilter.ACTIVE, StatusFilter.CANCELLED]))
    assert resolve_status_mode(only_cancelled) is StatusMode.ONLY_CANCELLED
    assert resolve_status_mode(both) is StatusMode.ALL


# ==================== Criteria & fast-path eligibility ====================

def test_build_criteria_resolves_countries_and_drops_unknown_trades():
    query = analytic_query(load_ports=["China", "CNSHA"], trades=["asia-europe", "moon-mars"])
    criteria = build_criteria(query)

    assert [p.country for p in criteria.load_ports] == ["CN", None]
    assert [lane.name for lane in criteria.trade_lanes] == ["Asia-Europe"]


def test_fast_path_for_client_grouping():
    query = analytic_query(group_by=GroupBy.CLIENT, date_range=Q1_2026)
    plan = plan_fast_path(query, build_criteria(query))
    assert plan is not None
    assert plan.dimension == "client"
    assert plan.keys == [None]


def test_fast_path_for_country_filter():
    query = analytic_query(load_ports=["Chine"], date_range=Q1_2026)
    plan = plan_fast_path(query, build_criteria(query))
    assert plan.dimension == "load"
    assert plan.keys == ["CN"]


@pytest.mark.parametrize(
    "query",
    [
        # date range not aligned to whole months
        analytic_query(group_by=GroupBy.CLIENT,
                       date_range=DateRange(start=date(2026, 1, 1), end=date(2026, 3, 30))),
        # trade filter has no summary table
        analytic_query(group_by=GroupBy.CLIENT, trades=["asia-europe"]),
        # line-level filters need detail lines
        analytic_query(group_by=GroupBy.CLIENT, commodities=["Furniture"]),
        analytic_query(group_by=GroupBy.CLIENT, flags=CargoFlags(reefer=True)),
        # a port that is not a country
        analytic_query(load_ports=["CNSHA"]),
        # both sides constrained
        analytic_query(load_ports=["CN"], discharge_ports=["NL"]),
        # grouping a summary table is not keyed by
        analytic_query(group_by=GroupBy.POD, load_ports=["CN"]),
        # cancelled bookings requested
        analytic_query(group_by=GroupBy.CLIENT, status=[StatusFilter.CANCELLED]),
    ],
)
def test_fast_path_not_eligible(query):
    assert plan_fast_path(query, build_criteria(query)) is None


def test_raw_listing_never_takes_fast_path():
    query = StructuredQuery(intent=QueryIntent.SEARCH, filters=QueryFilters(clients=["ACME"]))
    assert plan_fast_path(query, build_criteria(query)) is None


def test_detail_filters_keep_matching_lines_only(booking_rows):
    filters = QueryFilters(commodities=["furniture"])
    rows = apply_detail_filters(booking_rows, filters)

    assert [b.job_reference for b in rows] == ["BK001", "BK002", "BK004"]
    assert all(d.commodity_description == "Furniture" for b in rows for d in b.details)
    # source records are left untouched
    assert len(booking_rows[0].details) == 2


def test_detail_flag_filter(booking_rows):
    rows = apply_detail_filters(booking_rows, QueryFilters(flags=CargoFlags(reefer=True)))
    assert [b.job_reference for b in rows] == ["BK001", "BK003"]


# ==================== Execution against the store ====================

@pytest.mark.asyncio
async def test_standard_path_excludes_cancelled_for_analytics(store, settings):
    query = analytic_query(group_by=GroupBy.POL, date_range=Q1_2026)
    result = await QueryPlanner(store, settings).execute(query)

    assert result.path == "standard"
    assert result.total_count == 5
    assert "BK004" not in {b.job_reference for b in result.rows}
    assert result.filters_applied.status == StatusMode.EXCLUDE_CANCELLED.value


@pytest.mark.asyncio
async def test_search_includes_cancelled(store, settings):
    query = StructuredQuery(intent=QueryIntent.SEARCH, filters=QueryFilters(load_ports=["CNSHA"]))
    result = await QueryPlanner(store, settings).execute(query)

    assert {b.job_reference for b in result.rows} == {"BK001", "BK004", "BK005"}
    assert result.filters_applied.load_ports == ["CNSHA"]


@pytest.mark.asyncio
async def test_truncation_is_flagged(store, settings):
    settings = settings.model_copy(update={"booking_row_cap": 2})
    result = await QueryPlanner(store, settings).execute(StructuredQuery(intent=QueryIntent.SEARCH))

    assert result.count == 2
    assert result.total_count == 6
    assert result.truncated
    # newest first
    assert [b.job_reference for b in result.rows] == ["BK006", "BK005"]


@pytest.mark.asyncio
async def test_not_truncated_when_everything_fits(store, settings):
    result = await QueryPlanner(store, settings).execute(StructuredQuery(intent=QueryIntent.SEARCH))
    assert result.count == result.total_count == 6
    assert not result.truncated
    assert result.period == DateRange(start=date(2026, 1, 15), end=date(2026, 3, 20))


@pytest.mark.asyncio
async def test_commodity_filter_counts_matching_bookings_only(store, settings):
    query = StructuredQuery(intent=QueryIntent.SEARCH, filters=QueryFilters(commodities=["Textiles"]))
    result = await QueryPlanner(store, settings).execute(query)

    assert [b.job_reference for b in result.rows] == ["BK006"]
    assert result.count == result.total_count == 1
    assert not result.truncated


@pytest.mark.asyncio
async def test_detail_filters_apply_before_the_row_cap(store, settings):
    settings = settings.model_copy(update={"booking_row_cap": 1})
    query = StructuredQuery(intent=QueryIntent.SEARCH, filters=QueryFilters(commodities=["furniture"]))
    result = await QueryPlanner(store, settings).execute(query)

    # BK001, BK002 and BK004 carry furniture; the newest is returned
    assert [b.job_reference for b in result.rows] == ["BK004"]
    assert result.total_count == 3
    assert result.truncated


@pytest.mark.asyncio
async def test_flag_filter_counts_matching_bookings_only(store, settings):
    query = analytic_query(flags=CargoFlags(hazardous=True))
    result = await QueryPlanner(store, settings).execute(query)

    assert [b.job_reference for b in result.rows] == ["BK003"]
    assert result.total_count == 1
    assert [d.commodity_description for d in result.rows[0].details] == ["Chemicals"]


@pytest.mark.asyncio
async def test_client_filter_matches_code_or_name(store, settings):
    query = StructuredQuery(intent=QueryIntent.SEARCH, filters=QueryFilters(clients=["gamma sa"]))
    result = await QueryPlanner(store, settings).execute(query)
    assert [b.job_reference for b in result.rows] == ["BK006"]


@pytest.mark.asyncio
async def test_trade_lane_filter(store, settings):
    query = analytic_query(trades=["Asia-Europe"])
    result = await QueryPlanner(store, settings).execute(query)
    assert {b.job_reference for b in result.rows} == {"BK001", "BK002", "BK006"}


@pytest.mark.asyncio
async def test_fast_path_matches_standard_path(store, settings):
    planner = QueryPlanner(store, settings)
    fast_query = analytic_query(group_by=GroupBy.CLIENT, date_range=Q1_2026)
    # Same bookings, but a range that is not month-aligned forces the scan.
    scan_query = analytic_query(group_by=GroupBy.CLIENT,
                                date_range=DateRange(start=date(2026, 1, 1), end=date(2026, 3, 30)))

    fast = await planner.execute(fast_query)
    scan = await planner.execute(scan_query)
    assert fast.path == "precomputed"
    assert scan.path == "standard"

    fast_rows = aggregate(fast, fast_query.aggregation)[:5]
    scan_rows = aggregate(scan, scan_query.aggregation)[:5]
    assert [(r.key, r.teu, r.booking_count, r.line_count) for r in fast_rows] == \
        [(r.key, r.teu, r.booking_count, r.line_count) for r in scan_rows]
    assert fast_rows[0].key == "ACME"
    assert fast_rows[0].teu == 16.0
    assert fast.total_count == scan.total_count == 5


@pytest.mark.asyncio
async def test_country_fast_path(store, settings):
    query = analytic_query(load_ports=["China"], date_range=Q1_2026)
    result = await QueryPlanner(store, settings).execute(query)

    assert result.path == "precomputed"
    assert {s.key for s in result.summaries} == {"CN"}
    # BK001, BK002 and BK005; the cancelled BK004 is not in the summaries
    assert result.total_count == 3
    assert result.filters_applied.load_countries == ["CN"]
    assert result.period == Q1_2026


@pytest.mark.asyncio
async def test_duplicate_keys_do_not_double_count(store, settings):
    query = analytic_query(load_ports=["China", "CN"], date_range=Q1_2026)
    result = await QueryPlanner(store, settings).execute(query)
    assert result.total_count == 3


class FlakyStore:
    """Booking store whose reads fail with the given errors before succeeding."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def fetch_bookings(self, criteria, limit):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return [], 0

    async def fetch_client_summaries(self, client, date_range):
        raise AssertionError("fast path not expected")

    async def fetch_country_summaries(self, direction, country, date_range):
        raise AssertionError("fast path not expected")


@pytest.mark.asyncio
async def test_transient_store_error_is_retried(settings):
    store = FlakyStore(ConnectionError("connection reset"))
    result = await QueryPlanner(store, settings).execute(StructuredQuery(intent=QueryIntent.SEARCH))
    assert store.calls == 2
    assert result.is_empty


@pytest.mark.asyncio
async def test_persistent_store_error_surfaces(settings):
    store = FlakyStore(ConnectionError("down"), ConnectionError("still down"))
    with pytest.raises(DataStoreError):
        await QueryPlanner(store, settings).execute(StructuredQuery(intent=QueryIntent.SEARCH))
    assert store.calls == 2


@pytest.mark.asyncio
async def test_non_transient_store_error_is_not_retried(settings):
    store = FlakyStore(ValueError("bad column"))
    with pytest.raises(DataStoreError):
        await QueryPlanner(store, settings).execute(StructuredQuery(intent=QueryIntent.SEARCH))
    assert store.calls == 1
