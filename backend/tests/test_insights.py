from bookingiq.analytics.aggregation import aggregate, compute_statistics
from bookingiq.analytics.insights import (
    detect_concentration,
    detect_trend,
    detect_volume_anomalies,
    generate_insights,
    recommend,
)
from bookingiq.schemas.query import AggregationSpec, GroupBy, Metric
from bookingiq.schemas.results import AggregationRow, ClientBreakdown, Statistics


def test_concentration_pattern_and_recommendation(standard_result):
    statistics = compute_statistics(standard_result)

    pattern = detect_concentration(statistics)
    assert pattern.type == "concentration"
    assert pattern.description.startswith("ACME accounts for 69.6%")

    recommendations = recommend(statistics)
    assert recommendations[0].type == "diversification"
    assert recommendations[0].priority == "high"


def test_volume_anomalies(standard_result):
    anomalies = {a.entity: a for a in detect_volume_anomalies(compute_statistics(standard_result))}

    # overall average is 4.6 TEU per booking
    assert anomalies["ACME"].type == "volume_spike"
    assert anomalies["Unknown"].type == "volume_drop"
    assert anomalies["GAMMA"].type == "volume_drop"
    assert "BETA" not in anomalies


def test_no_anomalies_for_single_client():
    statistics = Statistics(total=2, total_teu=10.0, by_client={"ACME": ClientBreakdown(count=2, teu=10.0)})
    assert detect_volume_anomalies(statistics) == []


def test_balanced_portfolio_has_no_concentration_pattern():
    statistics = Statistics(
        total=4,
        total_teu=40.0,
        by_client={name: ClientBreakdown(count=1, teu=10.0) for name in ("A", "B", "C", "D")},
    )
    assert detect_concentration(statistics) is None
    assert recommend(statistics) == []


def test_port_spread_recommendation():
    statistics = Statistics(total=12, by_pol={f"P{i}": 1 for i in range(12)})
    recommendations = recommend(statistics)
    assert [r.type for r in recommendations] == ["optimization"]


def test_increasing_trend():
    rows = [
        AggregationRow(key="2026-01-05", teu=5.0),
        AggregationRow(key="2026-01-12", teu=8.0),
        AggregationRow(key="2026-01-19", teu=13.0),
    ]
    pattern = detect_trend(rows, GroupBy.DATE, Metric.TEU)
    assert pattern.type == "trend"
    assert "increasing" in pattern.description


def test_trend_needs_date_grouping_and_monotonic_values():
    rows = [
        AggregationRow(key="2026-01-05", teu=5.0),
        AggregationRow(key="2026-01-12", teu=9.0),
        AggregationRow(key="2026-01-19", teu=7.0),
    ]
    assert detect_trend(rows, GroupBy.DATE, Metric.TEU) is None
    assert detect_trend(rows, GroupBy.CLIENT, Metric.TEU) is None
    assert detect_trend(rows[:2], GroupBy.DATE, Metric.TEU) is None


def test_generate_insights(standard_result):
    statistics = compute_statistics(standard_result)
    aggregations = aggregate(standard_result, AggregationSpec(group_by=GroupBy.DATE))
    insights = generate_insights(statistics, aggregations, GroupBy.DATE, Metric.TEU)

    assert not insights.is_empty
    assert {p.type for p in insights.patterns} >= {"concentration"}
    assert all(a.kind == "anomaly" for a in insights.anomalies)
