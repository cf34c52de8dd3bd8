"""
Proactive Insights

Pure functions over statistics and aggregation rows that surface anomalies,
patterns and recommendations alongside the narrative.
"""
from typing import List, Optional

from bookingiq.analytics.aggregation import metric_value
from bookingiq.schemas.query import GroupBy, Metric
from bookingiq.schemas.results import (
    AggregationRow,
    Anomaly,
    Pattern,
    ProactiveInsights,
    Recommendation,
    Statistics,
)

DROP_RATIO = 0.6
SPIKE_RATIO = 1.4
CONCENTRATION_PATTERN_PCT = 40.0
CONCENTRATION_HIGH_PCT = 60.0
TREND_WINDOW = 3
PORT_DIVERSITY_THRESHOLD = 10
MAX_ANOMALIES = 5


def detect_volume_anomalies(statistics: Statistics) -> List[Anomaly]:
    """Clients whose TEU per booking deviates more than 40% from the overall average."""
    clients = statistics.by_client
    if len(clients) < 2 or statistics.total == 0:
        return []
    average = statistics.total_teu / statistics.total
    if average <= 0:
        return []

    anomalies = []
    for client, breakdown in clients.items():
        if breakdown.count == 0:
            continue
        per_booking = breakdown.teu / breakdown.count
        if per_booking < average * DROP_RATIO:
            anomalies.append(Anomaly(
                type="volume_drop",
                entity=client,
                severity="medium",
                description=f"{client} averages {per_booking:.1f} TEU per booking, well below the overall {average:.1f}",
                value=round(per_booking, 2),
                expected=round(average, 2),
            ))
        elif per_booking > average * SPIKE_RATIO:
            anomalies.append(Anomaly(
                type="volume_spike",
                entity=client,
                severity="low",
                description=f"{client} averages {per_booking:.1f} TEU per booking, well above the overall {average:.1f}",
                value=round(per_booking, 2),
                expected=round(average, 2),
            ))
    anomalies.sort(key=lambda a: (-abs(a.value - a.expected), a.entity))
    return anomalies[:MAX_ANOMALIES]


def detect_concentration(statistics: Statistics) -> Optional[Pattern]:
    if statistics.total_teu <= 0 or not statistics.by_client:
        return None
    top_client, top = max(statistics.by_client.items(), key=lambda item: (item[1].teu, item[0]))
    share = top.teu / statistics.total_teu * 100
    if share <= CONCENTRATION_PATTERN_PCT:
        return None
    return Pattern(
        type="concentration",
        description=f"{top_client} accounts for {share:.1f}% of total volume",
        confidence=0.9,
    )


def detect_trend(aggregations: Optional[List[AggregationRow]], group_by: Optional[GroupBy],
                 metric: Metric = Metric.TEU) -> Optional[Pattern]:
    """Direction of the last three date buckets when they move monotonically."""
    if not aggregations or group_by is not GroupBy.DATE:
        return None
    dated = sorted((row for row in aggregations if row.key != "Unknown"), key=lambda row: row.key)
    recent = dated[-TREND_WINDOW:]
    if len(recent) < TREND_WINDOW:
        return None
    values = [metric_value(row, metric) for row in recent]
    if all(a < b for a, b in zip(values, values[1:])):
        direction = "increasing"
    elif all(a > b for a, b in zip(values, values[1:])):
        direction = "decreasing"
    else:
        return None
    return Pattern(
        type="trend",
        description=f"Volume is {direction} over the last {TREND_WINDOW} periods",
        confidence=0.7,
    )


def recommend(statistics: Statistics) -> List[Recommendation]:
    recommendations = []
    if statistics.total_teu > 0 and statistics.by_client:
        top = max(b.teu for b in statistics.by_client.values())
        share = top / statistics.total_teu * 100
        if share > CONCENTRATION_PATTERN_PCT:
            recommendations.append(Recommendation(
                type="diversification",
                priority="high" if share > CONCENTRATION_HIGH_PCT else "medium",
                action="Broaden the client portfolio",
                reason=f"The largest client holds {share:.1f}% of volume",
            ))
    port_count = max(len(statistics.by_pol), len(statistics.by_pod))
    if port_count > PORT_DIVERSITY_THRESHOLD:
        recommendations.append(Recommendation(
            type="optimization",
            priority="low",
            action="Review port rotation for consolidation opportunities",
            reason=f"Volume is spread across {port_count} ports",
        ))
    return recommendations


def generate_insights(statistics: Statistics,
                      aggregations: Optional[List[AggregationRow]] = None,
                      group_by: Optional[GroupBy] = None,
                      metric: Metric = Metric.TEU) -> ProactiveInsights:
    patterns = [
        pattern for pattern in (
            detect_concentration(statistics),
            detect_trend(aggregations, group_by, metric),
        )
        if pattern is not None
    ]
    return ProactiveInsights(
        anomalies=detect_volume_anomalies(statistics),
        patterns=patterns,
        recommendations=recommend(statistics),
    )
