"""
Narrative Prompt Formatting Utilities

Renders query results into the compact, number-exact data context given to
the narrative model, plus the per-language response structure.
"""
from typing import List, Optional

from bookingiq.analytics.aggregation import location_label
from bookingiq.schemas.query import Language, StructuredQuery
from bookingiq.schemas.results import AggregationRow, ProactiveInsights, QueryResult, Statistics


class NarrativeFormatter:
    """Format analytics results for the narrative prompt."""

    TOP_CLIENTS = 10
    TOP_PORTS = 5
    TOP_ROWS = 8

    SECTION_TITLES = {
        Language.EN: ("Executive summary", "Key figures", "Analysis", "Recommendations"),
        Language.FR: ("Synthèse", "Chiffres clés", "Analyse", "Recommandations"),
    }

    NO_DATA = {
        Language.EN: "No bookings match these criteria. Try widening the period or removing a filter.",
        Language.FR: "Aucune réservation ne correspond à ces critères. Essayez d'élargir la période ou de retirer un filtre.",
    }

    @staticmethod
    def _fmt(value: float) -> str:
        if float(value).is_integer():
            return f"{int(value):,}"
        return f"{value:,.2f}"

    @classmethod
    def no_data_message(cls, language: Language) -> str:
        return cls.NO_DATA[Language.FR if language is Language.FR else Language.EN]

    @classmethod
    def format_period(cls, statistics: Statistics) -> str:
        if statistics.date_range is None:
            return "Period: all available dates"
        return f"Period: {statistics.date_range.start.isoformat()} to {statistics.date_range.end.isoformat()}"

    @classmethod
    def format_totals(cls, statistics: Statistics, result: QueryResult) -> str:
        lines = [
            f"Bookings analyzed: {cls._fmt(statistics.total)}",
            f"Detail lines: {cls._fmt(statistics.total_lines)}",
            f"Total TEU: {cls._fmt(statistics.total_teu)}",
            f"Total units: {cls._fmt(statistics.total_units)}",
            f"Total net weight: {cls._fmt(statistics.total_weight)}",
        ]
        if result.truncated:
            lines.append(
                f"NOTE: only the {cls._fmt(result.count)} most recent of {cls._fmt(result.total_count)} "
                "matching bookings were analyzed"
            )
        return "\n".join(lines)

    @classmethod
    def format_top_clients(cls, statistics: Statistics) -> Optional[str]:
        if not statistics.by_client:
            return None
        ranked = sorted(statistics.by_client.items(), key=lambda item: (-item[1].teu, item[0]))
        lines = [
            f"- {client}: {cls._fmt(b.teu)} TEU, {cls._fmt(b.count)} bookings"
            for client, b in ranked[:cls.TOP_CLIENTS]
        ]
        return "Top clients:\n" + "\n".join(lines)

    @classmethod
    def format_breakdown(cls, title: str, counts: dict) -> Optional[str]:
        if not counts:
            return None
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:cls.TOP_PORTS]
        lines = [f"- {location_label(key)}: {cls._fmt(count)} bookings" for key, count in ranked]
        return f"{title}:\n" + "\n".join(lines)

    @classmethod
    def format_kpis(cls, statistics: Statistics) -> str:
        kpis = statistics.kpis
        lines = [
            f"Top-5 client concentration (share of {kpis.concentration_metric.value}): "
            f"{kpis.client_concentration_index:.1f}%",
            f"Average TEU per booking: {kpis.avg_teu_per_booking:.2f}",
        ]
        if kpis.mix_available:
            mix = kpis.contract_mix
            cargo = kpis.cargo_mix
            lines.append(f"Contract mix (share of TEU): spot {mix.spot_pct:.1f}%, long-term {mix.long_term_pct:.1f}%")
            lines.append(
                f"Cargo mix (share of TEU): standard {cargo.standard_pct:.1f}%, reefer {cargo.reefer_pct:.1f}%, "
                f"hazardous {cargo.hazardous_pct:.1f}%, out-of-gauge {cargo.oog_pct:.1f}%"
            )
        return "Business KPIs:\n" + "\n".join(f"- {line}" for line in lines)

    @classmethod
    def format_aggregations(cls, query: StructuredQuery, rows: Optional[List[AggregationRow]]) -> Optional[str]:
        if not rows or query.aggregation is None:
            return None
        spec = query.aggregation
        lines = [
            f"- {row.key}: {cls._fmt(row.teu)} TEU, {cls._fmt(row.units)} units, "
            f"{cls._fmt(row.weight)} weight, {cls._fmt(row.booking_count)} bookings, {cls._fmt(row.line_count)} lines"
            for row in rows[:cls.TOP_ROWS]
        ]
        header = f"Breakdown by {spec.group_by.value} (sorted by {spec.metric.value}, {spec.level.value} level)"
        return header + ":\n" + "\n".join(lines)

    @classmethod
    def format_insights(cls, insights: Optional[ProactiveInsights]) -> Optional[str]:
        if insights is None or insights.is_empty:
            return None
        lines = [f"- [anomaly] {a.description}" for a in insights.anomalies]
        lines += [f"- [pattern] {p.description}" for p in insights.patterns]
        lines += [f"- [recommendation] {r.action} ({r.reason})" for r in insights.recommendations]
        return "Detected signals:\n" + "\n".join(lines)

    @classmethod
    def format_structure(cls, language: Language) -> str:
        titles = cls.SECTION_TITLES[Language.FR if language is Language.FR else Language.EN]
        sections = "\n".join(f"## {title}" for title in titles)
        if language is Language.FR:
            return f"Rédige la réponse en français avec cette structure :\n{sections}"
        if language is Language.MIXED:
            return f"Answer in the language mix the user wrote in, with this structure:\n{sections}"
        return f"Write the answer in English with this structure:\n{sections}"

    @classmethod
    def format_data_context(
        cls,
        query: StructuredQuery,
        result: QueryResult,
        statistics: Statistics,
        aggregations: Optional[List[AggregationRow]],
        insights: Optional[ProactiveInsights],
    ) -> str:
        blocks = [
            cls.format_period(statistics),
            cls.format_totals(statistics, result),
            cls.format_top_clients(statistics),
            cls.format_breakdown("Top ports of loading", statistics.by_pol),
            cls.format_breakdown("Top ports of discharge", statistics.by_pod),
            cls.format_breakdown("Trade lanes", statistics.by_trade),
            cls.format_kpis(statistics),
            cls.format_aggregations(query, aggregations),
            cls.format_insights(insights),
        ]
        return "\n\n".join(block for block in blocks if block)
