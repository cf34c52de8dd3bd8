import json
from datetime import date

import pytest

from bookingiq.agents.query_translator import QueryTranslatorAgent, apply_overrides
from bookingiq.errors import LLMServiceError
from bookingiq.schemas.query import (
    AggregationLevel,
    ConversationTurn,
    FilterOverrides,
    GroupBy,
    Language,
    Metric,
    QueryIntent,
    StatusFilter,
    StructuredQuery,
)

from conftest import FakeTextService

TODAY = date(2026, 5, 10)


def make_translator(service, settings):
    return QueryTranslatorAgent(service, settings, clock=lambda: TODAY)


def payload(**overrides):
    data = {
        "intent": "report",
        "filters": {"dateRange": {"start": "2026-01-01", "end": "2026-03-31"}},
        "aggregation": {"groupBy": "client", "metric": "teu", "level": "detail"},
        "language": "en",
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.mark.asyncio
async def test_translate_report_by_client(settings):
    service = FakeTextService(payload())
    query = await make_translator(service, settings).translate("Top clients by TEU")

    assert query.intent == QueryIntent.REPORT
    assert query.group_by == GroupBy.CLIENT
    assert query.aggregation.metric == Metric.TEU
    assert query.filters.date_range.start == date(2026, 1, 1)
    assert query.filters.date_range.end == date(2026, 3, 31)
    assert not query.degraded

    call = service.calls[0]
    assert call["temperature"] == settings.extraction_temperature
    assert call["max_tokens"] == settings.extraction_max_tokens


@pytest.mark.asyncio
async def test_non_iso_dates_from_the_model_are_parsed(settings):
    dates = {"dateRange": {"start": "15 March 2024", "end": "30/06/2024"}}
    service = FakeTextService(payload(filters=dates))
    query = await make_translator(service, settings).translate("Top clients by TEU")

    assert query.filters.date_range.start == date(2024, 3, 15)
    assert query.filters.date_range.end == date(2024, 6, 30)


@pytest.mark.asyncio
async def test_analytic_query_defaults_to_active_status(settings):
    service = FakeTextService(payload())
    query = await make_translator(service, settings).translate("Top clients by TEU")
    assert query.filters.status == [StatusFilter.ACTIVE]


@pytest.mark.asyncio
async def test_explicit_cancelled_status_is_kept(settings):
    raw = payload(filters={"status": ["cancelled"]})
    query = await make_translator(FakeTextService(raw), settings).translate("Cancelled bookings by client")
    assert query.filters.status == [StatusFilter.CANCELLED]


@pytest.mark.asyncio
async def test_search_without_status_keeps_all_statuses(settings):
    raw = json.dumps({"intent": "search", "filters": {"pol": ["CNSHA"]}})
    query = await make_translator(FakeTextService(raw), settings).translate("List bookings from CNSHA")
    assert query.filters.status is None
    assert query.filters.load_ports == ["CNSHA"]


@pytest.mark.asyncio
async def test_quantitative_metric_forces_detail_level(settings):
    raw = payload(aggregation={"groupBy": "pol", "metric": "weight", "level": "booking"})
    query = await make_translator(FakeTextService(raw), settings).translate("Weight by port of loading")
    assert query.aggregation.level == AggregationLevel.DETAIL


@pytest.mark.asyncio
async def test_count_metric_defaults_to_booking_level(settings):
    raw = payload(aggregation={"groupBy": "client", "metric": "count"})
    query = await make_translator(FakeTextService(raw), settings).translate("Number of bookings per client")
    assert query.aggregation.level == AggregationLevel.BOOKING


@pytest.mark.asyncio
async def test_relative_period_is_resolved_deterministically(settings):
    # The model computed the wrong quarter; the question's own period wins.
    raw = payload(filters={"dateRange": {"start": "2025-10-01", "end": "2025-12-31"}})
    query = await make_translator(FakeTextService(raw), settings).translate("Top clients last quarter")
    assert query.filters.date_range.start == date(2026, 1, 1)
    assert query.filters.date_range.end == date(2026, 3, 31)


@pytest.mark.asyncio
async def test_fenced_output_with_trailing_commas(settings):
    raw = '```json\n{"intent": "chart", "filters": {"client": ["ACME",],}, "language": "fr",}\n```'
    query = await make_translator(FakeTextService(raw), settings).translate("Graphique des volumes ACME")
    assert query.intent == QueryIntent.CHART
    assert query.filters.clients == ["ACME"]
    assert query.language == Language.FR


@pytest.mark.asyncio
async def test_unparseable_output_degrades_to_search(settings):
    service = FakeTextService("Sorry, I cannot help with that.")
    query = await make_translator(service, settings).translate("Show me everything")

    assert query.degraded
    assert query.intent == QueryIntent.SEARCH
    assert query.degraded_reason
    assert query.filters.status is None


@pytest.mark.asyncio
async def test_unknown_intent_degrades(settings):
    query = await make_translator(FakeTextService(payload(intent="dance")), settings).translate("?")
    assert query.degraded


@pytest.mark.asyncio
async def test_permanent_service_failure_degrades_without_retry(settings):
    service = FakeTextService(LLMServiceError("invalid api key", transient=False))
    query = await make_translator(service, settings).translate("Top clients")
    assert query.degraded
    assert len(service.calls) == 1


@pytest.mark.asyncio
async def test_transient_service_failure_is_retried_once(settings):
    service = FakeTextService(LLMServiceError("rate limited", transient=True), payload())
    query = await make_translator(service, settings).translate("Top clients by TEU")
    assert not query.degraded
    assert len(service.calls) == 2


@pytest.mark.asyncio
async def test_overrides_apply_to_degraded_query(settings):
    overrides = FilterOverrides(clients=["ACME"], date_from=date(2026, 1, 1), date_to=date(2026, 1, 31))
    query = await make_translator(FakeTextService("not json"), settings).translate("bookings", overrides=overrides)
    assert query.degraded
    assert query.filters.clients == ["ACME"]
    assert query.filters.date_range.start == date(2026, 1, 1)
    assert query.filters.date_range.end == date(2026, 1, 31)


@pytest.mark.asyncio
async def test_overrides_win_over_extraction(settings):
    raw = payload(filters={"client": ["BETA"], "pol": ["SGSIN"]})
    overrides = FilterOverrides(clients=["ACME"], ports=["CNSHA"])
    query = await make_translator(FakeTextService(raw), settings).translate("Beta volumes", overrides=overrides)
    assert query.filters.clients == ["ACME"]
    assert query.filters.load_ports == ["CNSHA"]
    assert query.filters.discharge_ports == ["CNSHA"]


def test_side_specific_override_beats_generic_ports():
    overrides = FilterOverrides(ports=["CNSHA"], discharge_ports=["NLRTM"])
    query = apply_overrides(StructuredQuery(), overrides, TODAY)
    assert query.filters.load_ports == ["CNSHA"]
    assert query.filters.discharge_ports == ["NLRTM"]


@pytest.mark.asyncio
async def test_ambiguity_becomes_clarification(settings):
    raw = payload(
        intent="report",
        ambiguity={"detected": True, "suggestions": ["Acme Corp", "Acme Logistics"]},
    )
    query = await make_translator(FakeTextService(raw), settings).translate("Volumes for Acme")
    assert query.is_clarification
    assert query.ambiguity.suggestions == ["Acme Corp", "Acme Logistics"]
    assert "Acme Logistics" in query.ambiguity.clarification


@pytest.mark.asyncio
async def test_prompt_keeps_only_recent_history(settings):
    history = [ConversationTurn(role="user", content=f"turn {i}") for i in range(5)]
    service = FakeTextService(payload())
    await make_translator(service, settings).translate("And for Beta?", history=history)

    prompt = service.calls[0]["prompt"]
    assert "turn 0" not in prompt
    assert "turn 1" not in prompt
    assert all(f"turn {i}" in prompt for i in (2, 3, 4))
    assert TODAY.isoformat() in prompt
