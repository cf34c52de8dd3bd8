from datetime import date

import pytest

from bookingiq.agents.fact_validator import FactValidatorAgent
from bookingiq.analytics.aggregation import aggregate, compute_statistics
from bookingiq.errors import LLMServiceError
from bookingiq.schemas.query import AggregationSpec, DateRange, GroupBy
from bookingiq.schemas.results import ClientBreakdown, QueryResult, Statistics

from conftest import FakeTextService


@pytest.fixture
def small_data():
    statistics = Statistics(
        total=3,
        total_count=3,
        total_lines=4,
        total_teu=42.0,
        total_units=21,
        total_weight=120000.0,
        by_client={"ACME": ClientBreakdown(count=2, teu=30.0), "BETA": ClientBreakdown(count=1, teu=12.0)},
        by_pol={"CNSHA": 3},
        by_pod={"NLRTM": 3},
        date_range=DateRange(start=date(2026, 1, 15), end=date(2026, 3, 20)),
    )
    result = QueryResult(count=3, total_count=3, rows_analyzed=7,
                         period=DateRange(start=date(2026, 1, 15), end=date(2026, 3, 20)))
    return result, statistics


@pytest.fixture
def validator(settings):
    return FactValidatorAgent(settings=settings)


# ==================== Numbers ====================

def test_exact_numbers_pass(validator, small_data):
    result, statistics = small_data
    errors, warnings = validator.check_numbers("Volume reached 42 TEU, with ACME at 30 TEU.", result, statistics, None)
    assert errors == []
    assert warnings == []


def test_magnitude_error_is_caught(validator, small_data):
    result, statistics = small_data
    errors, _ = validator.check_numbers("Volume reached 4,200 TEU.", result, statistics, None)
    assert errors == ["Number 4,200 does not match any figure in the data"]


def test_near_miss_is_a_warning(validator, small_data):
    result, statistics = small_data
    errors, warnings = validator.check_numbers("Volume reached about 43 TEU.", result, statistics, None)
    assert errors == []
    assert len(warnings) == 1
    assert "43" in warnings[0]


def test_thousands_separator_matches(validator, small_data):
    result, statistics = small_data
    errors, _ = validator.check_numbers("Net weight totalled 120,000 kg.", result, statistics, None)
    assert errors == []


@pytest.mark.parametrize(
    "text",
    [
        "ACME holds 71.4% of volume.",        # percentages
        "Average of 14.5 TEU per booking.",   # decimals
        "Volumes in 2026 were steady.",       # years of the covered period
        "The top 10 clients are listed.",     # rank words
        "1. Summary of the period",           # list ordinals
        "Bookings peaked on 15 March.",       # days of the month
        "Le 1er mars, les volumes ont progressé.",
    ],
)
def test_skipped_numbers(validator, small_data, text):
    result, statistics = small_data
    errors, warnings = validator.check_numbers(text, result, statistics, None)
    assert errors == []
    assert warnings == []


def test_small_invented_count_is_an_error(validator, small_data):
    result, statistics = small_data
    errors, _ = validator.check_numbers("Only 8 clients booked.", result, statistics, None)
    assert errors == ["Number 8 does not match any figure in the data"]


def test_small_known_counts_pass(validator, small_data):
    result, statistics = small_data
    # 3 bookings, 2 clients, 1 port of loading
    text = "There were 3 bookings from 2 clients, all loaded at 1 port."
    errors, warnings = validator.check_numbers(text, result, statistics, None)
    assert errors == []
    assert warnings == []


def test_booking_count_is_a_reference(validator):
    statistics = Statistics(total=42, total_count=42)
    result = QueryResult(count=42, total_count=42)

    errors, _ = validator.check_numbers("We found 42 bookings.", result, statistics, None)
    assert errors == []

    errors, _ = validator.check_numbers("We found 5 bookings across 3 ports.", result, statistics, None)
    assert errors == [
        "Number 5 does not match any figure in the data",
        "Number 3 does not match any figure in the data",
    ]


def test_aggregation_figures_are_references(validator, standard_result):
    statistics = compute_statistics(standard_result)
    rows = aggregate(standard_result, AggregationSpec(group_by=GroupBy.POD))
    # 10 TEU only exists as the DEHAM group total
    text = "Hamburg received 10 TEU."
    errors, _ = validator.check_numbers(text, standard_result, statistics, rows)
    assert errors == []
    errors, _ = validator.check_numbers(text, standard_result, statistics, None)
    assert len(errors) == 1


# ==================== Dates & places ====================

def test_unknown_date_is_an_error(validator, standard_result):
    statistics = compute_statistics(standard_result)
    assert validator.check_dates("Booked on 2026-01-15.", standard_result, statistics) == []
    assert validator.check_dates("Booked on 2025-07-04.", standard_result, statistics) == \
        ["Date 2025-07-04 does not appear in the data"]


def test_known_places_pass(validator, standard_result):
    statistics = compute_statistics(standard_result)
    text = "Most cargo left Shanghai for Rotterdam, while Acme Corp shipped from Ningbo to Hamburg."
    assert validator.check_places(text, standard_result, statistics) == []


def test_country_names_are_known(validator, standard_result):
    statistics = compute_statistics(standard_result)
    text = "Loads from China and South Korea dominate, with Netherlands as the main destination."
    assert validator.check_places(text, standard_result, statistics) == []


def test_unknown_place_is_a_warning(validator, standard_result):
    statistics = compute_statistics(standard_result)
    warnings = validator.check_places("Several boxes went to Valparaiso.", standard_result, statistics)
    assert warnings == ["Place 'Valparaiso' not found in the data"]


def test_sentence_initial_word_is_not_a_place(validator, standard_result):
    statistics = compute_statistics(standard_result)
    assert validator.check_places("Volumes grew. Meanwhile demand held.", standard_result, statistics) == []


# ==================== Verdict ====================

def test_confidence_formula():
    assert FactValidatorAgent.confidence([], [], 0) == 0.8
    assert FactValidatorAgent.confidence([], ["w"], 500) == 0.9
    assert FactValidatorAgent.confidence([], [], 5000) == 1.0
    assert FactValidatorAgent.confidence(["e"], [], 5000) == 0.0
    assert FactValidatorAgent.confidence([], ["w"] * 12, 0) == 0.0


@pytest.mark.asyncio
async def test_validate_without_service(validator, small_data):
    result, statistics = small_data
    verdict = await validator.validate("Volume reached 42 TEU.", result, statistics)
    assert verdict.valid
    assert verdict.errors == []
    assert verdict.confidence == pytest.approx(0.803)


@pytest.mark.asyncio
async def test_validate_with_errors_has_zero_confidence(validator, small_data):
    result, statistics = small_data
    verdict = await validator.validate("Volume reached 4,200 TEU.", result, statistics)
    assert not verdict.valid
    assert verdict.confidence == 0.0


@pytest.mark.asyncio
async def test_cross_check_failure_degrades_to_warning(settings, small_data):
    result, statistics = small_data
    service = FakeTextService(LLMServiceError("service down", transient=False))
    validator = FactValidatorAgent(service, settings.model_copy(update={"fact_check_enabled": True}))

    verdict = await validator.validate("Volume reached 42 TEU.", result, statistics, question="Total volume?")
    assert verdict.valid
    assert verdict.errors == []
    assert verdict.warnings[0].startswith("Cross-model fact check unavailable")


@pytest.mark.asyncio
async def test_cross_check_rejection_is_an_error(settings, small_data):
    result, statistics = small_data
    service = FakeTextService('{"valid": false, "issues": ["ACME volume overstated"], "reasoning": "..."}')
    validator = FactValidatorAgent(service, settings.model_copy(update={"fact_check_enabled": True}))

    verdict = await validator.validate("Volume reached 42 TEU.", result, statistics)
    assert not verdict.valid
    assert verdict.errors == ["Fact check: ACME volume overstated"]
    call = service.calls[0]
    assert call["temperature"] == settings.fact_check_temperature
    assert call["max_tokens"] == settings.fact_check_max_tokens
