"""
Fact Validator

Checks a generated narrative against the data it was generated from:
- numbers must match a figure in the statistics (5% tolerance)
- ISO dates must appear in the data or the covered period
- place names should match a location field of the rows
- an optional cross-model fact check, degrading to a warning when the
  service is unavailable

Produces a ValidationVerdict with hard errors, soft warnings and a
confidence score.
"""
import re
from typing import Iterable, List, Optional, Set, Tuple

import structlog

from bookingiq.agents.base import BaseAgent, TextGenerationService
from bookingiq.agents.json_parsing import extract_json_object
from bookingiq.analytics.geography import REGIONS, TRADE_LANES, country_name, fold, location_terms
from bookingiq.config import Settings, get_settings
from bookingiq.errors import LLMServiceError
from bookingiq.retry import describe
from bookingiq.schemas.results import AggregationRow, QueryResult, Statistics, ValidationVerdict

logger = structlog.get_logger()

BASE_CONFIDENCE = 0.8
WARNING_PENALTY = 0.1
SAMPLE_BONUS_CAP = 0.2
SAMPLE_BONUS_SCALE = 1000

NUMBER_RE = re.compile(r"(?<![\w.,])(\d{1,3}(?:,\d{3})+|\d+)((?:[.,]\d+)?)(\s*%)?")
DATE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")
PLACE_RE = re.compile(r"\b[A-Z][a-zà-ÿ]+(?:[ \t]+[A-Z][a-zà-ÿ]+)*\b")
RANK_RE = re.compile(r"(?:\btop|\bfirst|\bpremiers?|\bpremières?)\s*$", re.IGNORECASE)
SENTENCE_START_RE = re.compile(r"(?:^|[.!?:;\n#*>\-]|\d\.)\s*$")
LIST_ORDINAL_RE = re.compile(r"(?:^|\n)[ \t#>*\-]*$")
MONTH_NAMES = (
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december"
    r"|janvier|février|fevrier|mars|avril|mai|juin|juillet|août|aout|septembre|octobre|novembre|décembre|decembre)"
)
MONTH_BEFORE_RE = re.compile(r"\b" + MONTH_NAMES + r"\s+$", re.IGNORECASE)
MONTH_AFTER_RE = re.compile(r"^(?:er)?\s+" + MONTH_NAMES + r"\b", re.IGNORECASE)

STOP_WORDS = {
    # articles, pronouns, connectors
    "The", "This", "That", "There", "These", "Those", "It", "Its", "In", "On", "At", "For", "With",
    "From", "To", "Of", "By", "And", "But", "Or", "As", "An", "A", "We", "Our", "Over", "During",
    "Une", "Un", "Le", "La", "Les", "Des", "Du", "De", "Ce", "Cette", "Ces", "Il", "Elle", "En",
    "Sur", "Pour", "Avec", "Dans", "Et", "Mais", "Nous", "Par",
    # time words
    "Today", "Yesterday", "Tomorrow", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday",
    "Saturday", "Sunday", "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December", "Quarter",
    "Aujourd", "Hier", "Demain", "Lundi", "Mardi", "Mercredi", "Jeudi", "Vendredi", "Samedi",
    "Dimanche", "Janvier", "Février", "Mars", "Avril", "Mai", "Juin", "Juillet", "Août",
    "Septembre", "Octobre", "Novembre", "Décembre", "Trimestre",
    # narrative section and analytic vocabulary
    "Executive", "Summary", "Key", "Figures", "Analysis", "Recommendations", "Recommendation",
    "Synthèse", "Chiffres", "Clés", "Analyse", "Recommandations", "Total", "Overall", "Volume",
    "Volumes", "Bookings", "Booking", "Client", "Clients", "Top", "Average", "Share", "Spot",
    "Long", "Term", "Contract", "Cargo", "Reefer", "Hazardous", "Standard", "Note", "Period",
    "Port", "Ports", "Trade", "Lane", "Lanes", "Detail", "Lines", "Concentration", "Mix",
    "Réservations", "Réservation", "Période", "Moyenne", "Part",
}


def _as_int(token: str) -> int:
    return int(token.replace(",", ""))


class FactValidatorAgent(BaseAgent):
    """Validates narratives against retrieved data."""

    def __init__(self, service: Optional[TextGenerationService] = None, settings: Settings = None):
        settings = settings or get_settings()
        super().__init__(
            name="FactValidator",
            description="Checks generated narratives against the source data",
            service=service,
            settings=settings,
            temperature=settings.fact_check_temperature,
            max_tokens=settings.fact_check_max_tokens,
        )

    def get_system_prompt(self) -> str:
        return "You are a fact-checker for shipping analytics reports. Respond with JSON only."

    # ==================== Numbers ====================

    @staticmethod
    def reference_numbers(result: QueryResult, statistics: Statistics,
                          aggregations: Optional[List[AggregationRow]]) -> Set[float]:
        values: List[float] = [
            statistics.total, statistics.total_count, statistics.total_lines,
            statistics.total_teu, statistics.total_units, statistics.total_weight,
            result.count, result.total_count, result.rows_analyzed,
            len(statistics.by_client), len(statistics.by_pol), len(statistics.by_pod), len(statistics.by_trade),
        ]
        for breakdown in statistics.by_client.values():
            values.extend((breakdown.count, breakdown.teu))
        for counts in (statistics.by_pol, statistics.by_pod, statistics.by_trade):
            values.extend(counts.values())
        for row in aggregations or []:
            values.extend((row.booking_count, row.line_count, row.teu, row.units, row.weight))
        refs = set()
        for value in values:
            if value is not None:
                refs.add(float(value))
                refs.add(float(round(value)))
        return refs

    @staticmethod
    def _covered_years(result: QueryResult, statistics: Statistics) -> Set[int]:
        years = set()
        for period in (statistics.date_range, result.period, result.filters_applied.date_range):
            if period is not None:
                years.update(range(period.start.year, period.end.year + 1))
        return years

    @staticmethod
    def _is_label(text: str, start: int, end: int, number: int) -> bool:
        """List ordinals ("1. Summary") and days of the month ("15 March") are not figures."""
        after = text[end:end + 16]
        if LIST_ORDINAL_RE.search(text[:start]) and after[:1] in (".", ")"):
            return True
        if number <= 31:
            return bool(MONTH_BEFORE_RE.search(text[:start]) or MONTH_AFTER_RE.match(after))
        return False

    def check_numbers(self, narrative: str, result: QueryResult, statistics: Statistics,
                      aggregations: Optional[List[AggregationRow]]) -> Tuple[List[str], List[str]]:
        errors: List[str] = []
        warnings: List[str] = []
        text = DATE_RE.sub(" ", narrative)
        refs = self.reference_numbers(result, statistics, aggregations)
        years = self._covered_years(result, statistics)
        tolerance = self.settings.validator_tolerance
        checked = set()

        for match in NUMBER_RE.finditer(text):
            integer, fraction, percent = match.groups()
            if fraction or percent:
                continue
            if RANK_RE.search(text[:match.start()]):
                continue
            number = _as_int(integer)
            if number in years or number in checked:
                continue
            if self._is_label(text, match.start(), match.end(1), number):
                continue
            checked.add(number)
            if number in refs:
                continue
            near = [ref for ref in refs if ref > 0 and abs(ref - number) / ref <= tolerance]
            if near:
                closest = min(near, key=lambda ref: abs(ref - number))
                warnings.append(f"Number {integer} approximates {closest:g} from the data")
            else:
                errors.append(f"Number {integer} does not match any figure in the data")
        return errors, warnings

    # ==================== Dates ====================

    @staticmethod
    def known_dates(result: QueryResult, statistics: Statistics) -> Set[str]:
        dates = set()
        for booking in result.rows:
            for value in (booking.confirmation_date, booking.cancellation_date):
                if value:
                    dates.add(value.isoformat())
        for summary in result.summaries:
            dates.add(summary.month.isoformat())
        for period in (statistics.date_range, result.period, result.filters_applied.date_range):
            if period is not None:
                dates.update((period.start.isoformat(), period.end.isoformat()))
        return dates

    def check_dates(self, narrative: str, result: QueryResult, statistics: Statistics) -> List[str]:
        known = self.known_dates(result, statistics)
        errors = []
        for value in sorted(set(DATE_RE.findall(narrative))):
            if value not in known:
                errors.append(f"Date {value} does not appear in the data")
        return errors

    # ==================== Places ====================

    @staticmethod
    def _known_terms(values: Iterable[Optional[str]]) -> Set[str]:
        return {fold(v) for v in values if v and len(v.strip()) >= 2}

    def known_locations(self, result: QueryResult, statistics: Statistics) -> Set[str]:
        terms: List[Optional[str]] = []
        for booking in result.rows:
            terms.extend(location_terms(booking))
        for key in list(statistics.by_pol) + list(statistics.by_pod):
            terms.extend((key, country_name(key)))
        for summary in result.summaries:
            if summary.dimension != "client":
                terms.extend((summary.key, country_name(summary.key)))
        terms.extend(region.name for region in REGIONS.values())
        for lane in TRADE_LANES:
            terms.extend(lane.name.split("-"))
        terms.extend(statistics.by_trade)
        return self._known_terms(terms)

    def known_entities(self, result: QueryResult, statistics: Statistics) -> Set[str]:
        terms: List[Optional[str]] = list(statistics.by_client)
        for booking in result.rows:
            terms.extend((booking.client_code, booking.client_name))
            for detail in booking.details:
                terms.append(detail.commodity_description)
        for summary in result.summaries:
            terms.extend((summary.key, summary.label))
        return self._known_terms(terms)

    @staticmethod
    def _matches(candidate: str, known: Set[str]) -> bool:
        for term in known:
            if candidate == term or candidate in term or (len(term) >= 3 and term in candidate):
                return True
        return False

    def check_places(self, narrative: str, result: QueryResult, statistics: Statistics) -> List[str]:
        locations = self.known_locations(result, statistics)
        entities = self.known_entities(result, statistics)
        warnings = []
        seen = set()
        for match in PLACE_RE.finditer(narrative):
            tokens = [t for t in match.group(0).split() if t not in STOP_WORDS]
            if not tokens:
                continue
            at_sentence_start = SENTENCE_START_RE.search(narrative[:match.start()]) is not None
            if len(tokens) == 1 and at_sentence_start and tokens[0] == match.group(0).split()[0]:
                continue
            candidate = " ".join(tokens)
            folded = fold(candidate)
            if folded in seen:
                continue
            seen.add(folded)
            if self._matches(folded, locations) or self._matches(folded, entities):
                continue
            warnings.append(f"Place '{candidate}' not found in the data")
        return warnings

    # ==================== Cross-model check ====================

    @staticmethod
    def _data_summary(statistics: Statistics) -> str:
        top_clients = sorted(statistics.by_client.items(), key=lambda item: (-item[1].teu, item[0]))[:5]
        period = (f"{statistics.date_range.start.isoformat()} to {statistics.date_range.end.isoformat()}"
                  if statistics.date_range else "unspecified")
        lines = [
            f"Total bookings: {statistics.total}",
            f"Total TEU: {statistics.total_teu}",
            f"Period: {period}",
            f"Ports of loading: {len(statistics.by_pol)}, ports of discharge: {len(statistics.by_pod)}",
            "Top clients: " + ", ".join(f"{name} ({b.teu} TEU, {b.count} bookings)" for name, b in top_clients),
        ]
        return "\n".join(lines)

    def build_fact_check_prompt(self, narrative: str, question: str, statistics: Statistics) -> str:
        return (
            "Verify that the RESPONSE only states facts supported by the DATA SUMMARY.\n\n"
            f"QUESTION: {question}\n\n"
            f"DATA SUMMARY:\n{self._data_summary(statistics)}\n\n"
            f"RESPONSE:\n{narrative[:1500]}\n\n"
            'Respond ONLY with JSON: {"valid": true or false, "issues": ["..."], "reasoning": "..."}'
        )

    async def cross_check(self, narrative: str, question: str,
                          statistics: Statistics) -> Tuple[List[str], List[str]]:
        try:
            raw = await self._call_llm(self.build_fact_check_prompt(narrative, question, statistics))
            payload = extract_json_object(raw)
            if payload is None or "valid" not in payload:
                raise LLMServiceError("fact check returned no verdict")
        except Exception as e:
            logger.warning("Cross-model fact check unavailable", error=describe(e))
            return [], [f"Cross-model fact check unavailable: {describe(e)}"]

        if payload.get("valid") is False or str(payload.get("valid")).lower() == "false":
            issues = [str(issue) for issue in payload.get("issues") or [] if issue]
            return [f"Fact check: {issue}" for issue in issues] or ["Fact check rejected the response"], []
        return [], []

    # ==================== Verdict ====================

    @staticmethod
    def confidence(errors: List[str], warnings: List[str], sample_size: int) -> float:
        if errors:
            return 0.0
        score = (BASE_CONFIDENCE - WARNING_PENALTY * len(warnings)
                 + min(sample_size / SAMPLE_BONUS_SCALE, SAMPLE_BONUS_CAP))
        return round(max(0.0, min(1.0, score)), 3)

    async def validate(
        self,
        narrative: str,
        result: QueryResult,
        statistics: Statistics,
        aggregations: Optional[List[AggregationRow]] = None,
        question: str = "",
    ) -> ValidationVerdict:
        errors, warnings = self.check_numbers(narrative, result, statistics, aggregations)
        errors.extend(self.check_dates(narrative, result, statistics))
        warnings.extend(self.check_places(narrative, result, statistics))

        if self.settings.fact_check_enabled and self.service is not None:
            llm_errors, llm_warnings = await self.cross_check(narrative, question, statistics)
            errors.extend(llm_errors)
            warnings.extend(llm_warnings)

        verdict = ValidationVerdict(
            valid=not errors,
            confidence=self.confidence(errors, warnings, statistics.total),
            errors=errors,
            warnings=warnings,
        )
        logger.info(
            "Narrative validated",
            valid=verdict.valid,
            confidence=verdict.confidence,
            errors=len(errors),
            warnings=len(warnings),
        )
        return verdict
