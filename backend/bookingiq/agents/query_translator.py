"""
Natural-Language Query Translator

Turns a free-form question (English, French or mixed) plus recent
conversation turns into a StructuredQuery:
1. One low-temperature extraction call to the text-generation service
2. Tolerant JSON location and coercion into the query schema
3. Deterministic policies: relative periods, UI overrides, default
   exclusion of cancelled bookings, ambiguity short-circuit

Extraction never raises: any failure yields a degraded search query.
"""
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import structlog

from bookingiq.agents.base import BaseAgent, TextGenerationService
from bookingiq.agents.json_parsing import extract_json_object
from bookingiq.agents.temporal import detect_language, normalize_date, resolve_relative_period
from bookingiq.config import Settings, get_settings
from bookingiq.errors import ExtractionError
from bookingiq.retry import describe
from bookingiq.schemas.query import (
    AggregationLevel,
    AggregationSpec,
    Ambiguity,
    CargoFlags,
    ConversationTurn,
    DateRange,
    FilterOverrides,
    GroupBy,
    Language,
    Metric,
    OutputFormat,
    QueryFilters,
    QueryIntent,
    StatusFilter,
    StructuredQuery,
)

logger = structlog.get_logger()


EXTRACTION_PROMPT = """Analyze this question about container shipping bookings and extract its structure.

DATA AVAILABLE:
- bookings: one row per shipment booking (client code/name, port of loading (POL), port of
  discharge (POD) with their countries, origin, destination, contract type SPOT or LONG_TERM,
  confirmation date, status Active or Cancelled)
- detail lines: cargo lines of a booking (TEU volume, units, net weight, commodity,
  hazardous / reefer / out-of-gauge flags). Volumes only exist on detail lines.

TODAY: {today}

GEOGRAPHIC RULES:
- A country ("China", "Chine", "CN") goes in pol or pod as the country name or ISO-2 code.
- A port ("Shanghai", "CNSHA") goes in pol or pod as written.
- "from X" means pol, "to X" means pod.

TEMPORAL RULES:
- Resolve relative periods ("last quarter", "ce mois-ci") against TODAY.
- Dates are YYYY-MM-DD.

AGGREGATION RULES:
- metric teu, units or weight implies level "detail"; metric count implies level "booking".
- Use groupBy only when the question asks for a breakdown or ranking.

AMBIGUITY:
- If several entities match equally well (e.g. two clients with the same name), set
  ambiguity.detected true, list them in suggestions and use intent "clarification".

{history}QUESTION: {question}

Respond ONLY with a JSON object of this exact shape:
{{
  "intent": "report|table|chart|search|export|analysis|clarification",
  "filters": {{
    "dateRange": {{"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}},
    "client": ["..."],
    "pol": ["..."],
    "pod": ["..."],
    "trade": ["..."],
    "status": ["Active"|"Cancelled"],
    "commodity": ["..."],
    "flags": {{"haz": true, "reef": false, "oog": false}}
  }},
  "aggregation": {{"groupBy": "client|pol|pod|trade|date|commodity|status", "metric": "teu|units|weight|count", "level": "booking|detail"}},
  "outputFormat": "text|table|chart|json",
  "language": "en|fr|mixed",
  "ambiguity": {{"detected": false, "suggestions": [], "clarificationNeeded": ""}},
  "context": {{"references": [], "temporal": "absolute|relative|none"}}
}}
Omit any filter that the question does not mention."""


_INTENT_ALIASES = {
    "graph": QueryIntent.CHART,
    "graphique": QueryIntent.CHART,
    "visualization": QueryIntent.CHART,
    "list": QueryIntent.SEARCH,
    "lookup": QueryIntent.SEARCH,
    "rapport": QueryIntent.REPORT,
    "analyse": QueryIntent.ANALYSIS,
}

_METRIC_ALIASES = {
    "volume": Metric.TEU,
    "teus": Metric.TEU,
    "containers": Metric.TEU,
    "unit": Metric.UNITS,
    "pieces": Metric.UNITS,
    "tonnage": Metric.WEIGHT,
    "net_weight": Metric.WEIGHT,
    "bookings": Metric.COUNT,
    "booking_count": Metric.COUNT,
}

_GROUP_BY_ALIASES = {
    "customer": GroupBy.CLIENT,
    "shipper": GroupBy.CLIENT,
    "port_of_loading": GroupBy.POL,
    "origin": GroupBy.POL,
    "port_of_discharge": GroupBy.POD,
    "destination": GroupBy.POD,
    "month": GroupBy.DATE,
    "day": GroupBy.DATE,
    "period": GroupBy.DATE,
}

_STATUS_ALIASES = {
    "active": StatusFilter.ACTIVE,
    "confirmed": StatusFilter.ACTIVE,
    "actif": StatusFilter.ACTIVE,
    "cancelled": StatusFilter.CANCELLED,
    "canceled": StatusFilter.CANCELLED,
    "annulé": StatusFilter.CANCELLED,
    "annule": StatusFilter.CANCELLED,
}


def _first(mapping: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] not in (None, "", []):
            return mapping[key]
    return None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def _as_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "oui"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "non"):
        return False
    return None


def _coerce_enum(enum_cls, value: Any, aliases: Dict[str, Any] = None):
    if value is None:
        return None
    text = str(value).strip().lower()
    if aliases and text in aliases:
        return aliases[text]
    try:
        return enum_cls(text)
    except ValueError:
        return None


def _parse_date_range(raw: Any, today: date) -> Optional[DateRange]:
    if not isinstance(raw, dict):
        return None
    start_raw = _first(raw, "start", "from", "startDate", "start_date")
    end_raw = _first(raw, "end", "to", "endDate", "end_date")
    if start_raw is None and end_raw is None:
        return None
    end = normalize_date(end_raw, today) if end_raw is not None else today
    start = normalize_date(start_raw, today) if start_raw is not None else end
    return DateRange(start=start, end=end)


def _parse_status(raw: Any) -> Optional[List[StatusFilter]]:
    statuses = []
    for value in _as_list(raw):
        status = _STATUS_ALIASES.get(value.lower())
        if status is not None and status not in statuses:
            statuses.append(status)
    return statuses or None


def parse_filters(raw: Any, today: date) -> QueryFilters:
    raw = raw if isinstance(raw, dict) else {}
    flags_raw = _first(raw, "flags", "cargo_flags") or {}
    if not isinstance(flags_raw, dict):
        flags_raw = {}
    return QueryFilters(
        date_range=_parse_date_range(_first(raw, "dateRange", "date_range"), today),
        clients=_as_list(_first(raw, "client", "clients")),
        load_ports=_as_list(_first(raw, "pol", "load_ports", "loadPorts")),
        discharge_ports=_as_list(_first(raw, "pod", "discharge_ports", "dischargePorts")),
        trades=_as_list(_first(raw, "trade", "trades")),
        status=_parse_status(_first(raw, "status")),
        commodities=_as_list(_first(raw, "commodity", "commodities")),
        flags=CargoFlags(
            hazardous=_as_flag(_first(flags_raw, "haz", "hazardous")),
            reefer=_as_flag(_first(flags_raw, "reef", "reefer")),
            oog=_as_flag(_first(flags_raw, "oog", "out_of_gauge")),
        ),
    )


def parse_aggregation(raw: Any) -> Optional[AggregationSpec]:
    if not isinstance(raw, dict):
        return None
    group_by = _coerce_enum(GroupBy, _first(raw, "groupBy", "group_by"), _GROUP_BY_ALIASES)
    metric = _coerce_enum(Metric, _first(raw, "metric"), _METRIC_ALIASES)
    level = _coerce_enum(AggregationLevel, _first(raw, "level"))
    if group_by is None and metric is None:
        return None
    return AggregationSpec(group_by=group_by, metric=metric or Metric.TEU, level=level)


def parse_payload(payload: Dict[str, Any], question: str, today: date) -> StructuredQuery:
    """Coerce a loosely typed extraction payload into a StructuredQuery."""
    intent_raw = payload.get("intent")
    if intent_raw is None:
        raise ExtractionError("extraction payload has no intent")
    intent = _coerce_enum(QueryIntent, intent_raw, _INTENT_ALIASES)
    if intent is None:
        raise ExtractionError(f"unknown intent {intent_raw!r}")

    ambiguity_raw = payload.get("ambiguity") if isinstance(payload.get("ambiguity"), dict) else {}
    context_raw = payload.get("context") if isinstance(payload.get("context"), dict) else {}
    clarification = _first(ambiguity_raw, "clarificationNeeded", "clarification")

    return StructuredQuery(
        intent=intent,
        filters=parse_filters(payload.get("filters"), today),
        aggregation=parse_aggregation(payload.get("aggregation")),
        language=_coerce_enum(Language, payload.get("language")) or detect_language(question),
        output_format=_coerce_enum(OutputFormat, _first(payload, "outputFormat", "output_format"),
                                   {"graph": OutputFormat.CHART}) or OutputFormat.TEXT,
        ambiguity=Ambiguity(
            detected=bool(ambiguity_raw.get("detected", False)),
            suggestions=_as_list(ambiguity_raw.get("suggestions")),
            clarification=str(clarification) if clarification else None,
        ),
        temporal=_first(context_raw, "temporal"),
        references=_as_list(context_raw.get("references")),
    )


# ==================== Deterministic policies ====================

def apply_question_period(query: StructuredQuery, question: str, today: date) -> StructuredQuery:
    """A period the question states explicitly wins over the model's arithmetic."""
    period = resolve_relative_period(question, today)
    if period is None:
        return query
    filters = query.filters.model_copy(update={"date_range": period})
    return query.model_copy(update={"filters": filters})


def apply_overrides(query: StructuredQuery, overrides: Optional[FilterOverrides], today: date) -> StructuredQuery:
    """UI-selected filters replace whatever was extracted for the same dimension."""
    if overrides is None:
        return query
    update: Dict[str, Any] = {}
    current = query.filters.date_range

    if overrides.date_from or overrides.date_to:
        start = overrides.date_from or (current.start if current else overrides.date_to)
        end = overrides.date_to or (current.end if current else today)
        update["date_range"] = DateRange(start=start, end=end)
    if overrides.clients:
        update["clients"] = list(overrides.clients)
    if overrides.ports:
        # No load/discharge distinction: the ports constrain both sides.
        update["load_ports"] = list(overrides.ports)
        update["discharge_ports"] = list(overrides.ports)
    if overrides.load_ports:
        update["load_ports"] = list(overrides.load_ports)
    if overrides.discharge_ports:
        update["discharge_ports"] = list(overrides.discharge_ports)
    if overrides.trades:
        update["trades"] = list(overrides.trades)

    if not update:
        return query
    return query.model_copy(update={"filters": query.filters.model_copy(update=update)})


def apply_status_default(query: StructuredQuery) -> StructuredQuery:
    if not query.is_analytic or query.filters.status_requested:
        return query
    filters = query.filters.model_copy(update={"status": [StatusFilter.ACTIVE]})
    return query.model_copy(update={"filters": filters})


def _clarification_text(suggestions: List[str], language: Language) -> str:
    options = ", ".join(suggestions)
    if language is Language.FR:
        if options:
            return f"Votre question est ambiguë. Pouvez-vous préciser : {options} ?"
        return "Votre question est ambiguë. Pouvez-vous la préciser ?"
    if options:
        return f"Your question is ambiguous. Did you mean one of: {options}?"
    return "Your question is ambiguous. Could you be more specific?"


def resolve_ambiguity(query: StructuredQuery) -> StructuredQuery:
    """Several equally plausible referents make the query a terminal clarification."""
    ambiguity = query.ambiguity
    if ambiguity.detected and (query.is_clarification or len(ambiguity.suggestions) >= 2):
        intent = QueryIntent.CLARIFICATION
    elif query.is_clarification:
        intent = QueryIntent.CLARIFICATION
        ambiguity = ambiguity.model_copy(update={"detected": True})
    else:
        return query
    if not ambiguity.clarification:
        ambiguity = ambiguity.model_copy(
            update={"clarification": _clarification_text(ambiguity.suggestions, query.language)}
        )
    return query.model_copy(update={"intent": intent, "ambiguity": ambiguity})


def fallback_query(question: str, reason: str) -> StructuredQuery:
    return StructuredQuery(
        intent=QueryIntent.SEARCH,
        language=detect_language(question),
        degraded=True,
        degraded_reason=reason,
    )


class QueryTranslatorAgent(BaseAgent):
    """Extracts a StructuredQuery from a natural-language question."""

    def __init__(
        self,
        service: TextGenerationService,
        settings: Settings = None,
        clock: Callable[[], date] = None,
    ):
        settings = settings or get_settings()
        super().__init__(
            name="QueryTranslator",
            description="Extracts structured filters and aggregation from analytic questions",
            service=service,
            settings=settings,
            temperature=settings.extraction_temperature,
            max_tokens=settings.extraction_max_tokens,
        )
        self._clock = clock or date.today

    def get_system_prompt(self) -> str:
        return ("You are a shipping data query parser. You extract filters and aggregation "
                "intent from questions and answer with JSON only.")

    def build_prompt(self, question: str, history: List[ConversationTurn], today: date) -> str:
        window = history[-self.settings.conversation_window:] if history else []
        history_block = ""
        if window:
            lines = "\n".join(f"{turn.role}: {turn.content}" for turn in window)
            history_block = f"CONVERSATION HISTORY:\n{lines}\n\n"
        return EXTRACTION_PROMPT.format(today=today.isoformat(), history=history_block, question=question)

    async def translate(
        self,
        question: str,
        history: Optional[List[ConversationTurn]] = None,
        overrides: Optional[FilterOverrides] = None,
    ) -> StructuredQuery:
        today = self._clock()
        try:
            raw = await self._call_llm(self.build_prompt(question, history or [], today))
            payload = extract_json_object(raw)
            if payload is None:
                raise ExtractionError("no JSON object found in model output")
            query = parse_payload(payload, question, today)
            query = apply_question_period(query, question, today)
        except Exception as e:
            logger.warning("Query extraction failed, using fallback", error=describe(e),
                           error_type=type(e).__name__)
            query = fallback_query(question, reason=describe(e))

        query = apply_overrides(query, overrides, today)
        query = apply_status_default(query)
        query = resolve_ambiguity(query)

        logger.info(
            "Query translated",
            intent=query.intent.value,
            group_by=query.group_by.value if query.group_by else None,
            language=query.language.value,
            degraded=query.degraded,
        )
        return query
