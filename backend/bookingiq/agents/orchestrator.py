"""
Query Orchestrator

Runs one analytic question through the pipeline:
Translation → Planning → Aggregation & Insights → Narrative → Validation
"""
from typing import List, Optional
import uuid

import structlog

from bookingiq.agents.base import TextGenerationService
from bookingiq.agents.fact_validator import FactValidatorAgent
from bookingiq.agents.narrative_agent import NarrativeAgent
from bookingiq.agents.query_translator import QueryTranslatorAgent
from bookingiq.analytics.aggregation import aggregate, compute_statistics
from bookingiq.analytics.insights import generate_insights
from bookingiq.analytics.planner import QueryPlanner
from bookingiq.config import Settings, get_settings
from bookingiq.schemas import QueryRequest, QueryResponse
from bookingiq.schemas.query import Language, Metric, StructuredQuery
from bookingiq.schemas.results import ValidationVerdict
from bookingiq.tools.booking_tools import BookingStore

logger = structlog.get_logger()

CLARIFICATION_CONFIDENCE = 0.8


class QueryOrchestrator:
    """
    Orchestrates the analytic query workflow.
    Clarification queries stop after translation; store failures propagate.
    """

    def __init__(
        self,
        translator: QueryTranslatorAgent,
        planner: QueryPlanner,
        narrator: NarrativeAgent,
        validator: FactValidatorAgent,
    ):
        self.translator = translator
        self.planner = planner
        self.narrator = narrator
        self.validator = validator

    @classmethod
    def build(cls, service: TextGenerationService, store: BookingStore,
              settings: Settings = None) -> "QueryOrchestrator":
        settings = settings or get_settings()
        return cls(
            translator=QueryTranslatorAgent(service, settings),
            planner=QueryPlanner(store, settings),
            narrator=NarrativeAgent(service, settings),
            validator=FactValidatorAgent(service, settings),
        )

    @staticmethod
    def _clarification_response(query: StructuredQuery) -> QueryResponse:
        ambiguity = query.ambiguity
        warnings: List[str] = []
        if ambiguity.suggestions:
            label = "Suggestions" if query.language is not Language.FR else "Suggestions possibles"
            warnings.append(f"{label}: {', '.join(ambiguity.suggestions)}")
        return QueryResponse(
            text=ambiguity.clarification or "",
            structured_query=query,
            validation=ValidationVerdict(valid=True, confidence=CLARIFICATION_CONFIDENCE, warnings=warnings),
        )

    async def run(self, request: QueryRequest, request_id: Optional[str] = None) -> QueryResponse:
        request_id = request_id or str(uuid.uuid4())
        log = logger.bind(request_id=request_id)

        # Phase 1: Translation
        log.info("Phase 1: Query translation")
        query = await self.translator.translate(request.question, request.history, request.filters)

        if query.is_clarification:
            log.info("Ambiguous question, asking for clarification",
                     suggestions=len(query.ambiguity.suggestions))
            return self._clarification_response(query)

        # Phase 2: Planning and execution
        log.info("Phase 2: Query execution", intent=query.intent.value)
        result = await self.planner.execute(query)

        # Phase 3: Aggregation, statistics, insights
        log.info("Phase 3: Aggregation", path=result.path)
        metric = query.aggregation.metric if query.aggregation else Metric.TEU
        aggregations = aggregate(result, query.aggregation)
        statistics = compute_statistics(result, metric)
        insights = generate_insights(statistics, aggregations, query.group_by, metric)

        # Phase 4: Narrative
        log.info("Phase 4: Narrative generation")
        text = await self.narrator.generate(request.question, query, result, statistics, aggregations, insights)

        # Phase 5: Validation
        log.info("Phase 5: Fact validation")
        if result.is_empty or statistics.total == 0:
            verdict = ValidationVerdict(valid=True, confidence=self.validator.confidence([], [], 0))
        else:
            verdict = await self.validator.validate(text, result, statistics, aggregations, request.question)

        log.info(
            "Query completed",
            path=result.path,
            rows=result.count,
            truncated=result.truncated,
            valid=verdict.valid,
            confidence=verdict.confidence,
        )

        return QueryResponse(
            text=text,
            structured_query=query,
            raw_rows=result.rows,
            truncated=result.truncated,
            total_count=result.total_count,
            statistics=statistics,
            aggregations=aggregations,
            insights=insights,
            filters_applied=result.filters_applied,
            period=result.period,
            rows_analyzed=result.rows_analyzed,
            source=result.path,
            validation=verdict,
        )
