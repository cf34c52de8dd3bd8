"""
Narrative Agent

Writes the analyst-style answer from the computed statistics. The model
only phrases figures it is given; it never sees raw rows.
"""
from typing import List, Optional

import structlog

from bookingiq.agents.base import BaseAgent, TextGenerationService
from bookingiq.agents.formatting import NarrativeFormatter
from bookingiq.config import Settings, get_settings
from bookingiq.errors import NarrativeUnavailableError
from bookingiq.retry import describe
from bookingiq.schemas.query import StructuredQuery
from bookingiq.schemas.results import AggregationRow, ProactiveInsights, QueryResult, Statistics

logger = structlog.get_logger()


NARRATIVE_PROMPT = """QUESTION: {question}

DATA (computed exactly from the booking database):
{data}

{structure}

RULES:
- Use only the figures listed in DATA. Never invent, estimate or extrapolate a number.
- Quote figures with the same rounding as in DATA.
- Do not mention dates, ports or clients that are not listed in DATA.
- If the analysis was truncated, say so.
- Keep it under 350 words."""


class NarrativeAgent(BaseAgent):
    """Generates the narrative answer for a query result."""

    def __init__(self, service: TextGenerationService, settings: Settings = None):
        settings = settings or get_settings()
        super().__init__(
            name="NarrativeAgent",
            description="Writes analyst narratives over booking statistics",
            service=service,
            settings=settings,
            temperature=settings.narrative_temperature,
            max_tokens=settings.narrative_max_tokens,
        )

    def get_system_prompt(self) -> str:
        return ("You are a senior container-shipping commercial analyst. You write concise, "
                "factual answers for sales managers.")

    def build_prompt(
        self,
        question: str,
        query: StructuredQuery,
        result: QueryResult,
        statistics: Statistics,
        aggregations: Optional[List[AggregationRow]] = None,
        insights: Optional[ProactiveInsights] = None,
    ) -> str:
        return NARRATIVE_PROMPT.format(
            question=question,
            data=NarrativeFormatter.format_data_context(query, result, statistics, aggregations, insights),
            structure=NarrativeFormatter.format_structure(query.language),
        )

    async def generate(
        self,
        question: str,
        query: StructuredQuery,
        result: QueryResult,
        statistics: Statistics,
        aggregations: Optional[List[AggregationRow]] = None,
        insights: Optional[ProactiveInsights] = None,
    ) -> str:
        if result.is_empty or statistics.total == 0:
            return NarrativeFormatter.no_data_message(query.language)

        prompt = self.build_prompt(question, query, result, statistics, aggregations, insights)
        try:
            text = await self._call_llm(prompt)
        except Exception as e:
            raise NarrativeUnavailableError(f"Narrative generation failed: {describe(e)}") from e
        if not text.strip():
            raise NarrativeUnavailableError("Narrative generation returned empty text")
        return text.strip()
