"""
BookingIQ Agents

Agents:
- Query Translator: natural-language question → StructuredQuery
- Narrative Agent: statistics → analyst narrative
- Fact Validator: narrative ↔ data consistency checks
- Query Orchestrator: end-to-end question workflow

Workflow: Translate → Plan → Aggregate → Narrate → Validate
"""

from bookingiq.agents.base import BaseAgent, TextGenerationService, build_text_service
from bookingiq.agents.query_translator import QueryTranslatorAgent
from bookingiq.agents.narrative_agent import NarrativeAgent
from bookingiq.agents.fact_validator import FactValidatorAgent
from bookingiq.agents.orchestrator import QueryOrchestrator

__all__ = [
    # Base classes
    "BaseAgent", "TextGenerationService", "build_text_service",
    # Agents
    "QueryTranslatorAgent", "NarrativeAgent", "FactValidatorAgent",
    # Orchestration
    "QueryOrchestrator",
]
