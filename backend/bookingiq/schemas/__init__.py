"""
Pydantic Schemas for API Request/Response
"""
from pydantic import BaseModel, Field
from typing import Optional, List

from bookingiq.schemas.query import (
    QueryIntent, GroupBy, Metric, AggregationLevel, Language, OutputFormat, StatusFilter,
    DateRange, CargoFlags, QueryFilters, AggregationSpec, Ambiguity, StructuredQuery,
    ConversationTurn, FilterOverrides,
)
from bookingiq.schemas.results import (
    DetailRecord, BookingRecord, SummaryRecord, AppliedFilters, QueryResult,
    AggregationRow, Statistics, BusinessKPIs, ProactiveInsights, ValidationVerdict,
)


# ==================== Query API Schemas ====================

class QueryRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)
    history: List[ConversationTurn] = Field(default_factory=list)
    filters: FilterOverrides = Field(default_factory=FilterOverrides)


class QueryResponse(BaseModel):
    text: str
    structured_query: StructuredQuery
    raw_rows: List[BookingRecord] = Field(default_factory=list)
    truncated: bool = False
    total_count: int = 0
    statistics: Optional[Statistics] = None
    aggregations: Optional[List[AggregationRow]] = None
    insights: Optional[ProactiveInsights] = None
    filters_applied: Optional[AppliedFilters] = None
    period: Optional[DateRange] = None
    rows_analyzed: int = 0
    source: Optional[str] = None
    validation: ValidationVerdict


class ErrorResponse(BaseModel):
    detail: str
    retryable: bool = False


__all__ = [
    "QueryIntent", "GroupBy", "Metric", "AggregationLevel", "Language", "OutputFormat", "StatusFilter",
    "DateRange", "CargoFlags", "QueryFilters", "AggregationSpec", "Ambiguity", "StructuredQuery",
    "ConversationTurn", "FilterOverrides",
    "DetailRecord", "BookingRecord", "SummaryRecord", "AppliedFilters", "QueryResult",
    "AggregationRow", "Statistics", "BusinessKPIs", "ProactiveInsights", "ValidationVerdict",
    "QueryRequest", "QueryResponse", "ErrorResponse",
]
