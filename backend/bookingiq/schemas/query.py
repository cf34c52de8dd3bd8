"""
Structured Query Schema

Typed representation of an analytic question after extraction. Built by the
query translator, consumed by the planner, the aggregation engine and the
narrative agent.
"""
from datetime import date
from enum import Enum
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, field_validator, model_validator

logger = structlog.get_logger()


# ==================== Enums ====================

class QueryIntent(str, Enum):
    REPORT = "report"
    TABLE = "table"
    CHART = "chart"
    SEARCH = "search"
    EXPORT = "export"
    ANALYSIS = "analysis"
    CLARIFICATION = "clarification"


ANALYTIC_INTENTS = {QueryIntent.REPORT, QueryIntent.CHART, QueryIntent.ANALYSIS}
RAW_LISTING_INTENTS = {QueryIntent.SEARCH, QueryIntent.TABLE, QueryIntent.EXPORT}


class GroupBy(str, Enum):
    CLIENT = "client"
    POL = "pol"
    POD = "pod"
    TRADE = "trade"
    DATE = "date"
    COMMODITY = "commodity"
    STATUS = "status"


class Metric(str, Enum):
    TEU = "teu"
    UNITS = "units"
    WEIGHT = "weight"
    COUNT = "count"

    @property
    def is_quantitative(self) -> bool:
        return self is not Metric.COUNT


class AggregationLevel(str, Enum):
    BOOKING = "booking"
    DETAIL = "detail"


class Language(str, Enum):
    EN = "en"
    FR = "fr"
    MIXED = "mixed"


class OutputFormat(str, Enum):
    TEXT = "text"
    TABLE = "table"
    CHART = "chart"
    JSON = "json"


class StatusFilter(str, Enum):
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


# ==================== Filters ====================

class DateRange(BaseModel):
    """Inclusive calendar-date range."""
    start: date
    end: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start > self.end:
            self.start, self.end = self.end, self.start
        return self


class CargoFlags(BaseModel):
    """Tri-state cargo flags: ``None`` means the flag is not filtered."""
    hazardous: Optional[bool] = None
    reefer: Optional[bool] = None
    oog: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return self.hazardous is None and self.reefer is None and self.oog is None


class QueryFilters(BaseModel):
    date_range: Optional[DateRange] = None
    clients: List[str] = Field(default_factory=list)
    load_ports: List[str] = Field(default_factory=list)
    discharge_ports: List[str] = Field(default_factory=list)
    trades: List[str] = Field(default_factory=list)
    status: Optional[List[StatusFilter]] = None
    commodities: List[str] = Field(default_factory=list)
    flags: CargoFlags = Field(default_factory=CargoFlags)

    @field_validator("clients", "load_ports", "discharge_ports", "trades", "commodities", mode="before")
    @classmethod
    def _as_clean_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(v).strip() for v in value if v is not None and str(v).strip()]

    @property
    def has_detail_filters(self) -> bool:
        return bool(self.commodities) or not self.flags.is_empty

    @property
    def status_requested(self) -> bool:
        return self.status is not None


# ==================== Aggregation ====================

class AggregationSpec(BaseModel):
    """
    Grouping request. Quantitative metrics live on detail lines, so any
    TEU/units/weight request is forced to detail level regardless of input.
    """
    group_by: Optional[GroupBy] = None
    metric: Metric = Metric.TEU
    level: Optional[AggregationLevel] = None

    @model_validator(mode="after")
    def _enforce_level(self) -> "AggregationSpec":
        if self.metric.is_quantitative:
            if self.level is AggregationLevel.BOOKING:
                logger.info("Aggregation level corrected to detail", metric=self.metric.value)
            self.level = AggregationLevel.DETAIL
        elif self.level is None:
            self.level = AggregationLevel.BOOKING
        return self


# ==================== Query ====================

class Ambiguity(BaseModel):
    detected: bool = False
    suggestions: List[str] = Field(default_factory=list)
    clarification: Optional[str] = None


class StructuredQuery(BaseModel):
    intent: QueryIntent = QueryIntent.SEARCH
    filters: QueryFilters = Field(default_factory=QueryFilters)
    aggregation: Optional[AggregationSpec] = None
    language: Language = Language.EN
    output_format: OutputFormat = OutputFormat.TEXT
    ambiguity: Ambiguity = Field(default_factory=Ambiguity)
    temporal: Optional[str] = None
    references: List[str] = Field(default_factory=list)
    # Set when extraction failed and this is the conservative fallback.
    degraded: bool = False
    degraded_reason: Optional[str] = None

    @property
    def is_clarification(self) -> bool:
        return self.intent is QueryIntent.CLARIFICATION

    @property
    def is_analytic(self) -> bool:
        """Analytic (non raw-listing) queries exclude cancelled bookings by default."""
        if self.intent in ANALYTIC_INTENTS:
            return True
        return self.aggregation is not None and self.aggregation.group_by is not None

    @property
    def group_by(self) -> Optional[GroupBy]:
        return self.aggregation.group_by if self.aggregation else None


# ==================== Request inputs ====================

class ConversationTurn(BaseModel):
    role: str = "user"
    content: str = ""


class FilterOverrides(BaseModel):
    """Filters selected explicitly in the UI. They always win over extraction."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    clients: List[str] = Field(default_factory=list)
    ports: List[str] = Field(default_factory=list)
    load_ports: List[str] = Field(default_factory=list)
    discharge_ports: List[str] = Field(default_factory=list)
    trades: List[str] = Field(default_factory=list)
