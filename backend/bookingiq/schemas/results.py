"""
Result Schemas

Read-only records flowing from the booking store through the planner,
aggregation engine, insights and fact validator.
"""
from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from bookingiq.models.booking import JobStatus
from bookingiq.schemas.query import DateRange, Metric


# ==================== Store records ====================

class DetailRecord(BaseModel):
    sequence: int
    teu: Optional[float] = None
    units: Optional[int] = None
    net_weight: Optional[float] = None
    commodity_description: Optional[str] = None
    commodity_code: Optional[str] = None
    is_hazardous: bool = False
    is_reefer: bool = False
    is_oog: bool = False

    class Config:
        from_attributes = True
        frozen = True


class BookingRecord(BaseModel):
    job_reference: str
    client_code: Optional[str] = None
    client_name: Optional[str] = None
    pol_code: Optional[str] = None
    pol_name: Optional[str] = None
    pol_country: Optional[str] = None
    pod_code: Optional[str] = None
    pod_name: Optional[str] = None
    pod_country: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    contract_type: Optional[str] = None
    confirmation_date: Optional[date] = None
    cancellation_date: Optional[date] = None
    job_status: int = JobStatus.ACTIVE.value
    details: List[DetailRecord] = Field(default_factory=list)

    class Config:
        from_attributes = True
        frozen = True

    @property
    def is_cancelled(self) -> bool:
        return self.job_status == JobStatus.CANCELLED.value


SummaryDimension = Literal["client", "load_country", "discharge_country"]


class SummaryRecord(BaseModel):
    """One precomputed (dimension value, month) row."""
    dimension: SummaryDimension
    key: str
    label: Optional[str] = None
    month: date
    booking_count: int = 0
    line_count: int = 0
    teu: float = 0.0
    units: float = 0.0
    weight: float = 0.0

    class Config:
        frozen = True


# ==================== Planner output ====================

class AppliedFilters(BaseModel):
    """Human-readable summary of the predicates that were actually applied."""
    date_range: Optional[DateRange] = None
    status: str = "all"
    clients: List[str] = Field(default_factory=list)
    load_ports: List[str] = Field(default_factory=list)
    load_countries: List[str] = Field(default_factory=list)
    discharge_ports: List[str] = Field(default_factory=list)
    discharge_countries: List[str] = Field(default_factory=list)
    trades: List[str] = Field(default_factory=list)
    commodities: List[str] = Field(default_factory=list)
    flags: Dict[str, bool] = Field(default_factory=dict)


class QueryResult(BaseModel):
    path: Literal["standard", "precomputed"] = "standard"
    rows: List[BookingRecord] = Field(default_factory=list)
    summaries: List[SummaryRecord] = Field(default_factory=list)
    count: int = 0
    total_count: int = 0
    truncated: bool = False
    filters_applied: AppliedFilters = Field(default_factory=AppliedFilters)
    period: Optional[DateRange] = None
    rows_analyzed: int = 0

    @property
    def is_precomputed(self) -> bool:
        return self.path == "precomputed"

    @property
    def is_empty(self) -> bool:
        return not self.rows and not self.summaries


# ==================== Aggregation output ====================

class AggregationRow(BaseModel):
    key: str
    line_count: int = 0
    booking_count: int = 0
    teu: float = 0.0
    units: float = 0.0
    weight: float = 0.0
    avg_teu_per_booking: float = 0.0
    avg_teu_per_line: float = 0.0


class ClientBreakdown(BaseModel):
    count: int = 0
    teu: float = 0.0
    units: float = 0.0
    weight: float = 0.0

    def value(self, metric: Metric) -> float:
        if metric is Metric.COUNT:
            return float(self.count)
        if metric is Metric.UNITS:
            return self.units
        if metric is Metric.WEIGHT:
            return self.weight
        return self.teu


class ContractMix(BaseModel):
    spot_pct: float = 0.0
    long_term_pct: float = 0.0
    spot_bookings: int = 0
    long_term_bookings: int = 0


class CargoMix(BaseModel):
    standard_pct: float = 0.0
    reefer_pct: float = 0.0
    hazardous_pct: float = 0.0
    oog_pct: float = 0.0


class BusinessKPIs(BaseModel):
    client_concentration_index: float = Field(default=0.0, ge=0, le=100)
    # Metric the concentration index is measured in (the requested one).
    concentration_metric: Metric = Metric.TEU
    avg_teu_per_booking: float = 0.0
    contract_mix: ContractMix = Field(default_factory=ContractMix)
    cargo_mix: CargoMix = Field(default_factory=CargoMix)
    # Contract and cargo mixes need raw detail lines; the fast path has none.
    mix_available: bool = True


class Statistics(BaseModel):
    total: int = 0
    total_count: int = 0
    total_lines: int = 0
    total_teu: float = 0.0
    total_units: float = 0.0
    total_weight: float = 0.0
    by_client: Dict[str, ClientBreakdown] = Field(default_factory=dict)
    by_pol: Dict[str, int] = Field(default_factory=dict)
    by_pod: Dict[str, int] = Field(default_factory=dict)
    by_trade: Dict[str, int] = Field(default_factory=dict)
    date_range: Optional[DateRange] = None
    kpis: BusinessKPIs = Field(default_factory=BusinessKPIs)


# ==================== Insights ====================

class Anomaly(BaseModel):
    kind: Literal["anomaly"] = "anomaly"
    type: Literal["volume_spike", "volume_drop"]
    entity: str
    severity: Literal["low", "medium", "high"]
    description: str
    value: float
    expected: float


class Pattern(BaseModel):
    kind: Literal["pattern"] = "pattern"
    type: Literal["concentration", "trend"]
    description: str
    confidence: float = Field(ge=0, le=1)


class Recommendation(BaseModel):
    kind: Literal["recommendation"] = "recommendation"
    type: Literal["diversification", "optimization"]
    priority: Literal["low", "medium", "high"]
    action: str
    reason: str


class ProactiveInsights(BaseModel):
    anomalies: List[Anomaly] = Field(default_factory=list)
    patterns: List[Pattern] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.anomalies or self.patterns or self.recommendations)


# ==================== Validation ====================

class ValidationVerdict(BaseModel):
    valid: bool = True
    confidence: float = Field(default=0.0, ge=0, le=1)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
