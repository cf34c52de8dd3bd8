"""
Booking Store Tools

Read-only access to bookings, their detail lines and the precomputed
monthly summaries. Each call opens its own session so concurrent reads
never share one.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Protocol, Tuple

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker

from bookingiq.analytics.geography import REGIONS, TradeLane
from bookingiq.db.database import get_async_session
from bookingiq.models.booking import Booking, DetailLine, JobStatus
from bookingiq.models.booking_summary import ClientMonthlyVolume, CountryMonthlyVolume
from bookingiq.schemas.query import CargoFlags, DateRange
from bookingiq.schemas.results import BookingRecord, SummaryRecord

logger = structlog.get_logger()


class StatusMode(str, Enum):
    ALL = "all"
    EXCLUDE_CANCELLED = "exclude_cancelled"
    ONLY_CANCELLED = "only_cancelled"


@dataclass
class PortMatch:
    """A port filter value; ``country`` is set when the value designates a country."""
    value: str
    country: Optional[str] = None

    @property
    def is_country(self) -> bool:
        return self.country is not None


@dataclass
class BookingCriteria:
    """Booking-level predicates, combined with AND across fields and OR within one."""
    status: StatusMode = StatusMode.ALL
    date_range: Optional[DateRange] = None
    clients: List[str] = field(default_factory=list)
    load_ports: List[PortMatch] = field(default_factory=list)
    discharge_ports: List[PortMatch] = field(default_factory=list)
    trade_lanes: List[TradeLane] = field(default_factory=list)
    # Line-level predicates: a booking matches when one of its lines satisfies all of them.
    commodities: List[str] = field(default_factory=list)
    flags: CargoFlags = field(default_factory=CargoFlags)


class BookingStore(Protocol):
    async def fetch_bookings(self, criteria: BookingCriteria, limit: int) -> Tuple[List[BookingRecord], int]:
        ...

    async def fetch_client_summaries(self, client: Optional[str],
                                     date_range: Optional[DateRange]) -> List[SummaryRecord]:
        ...

    async def fetch_country_summaries(self, direction: str, country: str,
                                      date_range: Optional[DateRange]) -> List[SummaryRecord]:
        ...


def is_transient_db_error(exc: BaseException) -> bool:
    """Connection-level failures are worth one retry; SQL errors are not."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, ConnectionError))


def _contains(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _client_clause(client: str):
    pattern = _contains(client)
    return or_(
        Booking.client_code.ilike(pattern, escape="\\"),
        Booking.client_name.ilike(pattern, escape="\\"),
    )


def _port_clause(match: PortMatch, load_side: bool):
    code_col, name_col, country_col = (
        (Booking.pol_code, Booking.pol_name, Booking.pol_country) if load_side
        else (Booking.pod_code, Booking.pod_name, Booking.pod_country)
    )
    if match.is_country:
        return country_col == match.country
    pattern = _contains(match.value)
    return or_(code_col.ilike(pattern, escape="\\"), name_col.ilike(pattern, escape="\\"))


def _region_clause(region_key: str, load_side: bool):
    region = REGIONS[region_key]
    country_col, name_col, place_col = (
        (Booking.pol_country, Booking.pol_name, Booking.origin) if load_side
        else (Booking.pod_country, Booking.pod_name, Booking.destination)
    )
    clauses = [country_col.in_(sorted(region.countries))]
    for keyword in region.keywords:
        clauses.append(name_col.ilike(_contains(keyword), escape="\\"))
        clauses.append(place_col.ilike(_contains(keyword), escape="\\"))
    return or_(*clauses)


def _trade_clause(lane: TradeLane):
    a, b = lane.regions
    return or_(
        and_(_region_clause(a, True), _region_clause(b, False)),
        and_(_region_clause(b, True), _region_clause(a, False)),
    )


def _detail_clause(criteria: BookingCriteria):
    conditions = []
    if criteria.commodities:
        conditions.append(or_(*[
            or_(
                DetailLine.commodity_description.ilike(_contains(c), escape="\\"),
                func.lower(DetailLine.commodity_code) == c.lower(),
            )
            for c in criteria.commodities
        ]))
    flags = criteria.flags
    if flags.hazardous is not None:
        conditions.append(DetailLine.is_hazardous == flags.hazardous)
    if flags.reefer is not None:
        conditions.append(DetailLine.is_reefer == flags.reefer)
    if flags.oog is not None:
        conditions.append(DetailLine.is_oog == flags.oog)
    return Booking.details.any(and_(*conditions)) if conditions else None


def build_where(criteria: BookingCriteria) -> list:
    """Translate criteria into SQLAlchemy clauses over ``Booking``."""
    clauses = []
    if criteria.status is StatusMode.EXCLUDE_CANCELLED:
        clauses.append(Booking.job_status != JobStatus.CANCELLED.value)
    elif criteria.status is StatusMode.ONLY_CANCELLED:
        clauses.append(Booking.job_status == JobStatus.CANCELLED.value)

    if criteria.date_range:
        clauses.append(Booking.confirmation_date >= criteria.date_range.start)
        clauses.append(Booking.confirmation_date <= criteria.date_range.end)

    if criteria.clients:
        clauses.append(or_(*[_client_clause(c) for c in criteria.clients]))
    if criteria.load_ports:
        clauses.append(or_(*[_port_clause(p, load_side=True) for p in criteria.load_ports]))
    if criteria.discharge_ports:
        clauses.append(or_(*[_port_clause(p, load_side=False) for p in criteria.discharge_ports]))
    if criteria.trade_lanes:
        clauses.append(or_(*[_trade_clause(lane) for lane in criteria.trade_lanes]))

    detail_clause = _detail_clause(criteria)
    if detail_clause is not None:
        clauses.append(detail_clause)
    return clauses


def _month_bounds(date_range: Optional[DateRange]) -> Tuple[Optional[date], Optional[date]]:
    if date_range is None:
        return None, None
    return date_range.start.replace(day=1), date_range.end.replace(day=1)


class SqlBookingStore:
    """Booking store backed by the SQLAlchemy async engine."""

    def __init__(self, session_maker: async_sessionmaker = None):
        self._session_maker = session_maker

    async def fetch_bookings(self, criteria: BookingCriteria, limit: int) -> Tuple[List[BookingRecord], int]:
        """
        Return up to ``limit`` matching bookings (newest first) with their
        detail lines, plus the exact number of matching bookings.
        """
        query = select(Booking).where(*build_where(criteria))

        async with get_async_session(self._session_maker) as db:
            count_result = await db.execute(select(func.count()).select_from(query.subquery()))
            total = count_result.scalar() or 0

            query = query.order_by(
                Booking.confirmation_date.desc().nulls_last(),
                Booking.job_reference.asc(),
            ).limit(limit)
            result = await db.execute(query)
            bookings = result.scalars().all()
            records = [BookingRecord.model_validate(b) for b in bookings]

        logger.info("Bookings fetched", returned=len(records), total=total, limit=limit)
        return records, total

    async def fetch_client_summaries(self, client: Optional[str],
                                     date_range: Optional[DateRange]) -> List[SummaryRecord]:
        query = select(ClientMonthlyVolume)
        first, last = _month_bounds(date_range)
        if first:
            query = query.where(ClientMonthlyVolume.month >= first, ClientMonthlyVolume.month <= last)
        if client:
            pattern = _contains(client)
            query = query.where(or_(
                ClientMonthlyVolume.client_key.ilike(pattern, escape="\\"),
                ClientMonthlyVolume.client_code.ilike(pattern, escape="\\"),
                ClientMonthlyVolume.client_name.ilike(pattern, escape="\\"),
            ))
        query = query.order_by(ClientMonthlyVolume.client_key, ClientMonthlyVolume.month)

        async with get_async_session(self._session_maker) as db:
            result = await db.execute(query)
            rows = result.scalars().all()
            return [
                SummaryRecord(
                    dimension="client",
                    key=row.client_key,
                    label=row.client_name,
                    month=row.month,
                    booking_count=row.booking_count,
                    line_count=row.line_count,
                    teu=row.total_teu,
                    units=row.total_units,
                    weight=row.total_weight,
                )
                for row in rows
            ]

    async def fetch_country_summaries(self, direction: str, country: str,
                                      date_range: Optional[DateRange]) -> List[SummaryRecord]:
        query = select(CountryMonthlyVolume).where(
            CountryMonthlyVolume.direction == direction,
            CountryMonthlyVolume.country_code == country,
        )
        first, last = _month_bounds(date_range)
        if first:
            query = query.where(CountryMonthlyVolume.month >= first, CountryMonthlyVolume.month <= last)
        query = query.order_by(CountryMonthlyVolume.month)

        async with get_async_session(self._session_maker) as db:
            result = await db.execute(query)
            rows = result.scalars().all()
            return [
                SummaryRecord(
                    dimension="load_country" if direction == "load" else "discharge_country",
                    key=row.country_code,
                    month=row.month,
                    booking_count=row.booking_count,
                    line_count=row.line_count,
                    teu=row.total_teu,
                    units=row.total_units,
                    weight=row.total_weight,
                )
                for row in rows
            ]
