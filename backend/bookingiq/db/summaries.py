"""
Monthly Summary Maintenance

Rebuilds the precomputed per-client and per-country monthly volume tables
from the raw bookings. Run by the seed script and by tests; the query path
only reads these tables.
"""
from collections import defaultdict
from typing import Dict, Tuple

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookingiq.analytics.aggregation import client_key
from bookingiq.models.booking import Booking, JobStatus
from bookingiq.models.booking_summary import ClientMonthlyVolume, CountryMonthlyVolume

logger = structlog.get_logger()


class _Totals:
    __slots__ = ("bookings", "lines", "teu", "units", "weight", "code", "name")

    def __init__(self):
        self.bookings = 0
        self.lines = 0
        self.teu = 0.0
        self.units = 0.0
        self.weight = 0.0
        self.code = None
        self.name = None

    def add(self, booking: Booking) -> None:
        self.bookings += 1
        for detail in booking.details:
            self.lines += 1
            self.teu += detail.teu or 0.0
            self.units += detail.units or 0
            self.weight += detail.net_weight or 0.0


async def rebuild_monthly_summaries(db: AsyncSession) -> Dict[str, int]:
    """Replace both summary tables. Cancelled and undated bookings are left out."""
    result = await db.execute(
        select(Booking).where(
            Booking.job_status != JobStatus.CANCELLED.value,
            Booking.confirmation_date.is_not(None),
        )
    )
    bookings = result.scalars().all()

    by_client: Dict[Tuple[str, object], _Totals] = defaultdict(_Totals)
    by_country: Dict[Tuple[str, str, object], _Totals] = defaultdict(_Totals)

    for booking in bookings:
        month = booking.confirmation_date.replace(day=1)
        totals = by_client[(client_key(booking), month)]
        totals.add(booking)
        totals.code = totals.code or booking.client_code
        totals.name = totals.name or booking.client_name
        if booking.pol_country:
            by_country[("load", booking.pol_country.upper(), month)].add(booking)
        if booking.pod_country:
            by_country[("discharge", booking.pod_country.upper(), month)].add(booking)

    await db.execute(delete(ClientMonthlyVolume))
    await db.execute(delete(CountryMonthlyVolume))

    for (key, month), totals in by_client.items():
        db.add(ClientMonthlyVolume(
            client_key=key,
            month=month,
            client_code=totals.code,
            client_name=totals.name,
            booking_count=totals.bookings,
            line_count=totals.lines,
            total_teu=round(totals.teu, 4),
            total_units=totals.units,
            total_weight=round(totals.weight, 4),
        ))
    for (direction, country, month), totals in by_country.items():
        db.add(CountryMonthlyVolume(
            direction=direction,
            country_code=country,
            month=month,
            booking_count=totals.bookings,
            line_count=totals.lines,
            total_teu=round(totals.teu, 4),
            total_units=totals.units,
            total_weight=round(totals.weight, 4),
        ))
    await db.flush()

    counts = {"client_rows": len(by_client), "country_rows": len(by_country)}
    logger.info("Monthly summaries rebuilt", bookings=len(bookings), **counts)
    return counts
