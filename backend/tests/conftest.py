from datetime import date

import pytest
import pytest_asyncio

from bookingiq.config import get_settings
from bookingiq.db.database import build_engine, build_session_maker, init_db
from bookingiq.db.summaries import rebuild_monthly_summaries
from bookingiq.errors import LLMServiceError
from bookingiq.models.booking import Booking, DetailLine, JobStatus
from bookingiq.schemas.results import BookingRecord, QueryResult
from bookingiq.tools.booking_tools import SqlBookingStore


# Six bookings over Q1 2026. BK004 is cancelled and carries a large volume
# so any leak of cancelled data shows up in the totals. Active totals:
# 5 bookings, 6 detail lines, 23 TEU.
SEED_BOOKINGS = [
    {
        "job_reference": "BK001", "client_code": "ACME", "client_name": "Acme Corp",
        "pol_code": "CNSHA", "pol_name": "Shanghai", "pol_country": "CN",
        "pod_code": "NLRTM", "pod_name": "Rotterdam", "pod_country": "NL",
        "origin": "Shanghai", "destination": "Rotterdam", "contract_type": "SPOT",
        "confirmation_date": date(2026, 1, 15), "job_status": JobStatus.ACTIVE.value,
        "details": [
            {"sequence": 1, "teu": 2.0, "units": 1, "net_weight": 10000.0,
             "commodity_description": "Furniture", "commodity_code": "9403"},
            {"sequence": 2, "teu": 4.0, "units": 2, "net_weight": 20000.0,
             "commodity_description": "Electronics", "commodity_code": "8471", "is_reefer": True},
        ],
    },
    {
        "job_reference": "BK002", "client_code": "ACME", "client_name": "Acme Corp",
        "pol_code": "CNNGB", "pol_name": "Ningbo", "pol_country": "CN",
        "pod_code": "DEHAM", "pod_name": "Hamburg", "pod_country": "DE",
        "origin": "Ningbo", "destination": "Hamburg", "contract_type": "LONG_TERM",
        "confirmation_date": date(2026, 2, 10), "job_status": JobStatus.ACTIVE.value,
        "details": [
            {"sequence": 1, "teu": 10.0, "units": 5, "net_weight": 50000.0,
             "commodity_description": "Furniture", "commodity_code": "9403"},
        ],
    },
    {
        "job_reference": "BK003", "client_code": "BETA", "client_name": "Beta Ltd",
        "pol_code": "SGSIN", "pol_name": "Singapore", "pol_country": "SG",
        "pod_code": "USLAX", "pod_name": "Los Angeles", "pod_country": "US",
        "origin": "Singapore", "destination": "Los Angeles", "contract_type": "SPOT",
        "confirmation_date": date(2026, 2, 20), "job_status": JobStatus.ACTIVE.value,
        "details": [
            {"sequence": 1, "teu": 6.0, "units": 3, "net_weight": 30000.0,
             "commodity_description": "Chemicals", "commodity_code": "2905",
             "is_hazardous": True, "is_reefer": True},
        ],
    },
    {
        "job_reference": "BK004", "client_code": "BETA", "client_name": "Beta Ltd",
        "pol_code": "CNSHA", "pol_name": "Shanghai", "pol_country": "CN",
        "pod_code": "NLRTM", "pod_name": "Rotterdam", "pod_country": "NL",
        "origin": "Shanghai", "destination": "Rotterdam", "contract_type": "SPOT",
        "confirmation_date": date(2026, 3, 5), "cancellation_date": date(2026, 3, 7),
        "job_status": JobStatus.CANCELLED.value,
        "details": [
            {"sequence": 1, "teu": 100.0, "units": 50, "net_weight": 500000.0,
             "commodity_description": "Furniture", "commodity_code": "9403"},
        ],
    },
    {
        "job_reference": "BK005", "client_code": None, "client_name": None,
        "pol_code": "CNSHA", "pol_name": "Shanghai", "pol_country": "CN",
        "pod_code": "AEJEA", "pod_name": "Jebel Ali", "pod_country": "AE",
        "origin": "Shanghai", "destination": "Jebel Ali", "contract_type": None,
        "confirmation_date": date(2026, 3, 12), "job_status": JobStatus.ACTIVE.value,
        "details": [
            {"sequence": 1, "teu": None, "units": None, "net_weight": None,
             "commodity_description": None, "commodity_code": None},
        ],
    },
    {
        "job_reference": "BK006", "client_code": "GAMMA", "client_name": "Gamma SA",
        "pol_code": "KRPUS", "pol_name": "Busan", "pol_country": "KR",
        "pod_code": "NLRTM", "pod_name": "Rotterdam", "pod_country": "NL",
        "origin": "Busan", "destination": "Rotterdam", "contract_type": "LONG_TERM",
        "confirmation_date": date(2026, 3, 20), "job_status": JobStatus.ACTIVE.value,
        "details": [
            {"sequence": 1, "teu": 1.0, "units": 1, "net_weight": 5000.0,
             "commodity_description": "Textiles", "commodity_code": "6204"},
        ],
    },
]


class FakeTextService:
    """Scripted text-generation service: returns (or raises) queued items in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, prompt, *, temperature, max_tokens, system_prompt=None):
        self.calls.append({
            "prompt": prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "system_prompt": system_prompt,
        })
        if not self.responses:
            raise LLMServiceError("no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def make_orm_bookings():
    bookings = []
    for data in SEED_BOOKINGS:
        fields = {key: value for key, value in data.items() if key != "details"}
        booking = Booking(**fields)
        booking.details = [DetailLine(**detail) for detail in data["details"]]
        bookings.append(booking)
    return bookings


@pytest.fixture
def settings():
    return get_settings().model_copy(update={
        "llm_retry_backoff_seconds": 0.0,
        "db_retry_backoff_seconds": 0.0,
        "fact_check_enabled": False,
    })


@pytest.fixture
def booking_rows():
    return [BookingRecord(**data) for data in SEED_BOOKINGS]


@pytest.fixture
def standard_result(booking_rows):
    return QueryResult(
        path="standard",
        rows=booking_rows,
        count=len(booking_rows),
        total_count=len(booking_rows),
        rows_analyzed=len(booking_rows) + sum(len(b.details) for b in booking_rows),
    )


# Database
@pytest_asyncio.fixture(scope="function")
async def session_maker(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{(tmp_path / 'bookings.db').as_posix()}")
    await init_db(bind=engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def store(session_maker):
    async with session_maker() as db:
        db.add_all(make_orm_bookings())
        await db.commit()
    async with session_maker() as db:
        await rebuild_monthly_summaries(db)
        await db.commit()
    return SqlBookingStore(session_maker)
