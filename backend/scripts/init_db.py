"""
Database initialization script for BookingIQ
Creates tables, seeds synthetic bookings and rebuilds the monthly summaries.

Run from backend/:  python -m scripts.init_db
"""
import asyncio
import random
from datetime import date, timedelta

from sqlalchemy import delete

from bookingiq.config import settings
from bookingiq.db.database import Base, engine, async_session_maker
from bookingiq.db.summaries import rebuild_monthly_summaries
from bookingiq.models.booking import Booking, DetailLine, JobStatus, ContractType


CLIENTS = [
    ("MAEU01", "Nordic Furniture AB"),
    ("CMA002", "Atlas Electronics"),
    ("HLAG03", "Sunrise Textiles"),
    ("MSC004", "Pacific Auto Parts"),
    ("ONE005", "Green Valley Foods"),
    ("EVG006", "Helios Chemicals"),
    ("COS007", "Urban Retail Group"),
    ("YML008", "Alpine Machinery"),
]

LOAD_PORTS = [
    ("CNSHA", "Shanghai", "CN"),
    ("CNNGB", "Ningbo", "CN"),
    ("SGSIN", "Singapore", "SG"),
    ("KRPUS", "Busan", "KR"),
    ("VNSGN", "Ho Chi Minh", "VN"),
    ("INNSA", "Nhava Sheva", "IN"),
]

DISCHARGE_PORTS = [
    ("NLRTM", "Rotterdam", "NL"),
    ("DEHAM", "Hamburg", "DE"),
    ("BEANR", "Antwerp", "BE"),
    ("FRLEH", "Le Havre", "FR"),
    ("USLAX", "Los Angeles", "US"),
    ("AEJEA", "Jebel Ali", "AE"),
    ("KEMBA", "Mombasa", "KE"),
]

COMMODITIES = [
    ("Furniture", "9403"),
    ("Electronics", "8471"),
    ("Garments", "6204"),
    ("Auto parts", "8708"),
    ("Frozen seafood", "0303"),
    ("Industrial chemicals", "2905"),
    ("Machinery", "8479"),
]


def build_booking(index: int, confirmed: date, rng: random.Random) -> Booking:
    client_code, client_name = rng.choice(CLIENTS)
    pol_code, pol_name, pol_country = rng.choice(LOAD_PORTS)
    pod_code, pod_name, pod_country = rng.choice(DISCHARGE_PORTS)
    cancelled = rng.random() < 0.08

    booking = Booking(
        job_reference=f"BK{confirmed.strftime('%y%m')}{index:05d}",
        client_code=client_code,
        client_name=client_name,
        pol_code=pol_code,
        pol_name=pol_name,
        pol_country=pol_country,
        pod_code=pod_code,
        pod_name=pod_name,
        pod_country=pod_country,
        origin=pol_name,
        destination=pod_name,
        contract_type=rng.choice([ContractType.SPOT.value, ContractType.LONG_TERM.value]),
        confirmation_date=confirmed,
        cancellation_date=confirmed + timedelta(days=rng.randint(1, 10)) if cancelled else None,
        job_status=JobStatus.CANCELLED.value if cancelled else JobStatus.ACTIVE.value,
    )

    for sequence in range(1, rng.randint(1, 3) + 1):
        description, code = rng.choice(COMMODITIES)
        units = rng.randint(1, 6)
        booking.details.append(DetailLine(
            sequence=sequence,
            teu=float(units * rng.choice([1, 2])),
            units=units,
            net_weight=round(units * rng.uniform(8000, 24000), 1),
            commodity_description=description,
            commodity_code=code,
            is_hazardous=description == "Industrial chemicals",
            is_reefer=description == "Frozen seafood",
            is_oog=description == "Machinery" and rng.random() < 0.3,
        ))
    return booking


async def init_db(days: int = 365, per_day: int = 6):
    """Recreate tables and seed one year of bookings ending today."""
    print(f"🗄️ Database: {settings.database_url}")

    # Phase 1: Recreate schema
    async with engine.begin() as conn:
        print("🗑️ Dropping existing tables...")
        await conn.run_sync(Base.metadata.drop_all)
        print("📦 Creating ORM tables...")
        await conn.run_sync(Base.metadata.create_all)
        print("✅ All ORM tables created")

    # Phase 2: Seed bookings and detail lines
    rng = random.Random(20260205)
    today = date.today()
    async with async_session_maker() as db:
        await db.execute(delete(Booking))
        index = 0
        for offset in range(days):
            confirmed = today - timedelta(days=offset)
            for _ in range(per_day):
                index += 1
                db.add(build_booking(index, confirmed, rng))
        await db.commit()
        print(f"✅ {index} bookings seeded")

    # Phase 3: Precomputed monthly summaries
    async with async_session_maker() as db:
        counts = await rebuild_monthly_summaries(db)
        await db.commit()
        print(f"📊 Summaries rebuilt: {counts['client_rows']} client rows, {counts['country_rows']} country rows")

    await engine.dispose()
    print("🎉 Database initialization complete")


if __name__ == "__main__":
    asyncio.run(init_db())
