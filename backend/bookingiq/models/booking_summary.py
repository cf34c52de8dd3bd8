"""
Precomputed Monthly Volume Models

Denormalized per-period summaries used by the fast query path. Rows
exclude cancelled bookings and are rebuilt by ``bookingiq.db.summaries``.
"""
from sqlalchemy import Column, String, Integer, Date, Float, CheckConstraint

from bookingiq.db.database import Base


class ClientMonthlyVolume(Base):
    """Per-client, per-month booking volumes."""

    __tablename__ = "client_monthly_volumes"

    client_key = Column(String(200), primary_key=True)
    month = Column(Date, primary_key=True)  # first day of month

    client_code = Column(String(20), nullable=True, index=True)
    client_name = Column(String(200), nullable=True)

    booking_count = Column(Integer, nullable=False, default=0)
    line_count = Column(Integer, nullable=False, default=0)
    total_teu = Column(Float, nullable=False, default=0.0)
    total_units = Column(Float, nullable=False, default=0.0)
    total_weight = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        CheckConstraint("booking_count >= 0", name="ck_client_volume_bookings_nonnegative"),
    )

    def __repr__(self) -> str:
        return f"<ClientMonthlyVolume {self.client_key} {self.month} teu={self.total_teu}>"


class CountryMonthlyVolume(Base):
    """Per-country, per-month booking volumes on the load or discharge side."""

    __tablename__ = "country_monthly_volumes"

    direction = Column(String(10), primary_key=True)  # load, discharge
    country_code = Column(String(2), primary_key=True)
    month = Column(Date, primary_key=True)

    booking_count = Column(Integer, nullable=False, default=0)
    line_count = Column(Integer, nullable=False, default=0)
    total_teu = Column(Float, nullable=False, default=0.0)
    total_units = Column(Float, nullable=False, default=0.0)
    total_weight = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        CheckConstraint("direction IN ('load', 'discharge')", name="ck_country_volume_direction"),
    )

    def __repr__(self) -> str:
        return f"<CountryMonthlyVolume {self.direction} {self.country_code} {self.month}>"
