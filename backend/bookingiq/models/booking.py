"""
Booking and Detail Line Database Models
"""
from sqlalchemy import Column, String, Integer, Date, Float, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
import enum

from bookingiq.db.database import Base


class JobStatus(int, enum.Enum):
    """Booking status codes as stored in ``bookings.job_status``."""
    CANCELLED = 9
    ACTIVE = 70


class StatusLabel(str, enum.Enum):
    """Status labels exposed to queries and grouping."""
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


class ContractType(str, enum.Enum):
    SPOT = "SPOT"
    LONG_TERM = "LONG_TERM"


def status_label(job_status) -> str:
    """Every code other than the cancelled one counts as active."""
    if job_status == JobStatus.CANCELLED.value:
        return StatusLabel.CANCELLED.value
    return StatusLabel.ACTIVE.value


class Booking(Base):
    """A shipment booking. Volume metrics live on its detail lines."""

    __tablename__ = "bookings"

    job_reference = Column(String(30), primary_key=True)

    # Client
    client_code = Column(String(20), nullable=True, index=True)
    client_name = Column(String(200), nullable=True)

    # Port of loading
    pol_code = Column(String(10), nullable=True, index=True)
    pol_name = Column(String(100), nullable=True)
    pol_country = Column(String(2), nullable=True, index=True)

    # Port of discharge
    pod_code = Column(String(10), nullable=True, index=True)
    pod_name = Column(String(100), nullable=True)
    pod_country = Column(String(2), nullable=True, index=True)

    # Free-text routing (place of receipt / final delivery)
    origin = Column(String(100), nullable=True)
    destination = Column(String(100), nullable=True)

    contract_type = Column(String(20), nullable=True)  # SPOT, LONG_TERM

    confirmation_date = Column(Date, nullable=True, index=True)
    cancellation_date = Column(Date, nullable=True)
    job_status = Column(Integer, nullable=False, default=JobStatus.ACTIVE.value, index=True)

    details = relationship(
        "DetailLine",
        back_populates="booking",
        order_by="DetailLine.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.job_status == JobStatus.CANCELLED.value

    def __repr__(self) -> str:
        return f"<Booking {self.job_reference} {self.client_code} {self.pol_code}->{self.pod_code}>"


class DetailLine(Base):
    """A cargo line of a booking carrying volume, units and weight."""

    __tablename__ = "booking_details"

    job_reference = Column(
        String(30),
        ForeignKey("bookings.job_reference", ondelete="CASCADE"),
        primary_key=True,
    )
    sequence = Column(Integer, primary_key=True)

    teu = Column(Float, nullable=True)
    units = Column(Integer, nullable=True)
    net_weight = Column(Float, nullable=True)

    commodity_description = Column(String(200), nullable=True)
    commodity_code = Column(String(20), nullable=True)

    is_hazardous = Column(Boolean, default=False, nullable=False)
    is_reefer = Column(Boolean, default=False, nullable=False)
    is_oog = Column(Boolean, default=False, nullable=False)

    booking = relationship("Booking", back_populates="details")

    __table_args__ = (
        CheckConstraint("teu IS NULL OR teu >= 0", name="ck_detail_teu_nonnegative"),
        CheckConstraint("units IS NULL OR units >= 0", name="ck_detail_units_nonnegative"),
    )

    def __repr__(self) -> str:
        return f"<DetailLine {self.job_reference}#{self.sequence} teu={self.teu}>"
