"""
Database Models Package
"""
from bookingiq.models.booking import Booking, DetailLine, JobStatus, StatusLabel, ContractType, status_label
from bookingiq.models.booking_summary import ClientMonthlyVolume, CountryMonthlyVolume

__all__ = [
    # Bookings
    "Booking", "DetailLine", "JobStatus", "StatusLabel", "ContractType", "status_label",
    # Precomputed summaries
    "ClientMonthlyVolume", "CountryMonthlyVolume",
]
