"""
Data access tools for the query pipeline
"""
from bookingiq.tools.booking_tools import (
    BookingCriteria, BookingStore, PortMatch, SqlBookingStore, StatusMode, is_transient_db_error,
)

__all__ = ["BookingCriteria", "BookingStore", "PortMatch", "SqlBookingStore", "StatusMode", "is_transient_db_error"]
