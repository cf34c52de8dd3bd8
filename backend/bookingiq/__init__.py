"""
BookingIQ - natural-language analytics over shipment bookings
"""
__version__ = "1.0.0"
