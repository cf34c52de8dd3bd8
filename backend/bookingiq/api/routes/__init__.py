"""
API Routes Package
"""
from bookingiq.api.routes import query

__all__ = ["query"]
