"""
Database module
"""
from bookingiq.db.database import Base, engine, async_session_maker, get_async_session, init_db, close_db

__all__ = ["Base", "engine", "async_session_maker", "get_async_session", "init_db", "close_db"]
