"""Database package."""

from threatgate.db.session import Base, SessionLocal, engine, get_db, get_session_factory

__all__ = ["Base", "SessionLocal", "engine", "get_db", "get_session_factory"]
