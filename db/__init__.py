"""Database package: engine, session factory and ORM models for the auth tables."""

from db.engine import Base, SessionLocal, engine

__all__ = ["Base", "SessionLocal", "engine"]
