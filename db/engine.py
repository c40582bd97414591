"""
SQLAlchemy engine and session factory for the auth tables.

The PostgreSQL stores open one short-lived session per store call:

    with SessionLocal() as db:
        account = db.get(UserAccount, account_id)
        db.commit()
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import Config


engine = create_engine(
    Config.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=Config.DB_POOL_SIZE,
    max_overflow=Config.DB_MAX_OVERFLOW,
    echo=Config.DB_ECHO,
)

# Rows are converted to plain records after commit, so keep them loaded.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

Base = declarative_base()
