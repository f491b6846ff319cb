from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def database_url() -> Optional[str]:
    """SQL user store URL, or None to keep users in process memory."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return None
    # SQLAlchemy defaults to psycopg2 for "postgresql://". Prefer psycopg (v3).
    #
    # Render commonly provides "postgres://..."; normalize and select driver.
    if "://" in url and "+" not in url.split("://", 1)[0]:
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+psycopg://", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def create_session_factory(url: str) -> sessionmaker:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine_kwargs = {}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every pooled connection gets its own empty database.
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True, **engine_kwargs)

    # Create tables (simple projects; for production use migrations).
    Base.metadata.create_all(bind=engine)

    # Records are handed out after the session closes.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
