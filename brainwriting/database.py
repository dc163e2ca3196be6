"""
Brainwriting – Async SQLAlchemy engine, session, and declarative base.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from brainwriting.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with per-backend connection arguments."""
    engine_kwargs = {
        "echo": echo,
        "future": True,
    }

    # If using PostgreSQL (Render/Supabase), disable prepared statement caching
    # because PgBouncer (transaction mode) does not support it properly.
    if "postgresql" in url:
        engine_kwargs["connect_args"] = {"statement_cache_size": 0}
    # SQLite serialises writers; wait for the lock instead of failing fast.
    elif url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": 30}

    return create_async_engine(url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Engine ──
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# ── Session factory ──
async_session = build_session_factory(engine)


# ── Declarative base ──
class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; lease arithmetic and storage both use this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

