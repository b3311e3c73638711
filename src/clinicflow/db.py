"""
Database engine and session helpers.

Every unit of work runs in one explicit transaction. ``session_scope`` and
``get_session`` do not bind a clinic; code that reads or writes clinic-owned
rows calls ``set_tenant_context`` on its session (or opens ``tenant_session``)
so that PostgreSQL row-level security sees the clinic id.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .core.logging import tenant_id_ctx


def _make_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite") and ":memory:" in url:
        # every checkout must see the same in-memory database
        return create_async_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_async_engine(url, pool_pre_ping=True)


engine: AsyncEngine = _make_engine(get_settings().DATABASE_URL)

SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Transaction that commits on clean exit and rolls back on error."""
    async with SessionLocal() as session, session.begin():
        yield session


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one transaction per request."""
    async with session_scope() as session:
        yield session


def _require_clinic(clinic_id: UUID | str | None) -> str:
    if not clinic_id:
        raise ValueError("clinic_id is required (fail-closed)")
    return str(UUID(str(clinic_id)))


async def set_tenant_context(session: AsyncSession, clinic_id: UUID | str) -> None:
    """
    Bind a clinic to the session's current transaction.

    On PostgreSQL this issues ``SET LOCAL app.tenant_id``, which the RLS
    policies from the initial migration read; it is discarded at commit or
    rollback. The id is validated as a UUID before being inlined because
    SET LOCAL does not accept bind parameters. Other dialects only get the
    logging context.
    """
    clinic = _require_clinic(clinic_id)
    tenant_id_ctx.set(clinic)
    if session.bind.dialect.name == "postgresql":
        await session.execute(text(f"SET LOCAL app.tenant_id = '{clinic}'"))


@asynccontextmanager
async def tenant_session(clinic_id: UUID | str) -> AsyncIterator[AsyncSession]:
    """Standalone transaction scoped to one clinic. Refuses to open without a clinic id."""
    _require_clinic(clinic_id)
    async with session_scope() as session:
        await set_tenant_context(session, clinic_id)
        yield session
