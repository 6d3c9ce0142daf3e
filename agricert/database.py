"""Async SQLAlchemy engine, session factory and the request-scoped session dependency."""

from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from agricert.config import get_settings

engine = create_async_engine(get_settings().database_url, pool_pre_ping=True)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
	"""Yield one session per request; roll back anything left uncommitted on failure.

	Routes commit explicitly once a core operation has succeeded.
	"""
	async with async_session_factory() as session:
		try:
			yield session
		except Exception:
			await session.rollback()
			raise
