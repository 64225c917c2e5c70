"""Async database helpers backed by asyncpg connection pooling."""

from __future__ import annotations

import asyncpg

from .settings import AppSettings


async def create_pool(settings: AppSettings) -> asyncpg.Pool:
    """Create the asyncpg pool owned by the service container."""

    return await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=1,
        max_size=10,
        command_timeout=60,
        statement_cache_size=0,
        max_inactive_connection_lifetime=300,
    )


__all__ = ["create_pool"]
