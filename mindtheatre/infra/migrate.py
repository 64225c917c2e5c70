"""Apply SQL migrations sequentially using a short-lived asyncpg pool."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from mindtheatre.libs.logging_utils import configure_logging
from mindtheatre.libs.schemas import AppSettings, create_pool, get_settings

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
_COMMENT_RE = re.compile(r"--.*?$|/\*.*?\*/", re.MULTILINE | re.DOTALL)
EMBEDDING_DIM_PLACEHOLDER = "{{EMBEDDING_DIM}}"


def _split_sql(sql: str) -> list[str]:
    """Return individual statements stripped of comments and whitespace."""

    cleaned = _COMMENT_RE.sub("", sql)
    statements: list[str] = []
    for chunk in cleaned.split(";"):
        statement = chunk.strip()
        if statement:
            statements.append(statement)
    return statements


def render_migration(sql: str, embedding_dim: int) -> list[str]:
    """Substitute the configured vector dimension and split into statements."""

    return _split_sql(sql.replace(EMBEDDING_DIM_PLACEHOLDER, str(int(embedding_dim))))


def _sorted_migration_paths() -> list[Path]:
    if not MIGRATIONS_DIR.exists():
        return []
    return sorted(p for p in MIGRATIONS_DIR.iterdir() if p.suffix == ".sql")


async def apply_migrations(settings: AppSettings | None = None) -> None:
    """Execute every migration in filename order, each inside its own transaction."""

    settings = settings or get_settings()
    migration_files = _sorted_migration_paths()
    if not migration_files:
        return

    pool = await create_pool(settings)
    try:
        async with pool.acquire() as connection:
            for path in migration_files:
                statements = render_migration(path.read_text(encoding="utf-8"), settings.embedding_dim)
                if not statements:
                    continue
                async with connection.transaction():
                    for statement in statements:
                        await connection.execute(statement)
                LOGGER.info("Applied migration %s", path.name)
    finally:
        await pool.close()


def main() -> None:  # pragma: no cover - CLI entrypoint
    configure_logging()
    asyncio.run(apply_migrations())


if __name__ == "__main__":  # pragma: no cover
    main()
