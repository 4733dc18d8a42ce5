from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatledger.core.config import Settings, get_settings


def engine_options(settings: Settings) -> dict[str, Any]:
    """Engine kwargs that bound every wait on Postgres by ``db_timeout`` seconds."""
    options: dict[str, Any] = {"echo": False, "future": True}
    if not settings.database_url.startswith("postgresql"):
        return options
    timeout = settings.db_timeout
    options["pool_timeout"] = timeout
    if "+asyncpg" in settings.database_url:
        options["connect_args"] = {"timeout": timeout, "command_timeout": timeout}
    else:
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


settings = get_settings()
engine = create_async_engine(settings.database_url, **engine_options(settings))
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


async def init_db() -> None:
    """Ensure database migrations are applied before serving traffic."""

    if not settings.auto_run_migrations or not ALEMBIC_INI.exists():
        return

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    try:
        await asyncio.to_thread(command.upgrade, config, "head")
        logger.info("Database migrations are up-to-date")
    except Exception:  # pragma: no cover - propagate for FastAPI startup failure
        logger.exception("Failed to apply database migrations")
        raise
