from __future__ import annotations

import os
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from expense_bot.db.models import Base
from expense_bot.config import settings


DB_URL = settings.DB_URL


# SQLite тюнинг: WAL + foreign_keys (каскадное удаление тегов и бюджетов)
def _sqlite_pragmas(dbapi_conn, connection_record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    cur.execute("PRAGMA foreign_keys=ON;")
    cur.close()


def make_engine(url: str) -> AsyncEngine:
    """Движок для SQLite (aiosqlite) или PostgreSQL (asyncpg)."""
    kwargs = {"echo": False, "pool_pre_ping": True}
    if url.startswith("sqlite+"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # база в памяти живёт, пока жив единственный коннект
            kwargs["poolclass"] = StaticPool

    engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _sqlite_pragmas)
    return engine


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # объекты нужны сценариям и после commit (имена в подтверждениях)
    return async_sessionmaker(bind, autoflush=False, expire_on_commit=False)


async def create_schema(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = make_engine(DB_URL)
SessionLocal: async_sessionmaker[AsyncSession] = make_session_factory(engine)


async def init_db():
    # создать папку под файл SQLite, если надо
    if DB_URL.startswith("sqlite+") and ":memory:" not in DB_URL:
        path = DB_URL.split("///", 1)[-1]
        d = os.path.dirname(path) or "."
        os.makedirs(d, exist_ok=True)
    await create_schema(engine)


async def get_session() -> AsyncSession:
    return SessionLocal()
