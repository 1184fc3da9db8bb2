from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import Settings

Base = declarative_base()


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    # The sqlite driver defers BEGIN until the first write, which breaks
    # SAVEPOINT and read-then-write atomicity. Emit BEGIN ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the async engine (connection pool) and the session factory.

    Built once by the app factory and kept on ``app.state``; nothing here is
    created at import time.
    """

    def __init__(self, settings: Settings):
        engine_kwargs = {"echo": settings.db_echo, "pool_pre_ping": True}
        if not settings.database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                pool_recycle=settings.db_pool_recycle,
                connect_args={"timeout": settings.db_connect_timeout},
            )
        self.engine = create_async_engine(settings.database_url, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        if self.engine.dialect.name == "sqlite":
            _enable_sqlite_transactions(self.engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """One session, one transaction: commit on success, rollback on error.

        The session (and its pooled connection) is always released.
        """
        session = self.sessionmaker()
        try:
            async with session.begin():
                yield session
        finally:
            await session.close()

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request):
    async with request.app.state.database.session() as session:
        yield session
