"""Backing store handle: async SQLAlchemy engine and the connectivity handshake."""

from typing import Protocol

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from core.config import Settings


class BackingStore(Protocol):
    async def authenticate(self) -> None: ...

    async def close(self) -> None: ...


class SqlAlchemyStore:
    """Lazily builds the engine; ``authenticate`` proves the database answers."""

    def __init__(self, url: URL | str, *, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlAlchemyStore":
        return cls(settings.database_url, echo=settings.LOG_LEVEL.upper() == "DEBUG")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                poolclass=NullPool,
            )
        return self._engine

    async def authenticate(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
