"""Base storage class and helpers.

Contains engine lifecycle, schema creation, row/model conversion, and the
translation of driver errors into Signet's exception hierarchy.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import ArgumentError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from signet.config import settings
from signet.exceptions import ConfigurationError, StorageError

from .tables import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
P = ParamSpec("P")
R = TypeVar("R")


def storage_errors(
    action: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Re-raise SQLAlchemy errors from a storage method as StorageError.

    Apply above ``db_retry`` so transient read errors are retried first.

    Args:
        action: What the method does, for the error message ("store webhook subscription").
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to {action}: {e}") from e

        return wrapper

    return decorator


class StorageBase:
    """Base class for Signet storage with initialization and helpers.

    Provides:
    - Engine and session factory lifecycle
    - Schema creation
    - Row <-> model conversion
    """

    def __init__(
        self,
        database_url: str | None = None,
        echo: bool | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            database_url: SQLAlchemy async URL. Defaults to settings.database_url.
            echo: Echo SQL. Defaults to settings.database_echo.
            engine: Pre-built engine to use instead of creating one.
        """
        self._database_url = database_url or settings.database_url
        self._echo = settings.database_echo if echo is None else echo
        self._engine: AsyncEngine | None = engine
        self._owns_engine = engine is None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Get the engine, raising if not initialized."""
        if self._engine is None or self._sessionmaker is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._sessionmaker is not None

    def session(self) -> AsyncSession:
        """Open a new session. Use as ``async with storage.session() as s:``."""
        if self._sessionmaker is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._sessionmaker()

    async def initialize(self) -> None:
        """Create the engine and ensure all tables exist.

        Raises:
            ConfigurationError: If the database URL is malformed or names a
                driver that is not async.
            StorageError: If the database cannot be reached or the schema
                cannot be created.
        """
        if self._engine is None:
            try:
                self._engine = create_async_engine(self._database_url, echo=self._echo)
            except (ArgumentError, InvalidRequestError) as e:
                raise ConfigurationError(
                    f"Unusable database URL {self._database_url!r}: {e}"
                ) from e

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create Signet tables: {e}") from e
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)

        logger.debug("Storage initialized: %s", self._engine.url.render_as_string())

    async def close(self) -> None:
        """Dispose of the engine if this instance created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._sessionmaker = None

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @staticmethod
    def _row_to_model(row: Any, model_class: type[ModelT]) -> ModelT:
        """Convert an ORM row to its pydantic model."""
        return model_class.model_validate(row, from_attributes=True)

    @staticmethod
    def _model_to_columns(model: BaseModel) -> dict[str, Any]:
        """Convert a model to column values, stringifying URLs."""
        data = model.model_dump(mode="python")
        if "url" in data and data["url"] is not None:
            data["url"] = str(data["url"])
        return data
