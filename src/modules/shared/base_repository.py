"""
Base Repository Pattern

Purpose
-------
Type-safe, generic data access over SQLAlchemy 2.0 async sessions.
Repositories never open or commit transactions; the calling service owns
the session and its transaction boundary.

Design Notes
------------
- Pessimistic locking via `for_update=True` (SELECT ... FOR UPDATE on
  PostgreSQL; ignored by SQLite, where the file lock serializes writers)
- Every operation emits a DEBUG record `Repository.<op>: <Model>`
- No business logic and no validation

Usage
-----
    class WalletRepository(BaseRepository[Wallet]):
        async def find_by_player(self, session, player_id, for_update=False):
            return await self.find_one_where(
                session, Wallet.player_id == player_id, for_update=for_update
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        *,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> Select:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()
        for relationship in eager_load or ():
            stmt = stmt.options(selectinload(relationship))
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        for_update: bool = False,
    ) -> Optional[T]:
        """Get a single record by primary key."""
        stmt = self._select(
            [self.model_class.id == id_value],  # type: ignore[attr-defined]
            for_update=for_update,
        )
        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self.model_name}",
            extra={
                "model": self.model_name,
                "id": id_value,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key with SELECT FOR UPDATE."""
        return await self.get(session, id_value, for_update=True)

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Find a single record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            eager_load: Optional list of relationships to eagerly load
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = self._select(conditions, eager_load=eager_load, for_update=for_update)
        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            eager_load: Optional list of relationships to eagerly load
            for_update: If True, use SELECT FOR UPDATE
            order_by: Optional ordering clauses
            limit: Optional maximum number of results
        """
        stmt = self._select(
            conditions,
            eager_load=eager_load,
            for_update=for_update,
            order_by=order_by,
            limit=limit,
        )
        instances = list((await session.execute(stmt)).scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found_count": len(instances),
                "locked": for_update,
                "limit": limit,
            },
        )
        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        total = int((await session.execute(stmt)).scalar_one())

        self.log.debug(
            f"Repository.count: {self.model_name}",
            extra={"model": self.model_name, "count": total},
        )
        return total

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(f"Repository.add: {self.model_name}", extra={"model": self.model_name})
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(
            f"Repository.delete: {self.model_name}", extra={"model": self.model_name}
        )

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
        self.log.debug(
            f"Repository.flush: {self.model_name}", extra={"model": self.model_name}
        )
