"""
Keyed Store

Thin async persistence interface shared by the sync orchestrator, the
analytics service and the alert engine. Upserts are a single
INSERT ... ON CONFLICT DO UPDATE statement so they stay atomic per key on
both PostgreSQL and SQLite.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.sql import Executable

from marketos.database.connection import Database
from marketos.database.models import Base

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_TOUCH_COLUMNS = ("updated_at", "computed_at")


class Store:
    """
    Async keyed store over SQLAlchemy sessions.

    Example:
        store = Store(database)
        product = await store.upsert(
            Product,
            {"integration_id": integration.id, "sku": "WB-001"},
            {"title": "Galaxy A54", "stock": 15},
        )
    """

    def __init__(self, database: Database, batch_size: int = 500):
        self.database = database
        self.batch_size = batch_size

    def _insert(self, model: Type[Base]):
        try:
            insert_fn = _DIALECT_INSERTS[self.database.dialect_name]
        except KeyError:
            raise NotImplementedError(f"Upserts are not supported on {self.database.dialect_name}")
        return insert_fn(model)

    async def upsert(self, model: Type[ModelT], key: Dict[str, Any], fields: Dict[str, Any]) -> ModelT:
        """
        Insert or update the row identified by ``key``.

        ``key`` names the columns of a unique constraint; ``fields`` are the
        mutable columns overwritten on conflict. Identity (primary key) of an
        existing row is preserved.
        """
        set_ = dict(fields) if fields else dict(key)
        for column in _TOUCH_COLUMNS:
            if column in model.__table__.c and column not in set_:
                set_[column] = func.now()

        stmt = (
            self._insert(model)
            .values(**key, **fields)
            .on_conflict_do_update(index_elements=list(key), set_=set_)
            .returning(model)
        )
        async with self.database.session() as session:
            result = await session.scalars(stmt, execution_options={"populate_existing": True})
            return result.one()

    async def insert(self, model: Type[ModelT], fields: Dict[str, Any]) -> ModelT:
        """Insert one row and return it."""
        instance = model(**fields)
        async with self.database.session() as session:
            session.add(instance)
            await session.flush()
        return instance

    async def insert_many(
        self,
        model: Type[Base],
        rows: Sequence[Dict[str, Any]],
        conflict_keys: Optional[Sequence[str]] = None,
    ) -> int:
        """
        Insert rows in chunks.

        With ``conflict_keys`` a row colliding on that unique key is skipped.

        Returns:
            Number of rows actually inserted
        """
        if not rows:
            return 0

        inserted = 0
        async with self.database.session() as session:
            for start in range(0, len(rows), self.batch_size):
                chunk = list(rows[start:start + self.batch_size])
                stmt = self._insert(model).values(chunk)
                if conflict_keys:
                    stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
                result = await session.execute(stmt)
                inserted += max(result.rowcount or 0, 0)

        logger.debug("Rows inserted", table=model.__tablename__, offered=len(rows), inserted=inserted)
        return inserted

    async def get(self, model: Type[ModelT], ident: Any) -> Optional[ModelT]:
        async with self.database.session() as session:
            return await session.get(model, ident)

    async def find(
        self,
        model: Type[ModelT],
        *criteria: Any,
        order_by: Optional[Iterable[Any]] = None,
        limit: Optional[int] = None,
        options: Optional[Iterable[Any]] = None,
    ) -> List[ModelT]:
        """Select rows of ``model`` matching every criterion."""
        stmt = select(model).where(*criteria)
        if options:
            stmt = stmt.options(*options)
        if order_by is not None:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.database.session() as session:
            result = await session.scalars(stmt)
            return list(result.all())

    async def find_one(self, model: Type[ModelT], *criteria: Any, order_by: Optional[Iterable[Any]] = None) -> Optional[ModelT]:
        rows = await self.find(model, *criteria, order_by=order_by, limit=1)
        return rows[0] if rows else None

    async def fetch(self, statement: Executable) -> List[Any]:
        """Run an arbitrary select and return its rows."""
        async with self.database.session() as session:
            result = await session.execute(statement)
            return list(result.all())

    async def update(self, model: Type[ModelT], ident: Any, fields: Dict[str, Any]) -> Optional[ModelT]:
        """Update one row by primary key; returns None when it does not exist."""
        async with self.database.session() as session:
            instance = await session.get(model, ident)
            if instance is None:
                return None
            for name, value in fields.items():
                setattr(instance, name, value)
            await session.flush()
            await session.refresh(instance)
            return instance

    async def update_where(self, model: Type[Base], criteria: Sequence[Any], fields: Dict[str, Any]) -> int:
        stmt = update(model).where(*criteria).values(**fields)
        async with self.database.session() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def delete(self, model: Type[Base], *criteria: Any) -> int:
        """Delete rows matching every criterion; returns the deleted count."""
        if not criteria:
            raise ValueError("delete() requires at least one criterion")
        stmt = delete(model).where(*criteria)
        async with self.database.session() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0
