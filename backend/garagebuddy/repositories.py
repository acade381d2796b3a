"""Generic repository over the SQLModel async session.

`Repository` is the contract every data-access caller depends on;
`SQLModelRepository` binds it to one `AsyncSession` and one table model.

Mutating operations (`add`, `update`, `delete` and their range variants)
only schedule work in the session. Nothing reaches the store until
`save_changes` commits the whole unit of work; a failing commit is rolled
back as a whole and the driver error is re-raised unchanged.

Read paths accept `readonly=True`: the returned instances are not tracked
by the session, so later changes to them are ignored by `save_changes`.
Instances the session was already tracking stay tracked, with their
scheduled work intact; the caller gets a detached copy of those instead.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Generic, Iterable, List, Optional, Set, Type, TypeVar

from sqlalchemy import func, inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.state import InstanceState
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .constants import ERROR_TABLE_NAME_REQUIRED
from .errors import InvalidArgumentError, NotFoundError, UnsupportedDialectError
from .models import AuditedModel, as_utc, utcnow

logger = logging.getLogger(__name__)

TEntity = TypeVar("TEntity", bound=AuditedModel)
TKey = TypeVar("TKey")


class Repository(ABC, Generic[TEntity, TKey]):
    """CRUD contract for one entity type keyed by `TKey`."""

    @abstractmethod
    async def all(self, search: Any = None, readonly: bool = False, order_by: Any = None) -> List[TEntity]:
        """Return every row, or the rows matching the boolean expression `search`.

        `order_by` is a column expression or a tuple of them.
        """

    @abstractmethod
    async def first(self, search: Any = None, readonly: bool = False, order_by: Any = None) -> Optional[TEntity]:
        """Return the first row matching `search` in `order_by` order, or None."""

    @abstractmethod
    async def any(self, search: Any = None) -> bool:
        """Return True if at least one row (matching `search`) exists."""

    @abstractmethod
    async def count(self, search: Any = None) -> int:
        """Return the number of rows (matching `search`)."""

    @abstractmethod
    async def find(self, key: TKey, readonly: bool = False) -> TEntity:
        """Return the row with primary key `key` or raise NotFoundError."""

    @abstractmethod
    def add(self, entity: TEntity) -> InstanceState:
        """Stamp `created_on` and schedule an insert."""

    @abstractmethod
    def add_range(self, entities: Iterable[TEntity]) -> None:
        """Schedule inserts for `entities` in input order."""

    @abstractmethod
    def update(self, entity: TEntity) -> None:
        """Attach if needed, stamp `modified_on` and schedule a full-row update."""

    @abstractmethod
    async def update_by_key(self, key: TKey) -> TEntity:
        """Find the row by key then `update` it."""

    @abstractmethod
    def update_range(self, entities: Iterable[TEntity]) -> None:
        """`update` each entity in input order."""

    @abstractmethod
    async def delete(self, entity: TEntity) -> None:
        """Attach if needed and schedule removal."""

    @abstractmethod
    async def delete_by_key(self, key: TKey) -> None:
        """Find the row by key then `delete` it."""

    @abstractmethod
    async def delete_range(self, entities: Iterable[TEntity]) -> None:
        """`delete` each entity in input order."""

    @abstractmethod
    def detach(self, entity: TEntity) -> InstanceState:
        """Stop tracking `entity` without scheduling any store mutation."""

    @abstractmethod
    async def save_changes(self) -> int:
        """Commit every pending change as one unit and return the rows written."""

    @abstractmethod
    async def truncate(self, table: str) -> None:
        """Remove every row of `table` and restart its identity sequence."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying session. Safe to call more than once."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class SQLModelRepository(Repository[TEntity, TKey]):
    """`Repository` implementation over a SQLModel `AsyncSession`.

    The repository does not create the session; several repositories
    usually share one session so that a single `save_changes` commits the
    work scheduled through all of them.
    """

    def __init__(self, session: AsyncSession, model: Type[TEntity]):
        if session is None:
            raise InvalidArgumentError("session")
        if model is None:
            raise InvalidArgumentError("model")
        self.session = session
        self.model = model
        self._closed = False

    @property
    def entity_name(self) -> str:
        return self.model.__name__.lower()

    def query(self, search: Any = None, order_by: Any = None):
        """Return a `select` over the model, filtered by `search` and sorted by `order_by` if given."""
        stmt = select(self.model)
        if search is not None:
            stmt = stmt.where(search)
        if order_by is not None:
            if not isinstance(order_by, (list, tuple)):
                order_by = (order_by,)
            stmt = stmt.order_by(*order_by)
        return stmt

    async def all(self, search: Any = None, readonly: bool = False, order_by: Any = None) -> List[TEntity]:
        tracked = self._tracked() if readonly else None
        result = await self.session.exec(self.query(search, order_by))
        entities = list(result.all())
        if readonly:
            entities = [self._untracked(entity, tracked) for entity in entities]
        return entities

    async def first(self, search: Any = None, readonly: bool = False, order_by: Any = None) -> Optional[TEntity]:
        tracked = self._tracked() if readonly else None
        result = await self.session.exec(self.query(search, order_by).limit(1))
        entity = result.first()
        if entity is not None and readonly:
            entity = self._untracked(entity, tracked)
        return entity

    async def any(self, search: Any = None) -> bool:
        pk = inspect(self.model).primary_key[0]
        stmt = select(pk)
        if search is not None:
            stmt = stmt.where(search)
        result = await self.session.exec(stmt.limit(1))
        return result.first() is not None

    async def count(self, search: Any = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        if search is not None:
            stmt = stmt.where(search)
        result = await self.session.exec(stmt)
        return int(result.one())

    async def find(self, key: TKey, readonly: bool = False) -> TEntity:
        if key is None:
            raise InvalidArgumentError("id")
        tracked = self._tracked() if readonly else None
        entity = await self.session.get(self.model, key)
        if entity is None:
            raise NotFoundError(self.entity_name, key)
        if readonly:
            entity = self._untracked(entity, tracked)
        return entity

    def add(self, entity: TEntity) -> InstanceState:
        state = inspect(entity)
        if state.has_identity:
            raise InvalidArgumentError("entity", f"{self.entity_name} is already persisted; use update()")
        entity.created_on = utcnow()
        entity.modified_on = None
        self.session.add(entity)
        return state

    def add_range(self, entities: Iterable[TEntity]) -> None:
        for entity in entities:
            self.add(entity)

    def update(self, entity: TEntity) -> None:
        self._attach(entity)
        entity.modified_on = self._next_modified_on(entity)
        self._mark_all_modified(entity)

    async def update_by_key(self, key: TKey) -> TEntity:
        entity = await self.find(key)
        self.update(entity)
        return entity

    def update_range(self, entities: Iterable[TEntity]) -> None:
        for entity in entities:
            self.update(entity)

    async def delete(self, entity: TEntity) -> None:
        state = inspect(entity)
        if state.pending:
            # never flushed: dropping it cancels the scheduled insert
            self.session.expunge(entity)
            return
        self._attach(entity)
        await self.session.delete(entity)

    async def delete_by_key(self, key: TKey) -> None:
        entity = await self.find(key)
        await self.delete(entity)

    async def delete_range(self, entities: Iterable[TEntity]) -> None:
        for entity in list(entities):
            await self.delete(entity)

    def detach(self, entity: TEntity) -> InstanceState:
        if entity in self.session:
            self.session.expunge(entity)
        return inspect(entity)

    async def save_changes(self) -> int:
        affected = self._pending_count()
        try:
            await self.session.commit()
        except Exception:
            logger.exception("commit of %d pending change(s) failed; rolling back", affected)
            await self.session.rollback()
            raise
        return affected

    async def truncate(self, table: str) -> None:
        # `table` is interpolated verbatim: only pass trusted, hard-coded names.
        if table is None or not table.strip():
            raise InvalidArgumentError("table", ERROR_TABLE_NAME_REQUIRED)
        engine = self.session.bind
        if isinstance(engine, AsyncConnection):
            engine = engine.engine
        dialect = engine.dialect.name
        if dialect not in ("postgresql", "sqlite"):
            raise UnsupportedDialectError(dialect, "truncate")
        logger.warning("truncating table %s (%s)", table, dialect)
        # own connection and transaction: work pending in the session is left alone
        async with engine.begin() as conn:
            # DELETE rather than TRUNCATE: TRUNCATE waits on the session's own read locks
            await conn.execute(text(f"DELETE FROM {table}"))
            if dialect == "postgresql":
                await conn.execute(
                    text(
                        "SELECT setval(seq::regclass, 1, false) "
                        "FROM pg_get_serial_sequence(:name, 'id') AS seq WHERE seq IS NOT NULL"
                    ),
                    {"name": table},
                )
            else:
                has_sequence = await conn.execute(
                    text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'")
                )
                if has_sequence.first() is not None:
                    await conn.execute(text("DELETE FROM sqlite_sequence WHERE name = :name"), {"name": table})
        for obj in list(self.session.identity_map.values()):
            if inspect(obj).mapper.local_table.name == table:
                self.session.expunge(obj)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.session.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _attach(self, entity: TEntity) -> None:
        """Bring an untracked entity with a key into the session as persistent."""
        state = inspect(entity)
        if state.transient:
            if any(value is None for value in state.mapper.primary_key_from_instance(entity)):
                raise InvalidArgumentError("entity", f"{self.entity_name} has no key and cannot be attached")
            make_transient_to_detached(entity)
        if state.detached:
            self.session.add(entity)

    def _mark_all_modified(self, entity: TEntity) -> None:
        state = inspect(entity)
        for prop in state.mapper.column_attrs:
            # created_on is written once, by add()
            if prop.key == "created_on" or prop.key not in state.dict:
                continue
            if any(column.primary_key for column in prop.columns):
                continue
            flag_modified(entity, prop.key)

    @staticmethod
    def _next_modified_on(entity: TEntity) -> datetime:
        stamp = utcnow()
        previous = as_utc(entity.modified_on)
        if previous is not None and stamp <= previous:
            stamp = previous + timedelta(microseconds=1)
        return stamp

    def _tracked(self) -> Set[int]:
        return {id(obj) for obj in self.session.identity_map.values()}

    def _untracked(self, entity: TEntity, tracked: Set[int]) -> TEntity:
        """Hand out `entity` without the session tracking it.

        An instance loaded by this read is expunged. One the session was
        already tracking keeps its scheduled work, so a detached copy of
        its current column values is returned instead.
        """
        if id(entity) not in tracked:
            self.session.expunge(entity)
            return entity
        state = inspect(entity)
        values = {prop.key: state.dict[prop.key] for prop in state.mapper.column_attrs if prop.key in state.dict}
        copy = self.model(**values)
        make_transient_to_detached(copy)
        return copy

    def _pending_count(self) -> int:
        dirty = sum(1 for obj in self.session.dirty if self.session.is_modified(obj))
        return len(self.session.new) + dirty + len(self.session.deleted)
