"""Generic repository base for SQLAlchemy 2.x.

This module centralizes persistence-only concerns shared by all repositories:
- Session resolution (injected Unit of Work session or the Flask-scoped one).
- Simple lookups with whitelisted equality filters.
- Bulk conditional ``UPDATE``/``DELETE`` helpers that report affected rows.
- No business logic, no commit/rollback; the Unit of Work owns transactions.

Design decisions
----------------
* Repositories MUST remain thin and persistence-focused:
  - They never implement token policies (rotation, replay handling).
  - They never call commit/rollback.
* Bulk statements are issued with ``synchronize_session=False``; callers
  convert rows to immutable records, so stale identity-map state is never
  read back after a bulk write.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import ColumnElement, Select, delete, func, select, update
from sqlalchemy.orm import InstrumentedAttribute, Session

from authcore.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type

_BULK = {"synchronize_session": False}


class BaseRepository(Generic[E]):
    """Generic, persistence-only repository for a single table.

    Subclasses MUST define:

    * ``model``: the SQLAlchemy mapped class.

    Subclasses MAY override:

    * ``_filterable_fields`` to whitelist equality filters.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """Initialise the repository with an optional SQLAlchemy session.

        :param session: Session shared across the Unit of Work scope.
        :type session: :class:`sqlalchemy.orm.Session` | None
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        """Return the injected session, or the Flask-scoped one."""
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    # ------------------------------ Extensibility ----------------------------

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        """Whitelist mapping of public filter keys to model attributes."""
        return {}

    def _where(self, filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        allowed = self._filterable_fields()
        unknown = [k for k in filters if k not in allowed]
        if unknown:
            raise ValueError(f"Unknown or non-filterable fields: {unknown}")
        return [allowed[k] == v for k, v in filters.items()]

    # --------------------------------- Reads ---------------------------------

    def find_one(self, **filters: Any) -> E | None:
        """Find a single entity by whitelisted equality filters."""
        stmt: Select[Any] = select(self.model).where(*self._where(filters))
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def exists(self, **filters: Any) -> bool:
        stmt: Select[Any] = (
            select(func.count()).select_from(self.model).where(*self._where(filters))
        )
        return bool(self.session.execute(stmt).scalar_one())

    def select_all(self, *criteria: ColumnElement[bool], order_by: Any = None) -> list[E]:
        """Return every entity matching raw SQLAlchemy ``criteria``."""
        stmt: Select[Any] = select(self.model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return cast(list[E], list(self.session.execute(stmt).scalars().all()))

    # -------------------------------- Writes ---------------------------------

    def add(self, instance: E) -> E:
        """Stage a new entity and flush so constraint violations surface here."""
        self.session.add(instance)
        self.session.flush()
        return instance

    def update_where(self, *criteria: ColumnElement[bool], **values: Any) -> int:
        """
        Conditional bulk ``UPDATE``.

        :returns: Number of rows the database reports as changed.
        """
        stmt = update(self.model).where(*criteria).values(**values)
        result = self.session.execute(stmt, execution_options=_BULK)
        return int(getattr(result, "rowcount", 0) or 0)

    def delete_where(self, *criteria: ColumnElement[bool]) -> int:
        """Conditional bulk ``DELETE``. :returns: Rows removed."""
        stmt = delete(self.model).where(*criteria)
        result = self.session.execute(stmt, execution_options=_BULK)
        return int(getattr(result, "rowcount", 0) or 0)
