"""
Classification of caller-supplied query handles.

A handle is either a legacy ORM :class:`~sqlalchemy.orm.Query` or any
SQLAlchemy :class:`~sqlalchemy.sql.expression.ClauseElement`.  It is
*executable* when a bind source (``Session``, ``Engine`` or ``Connection``)
is known for it, either because the ORM query is attached to a session or
because the caller passed ``bind=`` explicitly.  Only executable handles
can reach the engine's compiled cache; everything else is served from the
authored query text.

An ORM ``Query`` does not execute its public ``statement``: it compiles
``_statement_20()`` (legacy ``AS <table>_<column>`` labels) and passes the
values from ``Query.params()`` alongside it.  Both are captured here so the
extractor compiles what the query itself would send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession
from sqlalchemy.orm import Query, Session, scoped_session
from sqlalchemy.sql.elements import ClauseElement, TextClause

from .exceptions import InvalidQueryHandleError
from .reflection import ABSENT, DEFAULT_ACCESSOR

if TYPE_CHECKING:
    from .reflection import StructuralAccessor

BindSource = Union[Session, scoped_session, Engine, Connection]
AnyBind = Union[BindSource, AsyncSession, AsyncEngine, AsyncConnection]

_BIND_TYPES = (Session, scoped_session, Engine, Connection)


@dataclass(frozen=True)
class UnwrappedQuery:
    """
    A handle reduced to the statement to compile and where to compile it.

    Attributes:
        source: The handle exactly as the caller passed it.
        statement: The SQLAlchemy statement behind the handle.
        bind_source: Session/engine/connection that owns the compiled
            cache, or ``None`` for a pass-through handle.
        params: Values supplied next to the statement at execution time,
            keyed by bind parameter key (``Query.params()``).
    """

    source: Any
    statement: ClauseElement
    bind_source: BindSource | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_executable(self) -> bool:
        return self.bind_source is not None


def unwrap_query(
    handle: Any,
    bind: AnyBind | None = None,
    accessor: StructuralAccessor | None = None,
) -> UnwrappedQuery:
    """
    Reduce *handle* to an :class:`UnwrappedQuery`.

    Args:
        handle: An ORM ``Query`` or a Core/ORM statement.
        bind: Optional session, engine or connection, sync or asyncio.
            Overrides the session an ORM ``Query`` is attached to.  An
            ``AsyncConnection`` that has not been started counts as no bind.
        accessor: How the ORM query's execution statement and parameters
            are read; defaults to a ``ReflectiveAccessor``.

    Raises:
        InvalidQueryHandleError: If *handle* is ``None``, is not a query-like
            object, or *bind* is not a supported bind source.
    """
    if handle is None:
        raise InvalidQueryHandleError(handle, "handle must not be None")
    bind = _sync_bind(bind)
    if bind is not None and not isinstance(bind, _BIND_TYPES):
        raise InvalidQueryHandleError(
            handle, f"unsupported bind {type(bind).__name__}"
        )

    if isinstance(handle, Query):
        accessor = accessor or DEFAULT_ACCESSOR
        return UnwrappedQuery(
            source=handle,
            statement=_orm_statement(handle, accessor),
            bind_source=bind if bind is not None else handle.session,
            params=_orm_params(handle, accessor),
        )

    if isinstance(handle, ClauseElement):
        return UnwrappedQuery(source=handle, statement=handle, bind_source=bind)

    raise InvalidQueryHandleError(handle, "not a SQLAlchemy query or statement")


def _orm_statement(query: Query[Any], accessor: StructuralAccessor) -> ClauseElement:
    """Return the statement *query* compiles when it executes."""
    statement = accessor.try_invoke(query, "_statement_20")
    if isinstance(statement, ClauseElement):
        return statement
    try:
        return query.statement
    except Exception as exc:  # noqa: BLE001 — malformed ORM query
        raise InvalidQueryHandleError(query, str(exc)) from exc


def _orm_params(query: Query[Any], accessor: StructuralAccessor) -> dict[str, Any]:
    params = accessor.try_get_field(query, "_params")
    if params is ABSENT or not params:
        return {}
    return dict(params)


def _sync_bind(bind: Any) -> Any:
    """Return the synchronous facade an asyncio bind proxies to."""
    if isinstance(bind, AsyncSession):
        return bind.sync_session
    if isinstance(bind, AsyncEngine):
        return bind.sync_engine
    if isinstance(bind, AsyncConnection):
        # ``sync_connection`` is None until the connection is started
        return bind.sync_connection
    return bind


def authored_text(unwrapped: UnwrappedQuery) -> str:
    """
    Return the query text as the caller declared it.

    Textual SQL is returned byte-for-byte; every other construct is
    rendered with its own ``__str__``.
    """
    source = unwrapped.source
    if isinstance(source, TextClause):
        return source.text
    return str(source)


__all__ = [
    "AnyBind",
    "BindSource",
    "UnwrappedQuery",
    "authored_text",
    "unwrap_query",
]
