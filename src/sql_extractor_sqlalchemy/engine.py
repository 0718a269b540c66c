"""
Probe points into SQLAlchemy's compilation machinery.

Connections compile a statement through ``ClauseElement._compile_w_cache``:
the statement's cache key (``_generate_cache_key()``) is combined with the
dialect into an entry of the engine's compiled cache, and on a miss the
statement's ``_compiler()`` builds a new :class:`~sqlalchemy.sql.compiler.
Compiled` that is stored under that entry.  The functions below walk the
same path one step at a time so that each step can fail on its own and the
extractor can fall back instead of aborting.

None of these members are public API.  Each is read through a
:class:`~sql_extractor_sqlalchemy.reflection.StructuralAccessor` and a
missing member yields :data:`~sql_extractor_sqlalchemy.reflection.ABSENT`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import compiler as sql_compiler
from sqlalchemy.sql import visitors
from sqlalchemy.sql.compiler import SQLCompiler
from sqlalchemy.sql.elements import BindParameter

from .reflection import ABSENT

if TYPE_CHECKING:
    from collections.abc import MutableMapping

    from sqlalchemy.engine import Dialect
    from sqlalchemy.sql.elements import ClauseElement

    from .handles import BindSource
    from .reflection import StructuralAccessor

logger = logging.getLogger("sql_extractor.engine")


def resolve_engine(
    bind_source: BindSource, statement: ClauseElement, accessor: StructuralAccessor
) -> Any:
    """
    Resolve the ``Engine``/``Connection`` a statement would execute on.

    Sessions are asked through ``get_bind(clause=...)``, which honours
    per-table binds.  Returns ``ABSENT`` for an unbound session.
    """
    if isinstance(bind_source, (Engine, Connection)):
        return bind_source
    return accessor.try_invoke(bind_source, "get_bind", clause=statement)


def execution_options_for(bind: Any, accessor: StructuralAccessor) -> dict[str, Any]:
    """Return the bind's execution options, or an empty dict."""
    options = accessor.try_get_field(bind, "_execution_options")
    if options is ABSENT or options is None:
        return {}
    return dict(options)


def compiled_cache_for(
    bind: Any, accessor: StructuralAccessor
) -> MutableMapping[Any, Any] | None:
    """
    Return the compiled cache the bind would use, or ``None``.

    An explicit ``compiled_cache`` execution option wins over the engine's
    own LRU cache, including an explicit ``None``.  Engines created with
    ``query_cache_size=0`` have no cache at all.
    """
    options = execution_options_for(bind, accessor)
    if "compiled_cache" in options:
        return options["compiled_cache"]  # type: ignore[no-any-return]
    engine = accessor.try_get_field(bind, "engine")
    if engine is ABSENT:
        return None
    cache = accessor.try_get_field(engine, "_compiled_cache")
    if cache is ABSENT:
        return None
    return cache  # type: ignore[no-any-return]


def generate_cache_key(statement: ClauseElement, accessor: StructuralAccessor) -> Any:
    """Return the statement's ``CacheKey``, or ``None`` if it is uncacheable."""
    cache_key = accessor.try_invoke(statement, "_generate_cache_key")
    if cache_key is ABSENT:
        return None
    return cache_key


def _supports_statement_cache(dialect: Dialect, accessor: StructuralAccessor) -> bool:
    supported = accessor.try_get_field(dialect, "_supports_statement_cache")
    return supported is not ABSENT and bool(supported)


def _linting_for(dialect: Dialect, accessor: StructuralAccessor) -> Any:
    linting = accessor.try_get_field(dialect, "compiler_linting")
    warn = accessor.try_get_field(sql_compiler, "WARN_LINTING")
    if linting is ABSENT or warn is ABSENT:
        return ABSENT
    return linting | warn


def build_plan(
    statement: ClauseElement,
    dialect: Dialect,
    cache_key: Any,
    accessor: StructuralAccessor,
    *,
    column_keys: list[str] | None = None,
    schema_translate_map: dict[str | None, str | None] | None = None,
) -> Any:
    """Compile *statement* the way a connection does on a cache miss."""
    kwargs: dict[str, Any] = {
        "cache_key": cache_key,
        "column_keys": list(column_keys or ()),
        "for_executemany": False,
        "schema_translate_map": schema_translate_map,
    }
    linting = _linting_for(dialect, accessor)
    if linting is not ABSENT:
        kwargs["linting"] = linting
    return accessor.try_invoke(statement, "_compiler", dialect, **kwargs)


def resolve_plan(
    statement: ClauseElement,
    dialect: Dialect,
    cache_key: Any,
    cache: MutableMapping[Any, Any] | None,
    accessor: StructuralAccessor,
    *,
    populate_cache: bool = True,
    column_keys: list[str] | None = None,
    schema_translate_map: dict[str | None, str | None] | None = None,
) -> Any:
    """
    Look up the compiled plan for *statement*, building it on a miss.

    The cache entry key mirrors the one connections use for a statement
    executed with *column_keys* as its parameter names (none for a plain
    statement, the sorted ``Query.params()`` keys for an ORM query), so a
    plan compiled by a real execution is found here and a plan built here
    is reused by the next execution.
    Without a cache key, or without a usable cache, the plan is built
    directly and not cached.

    Returns:
        The ``Compiled`` plan, or ``ABSENT`` if it could not be built.
    """
    if (
        cache_key is None
        or cache is None
        or not _supports_statement_cache(dialect, accessor)
    ):
        return build_plan(
            statement,
            dialect,
            cache_key,
            accessor,
            column_keys=column_keys,
            schema_translate_map=schema_translate_map,
        )

    key_tuple = accessor.try_get_field(cache_key, "key")
    if key_tuple is ABSENT:
        return build_plan(
            statement,
            dialect,
            None,
            accessor,
            column_keys=column_keys,
            schema_translate_map=schema_translate_map,
        )

    entry = (
        dialect,
        key_tuple,
        tuple(column_keys or ()),
        bool(schema_translate_map),
        False,
    )
    plan = accessor.try_invoke(cache, "get", entry)
    if plan is not ABSENT and plan is not None:
        logger.debug("Compiled cache hit for %s", type(statement).__name__)
        return plan

    plan = build_plan(
        statement,
        dialect,
        cache_key,
        accessor,
        column_keys=column_keys,
        schema_translate_map=schema_translate_map,
    )
    if plan is not ABSENT and populate_cache:
        accessor.try_invoke(cache, "__setitem__", entry, plan)
        logger.debug("Stored compiled plan for %s", type(statement).__name__)
    return plan


def is_select_plan(plan: Any, accessor: StructuralAccessor) -> bool:
    """Return ``True`` if *plan* is a SQL compiler for a SELECT statement."""
    if not isinstance(plan, SQLCompiler):
        return False
    statement = accessor.try_get_field(plan, "statement")
    if statement is ABSENT:
        return False
    return bool(accessor.try_get_field(statement, "is_select"))


def resolve_interpretation(
    plan: Any,
    cache_key: Any,
    accessor: StructuralAccessor,
    params: dict[str, Any] | None = None,
) -> Any:
    """
    Return the plan's ``ExpandedState`` for this statement's parameters.

    A plan compiled with ``render_postcompile`` already carries one; it is
    reused only if the plan was compiled for this very cache key, because a
    plan shared through the cache holds another statement's values.
    Otherwise the state is built from the plan's parameters, with the values
    extracted from *cache_key* substituted for the cached ones and *params*
    (keyed by bind parameter key) laid over both.
    """
    plan_key = accessor.try_get_field(plan, "cache_key")
    existing = accessor.try_get_field(plan, "_post_compile_expanded_state")
    if existing is not ABSENT and existing is not None:
        if not params and (cache_key is None or plan_key is cache_key):
            return existing

    extracted = None
    if cache_key is not None and plan_key is not ABSENT and plan_key is not None:
        extracted = accessor.try_get_field(cache_key, "bindparams")
        if extracted is ABSENT:
            extracted = None

    values = accessor.try_invoke(
        plan,
        "construct_params",
        params=params or None,
        extracted_parameters=extracted,
    )
    if values is ABSENT:
        return ABSENT
    return accessor.try_invoke(plan, "construct_expanded_state", values)


def statement_sql(interpretation: Any, accessor: StructuralAccessor) -> Any:
    """Return the final SQL string of an ``ExpandedState``, or ``ABSENT``."""
    sql = accessor.try_get_field(interpretation, "statement")
    if isinstance(sql, str) and sql:
        return sql
    return ABSENT


def binding_set(
    statement: ClauseElement, cache_key: Any, accessor: StructuralAccessor
) -> list[BindParameter[Any]]:
    """
    Return the statement's bound parameters in engine traversal order.

    The cache key already lists them; uncacheable statements are walked with
    :func:`sqlalchemy.sql.visitors.iterate` instead.
    """
    if cache_key is not None:
        bindparams = accessor.try_get_field(cache_key, "bindparams")
        if bindparams is not ABSENT and bindparams is not None:
            return list(bindparams)

    seen: set[int] = set()
    found: list[BindParameter[Any]] = []
    for element in visitors.iterate(statement):
        if isinstance(element, BindParameter) and id(element) not in seen:
            seen.add(id(element))
            found.append(element)
    return found


__all__ = [
    "binding_set",
    "build_plan",
    "compiled_cache_for",
    "execution_options_for",
    "generate_cache_key",
    "is_select_plan",
    "resolve_engine",
    "resolve_interpretation",
    "resolve_plan",
    "statement_sql",
]
