"""Tests for the compiled-cache and compiler probes in ``engine``."""

from __future__ import annotations

from typing import Any

from conftest import Person
from sqlalchemy import bindparam, create_engine, select, update
from sqlalchemy.orm import Session
from sqlalchemy.schema import CreateTable
from sqlalchemy.sql.compiler import SQLCompiler

from sql_extractor_sqlalchemy.engine import (
    binding_set,
    compiled_cache_for,
    generate_cache_key,
    is_select_plan,
    resolve_engine,
    resolve_interpretation,
    resolve_plan,
    statement_sql,
)
from sql_extractor_sqlalchemy.reflection import ABSENT, ReflectiveAccessor

accessor = ReflectiveAccessor()


# ---------------------------------------------------------------------------
# Binds and caches
# ---------------------------------------------------------------------------


def test_resolve_engine_from_session(session: Session, engine: Any) -> None:
    assert resolve_engine(session, select(Person), accessor) is engine


def test_resolve_engine_passes_engine_through(engine: Any) -> None:
    assert resolve_engine(engine, select(Person), accessor) is engine


def test_resolve_engine_unbound_session() -> None:
    with Session() as sess:
        assert resolve_engine(sess, select(Person), accessor) is ABSENT


def test_compiled_cache_is_engine_lru(engine: Any) -> None:
    assert compiled_cache_for(engine, accessor) is engine._compiled_cache


def test_compiled_cache_execution_option_wins(engine: Any) -> None:
    private: dict[Any, Any] = {}
    assert compiled_cache_for(
        engine.execution_options(compiled_cache=private), accessor
    ) is private
    assert compiled_cache_for(
        engine.execution_options(compiled_cache=None), accessor
    ) is None


def test_compiled_cache_disabled_engine() -> None:
    eng = create_engine("sqlite://", query_cache_size=0)
    try:
        assert compiled_cache_for(eng, accessor) is None
    finally:
        eng.dispose()


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def test_resolve_plan_builds_and_stores(engine: Any) -> None:
    stmt = select(Person).where(Person.id == 1)
    cache_key = generate_cache_key(stmt, accessor)
    cache: dict[Any, Any] = {}

    plan = resolve_plan(stmt, engine.dialect, cache_key, cache, accessor)

    assert isinstance(plan, SQLCompiler)
    assert list(cache.values()) == [plan]
    assert resolve_plan(stmt, engine.dialect, cache_key, cache, accessor) is plan


def test_resolve_plan_without_populating(engine: Any) -> None:
    stmt = select(Person)
    cache: dict[Any, Any] = {}

    plan = resolve_plan(
        stmt,
        engine.dialect,
        generate_cache_key(stmt, accessor),
        cache,
        accessor,
        populate_cache=False,
    )

    assert isinstance(plan, SQLCompiler)
    assert cache == {}


def test_resolve_plan_without_cache_key(engine: Any) -> None:
    cache: dict[Any, Any] = {}
    plan = resolve_plan(select(Person), engine.dialect, None, cache, accessor)

    assert isinstance(plan, SQLCompiler)
    assert cache == {}


def test_resolve_plan_keys_entry_by_column_keys(engine: Any) -> None:
    stmt = select(Person).where(Person.name == bindparam("name"))
    cache_key = generate_cache_key(stmt, accessor)
    cache: dict[Any, Any] = {}

    plain = resolve_plan(stmt, engine.dialect, cache_key, cache, accessor)
    keyed = resolve_plan(
        stmt, engine.dialect, cache_key, cache, accessor, column_keys=["name"]
    )

    assert keyed is not plain
    assert sorted(entry[2] for entry in cache) == [(), ("name",)]


def test_is_select_plan(engine: Any) -> None:
    dialect = engine.dialect
    assert is_select_plan(select(Person).compile(dialect=dialect), accessor)
    assert not is_select_plan(
        update(Person).values(name="x").compile(dialect=dialect), accessor
    )
    assert not is_select_plan(
        CreateTable(Person.__table__).compile(dialect=dialect), accessor
    )
    assert not is_select_plan(object(), accessor)


# ---------------------------------------------------------------------------
# Interpretation
# ---------------------------------------------------------------------------


def test_interpretation_expands_in_list(engine: Any) -> None:
    stmt = select(Person.id).where(Person.id.in_([1, 2]))
    cache_key = generate_cache_key(stmt, accessor)
    plan = resolve_plan(stmt, engine.dialect, cache_key, None, accessor)

    interpretation = resolve_interpretation(plan, cache_key, accessor)

    assert statement_sql(interpretation, accessor) == (
        "SELECT person.id \nFROM person \nWHERE person.id IN (?, ?)"
    )


def test_interpretation_applies_params_overlay(engine: Any) -> None:
    stmt = select(Person.id).where(Person.id.in_(bindparam("ids", expanding=True)))
    cache_key = generate_cache_key(stmt, accessor)
    plan = resolve_plan(stmt, engine.dialect, cache_key, None, accessor)

    interpretation = resolve_interpretation(
        plan, cache_key, accessor, {"ids": [7, 8, 9]}
    )

    assert statement_sql(interpretation, accessor) == (
        "SELECT person.id \nFROM person \nWHERE person.id IN (?, ?, ?)"
    )
    assert list(interpretation.parameters.values()) == [7, 8, 9]


def test_statement_sql_rejects_empty() -> None:
    class Blank:
        statement = ""

    assert statement_sql(Blank(), accessor) is ABSENT
    assert statement_sql(object(), accessor) is ABSENT


# ---------------------------------------------------------------------------
# Binding set
# ---------------------------------------------------------------------------


def test_binding_set_from_cache_key() -> None:
    stmt = select(Person).where(Person.id == 3, Person.name == "c")
    cache_key = generate_cache_key(stmt, accessor)

    values = [b.effective_value for b in binding_set(stmt, cache_key, accessor)]

    assert values == [3, "c"]


def test_binding_set_without_cache_key() -> None:
    stmt = select(Person).where(Person.id == 3, Person.name == "c")

    values = [b.effective_value for b in binding_set(stmt, None, accessor)]

    assert sorted(repr(v) for v in values) == ["'c'", "3"]
