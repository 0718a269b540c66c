"""
SQLExtractor: the SQL a SQLAlchemy query will actually send to the database.

``str(stmt)`` renders a statement with the default dialect and leaves
expanding parameters as ``__[POSTCOMPILE_...]`` placeholders.  The extractor
instead follows the path a connection takes when it executes the statement:

1. **Handle gate** - only a handle with a known bind source (an ORM
   ``Query`` attached to a session, or any statement passed with ``bind=``)
   can be compiled for a real dialect.  Anything else returns its authored
   text.
2. **Plan lookup** - the compiled plan is resolved from the engine's
   compiled cache by the statement's cache key, and compiled and stored on a
   miss.  Uncacheable statements are compiled directly.
3. **Plan gate** - only SELECT plans are expanded.  Other plans (UPDATE,
   DELETE, textual SQL) return the authored text.
4. **Interpretation** - the plan's ``ExpandedState`` for this statement's
   parameter values is reused or built, and its SQL string is returned.

Every step reads engine internals through a
:class:`~sql_extractor_sqlalchemy.reflection.StructuralAccessor`; a missing
member at any step degrades to the authored text.  The only error raised
to callers is :class:`~sql_extractor_sqlalchemy.exceptions.InvalidQueryHandleError`.

Example::

    query = session.query(Person).filter(Person.id.in_([1, 2, 3]))
    SQLExtractor.from_query(query)
    # 'SELECT person.id AS person_id, ... FROM person WHERE person.id IN (?, ?, ?)'
    SQLExtractor.get_sql_parameter_values(query)
    # [[1, 2, 3]]
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .config import DEFAULT_OPTIONS, ExtractorOptions
from .engine import (
    binding_set,
    compiled_cache_for,
    execution_options_for,
    generate_cache_key,
    is_select_plan,
    resolve_engine,
    resolve_interpretation,
    resolve_plan,
    statement_sql,
)
from .exceptions import StructuralMismatchError
from .handles import authored_text, unwrap_query
from .reflection import ABSENT, DEFAULT_ACCESSOR, require_field

if TYPE_CHECKING:
    from .handles import AnyBind, UnwrappedQuery
    from .reflection import StructuralAccessor

logger = logging.getLogger("sql_extractor.extractor")


class ExtractionTier(str, enum.Enum):
    """Which step produced the extracted SQL."""

    COMPILED = "compiled"
    NON_SELECT_PLAN = "non_select_plan"
    UNRESOLVED_PLAN = "unresolved_plan"
    AUTHORED_TEXT = "authored_text"

    @property
    def is_fallback(self) -> bool:
        return self is not ExtractionTier.COMPILED


@dataclass(frozen=True)
class ExtractedSQL:
    """
    Result of :meth:`SQLExtractor.extract`.

    Attributes:
        sql: The compiled SQL, or the authored query text on fallback.
        parameters: Bound parameter values (see
            :meth:`SQLExtractor.parameter_values` for ordering).
        tier: The step that produced ``sql``.
    """

    sql: str
    parameters: list[Any] = field(default_factory=list)
    tier: ExtractionTier = ExtractionTier.COMPILED


class SQLExtractor:
    """
    Extracts SQL text and bound values from SQLAlchemy queries.

    Parameters
    ----------
    options:
        Cache behaviour; defaults to :data:`~sql_extractor_sqlalchemy.config.
        DEFAULT_OPTIONS`.
    accessor:
        How engine internals are read; defaults to a
        :class:`~sql_extractor_sqlalchemy.reflection.ReflectiveAccessor`.
    """

    def __init__(
        self,
        options: ExtractorOptions | None = None,
        accessor: StructuralAccessor | None = None,
    ) -> None:
        self.options = options or DEFAULT_OPTIONS
        self.accessor = accessor or DEFAULT_ACCESSOR

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sql(self, query: Any, *, bind: AnyBind | None = None) -> str:
        """
        Return the SQL *query* sends to the database.

        Falls back to the authored query text when the query is not bound,
        is not a SELECT, or the engine internals cannot be reached.

        Raises:
            InvalidQueryHandleError: If *query* is ``None`` or not a query.
        """
        sql, _ = self._resolve_sql(unwrap_query(query, bind, self.accessor))
        return sql

    def parameter_values(
        self, query: Any, *, bind: AnyBind | None = None
    ) -> list[Any]:
        """
        Return the values bound to *query*'s parameters.

        For a bound query the values follow the engine's own traversal of
        the statement (its cache key), with ``Query.params()`` values
        substituted by key.  That traversal is not the placeholder order of
        the compiled SQL: clauses such as HAVING and ORDER BY are visited
        before GROUP BY.  For an unbound query the values come from the
        default-dialect compilation and no order is promised.

        Raises:
            InvalidQueryHandleError: If *query* is ``None`` or not a query.
        """
        return self._resolve_parameters(unwrap_query(query, bind, self.accessor))

    def extract(self, query: Any, *, bind: AnyBind | None = None) -> ExtractedSQL:
        """Return SQL, parameter values and the tier that produced the SQL."""
        unwrapped = unwrap_query(query, bind, self.accessor)
        sql, tier = self._resolve_sql(unwrapped)
        return ExtractedSQL(
            sql=sql,
            parameters=self._resolve_parameters(unwrapped),
            tier=tier,
        )

    @staticmethod
    def from_query(query: Any, *, bind: AnyBind | None = None) -> str:
        """Shortcut for :meth:`sql` on the default extractor."""
        return DEFAULT_EXTRACTOR.sql(query, bind=bind)

    @staticmethod
    def get_sql_parameter_values(
        query: Any, *, bind: AnyBind | None = None
    ) -> list[Any]:
        """Shortcut for :meth:`parameter_values` on the default extractor."""
        return DEFAULT_EXTRACTOR.parameter_values(query, bind=bind)

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    def _resolve_sql(self, unwrapped: UnwrappedQuery) -> tuple[str, ExtractionTier]:
        if not unwrapped.is_executable:
            logger.debug(
                "%s has no bind; returning authored text",
                type(unwrapped.source).__name__,
            )
            return authored_text(unwrapped), ExtractionTier.AUTHORED_TEXT

        try:
            return self._compiled_sql(unwrapped)
        except StructuralMismatchError as exc:
            logger.debug(
                "Falling back to authored text for %s: %s",
                type(unwrapped.source).__name__,
                exc,
            )
            return authored_text(unwrapped), ExtractionTier.UNRESOLVED_PLAN

    def _compiled_sql(self, unwrapped: UnwrappedQuery) -> tuple[str, ExtractionTier]:
        accessor = self.accessor
        statement = unwrapped.statement

        bind = resolve_engine(unwrapped.bind_source, statement, accessor)
        if bind is ABSENT:
            raise StructuralMismatchError(
                unwrapped.bind_source, "get_bind", "no bind configured"
            )
        dialect = require_field(accessor, bind, "dialect")

        cache_key = generate_cache_key(statement, accessor)
        cache = (
            compiled_cache_for(bind, accessor)
            if self.options.use_compiled_cache
            else None
        )
        plan = resolve_plan(
            statement,
            dialect,
            cache_key,
            cache,
            accessor,
            populate_cache=self.options.populate_cache,
            column_keys=sorted(unwrapped.params),
            schema_translate_map=execution_options_for(bind, accessor).get(
                "schema_translate_map"
            ),
        )
        if plan is ABSENT:
            raise StructuralMismatchError(statement, "_compiler", "plan not built")

        if not is_select_plan(plan, accessor):
            logger.debug(
                "%s is not a SELECT plan; returning authored text",
                type(plan).__name__,
            )
            return authored_text(unwrapped), ExtractionTier.NON_SELECT_PLAN

        interpretation = resolve_interpretation(
            plan, cache_key, accessor, unwrapped.params
        )
        if interpretation is ABSENT:
            raise StructuralMismatchError(plan, "construct_expanded_state")

        sql = statement_sql(interpretation, accessor)
        if sql is ABSENT:
            raise StructuralMismatchError(interpretation, "statement")
        return sql, ExtractionTier.COMPILED

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def _resolve_parameters(self, unwrapped: UnwrappedQuery) -> list[Any]:
        if unwrapped.is_executable:
            cache_key = generate_cache_key(unwrapped.statement, self.accessor)
            overlay = unwrapped.params
            return [
                overlay[binding.key]
                if binding.key in overlay
                else binding.effective_value
                for binding in binding_set(
                    unwrapped.statement, cache_key, self.accessor
                )
            ]
        return self._public_parameters(unwrapped)

    def _public_parameters(self, unwrapped: UnwrappedQuery) -> list[Any]:
        # Compiled.params is keyed by name; its order is not a positional
        # contract and may differ between SQLAlchemy releases.
        compiled = self.accessor.try_invoke(unwrapped.statement, "compile")
        if compiled is ABSENT:
            return []
        params = self.accessor.try_get_field(compiled, "params")
        if params is ABSENT or not params:
            return []
        overlay = unwrapped.params
        return [overlay.get(name, value) for name, value in params.items()]


DEFAULT_EXTRACTOR = SQLExtractor()


def extract_sql(query: Any, *, bind: AnyBind | None = None) -> str:
    """Return the SQL of *query* using the default extractor."""
    return DEFAULT_EXTRACTOR.sql(query, bind=bind)


def extract_parameter_values(
    query: Any, *, bind: AnyBind | None = None
) -> list[Any]:
    """Return the bound values of *query* using the default extractor."""
    return DEFAULT_EXTRACTOR.parameter_values(query, bind=bind)


__all__ = [
    "DEFAULT_EXTRACTOR",
    "ExtractedSQL",
    "ExtractionTier",
    "SQLExtractor",
    "extract_parameter_values",
    "extract_sql",
]
