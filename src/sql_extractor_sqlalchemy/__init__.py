"""Extract the generated SQL and bound values from SQLAlchemy queries."""

from __future__ import annotations

from .config import DEFAULT_OPTIONS, ExtractorOptions
from .exceptions import (
    InvalidQueryHandleError,
    SQLExtractorError,
    StructuralMismatchError,
)
from .extractor import (
    DEFAULT_EXTRACTOR,
    ExtractedSQL,
    ExtractionTier,
    SQLExtractor,
    extract_parameter_values,
    extract_sql,
)
from .handles import UnwrappedQuery, authored_text, unwrap_query
from .reflection import (
    ABSENT,
    ReflectiveAccessor,
    StructuralAccessor,
    is_absent,
)

__all__ = [
    # Extractor
    "SQLExtractor",
    "ExtractedSQL",
    "ExtractionTier",
    "DEFAULT_EXTRACTOR",
    "extract_sql",
    "extract_parameter_values",
    # Configuration
    "ExtractorOptions",
    "DEFAULT_OPTIONS",
    # Handles
    "UnwrappedQuery",
    "unwrap_query",
    "authored_text",
    # Reflection
    "ABSENT",
    "StructuralAccessor",
    "ReflectiveAccessor",
    "is_absent",
    # Exceptions
    "SQLExtractorError",
    "InvalidQueryHandleError",
    "StructuralMismatchError",
]
