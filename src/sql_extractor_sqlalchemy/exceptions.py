"""Exceptions for the SQL extractor."""

from __future__ import annotations


class SQLExtractorError(Exception):
    """Root exception for the SQL extractor."""


class InvalidQueryHandleError(SQLExtractorError, ValueError):
    """Raised when the handle is ``None`` or not a recognised query object.

    Usage: This is the only error the extractor surfaces to its callers.
    Every other failure degrades to a fallback tier.
    """

    def __init__(self, handle: object, reason: str | None = None) -> None:
        self.handle = handle
        self.reason = reason
        msg = f"Cannot extract SQL from {type(handle).__name__} handle"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg)


class StructuralMismatchError(SQLExtractorError):
    """Raised when an engine object does not expose an expected member.

    Only the strict reflection helpers raise this; the extractor catches it
    at the tier boundary and moves on to the next fallback.
    """

    def __init__(self, target: object, member: str, reason: str | None = None) -> None:
        self.target_type = type(target).__name__
        self.member = member
        self.reason = reason
        msg = f"{self.target_type} does not expose {member!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


__all__: list[str] = [
    "InvalidQueryHandleError",
    "SQLExtractorError",
    "StructuralMismatchError",
]
