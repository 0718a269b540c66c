"""
Optional structural access to undocumented engine internals.

SQLAlchemy's compiled cache, cache keys and compiler state are not part of
its public contract and change shape between releases.  Every read of such
a member goes through a :class:`StructuralAccessor`, which answers with the
:data:`ABSENT` marker instead of raising when the member is missing, is not
callable, or fails.  The rest of the package therefore works on plain
values and never sees ``AttributeError`` from a moved attribute.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from .exceptions import StructuralMismatchError

logger = logging.getLogger("sql_extractor.reflection")


class _Absent:
    """Marker type for a member that could not be reached."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


def is_absent(value: object) -> bool:
    """Return ``True`` if *value* is the :data:`ABSENT` marker."""
    return value is ABSENT


@runtime_checkable
class StructuralAccessor(Protocol):
    """Protocol for reading members of objects with no stable type."""

    def try_get_field(self, obj: object, name: str) -> Any:
        """Return ``obj.<name>`` or :data:`ABSENT`."""
        ...

    def try_invoke(self, obj: object, name: str, *args: Any, **kwargs: Any) -> Any:
        """Return ``obj.<name>(*args, **kwargs)`` or :data:`ABSENT`."""
        ...


class ReflectiveAccessor:
    """
    :class:`StructuralAccessor` backed by ``getattr``.

    Misses are logged at DEBUG and never raised.
    """

    def try_get_field(self, obj: object, name: str) -> Any:
        try:
            return getattr(obj, name)
        except Exception as exc:  # noqa: BLE001 — properties may raise anything
            logger.debug(
                "Field %s not readable on %s: %s", name, type(obj).__name__, exc
            )
            return ABSENT

    def try_invoke(self, obj: object, name: str, *args: Any, **kwargs: Any) -> Any:
        method = self.try_get_field(obj, name)
        if method is ABSENT:
            return ABSENT
        if not callable(method):
            logger.debug(
                "Member %s on %s is not callable", name, type(obj).__name__
            )
            return ABSENT
        try:
            return method(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "Call to %s.%s failed: %s", type(obj).__name__, name, exc
            )
            return ABSENT


def require_field(accessor: StructuralAccessor, obj: object, name: str) -> Any:
    """
    Strict variant of :meth:`StructuralAccessor.try_get_field`.

    Raises:
        StructuralMismatchError: If the field cannot be read.
    """
    value = accessor.try_get_field(obj, name)
    if value is ABSENT:
        raise StructuralMismatchError(obj, name)
    return value


def require_invoke(
    accessor: StructuralAccessor, obj: object, name: str, *args: Any, **kwargs: Any
) -> Any:
    """
    Strict variant of :meth:`StructuralAccessor.try_invoke`.

    Raises:
        StructuralMismatchError: If the method is missing or fails.
    """
    value = accessor.try_invoke(obj, name, *args, **kwargs)
    if value is ABSENT:
        raise StructuralMismatchError(obj, name, "method missing or failed")
    return value


DEFAULT_ACCESSOR = ReflectiveAccessor()

__all__ = [
    "ABSENT",
    "DEFAULT_ACCESSOR",
    "ReflectiveAccessor",
    "StructuralAccessor",
    "is_absent",
    "require_field",
    "require_invoke",
]
