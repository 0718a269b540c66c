"""Options controlling how the extractor uses the engine's compiled cache."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class ExtractorOptions:
    """
    Immutable extractor configuration.

    Attributes:
        use_compiled_cache: Look the plan up in the engine's compiled cache.
            When ``False`` the plan is always compiled directly.
        populate_cache: Store a freshly compiled plan in the engine's
            compiled cache, as a real execution would.
    """

    use_compiled_cache: bool = True
    populate_cache: bool = True

    def with_options(self, **changes: Any) -> ExtractorOptions:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


DEFAULT_OPTIONS = ExtractorOptions()

__all__ = ["DEFAULT_OPTIONS", "ExtractorOptions"]
