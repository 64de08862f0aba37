from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..models.config_models import ModuleConfig
from .coercion import coerce_text, parse_numeric


class FieldMapper:
    """Translate raw column labels into canonical keys and coerce their values.

    Lookup is exact and case-sensitive: a header must match the source-system
    spelling including punctuation, otherwise the column is ignored.
    """

    def __init__(
        self,
        mapping: Mapping[str, str],
        numeric_fields: frozenset[str] = frozenset(),
        strip_chars: str | None = None,
    ) -> None:
        self._mapping = dict(mapping)
        self.numeric_fields = frozenset(numeric_fields)
        self.strip_chars = strip_chars

    @classmethod
    def for_module(cls, module: ModuleConfig) -> FieldMapper:
        return cls(module.field_mapping, module.numeric_fields, module.strip_chars)

    def map_header(self, label: Any) -> str | None:
        if not isinstance(label, str):
            return None
        return self._mapping.get(label)

    def column_keys(self, header_row: Sequence[Any]) -> list[tuple[int, str]]:
        """(column index, canonical key) for every mapped header cell, left to right."""
        out: list[tuple[int, str]] = []
        for idx, label in enumerate(header_row):
            key = self.map_header(label)
            if key is not None:
                out.append((idx, key))
        return out

    def missing_labels(self, header_row: Sequence[Any]) -> list[str]:
        present = {c for c in header_row if isinstance(c, str)}
        return [label for label in self._mapping if label not in present]

    def unmapped_labels(self, header_row: Sequence[Any]) -> list[str]:
        return [c for c in header_row if isinstance(c, str) and c and c not in self._mapping]

    def coerce(self, key: str, raw: Any) -> tuple[Any, bool]:
        """Coerce ``raw`` for canonical ``key``; returns (value, numeric_fallback)."""
        if key in self.numeric_fields:
            if self.strip_chars is None:
                return parse_numeric(raw)
            return parse_numeric(raw, self.strip_chars)
        return coerce_text(raw), False

    def default(self, key: str) -> Any:
        return 0 if key in self.numeric_fields else ""
