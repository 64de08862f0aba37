from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

"""CanonicalRecord model.

One record per accepted data row (file mode) or per source object (API mode),
keyed by canonical field names. Values are numbers for the module's numeric
fields and trimmed strings otherwise.
"""

__all__ = [
    "CanonicalRecord",
]


@dataclass(frozen=True)
class CanonicalRecord(Mapping[str, Any]):
    """Immutable canonical record.

    ``row_number`` is the 1-based worksheet row (file mode) or the 1-based
    position in the source array (API mode). ``coercion_fallbacks`` counts the
    non-blank cells of this row that could not be parsed and became 0.
    """
    row_number: int
    values: Mapping[str, Any] = field(default_factory=dict)
    coercion_fallbacks: int = 0

    def __post_init__(self) -> None:
        # 呼び出し側の dict を共有しない
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.values)
