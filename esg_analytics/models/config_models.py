from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any, Mapping

"""Config dataclasses for the ESG analytics pipeline.

A dashboard module (water, energy, diversity, ...) is described entirely by a
``ModuleConfig``: how raw columns map onto canonical fields, which of them are
numeric, where the header row lives in an uploaded workbook, and which grouped
series are computed from the resulting records. The loader in
``esg_analytics.config.loader`` builds these from YAML; nothing here performs I/O.
"""

__all__ = [
    "DEFAULT_STRIP_CHARS",
    "DatabaseConfig",
    "DashboardConfig",
    "DerivedField",
    "GroupView",
    "HeaderPolicy",
    "MatchRule",
    "MeasureSpec",
    "ModuleConfig",
    "ModuleQuery",
    "RatioRule",
    "RecordFilters",
    "UploadRoute",
]

# 通貨記号・桁区切り・パーセント
DEFAULT_STRIP_CHARS = ",₹$€£¥%"

HEADER_MODE_FIXED = "fixed"
HEADER_MODE_SCAN = "scan"

SOURCE_API = "api"
SOURCE_FILE = "file"


@dataclass(frozen=True)
class HeaderPolicy:
    """Where the header row sits in an uploaded worksheet.

    ``fixed``: header at ``row_index`` (0-based), data right after it.
    ``scan``: first row within ``scan_rows`` containing every required label.
    """
    mode: str = HEADER_MODE_FIXED
    row_index: int = 4
    scan_rows: int = 10
    required_labels: tuple[str, ...] | None = None  # None -> every field_mapping label


@dataclass(frozen=True)
class RatioRule:
    numerator: str  # sum output name
    denominator: str  # sum output name


@dataclass(frozen=True)
class MatchRule:
    field: str
    equals: str
    case_sensitive: bool = False


@dataclass(frozen=True)
class MeasureSpec:
    """Measures accumulated per group (or across all records for the overview)."""
    sums: Mapping[str, str] = field(default_factory=dict)  # output -> field
    averages: Mapping[str, str] = field(default_factory=dict)  # output -> field
    ratios: Mapping[str, RatioRule] = field(default_factory=dict)
    distinct: Mapping[str, str] = field(default_factory=dict)  # output -> field
    match_counts: Mapping[str, MatchRule] = field(default_factory=dict)
    match_rates: Mapping[str, MatchRule] = field(default_factory=dict)
    count_field: str | None = "count"
    unknown: str = "Unknown"  # distinct counting of blank values

    @property
    def output_names(self) -> list[str]:
        names: list[str] = []
        for group in (
            self.sums, self.averages, self.ratios, self.distinct, self.match_counts, self.match_rates
        ):
            names.extend(group.keys())
        if self.count_field:
            names.append(self.count_field)
        return names


@dataclass(frozen=True)
class GroupView:
    """One chart series: records grouped by ``key`` fields, folded by ``measures``."""
    name: str
    key: tuple[str, ...]
    label: str
    measures: MeasureSpec
    delimiter: str = " "
    unknown: str = "Unknown"
    components: Mapping[str, str] = field(default_factory=dict)  # output -> field
    growth: Mapping[str, str] = field(default_factory=dict)  # output -> sum output
    sort_by: str | None = None
    top_n: int | None = None


@dataclass(frozen=True)
class DerivedField:
    """Field computed per record after coercion.

    op=product: multiply ``fields`` (with ``when_zero`` only when the target is 0)
    op=concat: join text ``fields`` with ``separator``
    op=sum: add numeric ``fields``
    """
    name: str
    op: str
    fields: tuple[str, ...]
    separator: str = " "
    when_zero: bool = False


@dataclass(frozen=True)
class ModuleQuery:
    """Row selection applied by the record source for API-sourced modules."""
    attribute: str | None = None  # exact match on Attribute
    sub_category: str | None = None  # substring match on SubCategory


@dataclass(frozen=True)
class ModuleConfig:
    """Complete, immutable description of one dashboard module."""
    name: str
    title: str
    source: str
    fields: tuple[str, ...] = ()
    field_mapping: Mapping[str, str] = field(default_factory=dict)  # raw label -> canonical key
    numeric_fields: frozenset[str] = frozenset()
    strip_chars: str = DEFAULT_STRIP_CHARS
    header: HeaderPolicy = field(default_factory=HeaderPolicy)
    derived: tuple[DerivedField, ...] = ()
    query: ModuleQuery = field(default_factory=ModuleQuery)
    overview: MeasureSpec = field(default_factory=MeasureSpec)
    views: tuple[GroupView, ...] = ()

    @property
    def canonical_fields(self) -> tuple[str, ...]:
        """Every field a record of this module carries, in declaration order."""
        ordered: dict[str, None] = {}
        for name in self.fields:
            ordered[name] = None
        for key in self.field_mapping.values():
            ordered[key] = None
        for name in sorted(self.numeric_fields):
            ordered[name] = None
        for d in self.derived:
            ordered[d.name] = None
        return tuple(ordered)

    @property
    def required_labels(self) -> tuple[str, ...]:
        if self.header.required_labels is not None:
            return self.header.required_labels
        return tuple(self.field_mapping.keys())

    def view(self, name: str) -> GroupView:
        for v in self.views:
            if v.name == name:
                return v
        raise KeyError(name)


@dataclass(frozen=True)
class RecordFilters:
    """Record-source filters; ``None`` means "All"."""
    year: str | None = None
    month: str | None = None
    business_code: str | None = None
    plant: str | None = None
    department: str | None = None

    @staticmethod
    def from_mapping(raw: Mapping[str, Any] | None) -> RecordFilters:
        raw = raw or {}

        def _clean(key: str) -> str | None:
            value = raw.get(key)
            if value is None:
                return None
            s = str(value).strip()
            if not s or s == "All":
                return None
            return s

        return RecordFilters(
            year=_clean("year"),
            month=_clean("month"),
            business_code=_clean("businessCode"),
            plant=_clean("plant"),
            department=_clean("department"),
        )

    def merged(self, **overrides: str | None) -> RecordFilters:
        """Return a copy with non-None overrides applied ("All" clears a filter)."""
        current = {
            "year": self.year,
            "month": self.month,
            "business_code": self.business_code,
            "plant": self.plant,
            "department": self.department,
        }
        for key, value in overrides.items():
            if value is None:
                continue
            value = value.strip()
            current[key] = None if (not value or value == "All") else value
        return RecordFilters(**current)


@dataclass(frozen=True)
class DatabaseConfig:
    """Record-source connection fallback (environment variables take precedence)."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str = "AttributeDetail"


@dataclass(frozen=True)
class UploadRoute:
    pattern: str  # fnmatch glob on the file name
    module: str


@dataclass(frozen=True)
class DashboardConfig:
    """Root configuration object for a dashboard run."""
    source_directory: str
    uploads: tuple[UploadRoute, ...]
    output_directory: str = "./reports"
    filters: RecordFilters = field(default_factory=RecordFilters)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    modules: Mapping[str, ModuleConfig] = field(default_factory=dict)  # catalog + overrides

    def module_for(self, file_name: str) -> str | None:
        for route in self.uploads:
            if fnmatch(file_name, route.pattern):
                return route.module
        return None
