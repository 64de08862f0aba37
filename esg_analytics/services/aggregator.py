from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from ..models.config_models import GroupView, MatchRule, MeasureSpec
from .coercion import coerce_text, is_blank

"""Grouping aggregator.

Records are folded into ``GroupSummary`` buckets keyed by a string derived
from one or more fields. Buckets keep first-seen order, and the overview
totals plus every configured view are accumulated in a single linear scan.

Blank key components become a literal (``Unknown`` by default) so incomplete
rows still contribute to totals. Non-numeric or NaN measure values count as 0.
"""

__all__ = [
    "GroupSummary",
    "aggregate",
    "field_key",
    "summarize",
    "top_n",
]

KeyFn = Callable[[Mapping[str, Any]], str]


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and math.isnan(value):
        return 0
    return value


def _matches(record: Mapping[str, Any], rule: MatchRule) -> bool:
    text = coerce_text(record.get(rule.field))
    if rule.case_sensitive:
        return text == rule.equals
    return text.lower() == rule.equals.lower()


def _text_or(value: Any, unknown: str) -> str:
    text = coerce_text(value)
    return text if text else unknown


class GroupSummary:
    """Running totals for one grouping key.

    Mutated by ``add`` during a pass, then frozen: ``measures`` is computed
    once on ``freeze`` and any later ``add`` raises ``RuntimeError``.
    """

    def __init__(self, key: str, spec: MeasureSpec, components: Mapping[str, Any] | None = None) -> None:
        self.key = key
        self.spec = spec
        self.components: dict[str, Any] = dict(components or {})
        self.count = 0
        self._sums: dict[str, float] = {name: 0 for name in spec.sums}
        self._avg_totals: dict[str, float] = {name: 0 for name in spec.averages}
        self._distinct: dict[str, set[str]] = {name: set() for name in spec.distinct}
        self._match_counts: dict[str, int] = {name: 0 for name in spec.match_counts}
        self._rate_hits: dict[str, int] = {name: 0 for name in spec.match_rates}
        self._frozen: dict[str, float] | None = None

    def add(self, record: Mapping[str, Any]) -> None:
        if self._frozen is not None:
            raise RuntimeError(f"group '{self.key}' is frozen")
        spec = self.spec
        self.count += 1
        for name, field in spec.sums.items():
            self._sums[name] += _number(record.get(field))
        for name, field in spec.averages.items():
            self._avg_totals[name] += _number(record.get(field))
        for name, field in spec.distinct.items():
            self._distinct[name].add(_text_or(record.get(field), spec.unknown))
        for name, rule in spec.match_counts.items():
            if _matches(record, rule):
                self._match_counts[name] += 1
        for name, rule in spec.match_rates.items():
            if _matches(record, rule):
                self._rate_hits[name] += 1

    def sum(self, name: str) -> float:
        return self._sums.get(name, 0)

    def _compute(self) -> dict[str, float]:
        spec = self.spec
        out: dict[str, float] = dict(self._sums)
        for name, total in self._avg_totals.items():
            out[name] = total / self.count if self.count else 0
        for name, rule in spec.ratios.items():
            denominator = self._sums.get(rule.denominator, 0)
            out[name] = self._sums.get(rule.numerator, 0) / denominator if denominator else 0
        for name, values in self._distinct.items():
            out[name] = len(values)
        out.update(self._match_counts)
        for name, hits in self._rate_hits.items():
            out[name] = hits / self.count * 100 if self.count else 0
        if spec.count_field:
            out[spec.count_field] = self.count
        return out

    def freeze(self) -> GroupSummary:
        if self._frozen is None:
            self._frozen = self._compute()
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen is not None

    @property
    def measures(self) -> dict[str, float]:
        if self._frozen is not None:
            return dict(self._frozen)
        return self._compute()

    def __repr__(self) -> str:  # pragma: no cover
        return f"GroupSummary(key={self.key!r}, count={self.count})"


def field_key(fields: Sequence[str], delimiter: str = " ", unknown: str = "Unknown") -> KeyFn:
    """Key function joining ``fields`` with ``delimiter``; blank parts become ``unknown``."""
    names = tuple(fields)

    def key(record: Mapping[str, Any]) -> str:
        return delimiter.join(_text_or(record.get(name), unknown) for name in names)

    return key


def _component_values(
    record: Mapping[str, Any], components: Mapping[str, str], unknown: str
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, field in components.items():
        value = record.get(field)
        out[name] = unknown if is_blank(value) else value
    return out


def _fold(
    buckets: dict[str, GroupSummary],
    key: str,
    record: Mapping[str, Any],
    spec: MeasureSpec,
    components: Mapping[str, str] | None,
    unknown: str,
) -> None:
    group = buckets.get(key)
    if group is None:
        group = GroupSummary(key, spec, _component_values(record, components or {}, unknown))
        buckets[key] = group
    group.add(record)


def aggregate(
    records: Iterable[Mapping[str, Any]],
    key_fn: KeyFn,
    measures: MeasureSpec,
    components: Mapping[str, str] | None = None,
    unknown: str = "Unknown",
) -> list[GroupSummary]:
    """Fold ``records`` into frozen groups, one per distinct key, in first-seen order."""
    buckets: dict[str, GroupSummary] = {}
    for record in records:
        _fold(buckets, key_fn(record), record, measures, components, unknown)
    return [g.freeze() for g in buckets.values()]


def top_n(groups: Sequence[GroupSummary], measure: str, n: int | None) -> list[GroupSummary]:
    """Sort descending by ``measure`` (ties keep input order) and keep the first ``n``."""
    # sorted() は reverse=True でも安定
    ordered = sorted(groups, key=lambda g: g.measures.get(measure, 0), reverse=True)
    if n is None:
        return ordered
    return ordered[:max(n, 0)]


def summarize(
    records: Iterable[Mapping[str, Any]],
    overview: MeasureSpec,
    views: Sequence[GroupView] = (),
) -> tuple[GroupSummary, dict[str, list[GroupSummary]]]:
    """Overview totals and every view's groups from one pass over ``records``.

    Returns the frozen overview summary and ``{view name: groups}`` with groups
    in first-seen order (sorting and truncation are left to the caller).
    """
    total = GroupSummary("", overview)
    plan = [(view, field_key(view.key, view.delimiter, view.unknown), {}) for view in views]
    for record in records:
        total.add(record)
        for view, key_fn, buckets in plan:
            _fold(buckets, key_fn(record), record, view.measures, view.components, view.unknown)
    grouped = {view.name: [g.freeze() for g in buckets.values()] for view, _, buckets in plan}
    return total.freeze(), grouped
