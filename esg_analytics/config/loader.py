from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    HEADER_MODE_FIXED,
    SOURCE_FILE,
    DashboardConfig,
    DatabaseConfig,
    DerivedField,
    GroupView,
    HeaderPolicy,
    MatchRule,
    MeasureSpec,
    ModuleConfig,
    ModuleQuery,
    RatioRule,
    RecordFilters,
    UploadRoute,
)

"""Configuration and module catalog loader.

Responsibilities:
- Load the dashboard YAML (default ``config/dashboard.yml``)
- Load the built-in module catalog (``modules.yml`` shipped with the package)
- Validate both against ``schemas.json`` (JSON Schema 2020-12, one ``$defs`` entry per document kind)
- Apply defaults and cross-check references the schema cannot express
  (ratio/growth/sort targets, upload routes to unknown or API-only modules)
"""

__all__ = [
    "CATALOG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "build_module_config",
    "load_config",
    "load_module_catalog",
]

_PACKAGE_DIR = Path(__file__).parent
SCHEMA_PATH = _PACKAGE_DIR / "schemas.json"
CATALOG_PATH = _PACKAGE_DIR / "modules.yml"


class ConfigError(Exception):
    pass


def _schema_for(definition: str) -> dict[str, Any]:
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        raw = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    return {
        "$schema": raw.get("$schema", "https://json-schema.org/draft/2020-12/schema"),
        "$defs": raw["$defs"],
        "$ref": f"#/$defs/{definition}",
    }


def _validate(data: Any, definition: str, what: str) -> None:
    """Validate ``data`` against ``$defs/<definition>``.

    Raises:
        ConfigError: schema file missing or broken, or ``data`` violates the schema
    """
    schema = _schema_for(definition)
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path)
        suffix = f" (at {where})" if where else ""
        raise ConfigError(f"{what} validation failed: {e.message}{suffix}") from e


def _read_yaml(path: Path, what: str) -> Any:
    if not path.exists():
        raise ConfigError(f"{what} file not found: {path}")
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e


def _match_rules(raw: Mapping[str, Any] | None) -> dict[str, MatchRule]:
    return {
        name: MatchRule(
            field=r["field"],
            equals=str(r["equals"]),
            case_sensitive=bool(r.get("case_sensitive", False)),
        )
        for name, r in (raw or {}).items()
    }


def _measure_spec(raw: Mapping[str, Any] | None, where: str) -> MeasureSpec:
    raw = raw or {}
    sums = dict(raw.get("sum") or {})
    ratios = {
        name: RatioRule(numerator=r["numerator"], denominator=r["denominator"])
        for name, r in (raw.get("ratio") or {}).items()
    }
    for name, rule in ratios.items():
        for ref in (rule.numerator, rule.denominator):
            if ref not in sums:
                raise ConfigError(f"{where}: ratio '{name}' refers to '{ref}' which is not a sum output")
    spec = MeasureSpec(
        sums=sums,
        averages=dict(raw.get("avg") or {}),
        ratios=ratios,
        distinct=dict(raw.get("distinct") or {}),
        match_counts=_match_rules(raw.get("match_count")),
        match_rates=_match_rules(raw.get("match_rate")),
        count_field=raw.get("count", "count"),
        unknown=raw.get("unknown", "Unknown"),
    )
    names = spec.output_names
    if len(names) != len(set(names)):
        raise ConfigError(f"{where}: duplicate measure output names: {names}")
    return spec


def _group_view(raw: Mapping[str, Any], module_name: str) -> GroupView:
    name = raw["name"]
    where = f"module '{module_name}' view '{name}'"
    key = raw["key"]
    measures = _measure_spec(raw.get("measures"), where)
    growth = dict(raw.get("growth") or {})
    for out, source in growth.items():
        if source not in measures.sums:
            raise ConfigError(f"{where}: growth '{out}' refers to '{source}' which is not a sum output")
    sort_by = raw.get("sort_by")
    if sort_by is not None and sort_by not in measures.output_names:
        raise ConfigError(f"{where}: sort_by '{sort_by}' is not a measure output")
    return GroupView(
        name=name,
        key=(key,) if isinstance(key, str) else tuple(key),
        label=raw.get("label", "category"),
        measures=measures,
        delimiter=raw.get("delimiter", " "),
        unknown=raw.get("unknown", "Unknown"),
        components=dict(raw.get("components") or {}),
        growth=growth,
        sort_by=sort_by,
        top_n=raw.get("top_n"),
    )


def _header_policy(raw: Mapping[str, Any] | None) -> HeaderPolicy:
    if not raw:
        return HeaderPolicy()
    required = raw.get("required")
    return HeaderPolicy(
        mode=raw.get("mode", HEADER_MODE_FIXED),
        row_index=raw.get("row", 4),
        scan_rows=raw.get("scan_rows", 10),
        required_labels=tuple(required) if required is not None else None,
    )


def build_module_config(name: str, data: Mapping[str, Any]) -> ModuleConfig:
    """Validate one module definition and build its ``ModuleConfig``."""
    _validate(data, "module", f"module '{name}'")
    mapping = dict(data.get("mapping") or {})
    if data["source"] == SOURCE_FILE and not mapping:
        raise ConfigError(f"module '{name}': file-sourced modules need a header mapping")

    views = tuple(_group_view(v, name) for v in data.get("views") or ())
    view_names = [v.name for v in views]
    if len(view_names) != len(set(view_names)):
        raise ConfigError(f"module '{name}': duplicate view names: {view_names}")

    query_raw = data.get("query") or {}
    kwargs: dict[str, Any] = {}
    if "strip_chars" in data:
        kwargs["strip_chars"] = data["strip_chars"]
    return ModuleConfig(
        name=name,
        title=data.get("title", name),
        source=data["source"],
        fields=tuple(data.get("fields") or ()),
        field_mapping=mapping,
        numeric_fields=frozenset(data.get("numeric") or ()),
        header=_header_policy(data.get("header")),
        derived=tuple(
            DerivedField(
                name=d["name"],
                op=d["op"],
                fields=tuple(d["fields"]),
                separator=d.get("separator", " "),
                when_zero=d.get("when_zero", False),
            )
            for d in data.get("derived") or ()
        ),
        query=ModuleQuery(attribute=query_raw.get("attribute"), sub_category=query_raw.get("sub_category")),
        overview=_measure_spec(data.get("overview"), f"module '{name}' overview"),
        views=views,
        **kwargs,
    )


def load_module_catalog(path: Path | None = None) -> dict[str, ModuleConfig]:
    """Load the module catalog (the packaged ``modules.yml`` by default)."""
    path = path if path is not None else CATALOG_PATH
    data = _read_yaml(path, "module catalog")
    _validate(data, "catalog", "module catalog")
    return {name: build_module_config(name, raw) for name, raw in data["modules"].items()}


def load_config(path: Path, catalog: Mapping[str, ModuleConfig] | None = None) -> DashboardConfig:
    """Load the dashboard configuration.

    Modules declared under ``modules:`` are added to (or replace entries of)
    the built-in catalog.
    """
    data = _read_yaml(path, "config")
    _validate(data, "dashboard", "config")

    modules = dict(catalog) if catalog is not None else load_module_catalog()
    for name, raw in (data.get("modules") or {}).items():
        modules[name] = build_module_config(name, raw)

    uploads = tuple(UploadRoute(pattern=u["pattern"], module=u["module"]) for u in data["uploads"])
    for route in uploads:
        module = modules.get(route.module)
        if module is None:
            raise ConfigError(f"upload pattern '{route.pattern}' refers to unknown module '{route.module}'")
        if module.source != SOURCE_FILE:
            raise ConfigError(
                f"upload pattern '{route.pattern}' refers to module '{route.module}' which is not file-sourced"
            )

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
        table=db_raw.get("table", "AttributeDetail"),
    )
    return DashboardConfig(
        source_directory=data["source_directory"],
        uploads=uploads,
        output_directory=data.get("output_directory", "./reports"),
        filters=RecordFilters.from_mapping(data.get("filters")),
        database=db,
        modules=modules,
    )
