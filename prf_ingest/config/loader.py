from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    BUDGET_COLUMNS,
    REQUEST_COLUMNS,
    DatabaseConfig,
    ImportOptions,
    PipelineConfig,
    SheetConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (config/import.yml by default)
- Validate against the JSON schema shipped next to this module
- Apply defaults for everything the file leaves out
"""

SCHEMA_PATH = Path(__file__).with_name("import_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing or invalid, or the config
            data fails schema validation (unknown keys, wrong types, ...).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _normalize_alias(name: str) -> str:
    return " ".join(name.split()).lower()


def _sheet_config(raw: dict[str, Any] | None, base_columns: dict[str, tuple[str, ...]],
                  tokens: tuple[str, ...], header_row: int) -> SheetConfig:
    raw = raw or {}
    columns = dict(base_columns)
    # 設定側の別名は既定の別名より優先 (先頭に置く)
    for canonical, aliases in (raw.get("columns") or {}).items():
        extra = tuple(_normalize_alias(a) for a in aliases)
        columns[canonical] = extra + tuple(a for a in columns.get(canonical, ()) if a not in extra)
    return SheetConfig(
        tokens=tuple(t.lower() for t in raw.get("tokens", tokens)),
        header_row=raw.get("header_row", header_row),
        columns=columns,
    )


def build_config(data: dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from already-parsed config data."""
    _validate_config_schema(data)

    years = data.get("fiscal_year_range") or {"min": 2020, "max": 2030}
    if years["min"] > years["max"]:
        raise ConfigError(f"fiscal_year_range min {years['min']} is greater than max {years['max']}")

    imp = data.get("import") or {}
    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return PipelineConfig(
        request_sheet=_sheet_config(data.get("request_sheet"), REQUEST_COLUMNS, ("prf",), 1),
        budget_sheet=_sheet_config(data.get("budget_sheet"), BUDGET_COLUMNS, ("budget",), 0),
        null_sentinels=frozenset(s.strip().upper() for s in data.get("null_sentinels", [])),
        keep_na_strings=tuple(data.get("keep_na_strings", ["NA"])),
        min_fiscal_year=years["min"],
        max_fiscal_year=years["max"],
        default_fiscal_year=data.get("default_fiscal_year"),
        amount_tolerance=float(data.get("amount_tolerance", 0.01)),
        default_coa_category=imp.get("default_coa_category", "General"),
        defaults=ImportOptions(
            skip_duplicates=imp.get("skip_duplicates", True),
            update_existing=imp.get("update_existing", False),
            auto_create_coa=imp.get("auto_create_coa", True),
            dedupe_items=imp.get("dedupe_items", False),
        ),
        fiscal_year_assignments={
            str(code): tuple(sorted(set(years_))) for code, years_ in (data.get("fiscal_year_assignments") or {}).items()
        },
        database=db,
    )


def load_config(path: Path | None = None) -> PipelineConfig:
    """Load the pipeline config.

    An explicitly given path must exist. When no path is given, the default
    location is used if present and built-in defaults otherwise.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return PipelineConfig()
        path = DEFAULT_CONFIG_PATH
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return build_config(data)
