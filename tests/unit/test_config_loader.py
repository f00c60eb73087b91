from __future__ import annotations

from pathlib import Path

import pytest

from prf_ingest.config.loader import ConfigError, build_config, load_config
from prf_ingest.models.config_models import PipelineConfig


def test_load_config_from_file(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.request_sheet.tokens == ("prf",)
    assert cfg.request_sheet.header_row == 1
    assert cfg.null_sentinels == frozenset({"NULL"})
    assert cfg.year_range == (2020, 2030)
    assert cfg.defaults.skip_duplicates is True
    assert cfg.database.user == "appuser"
    assert cfg.database.port == 5432


def test_default_path_used_when_present(write_config: Path):
    # temp_workdir に chdir 済み → config/import.yml を自動で読む
    cfg = load_config()
    assert cfg.database.database == "appdb"


def test_builtin_defaults_without_file(temp_workdir: Path):
    cfg = load_config()
    assert cfg == PipelineConfig()
    assert cfg.keep_na_strings == ("NA",)
    assert cfg.budget_sheet.header_row == 0


def test_explicit_missing_path(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "nope.yml")


def test_invalid_yaml(temp_workdir: Path):
    p = temp_workdir / "config" / "bad.yml"
    p.write_text("request_sheet: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(p)


def test_non_mapping_root(temp_workdir: Path):
    p = temp_workdir / "config" / "list.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(p)


def test_empty_file_gives_defaults(temp_workdir: Path):
    p = temp_workdir / "config" / "empty.yml"
    p.write_text("", encoding="utf-8")
    assert load_config(p) == PipelineConfig()


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="config validation failed"):
        build_config({"source_directory": "./data"})


def test_wrong_type_rejected():
    with pytest.raises(ConfigError):
        build_config({"import": {"skip_duplicates": "yes"}})


def test_year_range_order():
    with pytest.raises(ConfigError, match="greater than max"):
        build_config({"fiscal_year_range": {"min": 2030, "max": 2020}})


def test_column_aliases_extend_defaults():
    cfg = build_config({"request_sheet": {"columns": {"request_number": ["PRF  #"]}}})
    aliases = cfg.request_sheet.aliases()
    assert aliases["prf #"] == "request_number"
    assert aliases["prf no"] == "request_number"
    assert cfg.request_sheet.columns["request_number"][0] == "prf #"


def test_fiscal_year_assignments_normalized():
    cfg = build_config({"fiscal_year_assignments": {"COA-6100": [2025, 2024, 2025]}})
    assert cfg.fiscal_year_assignments == {"COA-6100": (2024, 2025)}


def test_import_defaults_and_category():
    cfg = build_config({"import": {"auto_create_coa": False, "default_coa_category": "Capex"}, "default_fiscal_year": 2024})
    assert cfg.defaults.auto_create_coa is False
    assert cfg.default_coa_category == "Capex"
    assert cfg.default_fiscal_year == 2024


def test_shipped_example_config_is_valid():
    root = Path(__file__).resolve().parents[2]
    cfg = load_config(root / "config" / "import.yml")
    assert "N/A" in cfg.null_sentinels
    assert cfg.request_sheet.aliases()["prf #"] == "request_number"
