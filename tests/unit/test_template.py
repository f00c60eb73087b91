from __future__ import annotations

from pathlib import Path

import pandas as pd

from prf_ingest.models.config_models import PipelineConfig
from prf_ingest.services.pipeline import validate
from prf_ingest.services.template import TEMPLATE_HEADERS, TEMPLATE_TITLE, write_template


def test_template_layout(tmp_path: Path):
    path = write_template(tmp_path / "out" / "template.xlsx")
    sheets = pd.read_excel(path, sheet_name=None, header=None)
    assert list(sheets) == ["PRF", "Budget", "Instructions"]
    prf = sheets["PRF"]
    assert prf.iloc[0, 0] == TEMPLATE_TITLE
    assert list(prf.iloc[1]) == TEMPLATE_HEADERS
    assert len(sheets["Instructions"]) == len(TEMPLATE_HEADERS) + 1


def test_every_template_header_is_recognized():
    aliases = PipelineConfig().request_sheet.aliases()
    for header in TEMPLATE_HEADERS:
        assert " ".join(header.split()).lower() in aliases, header


def test_template_validates_cleanly(tmp_path: Path):
    path = write_template(tmp_path / "template.xlsx")
    report = validate(path.read_bytes(), filename=path.name, coa_codes={"COA-6100"})
    assert report.success
    assert report.request.valid_count == 1
    assert report.request.warnings == ()
    assert report.budget is not None and report.budget.valid_count == 1
