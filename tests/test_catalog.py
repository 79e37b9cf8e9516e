from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from epistudy.canonical import load_canonical
from epistudy.controls.catalog import CatalogError, exposure_outcome_pairs, load_negative_controls


def test_bundled_catalog_loads() -> None:
    catalog = load_negative_controls(load_canonical())
    assert {"targetId", "outcomeId", "outcomeName"} <= set(catalog.columns)
    assert len(catalog) > 0
    assert catalog["outcomeId"].is_unique


def test_legacy_outcome_name_header_is_normalized(tmp_path: Path) -> None:
    path = tmp_path / "NegativeControls.csv"
    path.write_text("targetId,outcomeId,OutcomeName\n1,10,Scar\n", encoding="utf-8")
    catalog = load_negative_controls(load_canonical(), path)
    assert list(catalog.columns) == ["targetId", "outcomeId", "outcomeName"]
    assert catalog.loc[0, "outcomeName"] == "Scar"


def test_catalog_errors(tmp_path: Path) -> None:
    canonical = load_canonical()
    with pytest.raises(CatalogError, match="Cannot find"):
        load_negative_controls(canonical, tmp_path / "missing.csv")

    path = tmp_path / "bad.csv"
    path.write_text("targetId,outcomeName\n1,Scar\n", encoding="utf-8")
    with pytest.raises(CatalogError, match="outcomeId"):
        load_negative_controls(canonical, path)


def test_exposure_outcome_pairs_are_unique() -> None:
    catalog = pd.DataFrame(
        {
            "targetId": [1, 1, 1],
            "comparatorId": [2, 3, 2],
            "outcomeId": [10, 10, 11],
            "outcomeName": ["Scar", "Scar", "Vertigo"],
        }
    )
    pairs = exposure_outcome_pairs(catalog)
    assert list(pairs.columns) == ["exposureId", "outcomeId"]
    assert pairs.values.tolist() == [[1, 10], [1, 11]]


def test_repeated_outcome_id_is_rejected_at_load(tmp_path: Path) -> None:
    path = tmp_path / "NegativeControls.csv"
    path.write_text(
        "targetId,comparatorId,outcomeId,outcomeName\n1,2,10,Scar\n1,3,10,Scar\n1,2,11,Vertigo\n",
        encoding="utf-8",
    )
    with pytest.raises(CatalogError, match=r"repeats outcomeId: \[10\]"):
        load_negative_controls(load_canonical(), path)
