from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

import epistudy.explorer.launch as launch_mod
from epistudy.explorer.launch import (
    ExplorerError,
    ExplorerSettings,
    ensure_installed,
    explorer_command,
    launch_evidence_explorer,
)
from epistudy.explorer.prepare import prepare_for_evidence_explorer
from epistudy.explorer.store import blind_view, list_database_ids, load_database_table, table_names


def _results() -> dict[str, pd.DataFrame]:
    return {
        "database": pd.DataFrame({"database_id": [7]}),
        "preference_score_dist": pd.DataFrame(
            {"target_id": [1, 1, 4], "comparator_id": [2, 2, 5], "preference_score": [0.1, 0.5, 0.9]}
        ),
        "cohort_method_result": pd.DataFrame(
            {"target_id": [1], "comparator_id": [2], "outcome_id": [10], "rr": [1.2], "ci_95_lb": [0.9], "p": [0.2]}
        ),
    }


def test_settings_round_trip_through_command_line(tmp_path: Path) -> None:
    settings = ExplorerSettings(data_folder=tmp_path, blind=False)
    assert ExplorerSettings.from_args(settings.to_args()) == settings
    assert ExplorerSettings.from_args(["--data_folder", str(tmp_path)]).blind is True


def test_launch_requires_existing_folder(canonical: dict[str, Any], tmp_path: Path) -> None:
    with pytest.raises(ExplorerError, match="Cannot find data folder"):
        launch_evidence_explorer(tmp_path / "missing", canonical=canonical)


def test_launch_passes_settings_explicitly(canonical, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[list[str], dict[str, Any]]] = []
    monkeypatch.setattr(launch_mod, "ensure_installed", lambda packages: None)
    monkeypatch.setattr(launch_mod.subprocess, "run", lambda cmd, **kw: calls.append((cmd, kw)))

    assert launch_evidence_explorer(tmp_path, blind=True, launch_browser=False, canonical=canonical) == 0
    (cmd, kw), = calls
    assert kw == {"check": True}
    assert cmd[:4] == [sys.executable, "-m", "streamlit", "run"]
    assert cmd[4].endswith("app.py") and Path(cmd[4]).exists()
    assert cmd[cmd.index("--server.headless") + 1] == "true"
    settings = ExplorerSettings.from_args(cmd[cmd.index("--") + 1 :])
    assert settings == ExplorerSettings(data_folder=tmp_path.resolve(), blind=True)


def test_launch_failure_propagates(canonical, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(cmd: list[str], **kw: Any) -> None:
        raise RuntimeError("app crashed")

    monkeypatch.setattr(launch_mod, "ensure_installed", lambda packages: None)
    monkeypatch.setattr(launch_mod.subprocess, "run", boom)
    with pytest.raises(RuntimeError, match="app crashed"):
        launch_evidence_explorer(tmp_path, canonical=canonical)


def test_ensure_installed_names_missing_package() -> None:
    with pytest.raises(ExplorerError, match="definitely_not_installed_pkg"):
        ensure_installed(["definitely_not_installed_pkg"])
    ensure_installed(["pandas"])


def test_explorer_command_opens_browser_by_default(canonical, tmp_path: Path) -> None:
    cmd = explorer_command(ExplorerSettings(data_folder=tmp_path), canonical)
    assert cmd[cmd.index("--server.headless") + 1] == "false"


def test_store_reads_prepared_results(make_results_zip, canonical, tmp_path: Path) -> None:
    data_folder = tmp_path / "data"
    prepare_for_evidence_explorer(make_results_zip("Results.zip", _results()), data_folder, canonical=canonical)

    assert list_database_ids(data_folder, canonical) == ["7"]
    assert table_names(data_folder, "7", canonical) == ["cohort_method_result", "database", "preference_score_dist"]
    ps = load_database_table(data_folder, "preference_score_dist", "7", canonical)
    assert sorted(ps["preference_score"].tolist()) == [0.1, 0.5, 0.9]
    with pytest.raises(FileNotFoundError):
        load_database_table(data_folder, "kaplan_meier_dist", "7", canonical)


def test_blind_view_hides_comparative_results(canonical: dict[str, Any]) -> None:
    frame = _results()["cohort_method_result"]
    blinded = blind_view("cohort_method_result", frame, blind=True, canonical=canonical)
    assert list(blinded.columns) == ["target_id", "comparator_id", "outcome_id"]
    assert blind_view("cohort_method_result", frame, blind=False, canonical=canonical) is frame
    other = _results()["preference_score_dist"]
    assert blind_view("preference_score_dist", other, blind=True, canonical=canonical) is other
