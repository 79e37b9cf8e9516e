from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import pytest

from epistudy.canonical import load_canonical
from epistudy.config import ConnectionDetails


class FakeInjector:
    """Stands in for the external signal-injection routine; records every call."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def __call__(self, **kwargs: Any) -> pd.DataFrame:
        self.calls.append(kwargs)
        new_id = int(kwargs["output_id_offset"])
        rows = []
        for exposure_id, outcome_id in kwargs["exposure_outcome_pairs"].itertuples(index=False):
            for effect_size in kwargs["effect_sizes"]:
                new_id += 1
                rows.append(
                    {
                        "exposureId": exposure_id,
                        "outcomeId": outcome_id,
                        "targetEffectSize": effect_size,
                        "newOutcomeId": new_id,
                        "trueEffectSize": effect_size,
                        "trueEffectSizeFirstExposure": effect_size,
                        "injectedOutcomes": 25,
                    }
                )
        return pd.DataFrame(rows)


@pytest.fixture
def canonical() -> dict[str, Any]:
    return load_canonical()


@pytest.fixture
def fake_injector() -> FakeInjector:
    return FakeInjector()


@pytest.fixture
def connection_details() -> ConnectionDetails:
    return ConnectionDetails(dbms="postgresql", server="localhost/ohdsi")


@pytest.fixture
def make_results_zip(tmp_path: Path) -> Callable[..., Path]:
    def _make(name: str, tables: dict[str, pd.DataFrame]) -> Path:
        zip_path = tmp_path / name
        with zipfile.ZipFile(zip_path, "w") as zf:
            for table_name, frame in tables.items():
                zf.writestr(f"{table_name}.csv", frame.to_csv(index=False))
        return zip_path

    return _make
