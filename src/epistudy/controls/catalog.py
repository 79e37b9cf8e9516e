from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

from epistudy.canonical import bundled_path, get_canonical


class CatalogError(RuntimeError):
    pass


def negative_controls_path(canonical: dict[str, Any]) -> Path:
    return bundled_path(canonical, "PATH_SETTINGS_DIR", str(get_canonical(canonical, "FILES.NEGATIVE_CONTROLS_CSV")))


def load_negative_controls(canonical: dict[str, Any], path: Path | str | None = None) -> pd.DataFrame:
    """
    Read the negative-control catalog (bundled by default).

    Legacy headers listed in CONTROLS.CATALOG_COLUMN_ALIASES are renamed so
    that downstream code sees a single spelling (e.g. OutcomeName -> outcomeName).
    """
    p = Path(path) if path is not None else negative_controls_path(canonical)
    if not p.exists():
        raise CatalogError(f"Cannot find negative control catalog '{p}'")
    catalog = pd.read_csv(p)

    aliases = dict(get_canonical(canonical, "CONTROLS.CATALOG_COLUMN_ALIASES"))
    renames = {old: new for old, new in aliases.items() if old in catalog.columns and new not in catalog.columns}
    catalog = catalog.rename(columns=renames)

    required = [str(c) for c in get_canonical(canonical, "CONTROLS.CATALOG_REQUIRED_COLUMNS")]
    missing = [c for c in required if c not in catalog.columns]
    if missing:
        raise CatalogError(f"Negative control catalog {p} is missing columns: {missing}")
    check_unique_outcomes(catalog, source=str(p))
    return catalog


def check_unique_outcomes(catalog: pd.DataFrame, *, source: str = "catalog") -> None:
    # Merged controls are keyed by outcomeId alone.
    dup = catalog["outcomeId"][catalog["outcomeId"].duplicated()]
    if not dup.empty:
        raise CatalogError(f"Negative control {source} repeats outcomeId: {sorted(dup.unique().tolist())[:20]}")


def exposure_outcome_pairs(catalog: pd.DataFrame) -> pd.DataFrame:
    pairs = pd.DataFrame({"exposureId": catalog["targetId"], "outcomeId": catalog["outcomeId"]})
    return pairs.drop_duplicates().reset_index(drop=True)
