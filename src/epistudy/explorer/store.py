from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

import pandas as pd

from epistudy.canonical import get_canonical


def _suffix(canonical: dict[str, Any]) -> str:
    return str(get_canonical(canonical, "FILES.ARTIFACT_SUFFIX"))


def _id_str(value: Any) -> str:
    # Integral floats (from columns that held NaN elsewhere) keep their integer spelling.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def artifact_name(table_name: str, database_id: Any, canonical: dict[str, Any]) -> str:
    return f"{table_name}_{_id_str(database_id)}{_suffix(canonical)}"


def split_artifact_name(
    table_name: str, target_id: Any, comparator_id: Any, database_id: Any, canonical: dict[str, Any]
) -> str:
    return f"{table_name}_t{_id_str(target_id)}_c{_id_str(comparator_id)}_{_id_str(database_id)}{_suffix(canonical)}"


def partition_table(
    table: pd.DataFrame,
    key_columns: Sequence[str],
    name_for: Callable[[tuple[Any, ...]], str],
) -> dict[str, pd.DataFrame]:
    """
    Group rows by key_columns and return {name_for(key): subset}.

    Subsets keep the input row order and get a fresh index.
    """
    missing = [c for c in key_columns if c not in table.columns]
    if missing:
        raise KeyError(f"Table is missing partition key columns: {missing}")
    out: dict[str, pd.DataFrame] = {}
    for key, subset in table.groupby(list(key_columns), sort=True, dropna=False):
        key_tuple = key if isinstance(key, tuple) else (key,)
        out[name_for(key_tuple)] = subset.reset_index(drop=True)
    return out


def write_artifact(frame: pd.DataFrame, path: Path) -> None:
    frame.to_parquet(path, index=False)


def load_table(data_folder: Path | str, file_name: str) -> pd.DataFrame:
    return pd.read_parquet(Path(data_folder) / file_name)


def list_artifacts(data_folder: Path | str, canonical: dict[str, Any]) -> list[str]:
    suffix = _suffix(canonical)
    return sorted(p.name for p in Path(data_folder).iterdir() if p.is_file() and p.name.endswith(suffix))


def list_database_ids(data_folder: Path | str, canonical: dict[str, Any]) -> list[str]:
    prefix = f"{get_canonical(canonical, 'EXPLORER.DATABASE_TABLE')}_"
    suffix = _suffix(canonical)
    return [name[len(prefix) : -len(suffix)] for name in list_artifacts(data_folder, canonical) if name.startswith(prefix)]


def table_names(data_folder: Path | str, database_id: str, canonical: dict[str, Any]) -> list[str]:
    # Splittable tables collapse to their base name: <table>_t<t>_c<c>_<db>.
    suffix = f"_{database_id}{_suffix(canonical)}"
    splittable = {str(t) for t in get_canonical(canonical, "EXPLORER.SPLITTABLE_TABLES")}
    names: set[str] = set()
    for name in list_artifacts(data_folder, canonical):
        if not name.endswith(suffix):
            continue
        stem = name[: -len(suffix)]
        base = next((t for t in splittable if stem.startswith(f"{t}_t")), stem)
        names.add(base)
    return sorted(names)


def load_database_table(data_folder: Path | str, table_name: str, database_id: str, canonical: dict[str, Any]) -> pd.DataFrame:
    """Load a table for one database, stitching split artifacts back together."""
    splittable = {str(t) for t in get_canonical(canonical, "EXPLORER.SPLITTABLE_TABLES")}
    if table_name not in splittable:
        return load_table(data_folder, artifact_name(table_name, database_id, canonical))
    suffix = f"_{database_id}{_suffix(canonical)}"
    parts = [
        load_table(data_folder, name)
        for name in list_artifacts(data_folder, canonical)
        if name.startswith(f"{table_name}_t") and name.endswith(suffix)
    ]
    if not parts:
        raise FileNotFoundError(f"No artifacts for table {table_name} and database {database_id} in {data_folder}")
    return pd.concat(parts, ignore_index=True)


def blind_view(table_name: str, frame: pd.DataFrame, *, blind: bool, canonical: dict[str, Any]) -> pd.DataFrame:
    """Drop comparative-result columns from blinded tables when blind is set."""
    if not blind or table_name not in {str(t) for t in get_canonical(canonical, "EXPLORER.BLINDED_TABLES")}:
        return frame
    hidden = [str(c) for c in get_canonical(canonical, "EXPLORER.BLINDED_COLUMNS") if str(c) in frame.columns]
    return frame.drop(columns=hidden)
