from __future__ import annotations

import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any

import pandas as pd

from epistudy.canonical import get_canonical, load_canonical
from epistudy.explorer.store import artifact_name, partition_table, split_artifact_name, write_artifact
from epistudy.io.logging import JsonlLogger, event_type, make_logger


class ResultsImportError(RuntimeError):
    pass


class MissingManifestError(ResultsImportError):
    pass


def _read_database_id(manifest_path: Path, canonical: dict[str, Any]) -> str:
    manifest_name = manifest_path.name
    if not manifest_path.exists():
        raise MissingManifestError(f"Cannot find file {manifest_name} in zip file")
    column = str(get_canonical(canonical, "EXPLORER.DATABASE_ID_COLUMN"))
    manifest = pd.read_csv(manifest_path, dtype=str)
    if column not in manifest.columns or manifest[column].dropna().empty:
        raise MissingManifestError(f"{manifest_name} in zip file has no {column} value")
    ids = manifest[column].dropna().unique().tolist()
    if len(ids) != 1:
        raise ResultsImportError(f"{manifest_name} in zip file lists more than one {column}: {ids}")
    return str(ids[0])


def _import_table(
    csv_path: Path,
    *,
    staging_folder: Path,
    database_id: str,
    canonical: dict[str, Any],
) -> list[Path]:
    table_name = csv_path.stem
    table = pd.read_csv(csv_path, low_memory=False)
    splittable = {str(t) for t in get_canonical(canonical, "EXPLORER.SPLITTABLE_TABLES")}

    if table_name in splittable:
        key_columns = [str(c) for c in get_canonical(canonical, "EXPLORER.SPLIT_KEY_COLUMNS")]
        missing = [c for c in key_columns if c not in table.columns]
        if missing:
            raise ResultsImportError(f"Table {table_name} cannot be split, missing columns: {missing}")
        subsets = partition_table(
            table,
            key_columns,
            lambda key: split_artifact_name(table_name, key[0], key[1], database_id, canonical),
        )
    else:
        subsets = {artifact_name(table_name, database_id, canonical): table}

    written: list[Path] = []
    for name, subset in subsets.items():
        path = staging_folder / name
        write_artifact(subset, path)
        written.append(path)
    return written


def prepare_for_evidence_explorer(
    results_zip_file: Path | str,
    data_folder: Path | str,
    *,
    canonical: dict[str, Any] | None = None,
    scratch_root: Path | str | None = None,
    logger: JsonlLogger | None = None,
) -> list[Path]:
    """
    Import a results zip into the Evidence Explorer data folder.

    Results from several databases can be added to one folder by calling this
    once per zip; re-importing a database overwrites its artifacts. The
    extraction scratch directory is removed whether or not the import succeeds.
    """
    canonical = canonical if canonical is not None else load_canonical()
    results_zip_file = Path(results_zip_file).expanduser().resolve()
    data_folder = Path(data_folder).expanduser().resolve()
    if not results_zip_file.exists():
        raise ResultsImportError(f"Cannot find file '{results_zip_file}'")
    data_folder.mkdir(parents=True, exist_ok=True)
    logger = logger or make_logger(log_dir=data_folder, canonical=canonical)
    logger.log(event_type(canonical, "EVENT_IMPORT_START"), {"results_zip_file": str(results_zip_file)})

    if scratch_root is not None:
        Path(scratch_root).mkdir(parents=True, exist_ok=True)
    scratch = Path(tempfile.mkdtemp(prefix="unzip_", dir=str(scratch_root) if scratch_root is not None else None))
    try:
        extracted = scratch / "extracted"
        staging = scratch / "staged"
        staging.mkdir()
        try:
            with zipfile.ZipFile(results_zip_file) as zf:
                zf.extractall(extracted)
        except zipfile.BadZipFile as e:
            raise ResultsImportError(f"Cannot extract '{results_zip_file}': {e}") from e

        manifest_path = extracted / str(get_canonical(canonical, "FILES.DATABASE_MANIFEST_CSV"))
        database_id = _read_database_id(manifest_path, canonical)

        # Every table is staged before anything reaches data_folder, so a failed
        # import leaves the data folder as it was.
        staged: list[tuple[str, Path]] = []
        for csv_path in sorted(extracted.glob("*.csv")):
            paths = _import_table(csv_path, staging_folder=staging, database_id=database_id, canonical=canonical)
            staged.extend((csv_path.stem, p) for p in paths)

        written: list[Path] = []
        for table_name, staged_path in staged:
            target = data_folder / staged_path.name
            shutil.move(str(staged_path), str(target))
            logger.log(event_type(canonical, "EVENT_ARTIFACT_WRITTEN"), {"table": table_name, "artifact": target.name})
            written.append(target)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    logger.log(
        event_type(canonical, "EVENT_IMPORT_DONE"),
        {"database_id": database_id, "num_artifacts": int(len(written))},
    )
    return written
