from __future__ import annotations

import copy
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable

import pandas as pd

from epistudy.canonical import bundled_path, get_canonical, load_canonical
from epistudy.config import ConnectionDetails
from epistudy.controls.catalog import (
    check_unique_outcomes,
    exposure_outcome_pairs,
    load_negative_controls,
    negative_controls_path,
)
from epistudy.controls.merge import merge_controls
from epistudy.hashing import input_fingerprint
from epistudy.io.logging import JsonlLogger, event_type, make_logger, now_utc_iso
from epistudy.io.run_record import read_run_record, write_run_record


class SettingsError(RuntimeError):
    pass


@dataclass(frozen=True)
class ThreadBudget:
    control_threads: int
    model_threads: int
    generation_threads: int


def derive_thread_budget(max_cores: int, canonical: dict[str, Any]) -> ThreadBudget:
    if int(max_cores) < 1:
        raise ValueError(f"max_cores must be >= 1, got {max_cores}")
    threads = canonical["THREADS"]
    max_cores = int(max_cores)
    return ThreadBudget(
        control_threads=min(int(threads["MAX_CONTROL_THREADS"]), max_cores),
        # round() is half-to-even, so 4 cores -> 0 -> 1 and 20 cores -> 2.
        model_threads=max(1, round(max_cores / int(threads["CORES_PER_MODEL_THREAD"]))),
        generation_threads=min(int(threads["MAX_GENERATION_THREADS"]), max_cores),
    )


def synthesis_args_path(canonical: dict[str, Any]) -> Path:
    return bundled_path(canonical, "PATH_SETTINGS_DIR", str(get_canonical(canonical, "FILES.SYNTHESIS_ARGS_JSON")))


def load_synthesis_args(canonical: dict[str, Any], path: Path | str | None = None) -> dict[str, Any]:
    p = Path(path) if path is not None else synthesis_args_path(canonical)
    try:
        args = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SettingsError(f"Cannot read synthesis settings '{p}': {e}") from e
    if not isinstance(args, dict):
        raise SettingsError(f"Synthesis settings {p} did not parse as a mapping")

    required = list(get_canonical(canonical, "SYNTHESIS.ARG_KEYS"))
    missing = [k for k in required if k not in args]
    if missing:
        raise SettingsError(f"Synthesis settings {p} is missing keys: {missing}")
    if not isinstance(args["control"], dict):
        raise SettingsError(f"Synthesis settings {p}: 'control' must be a mapping")
    return args


def _injector_kwargs(args: dict[str, Any], canonical: dict[str, Any]) -> dict[str, Any]:
    arg_keys: dict[str, str] = dict(get_canonical(canonical, "SYNTHESIS.ARG_KEYS"))
    return {arg_keys[k]: args[k] for k in arg_keys}


def _summary_paths(output_folder: Path, canonical: dict[str, Any]) -> tuple[Path, Path, Path]:
    files = canonical["FILES"]
    return (
        output_folder / str(files["SYNTHESIS_FOLDER"]),
        output_folder / str(files["SYNTHESIS_SUMMARY_CSV"]),
        output_folder / str(files["SYNTHESIS_RUN_RECORD"]),
    )


def run_signal_injection(
    *,
    connection_details: ConnectionDetails,
    cdm_database_schema: str,
    cohort_database_schema: str,
    output_folder: Path | str,
    injector: Callable[..., pd.DataFrame],
    cohort_table: str = "cohort",
    temp_emulation_schema: str | None = None,
    max_cores: int = 1,
    canonical: dict[str, Any] | None = None,
    catalog: pd.DataFrame | None = None,
    catalog_path: Path | str | None = None,
    settings_path: Path | str | None = None,
    logger: JsonlLogger | None = None,
) -> pd.DataFrame:
    """
    Produce (or reuse) the synthesis summary for an output folder.

    The injector is called at most once per output folder: an existing
    SynthesisSummary.csv is returned as-is. Any exception raised by the
    injector propagates and leaves no summary behind.
    """
    canonical = canonical if canonical is not None else load_canonical()
    output_folder = Path(output_folder)
    logger = logger or make_logger(log_dir=output_folder, canonical=canonical)

    synthesis_folder, summary_path, record_path = _summary_paths(output_folder, canonical)
    synthesis_folder.mkdir(parents=True, exist_ok=True)

    catalog_file = Path(catalog_path) if catalog_path is not None else negative_controls_path(canonical)
    settings_file = Path(settings_path) if settings_path is not None else synthesis_args_path(canonical)
    fingerprint_field = str(get_canonical(canonical, "OUTPUT_NAMING.FINGERPRINT_FIELD"))

    if summary_path.exists():
        logger.log(event_type(canonical, "EVENT_SYNTHESIS_CACHE_HIT"), {"summary_path": str(summary_path)})
        # Presence alone decides reuse; a changed fingerprint is only reported.
        record = read_run_record(str(record_path))
        if record is not None and catalog_file.exists() and settings_file.exists():
            current = input_fingerprint({"catalog": catalog_file, "settings": settings_file}, canonical)
            if record.get(fingerprint_field) != current:
                logger.log(
                    event_type(canonical, "EVENT_SYNTHESIS_CACHE_STALE"),
                    {"recorded": record.get(fingerprint_field), "current": current},
                )
        return pd.read_csv(summary_path)

    if catalog is None:
        catalog = load_negative_controls(canonical, catalog_file)
    else:
        check_unique_outcomes(catalog)
    pairs = exposure_outcome_pairs(catalog)
    args = load_synthesis_args(canonical, settings_file)
    budget = derive_thread_budget(max_cores, canonical)

    args = copy.deepcopy(args)
    args["control"]["threads"] = budget.control_threads

    logger.log(
        event_type(canonical, "EVENT_SYNTHESIS_START"),
        {
            "num_pairs": int(len(pairs)),
            "effect_sizes": args["effectSizes"],
            "max_cores": int(max_cores),
            **asdict(budget),
        },
    )

    result = injector(
        connection_details=connection_details,
        cdm_database_schema=cdm_database_schema,
        temp_emulation_schema=temp_emulation_schema,
        exposure_database_schema=cohort_database_schema,
        exposure_table=cohort_table,
        outcome_database_schema=cohort_database_schema,
        outcome_table=cohort_table,
        output_database_schema=cohort_database_schema,
        output_table=cohort_table,
        create_output_table=False,
        exposure_outcome_pairs=pairs,
        work_folder=synthesis_folder,
        model_threads=budget.model_threads,
        generation_threads=budget.generation_threads,
        **_injector_kwargs(args, canonical),
    )
    if not isinstance(result, pd.DataFrame):
        result = pd.DataFrame(result)
    result.to_csv(summary_path, index=False)

    write_run_record(
        str(record_path),
        {
            "schema_version": int(get_canonical(canonical, "SCHEMAS.RUN_RECORD_SCHEMA_VERSION")),
            "run_id": logger.run_id,
            "created_utc": now_utc_iso(),
            fingerprint_field: input_fingerprint({"catalog": catalog_file, "settings": settings_file}, canonical),
            "max_cores": int(max_cores),
            "threads": asdict(budget),
            "num_pairs": int(len(pairs)),
            "num_rows": int(len(result)),
        },
    )
    logger.log(
        event_type(canonical, "EVENT_SYNTHESIS_WRITTEN"),
        {"summary_path": str(summary_path), "num_rows": int(len(result))},
    )
    return pd.read_csv(summary_path)


def synthesize_positive_controls(
    *,
    connection_details: ConnectionDetails,
    cdm_database_schema: str,
    cohort_database_schema: str,
    output_folder: Path | str,
    injector: Callable[..., pd.DataFrame],
    cohort_table: str = "cohort",
    temp_emulation_schema: str | None = None,
    max_cores: int = 1,
    canonical: dict[str, Any] | None = None,
    catalog_path: Path | str | None = None,
    settings_path: Path | str | None = None,
) -> pd.DataFrame:
    """Synthesize (or reuse) positive controls, then write AllControls.csv."""
    canonical = canonical if canonical is not None else load_canonical()
    output_folder = Path(output_folder)
    logger = make_logger(log_dir=output_folder, canonical=canonical)
    catalog = load_negative_controls(canonical, catalog_path)

    run_signal_injection(
        connection_details=connection_details,
        cdm_database_schema=cdm_database_schema,
        cohort_database_schema=cohort_database_schema,
        output_folder=output_folder,
        injector=injector,
        cohort_table=cohort_table,
        temp_emulation_schema=temp_emulation_schema,
        max_cores=max_cores,
        canonical=canonical,
        catalog=catalog,
        catalog_path=catalog_path,
        settings_path=settings_path,
        logger=logger,
    )
    return merge_controls(output_folder=output_folder, catalog=catalog, canonical=canonical, logger=logger)
