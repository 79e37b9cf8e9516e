from __future__ import annotations

from pathlib import Path
from typing import Any

from epistudy.canonical import get_canonical, load_canonical
from epistudy.config import ConfigError, ConnectionDetails, load_config
from epistudy.controls.injectors import get_injector
from epistudy.controls.synthesis import synthesize_positive_controls
from epistudy.explorer.launch import launch_evidence_explorer
from epistudy.explorer.prepare import prepare_for_evidence_explorer

_REQUIRED_STUDY_KEYS = ["connection", "cdm_database_schema", "cohort_database_schema", "output_folder", "injector"]


def _study_config(config_path: str, canonical: dict[str, Any]) -> dict[str, Any]:
    cfg = load_config(config_path, canonical)
    missing = [k for k in _REQUIRED_STUDY_KEYS if cfg.get(k) in (None, "")]
    if missing:
        raise ConfigError(f"Study config {config_path} is missing keys: {missing}")
    return cfg


def run_synthesize(args: Any) -> int:
    canonical = load_canonical()
    cfg = _study_config(args.config_path, canonical)

    output_folder = Path(str(args.output_folder or cfg["output_folder"]))
    max_cores = int(args.max_cores if args.max_cores is not None else cfg.get("max_cores", 1))
    all_controls = synthesize_positive_controls(
        connection_details=ConnectionDetails.from_mapping(cfg["connection"]),
        cdm_database_schema=str(cfg["cdm_database_schema"]),
        cohort_database_schema=str(cfg["cohort_database_schema"]),
        cohort_table=str(cfg.get("cohort_table") or get_canonical(canonical, "SYNTHESIS.DEFAULT_COHORT_TABLE")),
        temp_emulation_schema=cfg.get("temp_emulation_schema"),
        output_folder=output_folder,
        injector=get_injector(str(cfg["injector"])),
        max_cores=max_cores,
        canonical=canonical,
        catalog_path=cfg.get("negative_controls_csv"),
        settings_path=cfg.get("synthesis_args_json"),
    )
    print(f"all_controls={output_folder / str(get_canonical(canonical, 'FILES.ALL_CONTROLS_CSV'))}")
    print(f"num_controls={len(all_controls)}")
    return 0


def run_prepare(args: Any) -> int:
    written = prepare_for_evidence_explorer(args.results_zip, args.data_folder, canonical=load_canonical())
    print(f"data_folder={args.data_folder}")
    print(f"artifacts_written={len(written)}")
    return 0


def run_launch(args: Any) -> int:
    return launch_evidence_explorer(
        args.data_folder,
        blind=not args.unblind,
        launch_browser=not args.no_browser,
        canonical=load_canonical(),
    )
