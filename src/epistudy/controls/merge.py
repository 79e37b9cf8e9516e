from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

from epistudy.canonical import get_canonical, load_canonical
from epistudy.controls.catalog import load_negative_controls
from epistudy.io.logging import JsonlLogger, event_type, make_logger


class MergeError(RuntimeError):
    pass


class SchemaMismatchError(MergeError):
    pass


class DuplicateControlError(MergeError):
    pass


def _format_rr(value: Any) -> str:
    return f"{float(value):g}"


def build_negative_controls(catalog: pd.DataFrame, canonical: dict[str, Any]) -> pd.DataFrame:
    # Negative controls are positive controls with no injected effect.
    neutral = get_canonical(canonical, "SYNTHESIS.NEUTRAL_EFFECT_SIZE")
    out = catalog.copy()
    for col in get_canonical(canonical, "CONTROLS.EFFECT_COLUMNS"):
        out[str(col)] = neutral
    out["oldOutcomeId"] = out["outcomeId"]
    return out


def build_positive_controls(summary: pd.DataFrame, catalog: pd.DataFrame, canonical: dict[str, Any]) -> pd.DataFrame:
    required = [str(c) for c in get_canonical(canonical, "CONTROLS.SUMMARY_REQUIRED_COLUMNS")]
    missing = [c for c in required if c not in summary.columns]
    if missing:
        raise SchemaMismatchError(f"Synthesis summary is missing columns: {missing}")

    s = summary.copy()
    s["targetId"] = s["exposureId"]
    merged = s.merge(catalog, on=["targetId", "outcomeId"], how="inner", suffixes=("", "_catalog"))
    merged = merged[merged["trueEffectSize"] != 0].copy()

    template = str(get_canonical(canonical, "SYNTHESIS.OUTCOME_NAME_TEMPLATE"))
    merged["outcomeName"] = [
        template.format(name=name, rr=_format_rr(rr))
        for name, rr in zip(merged["outcomeName"], merged["targetEffectSize"], strict=True)
    ]
    merged["oldOutcomeId"] = merged["outcomeId"]
    merged["outcomeId"] = merged["newOutcomeId"]
    return merged.reset_index(drop=True)


def concat_controls(negative: pd.DataFrame, positive: pd.DataFrame) -> pd.DataFrame:
    """
    Stack negative and positive controls. Column sets must match exactly;
    nothing is padded or dropped.
    """
    neg_cols = set(negative.columns)
    pos_cols = set(positive.columns)
    if neg_cols != pos_cols:
        raise SchemaMismatchError(
            "Control tables have different columns: "
            f"only in negative={sorted(neg_cols - pos_cols)}, only in positive={sorted(pos_cols - neg_cols)}"
        )
    return pd.concat([negative, positive[list(negative.columns)]], ignore_index=True)


def merge_controls(
    *,
    output_folder: Path | str,
    catalog: pd.DataFrame | None = None,
    summary: pd.DataFrame | None = None,
    canonical: dict[str, Any] | None = None,
    logger: JsonlLogger | None = None,
) -> pd.DataFrame:
    canonical = canonical if canonical is not None else load_canonical()
    output_folder = Path(output_folder)
    logger = logger or make_logger(log_dir=output_folder, canonical=canonical)

    if summary is None:
        summary_path = output_folder / str(get_canonical(canonical, "FILES.SYNTHESIS_SUMMARY_CSV"))
        if not summary_path.exists():
            raise MergeError(f"Cannot find synthesis summary '{summary_path}'")
        summary = pd.read_csv(summary_path)
    if catalog is None:
        catalog = load_negative_controls(canonical)

    negative = build_negative_controls(catalog, canonical)
    positive = build_positive_controls(summary, catalog, canonical)

    columns = list(negative.columns)
    missing = [c for c in columns if c not in positive.columns]
    if missing:
        raise SchemaMismatchError(f"Positive controls are missing negative-control columns: {missing}")
    all_controls = concat_controls(negative, positive[columns])

    dup = all_controls["outcomeId"][all_controls["outcomeId"].duplicated()]
    if not dup.empty:
        raise DuplicateControlError(f"Duplicate outcomeId in merged controls: {sorted(dup.unique().tolist())[:20]}")

    out_path = output_folder / str(get_canonical(canonical, "FILES.ALL_CONTROLS_CSV"))
    output_folder.mkdir(parents=True, exist_ok=True)
    all_controls.to_csv(out_path, index=False)
    logger.log(
        event_type(canonical, "EVENT_CONTROLS_MERGED"),
        {
            "path": str(out_path),
            "num_negative": int(len(negative)),
            "num_positive": int(len(positive)),
        },
    )
    return all_controls
