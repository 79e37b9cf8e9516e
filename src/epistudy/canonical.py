from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class CanonicalError(RuntimeError):
    pass


PACKAGE_ROOT = Path(__file__).resolve().parent
CANONICAL_FILENAME = "canonical.yaml"


def load_canonical(settings_root: str | None = None) -> dict[str, Any]:
    """
    Load the bundled canonical constants (settings/canonical.yaml).

    This is the SSOT for file names, thread caps, table names, enums, and CLI literals.
    """
    root = Path(settings_root) if settings_root is not None else PACKAGE_ROOT / "settings"
    canonical_path = root / CANONICAL_FILENAME
    if not canonical_path.exists():
        raise CanonicalError(f"Missing canonical constants file: {canonical_path}")
    canonical = yaml.safe_load(canonical_path.read_text(encoding="utf-8"))
    if not isinstance(canonical, dict):
        raise CanonicalError("Canonical yaml did not parse as a mapping")

    required_top = ["PROJECT_ID", "PROJECT_VERSION", "PATHS", "FILES", "CLI", "ENUMS", "HASHING", "EXPLORER", "SYNTHESIS"]
    missing = [k for k in required_top if k not in canonical]
    if missing:
        raise CanonicalError(f"Canonical block missing required keys: {missing}")
    return canonical


def get_canonical(canonical: dict[str, Any], dotted_path: str) -> Any:
    """
    Resolve dotted canonical paths like:
      - FILES.SYNTHESIS_SUMMARY_CSV
      - CANONICAL.EXPLORER.SPLITTABLE_TABLES
    """
    if dotted_path.startswith("CANONICAL."):
        dotted_path = dotted_path.removeprefix("CANONICAL.")
    cur: Any = canonical
    for part in dotted_path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            raise CanonicalError(f"Undefined canonical path: {dotted_path}")
        cur = cur[part]
    return cur


def bundled_path(canonical: dict[str, Any], dir_key: str, *parts: str) -> Path:
    # dir_key is a PATHS entry, e.g. "PATH_SETTINGS_DIR".
    return PACKAGE_ROOT.joinpath(str(get_canonical(canonical, f"PATHS.{dir_key}")), *parts)
