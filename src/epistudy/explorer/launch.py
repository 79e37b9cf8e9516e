from __future__ import annotations

import argparse
import importlib.util
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from epistudy.canonical import PACKAGE_ROOT, get_canonical, load_canonical
from epistudy.io.logging import JsonlLogger, event_type, make_logger


class ExplorerError(RuntimeError):
    pass


@dataclass(frozen=True)
class ExplorerSettings:
    data_folder: Path
    blind: bool = True

    def to_args(self) -> list[str]:
        return ["--data_folder", str(self.data_folder), "--blind", "true" if self.blind else "false"]

    @classmethod
    def from_args(cls, argv: Sequence[str]) -> "ExplorerSettings":
        p = argparse.ArgumentParser(prog="evidence_explorer")
        p.add_argument("--data_folder", required=True)
        p.add_argument("--blind", choices=["true", "false"], default="true")
        args = p.parse_args(list(argv))
        return cls(data_folder=Path(args.data_folder), blind=args.blind == "true")


def ensure_installed(packages: Sequence[str]) -> None:
    missing = [pkg for pkg in packages if importlib.util.find_spec(pkg) is None]
    if missing:
        raise ExplorerError(f"{', '.join(repr(m) for m in missing)} must be installed for this functionality.")


def explorer_command(settings: ExplorerSettings, canonical: dict[str, Any], *, launch_browser: bool = True) -> list[str]:
    app_path = PACKAGE_ROOT / str(get_canonical(canonical, "PATHS.PATH_EXPLORER_APP"))
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(app_path),
        "--server.headless",
        "false" if launch_browser else "true",
        "--",
        *settings.to_args(),
    ]


def launch_evidence_explorer(
    data_folder: Path | str,
    blind: bool = True,
    launch_browser: bool = True,
    *,
    canonical: dict[str, Any] | None = None,
    logger: JsonlLogger | None = None,
) -> int:
    """
    Launch the Evidence Explorer Streamlit app on a prepared data folder.

    The session settings travel to the app process on its command line; this
    call blocks until the app process exits.
    """
    canonical = canonical if canonical is not None else load_canonical()
    folder = Path(data_folder).expanduser()
    if not folder.is_dir():
        raise ExplorerError(f"Cannot find data folder '{folder}'")
    folder = folder.resolve()
    ensure_installed([str(p) for p in get_canonical(canonical, "EXPLORER.REQUIRED_PACKAGES")])

    settings = ExplorerSettings(data_folder=folder, blind=bool(blind))
    cmd = explorer_command(settings, canonical, launch_browser=launch_browser)
    logger = logger or make_logger(log_dir=folder, canonical=canonical)
    logger.log(event_type(canonical, "EVENT_EXPLORER_LAUNCH"), {"data_folder": str(folder), "blind": settings.blind})
    subprocess.run(cmd, check=True)
    return 0
