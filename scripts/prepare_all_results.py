from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path


def _results_zips(results_folder: Path) -> list[Path]:
    return sorted(p for p in results_folder.iterdir() if p.is_file() and p.suffix.lower() == ".zip")


def _run_cli(cmd: list[str], *, dry_run: bool) -> None:
    print("+ " + " ".join(cmd), flush=True)
    if dry_run:
        return
    subprocess.run(cmd, check=True)


def main() -> int:
    p = argparse.ArgumentParser(description="Import every results zip in a folder into one Evidence Explorer data folder.")
    p.add_argument("--results_folder", required=True, help="Folder holding one results zip per database.")
    p.add_argument("--data_folder", required=True, help="Evidence Explorer data folder (created if missing).")
    p.add_argument("--launch", action="store_true", help="Launch the Evidence Explorer after importing.")
    p.add_argument("--dry_run", action="store_true", help="Print commands without executing them.")
    args = p.parse_args()

    results_folder = Path(str(args.results_folder))
    if not results_folder.is_dir():
        raise SystemExit(f"Cannot find results folder '{results_folder}'")
    zips = _results_zips(results_folder)

    print(f"results_folder={results_folder}")
    print(f"data_folder={args.data_folder}")
    print(f"results_zips={len(zips)}")

    for zip_path in zips:
        cmd = [
            sys.executable,
            "-m",
            "epistudy.cli",
            "explorer",
            "prepare",
            "--results_zip",
            str(zip_path),
            "--data_folder",
            str(args.data_folder),
        ]
        _run_cli(cmd, dry_run=bool(args.dry_run))

    if args.launch:
        _run_cli(
            [sys.executable, "-m", "epistudy.cli", "explorer", "launch", "--data_folder", str(args.data_folder)],
            dry_run=bool(args.dry_run),
        )

    print("OK", flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
