from __future__ import annotations

import argparse
from typing import Any

from epistudy.canonical import load_canonical
from epistudy.commands import run_launch, run_prepare, run_synthesize


def _build_parser(canonical: dict[str, Any]) -> argparse.ArgumentParser:
    flags = canonical["CLI"]["CANONICAL_FLAGS"]

    p = argparse.ArgumentParser(prog="epistudy")
    sp = p.add_subparsers(dest="group", required=True)

    controls = sp.add_parser("controls")
    controls_sp = controls.add_subparsers(dest="cmd", required=True)
    synth = controls_sp.add_parser("synthesize", help="Synthesize positive controls and write AllControls.csv.")
    synth.add_argument(flags["FLAG_CONFIG"], dest="config_path", required=True)
    synth.add_argument(flags["FLAG_MAX_CORES"], dest="max_cores", type=int, default=None)
    synth.add_argument(flags["FLAG_OUTPUT_FOLDER"], dest="output_folder", default=None)
    synth.set_defaults(func=run_synthesize)

    explorer = sp.add_parser("explorer")
    explorer_sp = explorer.add_subparsers(dest="cmd", required=True)
    prep = explorer_sp.add_parser("prepare", help="Import a results zip into an Evidence Explorer data folder.")
    prep.add_argument(flags["FLAG_RESULTS_ZIP"], dest="results_zip", required=True)
    prep.add_argument(flags["FLAG_DATA_FOLDER"], dest="data_folder", required=True)
    prep.set_defaults(func=run_prepare)

    launch = explorer_sp.add_parser("launch", help="Launch the Evidence Explorer app.")
    launch.add_argument(flags["FLAG_DATA_FOLDER"], dest="data_folder", required=True)
    launch.add_argument(flags["FLAG_UNBLIND"], dest="unblind", action="store_true")
    launch.add_argument(flags["FLAG_NO_BROWSER"], dest="no_browser", action="store_true")
    launch.set_defaults(func=run_launch)

    return p


def main(argv: list[str] | None = None) -> int:
    canonical = load_canonical()
    parser = _build_parser(canonical)
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))  # type: ignore[misc]
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
