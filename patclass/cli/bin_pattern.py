# patclass/cli/bin_pattern.py
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import List

from patclass.patterns.creation import bin_pattern
from patclass.utils.config_parser import resolve_config, save_resolved_config
from patclass.utils.io import load_artifact
from patclass.utils.logging_utils import log_config, setup_logging, verbosity_to_level


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Re-bin a stored pattern into a new pattern artifact.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--pattern", "-p", type=str, required=True, help="Pattern artifact (.joblib) to re-bin.")
    parser.add_argument(
        "--config",
        "-c",
        nargs="*",
        type=str,
        default=[],
        help="YAML files holding bin definitions (eventbins, chanbins, MSbins, freqbins, ...).",
    )
    parser.add_argument(
        "--override",
        "-o",
        nargs="*",
        default=[],
        help="Override config keys: e.g., MSbins=[[0,100],[100,200]] eventbins=category",
    )
    parser.add_argument("--name", type=str, default=None, help="Name of the new pattern (defaults to the input name).")
    parser.add_argument("--res-dir", type=str, default=None, help="Results directory (defaults to the pattern's).")
    parser.add_argument("--log-file", type=str, default=None, help="Also write log records to this file.")
    parser.add_argument(
        "--verbosity",
        "-v",
        action="count",
        default=0,
        help="Increase logging verbosity (-v INFO, -vv DEBUG).",
    )

    args = parser.parse_args(argv)
    logger = setup_logging(verbosity_to_level(args.verbosity), args.log_file)

    try:
        cfg_paths = [Path(p).expanduser().resolve() for p in args.config]
        cfg = resolve_config(cfg_paths, args.override)

        pattern_file = Path(args.pattern).expanduser().resolve()
        pattern = load_artifact(pattern_file, kind="pattern", mmap_mode="r")
        res_dir = Path(args.res_dir).expanduser().resolve() if args.res_dir else pattern_file.parent.parent

        if logger.isEnabledFor(logging.INFO):
            log_config(logger, cfg)
        save_resolved_config(cfg, res_dir)

        result = bin_pattern(pattern, cfg, args.name, res_dir)
        print(f"[OK] Pattern '{result.name}' {result.shape} saved in: {result.file}")
        return 0
    except Exception:
        print("[FATAL] Binning failed:\n", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
