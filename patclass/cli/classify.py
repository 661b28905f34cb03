# patclass/cli/classify.py
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import List

from patclass.experiments.runner import classify_pat
from patclass.utils.config_parser import resolve_config, save_resolved_config
from patclass.utils.io import load_artifact
from patclass.utils.logging_utils import log_config, setup_logging, verbosity_to_level


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Cross-validated classification of a stored pattern from YAML config.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--pattern", "-p", type=str, required=True, help="Pattern artifact (.joblib) to classify.")
    parser.add_argument(
        "--config",
        "-c",
        nargs="+",
        type=str,
        required=True,
        help="One or more YAML config files (merged from left to right).",
    )
    parser.add_argument(
        "--override",
        "-o",
        nargs="*",
        default=[],
        help="Override config keys: e.g., seed=42 train_args.C=0.5",
    )
    parser.add_argument("--name", type=str, default=None, help="Stat name (defaults to config 'stat_name' or 'patclass').")
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
        stat_name = args.name or cfg.pop("stat_name", None) or "patclass"

        pattern_file = Path(args.pattern).expanduser().resolve()
        pattern = load_artifact(pattern_file, kind="pattern", mmap_mode="r")
        if args.res_dir:
            cfg["res_dir"] = str(Path(args.res_dir).expanduser().resolve())
        cfg.setdefault("res_dir", str(pattern_file.parent.parent))

        if logger.isEnabledFor(logging.INFO):
            log_config(logger, cfg)
        save_resolved_config(cfg, Path(cfg["res_dir"]))

        result = classify_pat(pattern, stat_name, cfg)
        stat = result.stats.get(stat_name)
        if stat is None or result is pattern:
            print(f"[OK] Stat '{stat_name}' already exists for {pattern.source}; skipped.")
        else:
            print(f"[OK] Classification finished. Stat saved in: {stat.file}")
        return 0
    except Exception:
        print("[FATAL] Classification failed:\n", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
