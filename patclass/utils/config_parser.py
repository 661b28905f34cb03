"""YAML configuration loader with ``defaults`` inheritance and command-line overrides."""
from __future__ import annotations

from functools import reduce
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml

from patclass.errors import ConfigError

__all__ = [
    "load_config",
    "load_and_merge_configs",
    "parse_overrides",
    "deep_update",
    "resolve_config",
    "save_resolved_config",
]


def load_config(path: Path) -> Dict[str, Any]:
    """Load a YAML config file into a dictionary."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a YAML mapping at top-level.", path=path)
    return data


def deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            deep_update(dst[k], v)
        else:
            dst[k] = v
    return dst


def _cast_val(v: str) -> Any:
    low = v.lower()
    if low in {"true", "false"}:
        return low == "true"
    if low in {"null", "none"}:
        return None
    if v[:1] in {"[", "{"}:
        return yaml.safe_load(v)
    try:
        if "." in v or "e" in low:
            return float(v)
        return int(v)
    except ValueError:
        return v


def parse_overrides(pairs: Iterable[str]) -> Dict[str, Any]:
    """
    Parse CLI overrides like:
      ['seed=42', 'train_args.C=0.5', 'iter_bins.MSbins=[[0,100],[100,200]]']

    Returns a nested dict merged later into the config.
    """
    root: Dict[str, Any] = {}
    for item in pairs:
        if "=" not in item:
            raise ConfigError(f"Override must be key=value, got: '{item}'")
        k, v = item.split("=", 1)
        keys = k.split(".")
        d = reduce(lambda acc, kk: acc.setdefault(kk, {}), keys[:-1], root)
        if not isinstance(d, dict):
            raise ConfigError(f"Key path conflict at '{k}'")
        d[keys[-1]] = _cast_val(v)
    return root


def _resolve_default(item: Any, parent: Path) -> Path:
    ref = Path(item)
    if ref.is_absolute():
        return ref
    for cand in (parent / ref, Path.cwd() / ref):
        if cand.exists():
            return cand.resolve()
    raise FileNotFoundError(f"Default config '{item}' referenced from {parent} not found.")


def _load_with_defaults(path: Path, seen: frozenset) -> Dict[str, Any]:
    norm_path = Path(path).resolve()
    if norm_path in seen:
        raise ConfigError(f"Config defaults cycle detected at {norm_path}.", path=norm_path)
    seen = seen | {norm_path}

    data = load_config(norm_path)
    defaults = data.pop("defaults", None)
    base: Dict[str, Any] = {}
    if defaults:
        if isinstance(defaults, (str, Path)):
            defaults = [defaults]
        if not isinstance(defaults, list):
            raise ConfigError(f"'defaults' in {norm_path} must be string or list.", path=norm_path)
        for item in defaults:
            base = deep_update(base, _load_with_defaults(_resolve_default(item, norm_path.parent), seen))
    return deep_update(base, data)


def load_and_merge_configs(paths: Sequence[Path]) -> Dict[str, Any]:
    """
    Load and recursively merge YAML configs left to right. Honors a top-level
    `defaults` key by loading and merging parent configs (relative to the
    current file) first.
    """
    cfg: Dict[str, Any] = {}
    for p in paths:
        deep_update(cfg, _load_with_defaults(Path(p), frozenset()))
    return cfg


def resolve_config(paths: Sequence[Path], overrides: Optional[List[str]] = None) -> Dict[str, Any]:
    """Merged configs with dotted ``key=value`` overrides applied last."""
    for p in paths:
        if not Path(p).exists():
            raise FileNotFoundError(f"Config not found: {p}")
    return deep_update(load_and_merge_configs(paths), parse_overrides(overrides or []))


def save_resolved_config(cfg: Dict[str, Any], out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / "resolved_config.yaml"
    with target.open("w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, sort_keys=False, allow_unicode=True)
    return target
