from __future__ import annotations

import pytest
import yaml

from patclass.errors import ConfigError
from patclass.utils.config_parser import (
    load_and_merge_configs,
    parse_overrides,
    resolve_config,
    save_resolved_config,
)


def _write(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_defaults_are_merged_before_the_file(tmp_path):
    _write(tmp_path / "base.yaml", {"selector": "session", "train_args": {"C": 1.0, "max_iter": 100}})
    child = _write(
        tmp_path / "child.yaml",
        {"defaults": "base.yaml", "regressor": "category", "train_args": {"C": 0.1}},
    )
    cfg = load_and_merge_configs([child])
    assert cfg == {
        "selector": "session",
        "regressor": "category",
        "train_args": {"C": 0.1, "max_iter": 100},
    }


def test_later_files_win(tmp_path):
    a = _write(tmp_path / "a.yaml", {"seed": 1, "f_train": "logreg"})
    b = _write(tmp_path / "b.yaml", {"seed": 2})
    assert load_and_merge_configs([a, b]) == {"seed": 2, "f_train": "logreg"}


def test_defaults_cycle_is_detected(tmp_path):
    _write(tmp_path / "a.yaml", {"defaults": "b.yaml"})
    _write(tmp_path / "b.yaml", {"defaults": "a.yaml"})
    with pytest.raises(ConfigError):
        load_and_merge_configs([tmp_path / "a.yaml"])


def test_parse_overrides_casts_values():
    parsed = parse_overrides(
        ["seed=42", "train_args.C=0.5", "overwrite=false", "f_train=lda", "iter_bins.MSbins=[[0, 100], [100, 200]]"]
    )
    assert parsed == {
        "seed": 42,
        "train_args": {"C": 0.5},
        "overwrite": False,
        "f_train": "lda",
        "iter_bins": {"MSbins": [[0, 100], [100, 200]]},
    }


def test_parse_overrides_requires_key_value():
    with pytest.raises(ConfigError):
        parse_overrides(["seed"])


def test_resolve_and_save(tmp_path):
    cfg_path = _write(tmp_path / "cfg.yaml", {"regressor": "category", "n_reps": 10})
    cfg = resolve_config([cfg_path], ["n_reps=20"])
    assert cfg["n_reps"] == 20
    out = save_resolved_config(cfg, tmp_path / "out")
    assert yaml.safe_load(out.read_text(encoding="utf-8")) == cfg
    with pytest.raises(FileNotFoundError):
        resolve_config([tmp_path / "missing.yaml"])
