"""Function registries and builders for cross-validation runs.

Training, testing and performance functions can be named in configs
(``f_train: lda``) or passed directly as callables.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import numpy as np

from patclass.errors import ConfigError
from patclass.experiments.xval import XvalParams
from patclass.metrics.performance import perfmet_auc, perfmet_logloss, perfmet_maxclass
from patclass.models import classifiers

# ------------------------------
# Registry and decorator
# ------------------------------
REGISTRY: Dict[str, Dict[str, Callable[..., Any]]] = {"train": {}, "test": {}, "perfmet": {}}

DEFAULT_N_REPS_BALANCED = 1000


def register(kind: str, name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Register a function via @register('train', 'logreg')."""

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        table = REGISTRY[kind]
        key = name.strip().lower()
        if key in table:
            raise ValueError(f"{kind} function '{key}' already registered.")
        table[key] = fn
        return fn

    return deco


def _get(cfg: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Safe getter: _get(cfg, 'train_args.C', 1.0)."""
    cur: Any = cfg
    for seg in path.split("."):
        if not isinstance(cur, Mapping) or seg not in cur:
            return default
        cur = cur[seg]
    return cur


register("train", "logreg")(classifiers.train_logreg)
register("train", "lda")(classifiers.train_lda)
register("test", "logreg")(classifiers.test_logreg)
register("test", "lda")(classifiers.test_lda)
register("perfmet", "maxclass")(perfmet_maxclass)
register("perfmet", "auc")(perfmet_auc)
register("perfmet", "logloss")(perfmet_logloss)


def resolve_function(kind: str, value: Any) -> Callable[..., Any]:
    """Return ``value`` if callable, otherwise look its name up in the registry."""
    if callable(value):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"{kind} function must be a callable or a registered name, got {value!r}.")
    key = value.strip().lower()
    for prefix in ("train_", "test_", "perfmet_"):
        if key.startswith(prefix):
            key = key[len(prefix):]
    table = REGISTRY[kind]
    if key not in table:
        raise ConfigError(f"Unknown {kind} function '{value}'. Available: {sorted(table)}.")
    return table[key]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def build_xval_params(
    params: Mapping[str, Any],
    *,
    train_index: Optional[np.ndarray] = None,
    test_targets: Optional[np.ndarray] = None,
) -> XvalParams:
    """Build an :class:`XvalParams` from a classification params mapping.

    ``f_test`` defaults to the tester registered under the same name as
    ``f_train``; ``n_reps`` defaults to 1000 when training groups are set.
    """
    train_spec = _get(params, "f_train", "logreg")
    test_spec = _get(params, "f_test")
    if test_spec is None:
        test_spec = train_spec if isinstance(train_spec, str) else "logreg"

    metrics: Sequence[Any] = _as_list(_get(params, "f_perfmet", "maxclass")) or ["maxclass"]
    metric_args = _as_list(_get(params, "perfmet_args"))
    if not all(a is None or isinstance(a, Mapping) for a in metric_args):
        raise ConfigError(f"perfmet_args must be a mapping or a list of mappings, got {metric_args!r}.")

    n_reps = _get(params, "n_reps")
    if n_reps is None:
        n_reps = DEFAULT_N_REPS_BALANCED if train_index is not None else 1

    try:
        return XvalParams(
            f_train=resolve_function("train", train_spec),
            train_args=dict(_get(params, "train_args") or {}),
            f_test=resolve_function("test", test_spec),
            f_perfmet=tuple(resolve_function("perfmet", m) for m in metrics),
            perfmet_args=tuple(metric_args),
            train_sampling=_get(params, "train_sampling", "none"),
            n_reps=int(n_reps),
            train_index=train_index,
            test_targets=test_targets,
            seed=_get(params, "seed"),
        )
    except ConfigError:
        raise
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
