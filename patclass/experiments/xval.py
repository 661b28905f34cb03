"""Leave-one-fold-out cross-validation for one grid cell."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
from numpy.random import default_rng

from data.resample import normalise_sampling, resample_groups
from data.splits import leave_one_fold_out_splits
from patclass.errors import ConfigError, TrainingFailure
from patclass.metrics.performance import perfmet_maxclass
from patclass.models.classifiers import summarize_model, test_logreg, train_logreg

__all__ = ["XvalParams", "IterationResult", "metric_name", "xval"]

logger = logging.getLogger(__name__)


def metric_name(fn: Callable[..., Any]) -> str:
    name = getattr(fn, "__name__", type(fn).__name__)
    return name[len("perfmet_"):] if name.startswith("perfmet_") else name


@dataclass
class XvalParams:
    """Everything the cross-validator needs besides the data."""

    f_train: Callable[..., Any] = train_logreg
    train_args: Dict[str, Any] = field(default_factory=dict)
    f_test: Callable[..., np.ndarray] = test_logreg
    f_perfmet: Sequence[Callable[..., Any]] = (perfmet_maxclass,)
    perfmet_args: Sequence[Mapping[str, Any]] = ()
    train_sampling: str = "none"
    n_reps: int = 1
    train_index: Optional[np.ndarray] = None
    test_targets: Optional[np.ndarray] = None
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        self.train_sampling = normalise_sampling(self.train_sampling)
        if callable(self.f_perfmet):
            self.f_perfmet = (self.f_perfmet,)
        self.f_perfmet = tuple(self.f_perfmet)
        if not self.f_perfmet:
            raise ConfigError("At least one performance metric (f_perfmet) is required.")
        args = [dict(a or {}) for a in self.perfmet_args]
        if len(args) > len(self.f_perfmet):
            raise ConfigError("perfmet_args has more entries than f_perfmet.")
        args.extend({} for _ in range(len(self.f_perfmet) - len(args)))
        self.perfmet_args = tuple(args)
        self.n_reps = int(self.n_reps)
        if self.n_reps < 1:
            raise ConfigError(f"n_reps must be >= 1, got {self.n_reps}.")
        if self.train_index is not None:
            self.train_index = np.asarray(self.train_index).reshape(-1)
        if self.test_targets is not None:
            self.test_targets = np.asarray(self.test_targets).reshape(-1)

    @property
    def balanced(self) -> bool:
        return self.train_index is not None

    @property
    def reps_per_fold(self) -> int:
        return self.n_reps if self.balanced else 1


@dataclass
class IterationResult:
    """Outcome of training and testing on one (fold, repetition)."""

    fold: int
    rep: int
    train_idx: np.ndarray
    test_idx: np.ndarray
    model: Dict[str, Any]
    scores: np.ndarray
    targets: np.ndarray
    perf: Dict[str, Any]


def _as_features(pattern: np.ndarray) -> np.ndarray:
    arr = np.asarray(pattern, dtype=float)
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    X = arr.reshape(arr.shape[0], -1)
    keep = ~np.isnan(X).any(axis=0)
    if not keep.all():
        logger.debug("Dropping %d feature(s) containing NaN.", int((~keep).sum()))
    return X[:, keep]


def xval(
    pattern: np.ndarray,
    selector: np.ndarray,
    targets: np.ndarray,
    params: XvalParams,
) -> List[IterationResult]:
    """
    Leave-one-fold-out cross-validation.

    For each fold id, the observations with that id are tested on a model
    trained on all other observations. With training groups configured the
    training pool is resampled independently ``n_reps`` times per fold.

    Args:
        pattern: observations x features (higher ranks are flattened).
        selector: fold id per observation.
        targets: label per observation.
        params: training/testing functions and options.

    Returns:
        One result per (fold, repetition), fold-major.
    """
    X = _as_features(pattern)
    selector = np.asarray(selector).reshape(-1)
    targets = np.asarray(targets).reshape(-1)
    n = X.shape[0]
    for label, vec in (("selector", selector), ("targets", targets),
                       ("train_index", params.train_index), ("test_targets", params.test_targets)):
        if vec is not None and vec.shape[0] != n:
            raise ConfigError(f"{label} has {vec.shape[0]} entries but the pattern has {n} observations.")

    test_targets = targets if params.test_targets is None else params.test_targets
    classes = np.unique(targets)
    rng = default_rng(params.seed)
    train_name = getattr(params.f_train, "__name__", repr(params.f_train))

    results: List[IterationResult] = []
    for split in leave_one_fold_out_splits(selector):
        for rep in range(1, params.reps_per_fold + 1):
            train_idx = split.train
            if params.balanced:
                train_idx = resample_groups(train_idx, params.train_index[train_idx], params.train_sampling, rng)
            try:
                model = params.f_train(X[train_idx], targets[train_idx], **params.train_args)
            except Exception as exc:
                raise TrainingFailure(f"{train_name} failed: {exc}", fold=split.fold, rep=rep) from exc

            scores = np.asarray(params.f_test(model, X[split.test], classes))
            y_true = test_targets[split.test]
            perf = {
                metric_name(fn): fn(scores, y_true, classes, **args)
                for fn, args in zip(params.f_perfmet, params.perfmet_args)
            }
            results.append(
                IterationResult(
                    fold=split.fold,
                    rep=rep,
                    train_idx=np.asarray(train_idx, dtype=int),
                    test_idx=split.test,
                    model=summarize_model(model),
                    scores=scores,
                    targets=y_true,
                    perf=perf,
                )
            )
    return results
