"""
Pattern classification entry points.

:func:`classify_pat` validates a classification config against a pattern,
runs leave-one-fold-out cross-validation on every cell of the configured
channel/time/frequency grid and persists the assembled results as a
:class:`Stat` artifact. It is invoked by the CLI
(`python -m patclass.cli.classify`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from data.events import create_targets, make_selector, make_train_index, resolve_fields
from patclass.errors import ConfigError, PatclassError, ShapeError, TrainingFailure
from patclass.experiments.grouping import Partition, apply_by_group, normalise_partitions
from patclass.experiments.registry import build_xval_params
from patclass.experiments.xval import IterationResult, xval
from patclass.patterns.binning import bin_dim, resolve_groups
from patclass.patterns.binspec import BIN_PARAM_KEYS, CollapseAll, OnePerElement
from patclass.patterns.dims import DIM_NAMES, Pattern
from patclass.utils.io import DEFAULT_LOCK_TIMEOUT, save_artifact, stat_path
from patclass.utils.logging_utils import Timer

__all__ = ["Stat", "assemble_results", "classify_pat", "iteration_results"]

logger = logging.getLogger(__name__)


@dataclass
class Stat:
    """Classification results for one pattern of one source."""

    kind: ClassVar[str] = "stat"

    name: str
    source: str
    pattern: str
    file: Optional[Path]
    params: Dict[str, Any] = field(default_factory=dict)
    res: Optional[np.ndarray] = None

    @property
    def shape(self) -> Tuple[int, ...]:
        return () if self.res is None else tuple(self.res.shape)

    def perf(self, metric: str) -> np.ndarray:
        """Float array of one metric, shaped like ``res``."""
        if self.res is None:
            raise ValueError(f"Stat '{self.name}' holds no results.")
        out = np.full(self.res.shape, np.nan, dtype=float)
        for pos, record in np.ndenumerate(self.res):
            if metric not in record.perf:
                raise KeyError(f"Metric '{metric}' not recorded; available: {sorted(record.perf)}.")
            out[pos] = float(record.perf[metric])
        return out


def assemble_results(grid: np.ndarray) -> np.ndarray:
    """
    Stack per-cell cross-validation outputs into one uniform array.

    Args:
        grid: object array shaped (1, g2, g3, g4); each cell holds the list of
            per-(fold, repetition) results for that cell.

    Returns:
        Object array shaped (n_iterations, g2, g3, g4).
    """
    grid = np.asarray(grid, dtype=object)
    if grid.ndim != 4:
        raise ShapeError(f"Expected a 4-d result grid, got shape {grid.shape}.")
    if grid.shape[0] != 1:
        raise ShapeError(f"Observations axis must be a single group; result grid is {grid.shape}.")

    lengths = {len(cell) for cell in grid.flat}
    if len(lengths) != 1:
        raise ShapeError(f"Grid cells disagree on the number of (fold, repetition) results: {sorted(lengths)}.")
    n_iter = lengths.pop()

    out = np.empty((n_iter,) + grid.shape[1:], dtype=object)
    for (_, j2, j3, j4), cell in np.ndenumerate(grid):
        for k, record in enumerate(cell):
            out[k, j2, j3, j4] = record
    return out


def _portable(value: Any) -> Any:
    """Replace callables by dotted names so stored params stay loadable."""
    if callable(value):
        return f"{getattr(value, '__module__', '?')}.{getattr(value, '__qualname__', repr(value))}"
    if isinstance(value, Mapping):
        return {k: _portable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_portable(v) for v in value]
    return value


def _resolve_res_dir(pattern: Pattern, params: Mapping[str, Any]) -> Path:
    res_dir = params.get("res_dir")
    if res_dir:
        return Path(res_dir)
    if pattern.file is not None:
        # pattern files live in <res_dir>/patterns
        return Path(pattern.file).parent.parent
    raise ConfigError("res_dir is required for a pattern that is not stored on disk.")


# per-axis sentinels accepted in iter_cell
_ITER_CELL_TOKENS = {"iter": OnePerElement(), ":": CollapseAll(), "all": CollapseAll()}


def _iteration_partitions(pattern: Pattern, params: Mapping[str, Any]) -> List[Partition]:
    iter_cell = params.get("iter_cell")
    iter_bins = params.get("iter_bins") or {}
    if not isinstance(iter_bins, Mapping):
        raise ConfigError(f"iter_bins must be a mapping of bin definitions, got {iter_bins!r}.")
    if isinstance(iter_cell, Mapping):
        # a mapping iter_cell holds bin definitions, like iter_bins
        iter_bins = {**iter_cell, **iter_bins}
        iter_cell = None

    partitions: List[Partition] = [None, None, None, None] if iter_cell is None else list(iter_cell)
    if len(partitions) != 4:
        raise ConfigError(f"iter_cell must have one entry per axis (4), got {len(partitions)}.")
    for axis, part in enumerate(partitions):
        if not isinstance(part, str):
            continue
        if part not in _ITER_CELL_TOKENS:
            raise ConfigError(
                f"iter_cell entry for the {DIM_NAMES[axis]} axis must be index groups "
                f"or one of {sorted(_ITER_CELL_TOKENS)}, got {part!r}."
            )
        partitions[axis] = resolve_groups(_ITER_CELL_TOKENS[part], pattern.dims[axis], DIM_NAMES[axis])

    for axis, (key, label_key) in enumerate(BIN_PARAM_KEYS):
        if iter_bins.get(key) is None:
            continue
        if axis == 0:
            raise ConfigError("Cannot iterate over event bins: labels and folds are defined per observation.")
        _, bins = bin_dim(axis, pattern.dims[axis], iter_bins[key], iter_bins.get(label_key))
        partitions[axis] = bins

    first = partitions[0]
    if first is not None and len(first) > 0:
        n_ev = pattern.shape[0]
        if len(first) != 1 or sorted(np.asarray(first[0]).tolist()) != list(range(n_ev)):
            raise ConfigError("The observations axis may not be partitioned during classification.")
        partitions[0] = None

    groups = normalise_partitions(partitions, pattern.shape)
    for axis, axis_groups in enumerate(groups):
        empty = [i + 1 for i, g in enumerate(axis_groups) if g.size == 0]
        if empty:
            raise ConfigError(
                f"Classification group(s) {empty} on the {DIM_NAMES[axis]} axis select no elements."
            )
    return partitions


def _validate(pattern: Pattern, params: Mapping[str, Any]) -> List[Partition]:
    events = pattern.dims.ev
    for key in ("regressor", "selector"):
        if params.get(key) in (None, "", []):
            raise ConfigError(f"You must specify a {key}.")
    resolve_fields(events, params["regressor"], role="regressor")
    resolve_fields(events, params["selector"], role="selector")
    if params.get("test_regressor"):
        resolve_fields(events, params["test_regressor"], role="test_regressor")
    if params.get("train_bins"):
        make_train_index(events, params["train_bins"])
    build_xval_params(params)
    empty = [DIM_NAMES[i] for i, n in enumerate(pattern.shape) if n == 0]
    if empty:
        raise ShapeError(f"Pattern '{pattern.name}' has zero-length axis: {', '.join(empty)}.")
    return _iteration_partitions(pattern, params)


def classify_pat(
    pattern: Pattern,
    stat_name: str = "patclass",
    params: Optional[Mapping[str, Any]] = None,
) -> Pattern:
    """
    Cross-validated classification of a pattern.

    Args:
        pattern: pattern to classify; its array is loaded from ``file`` if
            not held in memory.
        stat_name: name of the resulting Stat artifact.
        params: classification options (``regressor``, ``selector``,
            ``iter_cell``, ``iter_bins``, ``f_train``, ``train_args``,
            ``train_sampling``, ``n_reps``, ``train_bins``, ``f_test``,
            ``f_perfmet``, ``perfmet_args``, ``test_regressor``,
            ``overwrite``, ``res_dir``, ``seed``, ``n_jobs``).

    Returns:
        A copy of ``pattern`` with the new Stat under ``stats[stat_name]``,
        or ``pattern`` itself when the Stat exists and ``overwrite`` is off.
    """
    params = dict(params or {})
    path = stat_path(_resolve_res_dir(pattern, params), stat_name, pattern.source)

    try:
        partitions = _validate(pattern, params)
    except PatclassError as err:
        raise err.with_path(path)

    if not params.get("overwrite", True) and path.exists():
        logger.info("Stat %s exists; skipping %s.", path, pattern.source)
        return pattern

    with Timer(name=f"classify {pattern.name} {pattern.source}", logger=logger):
        mat = pattern.load_mat()
        try:
            pattern.copy_with(mat=mat).check_shape()
        except ShapeError as err:
            raise err.with_path(path)

        events = pattern.dims.ev
        try:
            targets = create_targets(events, params["regressor"])
            selector = make_selector(events, params["selector"])
            test_targets = None
            if params.get("test_regressor"):
                test_targets = create_targets(events, params["test_regressor"])
            train_index = None
            if params.get("train_bins"):
                train_index = make_train_index(events, params["train_bins"])
            xparams = build_xval_params(params, train_index=train_index, test_targets=test_targets)
        except PatclassError as err:
            raise err.with_path(path)

        logger.info(
            "Classifying %s (%s): %d folds, %d rep(s) per fold.",
            pattern.name, pattern.source, len(np.unique(selector)), xparams.reps_per_fold,
        )
        try:
            grid = apply_by_group(
                xval,
                mat,
                partitions,
                args=(selector, targets, xparams),
                n_jobs=int(params.get("n_jobs", 1)),
                desc=f"{stat_name} {pattern.source}",
            )
        except TrainingFailure as err:
            raise err.with_path(path)
        res = assemble_results(grid)

    stat = Stat(
        name=stat_name,
        source=pattern.source,
        pattern=pattern.name,
        file=path,
        params=_portable(params),
        res=res,
    )
    save_artifact(stat, path, lock_timeout=float(params.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)))
    return pattern.copy_with(stats={**pattern.stats, stat_name: stat})


def iteration_results(stat: Stat, cell: Sequence[int] = (0, 0, 0)) -> List[IterationResult]:
    """All (fold, repetition) records of one channel/time/frequency cell."""
    if stat.res is None:
        return []
    j2, j3, j4 = cell
    return list(stat.res[:, j2, j3, j4])
