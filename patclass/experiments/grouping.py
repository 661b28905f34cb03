"""Apply a function to every combination of per-axis index groups."""
from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from patclass.errors import ConfigError, TrainingFailure
from patclass.utils.logging_utils import progress

__all__ = ["Partition", "normalise_partitions", "grid_shape", "apply_by_group"]

logger = logging.getLogger(__name__)

# ``None`` (whole axis as one group) or a sequence of 0-based index groups
Partition = Optional[Sequence[Sequence[int]]]


def normalise_partitions(partitions: Sequence[Partition], shape: Sequence[int]) -> List[List[np.ndarray]]:
    """Expand each axis partition into an explicit list of index arrays."""
    if len(partitions) != len(shape):
        raise ConfigError(f"Expected {len(shape)} axis partitions, got {len(partitions)}.")
    groups: List[List[np.ndarray]] = []
    for axis, (part, size) in enumerate(zip(partitions, shape)):
        if part is None or (not isinstance(part, str) and len(part) == 0):
            groups.append([np.arange(size, dtype=int)])
            continue
        if isinstance(part, str):
            raise ConfigError(f"Partition for axis {axis} must be index groups, got {part!r}.")
        axis_groups = [np.asarray(g, dtype=int).reshape(-1) for g in part]
        for g in axis_groups:
            if g.size and (g.min() < 0 or g.max() >= size):
                raise ConfigError(f"Partition indices {g.tolist()} out of range for axis {axis} of size {size}.")
        groups.append(axis_groups)
    return groups


def grid_shape(groups: Sequence[Sequence[np.ndarray]]) -> Tuple[int, ...]:
    return tuple(len(g) for g in groups)


def _take_cell(array: np.ndarray, cell_groups: Sequence[np.ndarray]) -> np.ndarray:
    return array[np.ix_(*cell_groups)]


def _run_cell(fn: Callable[..., Any], sub: np.ndarray, args: Tuple[Any, ...], cell: Tuple[int, ...]) -> Any:
    try:
        return fn(sub, *args)
    except TrainingFailure as err:
        raise err.at_cell(cell)


def apply_by_group(
    fn: Callable[..., Any],
    array: np.ndarray,
    partitions: Sequence[Partition],
    args: Sequence[Any] = (),
    *,
    n_jobs: int = 1,
    desc: Optional[str] = None,
) -> np.ndarray:
    """
    Call ``fn(sub_array, *args)`` for every combination of axis groups.

    Args:
        fn: worker; receives the sub-array selecting one group on every axis.
        array: source array, one partition per dimension.
        partitions: per axis, ``None`` for the whole axis or a list of index groups.
        args: extra arguments passed unchanged to every call.
        n_jobs: ``1`` runs cells in order; otherwise cells are dispatched with joblib.
        desc: progress-bar label.

    Returns:
        Object array shaped (number of groups per axis); cell ``(i, j, ...)``
        holds the result for group ``i`` of axis 0, group ``j`` of axis 1, ...

    Any worker exception aborts the whole grid and propagates.
    """
    array = np.asarray(array)
    groups = normalise_partitions(partitions, array.shape)
    shape = grid_shape(groups)
    cells = list(itertools.product(*(range(n) for n in shape)))
    extra = tuple(args)
    logger.debug("apply_by_group over grid %s (%d cells, n_jobs=%s)", shape, len(cells), n_jobs)

    def _sub(cell: Tuple[int, ...]) -> np.ndarray:
        return _take_cell(array, [groups[axis][i] for axis, i in enumerate(cell)])

    if n_jobs == 1:
        values = [
            _run_cell(fn, _sub(cell), extra, cell)
            for cell in progress(cells, total=len(cells), desc=desc)
        ]
    else:
        values = Parallel(n_jobs=n_jobs)(
            delayed(_run_cell)(fn, _sub(cell), extra, cell) for cell in cells
        )

    out = np.empty(shape, dtype=object)
    for cell, value in zip(cells, values):
        out[cell] = value
    return out
