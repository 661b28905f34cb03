"""NaN-tolerant reduction of pattern arrays along binned axes."""
from __future__ import annotations

import warnings
from typing import Callable, Iterable, Iterator, Optional, Sequence

import numpy as np

from patclass.errors import ShapeError

__all__ = [
    "bin_mean",
    "pattern_means",
    "array_fetcher",
    "iter_bin_means",
    "stack_bin_means",
]

Fetch = Callable[[np.ndarray], np.ndarray]


def bin_mean(array: np.ndarray, indices: np.ndarray, axis: int) -> np.ndarray:
    """Mean over ``indices`` along ``axis``, ignoring NaN; the axis is kept with length 1.

    A position is NaN only if every contributing value is NaN (or the bin is empty).
    """
    taken = np.take(np.asarray(array, dtype=float), np.asarray(indices, dtype=int), axis=axis)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmean(taken, axis=axis, keepdims=True)


def pattern_means(array: np.ndarray, bins: Sequence[Optional[Sequence[np.ndarray]]]) -> np.ndarray:
    """Apply bins on every axis that has them; ``None`` passes the axis through."""
    out = np.asarray(array, dtype=float)
    for axis, axis_bins in enumerate(bins):
        if axis_bins is None:
            continue
        if len(axis_bins) == 0:
            raise ShapeError(f"No bins given for axis {axis}; the axis would be empty.")
        out = np.concatenate([bin_mean(out, idx, axis) for idx in axis_bins], axis=axis)
    return out


def array_fetcher(array: np.ndarray, axis: int = 0) -> Fetch:
    """Fetch function reading one bin's observations from an (optionally memory-mapped) array."""

    def fetch(indices: np.ndarray) -> np.ndarray:
        return np.take(array, np.asarray(indices, dtype=int), axis=axis)

    return fetch


def iter_bin_means(fetch: Fetch, bins: Iterable[np.ndarray], axis: int = 0) -> Iterator[np.ndarray]:
    """Lazily reduce one bin at a time.

    ``fetch(indices)`` must return only the observations of that bin, so the
    full unbinned array never has to be resident. The generator is
    single-use.
    """
    for indices in bins:
        raw = fetch(np.asarray(indices, dtype=int))
        yield bin_mean(raw, np.arange(raw.shape[axis]), axis)


def stack_bin_means(slices: Iterable[np.ndarray], n_bins: int, axis: int = 0) -> np.ndarray:
    """Consume a stream of reduced slices into one preallocated array."""
    out: Optional[np.ndarray] = None
    count = 0
    for count, piece in enumerate(slices, start=1):
        if count > n_bins:
            raise ShapeError(f"Bin stream produced more than the expected {n_bins} slices.")
        if out is None:
            shape = list(piece.shape)
            shape[axis] = n_bins
            out = np.full(shape, np.nan, dtype=float)
        index = [slice(None)] * out.ndim
        index[axis] = slice(count - 1, count)
        out[tuple(index)] = piece
    if out is None or count != n_bins:
        raise ShapeError(f"Bin stream produced {count} slices, expected {n_bins}.")
    return out
