"""Group-balanced resampling of training observations."""
from __future__ import annotations

from typing import Optional

import numpy as np
from numpy.random import Generator, default_rng
from sklearn.utils import resample

__all__ = ["SAMPLING_MODES", "normalise_sampling", "resample_groups"]

SAMPLING_MODES = ("none", "over", "under")


def normalise_sampling(mode: Optional[str]) -> str:
    """Map config spellings onto ``none`` | ``over`` | ``under``."""
    label = "" if mode is None else str(mode).strip().lower()
    if label in {"", "none", "off", "false"}:
        return "none"
    if label in {"over", "oversample"}:
        return "over"
    if label in {"under", "undersample"}:
        return "under"
    raise ValueError(f"Unsupported train_sampling '{mode}'. Use none|over|under.")


def resample_groups(
    indices: np.ndarray,
    groups: np.ndarray,
    mode: str = "none",
    rng: Optional[Generator] = None,
) -> np.ndarray:
    """Equalise per-group counts among ``indices``.

    Args:
        indices: observation indices of the training pool.
        groups: group id for each entry of ``indices``.
        mode: ``over`` tops every group up to the largest group by drawing
            with replacement; ``under`` draws every group down to the
            smallest group without replacement; ``none`` returns
            ``indices`` unchanged.
        rng: source of randomness; each call draws fresh seeds from it.

    Returns:
        Resampled observation indices, grouped by group id.
    """
    indices = np.asarray(indices, dtype=int).reshape(-1)
    groups = np.asarray(groups).reshape(-1)
    if indices.shape != groups.shape:
        raise ValueError("indices and groups must have the same length.")
    mode = normalise_sampling(mode)
    if mode == "none" or indices.size == 0:
        return indices.copy()

    rng = default_rng() if rng is None else rng
    labels, counts = np.unique(groups, return_counts=True)
    target = int(counts.max() if mode == "over" else counts.min())

    sampled = []
    for label, count in zip(labels, counts):
        members = indices[groups == label]
        seed = int(rng.integers(0, 2**32 - 1))
        if mode == "over":
            extra = target - int(count)
            if extra > 0:
                members = np.concatenate(
                    [members, resample(members, replace=True, n_samples=extra, random_state=seed)]
                )
        else:
            members = resample(members, replace=False, n_samples=target, random_state=seed)
        sampled.append(np.asarray(members, dtype=int))
    return np.concatenate(sampled)
