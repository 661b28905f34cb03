"""Leave-one-fold-out splitting helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from sklearn.model_selection import LeaveOneGroupOut

__all__ = [
    "FoldSplit",
    "leave_one_fold_out_splits",
]


@dataclass(frozen=True)
class FoldSplit:
    """Train/test indices for one held-out fold."""

    fold: int
    train: np.ndarray
    test: np.ndarray


def leave_one_fold_out_splits(selector: np.ndarray) -> List[FoldSplit]:
    """
    One split per distinct fold id: that fold is held out, the rest train.

    Args:
        selector: fold id per observation (dense, 1-based).

    Returns:
        FoldSplit objects in ascending fold-id order.
    """
    selector = np.asarray(selector).reshape(-1)
    if selector.size == 0:
        raise ValueError("selector must contain at least one observation.")
    fold_ids = np.unique(selector)

    if fold_ids.size == 1:
        # a single fold leaves nothing to train on
        only = np.arange(selector.size, dtype=int)
        return [FoldSplit(fold=int(fold_ids[0]), train=np.empty(0, dtype=int), test=only)]

    splitter = LeaveOneGroupOut()
    splits: List[FoldSplit] = []
    for train_idx, test_idx in splitter.split(np.zeros((selector.size, 1)), groups=selector):
        train_arr = np.asarray(train_idx, dtype=int)
        test_arr = np.asarray(test_idx, dtype=int)
        fold_id = selector[test_arr[0]]
        splits.append(FoldSplit(fold=int(fold_id), train=train_arr, test=test_arr))
    splits.sort(key=lambda s: s.fold)
    return splits
