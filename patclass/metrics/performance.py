"""Classifier performance metrics leveraging sklearn implementations.

Every metric takes ``(scores, y_true, classes)`` where ``scores`` has one
column per entry of ``classes``.
"""
from __future__ import annotations

import numpy as np
from sklearn.metrics import accuracy_score, log_loss, roc_auc_score


def _to_vector(arr: np.ndarray) -> np.ndarray:
    """Ensure flat numpy vector input for sklearn metrics."""
    return np.asarray(arr).reshape(-1)


def perfmet_maxclass(scores: np.ndarray, y_true: np.ndarray, classes: np.ndarray) -> float:
    """Fraction of observations whose highest-scoring class is the true class."""
    guesses = np.asarray(classes)[np.argmax(np.asarray(scores), axis=1)]
    return float(accuracy_score(_to_vector(y_true), guesses))


def perfmet_auc(scores: np.ndarray, y_true: np.ndarray, classes: np.ndarray, *, average: str = "macro") -> float:
    """One-vs-rest ROC AUC; NaN when the held-out fold has a single class."""
    y = _to_vector(y_true)
    present = np.unique(y)
    if present.size < 2:
        return float("nan")
    scores = np.asarray(scores, dtype=float)
    classes = np.asarray(classes)
    if classes.size == 2:
        return float(roc_auc_score(y == classes[1], scores[:, 1]))
    keep = np.isin(classes, present)
    sub = scores[:, keep]
    totals = sub.sum(axis=1, keepdims=True)
    sub = np.divide(sub, totals, out=np.full_like(sub, 1.0 / sub.shape[1]), where=totals > 0)
    if present.size == 2:
        return float(roc_auc_score(y == present[1], sub[:, 1]))
    return float(roc_auc_score(y, sub, multi_class="ovr", average=average, labels=classes[keep]))


def perfmet_logloss(scores: np.ndarray, y_true: np.ndarray, classes: np.ndarray, *, eps: float = 1e-7) -> float:
    """Cross-entropy of the class scores."""
    prob = np.clip(np.asarray(scores, dtype=float), eps, 1.0)
    prob = prob / prob.sum(axis=1, keepdims=True)
    return float(log_loss(_to_vector(y_true), prob, labels=np.asarray(classes)))
