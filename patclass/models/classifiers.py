"""Training and testing functions for pattern classification."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.linear_model import LogisticRegression as _SklearnLogisticRegression

__all__ = [
    "LogisticRegressionClassifier",
    "train_logreg",
    "test_logreg",
    "train_lda",
    "test_lda",
    "class_scores",
    "summarize_model",
]


@dataclass
class LogisticRegressionClassifier:
    penalty: str = "l2"
    C: float = 1.0
    fit_intercept: bool = True
    solver: str = "lbfgs"
    max_iter: int = 200
    tol: float = 1e-4
    class_weight: Any = None
    l1_ratio: Optional[float] = None
    random_state: Optional[int] = None

    def __post_init__(self) -> None:
        self._estimator: Optional[_SklearnLogisticRegression] = None
        self.coef_: Optional[np.ndarray] = None
        self.intercept_: Optional[np.ndarray] = None
        self.classes_: Optional[np.ndarray] = None

    def _estimator_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "penalty": str(self.penalty),
            "C": float(self.C),
            "fit_intercept": bool(self.fit_intercept),
            "solver": str(self.solver),
            "max_iter": int(self.max_iter),
            "tol": float(self.tol),
        }
        if self.class_weight is not None:
            params["class_weight"] = self.class_weight
        if self.random_state is not None:
            params["random_state"] = int(self.random_state)
        if self.l1_ratio is not None:
            params["l1_ratio"] = float(self.l1_ratio)
        return params

    def fit(self, X: Any, y: Any, **fit_kwargs: Any) -> "LogisticRegressionClassifier":
        estimator = _SklearnLogisticRegression(**self._estimator_params())
        fitted = estimator.fit(X, y, **fit_kwargs)
        self._estimator = fitted
        self.coef_ = np.asarray(fitted.coef_, dtype=float).copy()
        self.intercept_ = np.atleast_1d(np.asarray(fitted.intercept_, dtype=float)).copy()
        self.classes_ = np.asarray(fitted.classes_).copy()
        return self

    def predict_proba(self, X: Any, **predict_kwargs: Any) -> np.ndarray:
        if self._estimator is None:
            raise RuntimeError("Model must be fitted before calling predict_proba().")
        return self._estimator.predict_proba(X, **predict_kwargs)


def class_scores(model: Any, X: np.ndarray, classes: np.ndarray) -> np.ndarray:
    """Probability matrix with one column per entry of ``classes``.

    Classes the model never saw during training get a zero column.
    """
    proba = np.asarray(model.predict_proba(X), dtype=float)
    model_classes = np.asarray(model.classes_)
    scores = np.zeros((proba.shape[0], len(classes)), dtype=float)
    for j, label in enumerate(model_classes):
        hit = np.flatnonzero(np.asarray(classes) == label)
        if hit.size:
            scores[:, hit[0]] = proba[:, j]
    return scores


def train_logreg(X: np.ndarray, y: np.ndarray, **options: Any) -> LogisticRegressionClassifier:
    """Fit an L2 logistic regression; ``options`` map onto the classifier fields."""
    return LogisticRegressionClassifier(**options).fit(X, y)


def test_logreg(model: LogisticRegressionClassifier, X: np.ndarray, classes: np.ndarray) -> np.ndarray:
    return class_scores(model, X, classes)


def train_lda(X: np.ndarray, y: np.ndarray, **options: Any) -> LinearDiscriminantAnalysis:
    """Fit a shrinkage LDA (``solver='lsqr', shrinkage='auto'`` unless overridden)."""
    params = {"solver": "lsqr", "shrinkage": "auto"}
    params.update(options)
    return LinearDiscriminantAnalysis(**params).fit(X, y)


def test_lda(model: LinearDiscriminantAnalysis, X: np.ndarray, classes: np.ndarray) -> np.ndarray:
    return class_scores(model, X, classes)


def summarize_model(model: Any) -> Dict[str, Any]:
    """Small, picklable summary of a fitted linear classifier."""
    summary: Dict[str, Any] = {"type": type(model).__name__}
    for attr in ("coef_", "intercept_", "classes_"):
        value = getattr(model, attr, None)
        if value is not None:
            summary[attr.rstrip("_")] = np.asarray(value).copy()
    return summary
