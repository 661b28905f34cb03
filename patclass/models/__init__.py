"""Classifiers used by the cross-validation driver."""

from .classifiers import (
    LogisticRegressionClassifier,
    class_scores,
    summarize_model,
    test_lda,
    test_logreg,
    train_lda,
    train_logreg,
)

__all__ = [
    "LogisticRegressionClassifier",
    "class_scores",
    "summarize_model",
    "test_lda",
    "test_logreg",
    "train_lda",
    "train_logreg",
]
