from __future__ import annotations

import numpy as np
import pytest

from patclass.errors import ConfigError, TrainingFailure
from patclass.experiments.xval import XvalParams, xval
from patclass.metrics.performance import perfmet_auc, perfmet_maxclass
from patclass.models import classifiers


def _scenario():
    selector = np.array([1, 1, 1, 2, 2, 2])
    targets = np.array([1, 1, 2, 2, 1, 2])
    rng = np.random.default_rng(3)
    X = rng.normal(0.0, 0.1, size=(6, 4))
    X[targets == 2] += 3.0
    return X, selector, targets


def test_leave_one_fold_out_scenario():
    X, selector, targets = _scenario()
    results = xval(X, selector, targets, XvalParams())
    assert [(r.fold, r.rep) for r in results] == [(1, 1), (2, 1)]
    np.testing.assert_array_equal(results[0].test_idx, [0, 1, 2])
    np.testing.assert_array_equal(results[0].train_idx, [3, 4, 5])
    np.testing.assert_array_equal(results[1].test_idx, [3, 4, 5])
    np.testing.assert_array_equal(results[1].train_idx, [0, 1, 2])

    tested = np.concatenate([r.test_idx for r in results])
    assert sorted(tested.tolist()) == list(range(6))
    assert sum(r.scores.shape[0] for r in results) == 6
    for r in results:
        assert r.scores.shape == (3, 2)
        assert r.perf["maxclass"] == pytest.approx(1.0)
        assert r.model["type"] == "LogisticRegressionClassifier"


def test_every_observation_predicted_once_with_many_folds():
    rng = np.random.default_rng(11)
    n = 24
    selector = np.repeat(np.arange(1, 7), 4)
    targets = np.tile([1, 2], n // 2)
    X = rng.normal(size=(n, 3)) + targets[:, None]
    results = xval(X, selector, targets, XvalParams(f_perfmet=[perfmet_maxclass, perfmet_auc]))
    assert len(results) == 6
    tested = np.concatenate([r.test_idx for r in results])
    assert np.array_equal(np.sort(tested), np.arange(n))
    assert set(results[0].perf) == {"maxclass", "auc"}


def test_balanced_training_repeats_each_fold():
    X, selector, targets = _scenario()
    params = XvalParams(train_index=targets, train_sampling="under", n_reps=3, seed=0)
    results = xval(X, selector, targets, params)
    assert [(r.fold, r.rep) for r in results] == [(1, 1), (1, 2), (1, 3), (2, 1), (2, 2), (2, 3)]
    for r in results:
        counts = np.bincount(targets[r.train_idx], minlength=3)[1:]
        assert counts[0] == counts[1] == 1


def test_lda_and_alternate_test_targets():
    rng = np.random.default_rng(5)
    selector = np.repeat(np.arange(1, 7), 4)
    targets = np.tile([1, 2], 12)
    X = rng.normal(0.0, 0.1, size=(24, 3)) + 3.0 * targets[:, None]
    flipped = 3 - targets
    params = XvalParams(
        f_train=classifiers.train_lda,
        f_test=classifiers.test_lda,
        test_targets=flipped,
    )
    results = xval(X, selector, targets, params)
    for r in results:
        np.testing.assert_array_equal(r.targets, flipped[r.test_idx])
        assert r.perf["maxclass"] == pytest.approx(0.0)


def test_nan_features_are_dropped():
    X, selector, targets = _scenario()
    X[2, 1] = np.nan
    results = xval(X.reshape(6, 2, 2), selector, targets, XvalParams())
    assert results[0].model["coef"].shape[1] == 3


def test_training_failure_reports_fold_and_rep():
    X, selector, targets = _scenario()

    def broken(X, y):
        if y.tolist() == [2, 1, 2]:
            raise RuntimeError("singular")
        return classifiers.train_logreg(X, y)

    with pytest.raises(TrainingFailure) as info:
        xval(X, selector, targets, XvalParams(f_train=broken))
    assert info.value.fold == 1
    assert info.value.rep == 1
    assert isinstance(info.value.__cause__, RuntimeError)


def test_length_mismatch_is_config_error():
    X, selector, targets = _scenario()
    with pytest.raises(ConfigError):
        xval(X, selector[:5], targets, XvalParams())


def test_params_validation():
    with pytest.raises(ConfigError):
        XvalParams(n_reps=0)
    with pytest.raises(ConfigError):
        XvalParams(f_perfmet=[])
    with pytest.raises(ConfigError):
        XvalParams(perfmet_args=[{}, {}])
    assert XvalParams(train_sampling="").train_sampling == "none"
    assert XvalParams(n_reps=5).reps_per_fold == 1
