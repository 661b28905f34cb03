from __future__ import annotations

import warnings

import numpy as np
import pytest

from patclass.errors import ShapeError
from patclass.patterns.aggregate import (
    array_fetcher,
    bin_mean,
    iter_bin_means,
    pattern_means,
    stack_bin_means,
)


def test_bin_mean_ignores_nan():
    values = np.array([np.nan, 2.0, 4.0])
    assert bin_mean(values, np.arange(3), axis=0)[0] == pytest.approx(3.0)


def test_bin_mean_all_nan_is_nan_without_warning():
    values = np.array([np.nan, np.nan])
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        out = bin_mean(values, np.arange(2), axis=0)
    assert np.isnan(out[0])


@pytest.mark.parametrize("axis", [1, 2, 3])
def test_same_nan_policy_on_every_axis(axis):
    shape = [1, 1, 1, 1]
    shape[axis] = 3
    arr = np.array([np.nan, 2.0, 4.0]).reshape(shape)
    bins = [None, None, None, None]
    bins[axis] = [np.array([0, 1, 2]), np.array([0])]
    out = pattern_means(arr, bins)
    assert out.shape[axis] == 2
    flat = np.moveaxis(out, axis, 0).reshape(2)
    assert flat[0] == pytest.approx(3.0)
    assert np.isnan(flat[1])


def test_pattern_means_several_axes():
    arr = np.arange(2 * 4 * 3 * 1, dtype=float).reshape(2, 4, 3, 1)
    bins = [None, [np.array([0, 1]), np.array([2, 3])], [np.array([0, 1, 2])], None]
    out = pattern_means(arr, bins)
    assert out.shape == (2, 2, 1, 1)
    np.testing.assert_allclose(out[0, 0, 0, 0], arr[0, :2].mean())
    np.testing.assert_allclose(out[1, 1, 0, 0], arr[1, 2:].mean())


def test_empty_bin_gives_nan_slice():
    arr = np.ones((2, 3, 1, 1))
    out = pattern_means(arr, [None, [np.array([0]), np.array([], dtype=int)], None, None])
    assert np.all(out[:, 0] == 1.0)
    assert np.all(np.isnan(out[:, 1]))


def test_iter_bin_means_fetches_one_bin_at_a_time():
    arr = np.arange(6 * 2, dtype=float).reshape(6, 2, 1, 1)
    requested = []

    def fetch(indices):
        requested.append(indices.tolist())
        return arr[indices]

    bins = [np.array([0, 2]), np.array([1, 3, 5]), np.array([4])]
    stream = iter_bin_means(fetch, bins)
    assert requested == []

    first = next(stream)
    assert requested == [[0, 2]]
    np.testing.assert_allclose(first[0], arr[[0, 2]].mean(axis=0))

    out = stack_bin_means(stream, n_bins=2)
    assert requested == [[0, 2], [1, 3, 5], [4]]
    np.testing.assert_allclose(out[1], arr[4])


def test_stream_matches_eager_reduction():
    rng = np.random.default_rng(1)
    arr = rng.normal(size=(8, 3, 2, 2))
    arr[0, 0, 0, 0] = np.nan
    bins = [np.array([0, 1, 2]), np.array([3, 4]), np.array([5, 6, 7])]
    streamed = stack_bin_means(iter_bin_means(array_fetcher(arr), bins), n_bins=3)
    eager = pattern_means(arr, [bins, None, None, None])
    np.testing.assert_allclose(streamed, eager)


def test_stack_bin_means_checks_count():
    arr = np.ones((4, 1, 1, 1))
    bins = [np.array([0, 1]), np.array([2, 3])]
    with pytest.raises(ShapeError):
        stack_bin_means(iter_bin_means(array_fetcher(arr), bins), n_bins=3)
    with pytest.raises(ShapeError):
        stack_bin_means(iter_bin_means(array_fetcher(arr), bins), n_bins=1)


def test_pattern_means_rejects_empty_bin_list():
    with pytest.raises(ShapeError):
        pattern_means(np.ones((2, 2, 1, 1)), [None, [], None, None])
