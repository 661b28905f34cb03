from __future__ import annotations

import numpy as np
import pytest

from data.resample import normalise_sampling, resample_groups


def _pool():
    sizes = [5, 12, 3]
    groups = np.repeat([1, 2, 3], sizes)
    indices = np.arange(100, 100 + groups.size)
    return indices, groups


def _group_counts(sampled, indices, groups):
    lookup = dict(zip(indices.tolist(), groups.tolist()))
    labels = np.array([lookup[i] for i in sampled.tolist()])
    return [int((labels == g).sum()) for g in (1, 2, 3)]


def test_oversampling_tops_up_to_largest_group():
    indices, groups = _pool()
    sampled = resample_groups(indices, groups, "over", np.random.default_rng(0))
    assert _group_counts(sampled, indices, groups) == [12, 12, 12]
    # originals are always kept when oversampling
    assert set(indices.tolist()) <= set(sampled.tolist())


def test_undersampling_draws_down_to_smallest_group():
    indices, groups = _pool()
    sampled = resample_groups(indices, groups, "under", np.random.default_rng(0))
    assert _group_counts(sampled, indices, groups) == [3, 3, 3]
    assert len(set(sampled.tolist())) == sampled.size


def test_none_returns_original_indices():
    indices, groups = _pool()
    sampled = resample_groups(indices, groups, "none")
    assert sampled.size == 20
    assert set(sampled.tolist()) == set(indices.tolist())


def test_repeated_calls_draw_fresh_samples():
    indices, groups = _pool()
    rng = np.random.default_rng(7)
    draws = {tuple(np.sort(resample_groups(indices, groups, "under", rng)).tolist()) for _ in range(10)}
    assert len(draws) > 1


@pytest.mark.parametrize("raw, expected", [("", "none"), (None, "none"), ("Over", "over"), ("under", "under")])
def test_normalise_sampling(raw, expected):
    assert normalise_sampling(raw) == expected


def test_unknown_sampling_mode():
    with pytest.raises(ValueError):
        normalise_sampling("sideways")
