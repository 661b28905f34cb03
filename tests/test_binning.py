from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from patclass.errors import ConfigError, ShapeError, SpecError, SpecTypeError
from patclass.patterns.binning import bin_dim, chan_bins, event_bins, pattern_bins, time_bins
from patclass.patterns.binspec import (
    CollapseAll,
    Explicit,
    Factor,
    Mixed,
    OnePerElement,
    Predicate,
    Ranges,
    ValueMembership,
    parse_bin_spec,
)
from patclass.patterns.dims import init_chan, init_freq, init_time


def _as_lists(bins):
    return [b.tolist() for b in bins]


@pytest.mark.parametrize("axis", [0, 1, 2, 3])
def test_one_bin_per_element(dims, axis):
    frame = dims[axis]
    _, bins = bin_dim(axis, frame, "iter")
    assert _as_lists(bins) == [[i] for i in range(len(frame))]


@pytest.mark.parametrize("token", [":", "all"])
def test_collapse_all_gives_single_bin(dims, token):
    new_time, bins = bin_dim(2, dims.time, token)
    assert _as_lists(bins) == [[0, 1, 2, 3]]
    assert new_time["label"].tolist() == ["0 to 40 ms"]
    assert new_time.loc[0, "avg"] == pytest.approx(20.0)


def test_empty_value_passes_axis_through(dims):
    frame, bins = bin_dim(1, dims.chan, None)
    assert bins is None
    assert frame is dims.chan


def test_time_ranges_with_empty_bin_gets_placeholder(dims):
    new_time, bins = bin_dim(2, dims.time, [[0, 20], [20, 40], [40, 60]])
    assert _as_lists(bins) == [[0, 1], [2, 3], []]
    assert new_time["label"].tolist() == ["0 to 20 ms", "20 to 40 ms", "nan to nan ms"]
    assert np.isnan(new_time.loc[2, "start"]) and np.isnan(new_time.loc[2, "avg"])
    assert new_time.loc[0, "start"] == 0 and new_time.loc[0, "end"] == 20


def test_all_empty_ranges_raise_shape_error(dims):
    with pytest.raises(ShapeError):
        bin_dim(2, dims.time, [[100, 200], [200, 300]])


def test_all_empty_channel_predicate_raises_shape_error(dims):
    with pytest.raises(ShapeError):
        bin_dim(1, dims.chan, "region == 'Z'")


def test_frequency_labels_are_rounded():
    freq = init_freq([3.6, 8.2, 16.0])
    new_freq, bins = bin_dim(3, freq, [[0, 10], [10, 20]])
    assert _as_lists(bins) == [[0, 1], [2]]
    assert new_freq.loc[0, "label"] == "4 to 8 Hz"
    assert new_freq.loc[0, "avg"] == pytest.approx((3.6 + 8.2) / 2)


def test_event_factor_bins_first_seen_order(events):
    new_ev, bins = bin_dim(0, events, "category")
    assert _as_lists(bins) == [[0, 1, 4], [2, 3, 5]]
    assert new_ev["label"].tolist() == ["A", "B"]
    assert new_ev["category"].tolist() == ["A", "B"]
    # session varies inside both bins
    assert new_ev["session"].isna().all()


def test_event_factor_drops_missing_category():
    events = pd.DataFrame({"category": ["B", None, "A", "B"]})
    new_ev, bins = bin_dim(0, events, "category")
    assert _as_lists(bins) == [[0, 3], [2]]
    assert new_ev["label"].tolist() == ["B", "A"]


def test_event_factor_on_two_fields(events):
    _, bins = bin_dim(0, events, ["category", "session"])
    assert _as_lists(bins) == [[0, 1], [2], [3, 5], [4]]


def test_event_predicate_bins_may_overlap(events):
    new_ev, bins = bin_dim(0, events, ["session == 1", "trial >= 2"])
    assert _as_lists(bins) == [[0, 1, 2], [1, 2, 4, 5]]
    assert new_ev["label"].tolist() == ["session == 1", "trial >= 2"]


def test_event_value_membership(events):
    spec = {"field": "trial", "values": [[1], [2, 3]]}
    _, bins = bin_dim(0, events, spec, ["first", "later"])
    assert _as_lists(bins) == [[0, 3], [1, 2, 4, 5]]


def test_event_explicit_groups(events):
    new_ev, bins = event_bins(events, Explicit(groups=((0, 5), (2,))))
    assert _as_lists(bins) == [[0, 5], [2]]
    assert new_ev.loc[1, "category"] == "B"


def test_channel_bins_renumber_merged_channels(dims):
    new_chan, bins = bin_dim(1, dims.chan, [[1, 2], [3]])
    assert _as_lists(bins) == [[0, 1], [2]]
    assert new_chan["number"].tolist() == [1, 3]
    assert new_chan["label"].tolist() == ["L", "3"]
    assert new_chan["number"].is_unique


def test_channel_bins_by_region_and_user_labels(dims):
    new_chan, bins = bin_dim(1, dims.chan, [["L"], ["R"]], ["left", "right"])
    assert _as_lists(bins) == [[0, 1], [2]]
    assert new_chan["label"].tolist() == ["left", "right"]
    assert new_chan["region"].tolist() == ["L", "R"]


def test_channel_mixed_entries_resolve_independently(dims):
    spec = parse_bin_spec("chan", [[3], "region == 'L'"])
    assert isinstance(spec, Mixed)
    _, bins = chan_bins(dims.chan, spec)
    assert _as_lists(bins) == [[2], [0, 1]]


def test_empty_channel_bin_gets_placeholder_row(dims):
    new_chan, bins = bin_dim(1, dims.chan, [[1], [99]])
    assert _as_lists(bins) == [[0], []]
    assert new_chan["number"].tolist() == [1, 2]
    assert pd.isna(new_chan.loc[1, "region"])


def test_label_count_mismatch_is_config_error(dims):
    with pytest.raises(ConfigError):
        bin_dim(2, dims.time, [[0, 20]], ["a", "b"])


def test_labels_must_be_strings(dims):
    with pytest.raises(ConfigError):
        bin_dim(2, dims.time, [[0, 20]], [1])


def test_parse_bin_spec_variants(events):
    assert isinstance(parse_bin_spec("time", ":"), CollapseAll)
    assert isinstance(parse_bin_spec("freq", "iter"), OnePerElement)
    assert parse_bin_spec("ev", "category", events) == Factor(fields=("category",))
    assert parse_bin_spec("ev", "session > 1", events) == Predicate(expressions=("session > 1",))
    assert parse_bin_spec("time", [[0, 10], [10, 20]]) == Ranges(edges=((0.0, 10.0), (10.0, 20.0)))
    assert parse_bin_spec("chan", [1, 2]) == ValueMembership(fields=("number",), groups=((1, 2),))
    assert parse_bin_spec("ev", []) is None


def test_parse_bin_spec_rejects_bad_shapes(events):
    with pytest.raises(SpecTypeError):
        parse_bin_spec("time", [[0, 10, 20]])
    with pytest.raises(SpecTypeError):
        parse_bin_spec("ev", ["category", "session > 1"], events)
    with pytest.raises(SpecTypeError):
        parse_bin_spec("chan", [{"a": 1}])
    with pytest.raises(SpecTypeError):
        parse_bin_spec("ev", 3.5, events)


def test_parse_ranges_must_be_ascending():
    with pytest.raises(ConfigError):
        parse_bin_spec("time", [[0, 20], [10, 30]])
    with pytest.raises(ConfigError):
        parse_bin_spec("time", [[20, 10]])


def test_membership_on_missing_field_is_spec_error(events):
    with pytest.raises(SpecError):
        parse_bin_spec("ev", {"field": "nope", "values": [[1]]}, events)


def test_time_bins_keep_single_element_label():
    time = init_time([0, 10], step=10)
    new_time, _ = time_bins(time, OnePerElement())
    assert new_time["label"].tolist() == ["0 to 10 ms", "10 to 20 ms"]


def test_pattern_bins_updates_dims_and_drops_array(pattern):
    params = {"eventbins": "category", "MSbins": [[0, 20], [20, 40]], "freqbins": ":"}
    binned, bins = pattern_bins(pattern, params)
    assert binned.shape == (2, 3, 2, 1)
    assert binned.mat is None
    assert bins[1] is None
    assert len(bins[0]) == 2 and len(bins[2]) == 2 and len(bins[3]) == 1
    # the input pattern is untouched
    assert pattern.shape == (6, 3, 4, 2)
    assert pattern.mat is not None


def test_pattern_bins_without_bins_keeps_array(pattern):
    binned, bins = pattern_bins(pattern, {})
    assert bins == [None, None, None, None]
    assert binned.mat is pattern.mat


def test_init_chan_requires_unique_numbers():
    with pytest.raises(ValueError):
        init_chan([1, 1])
