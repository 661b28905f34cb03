from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from data.events import (
    create_targets,
    filter_events,
    make_event_index,
    make_selector,
    make_train_index,
)
from patclass.errors import ConfigError, SpecError


def test_scenario_folds_and_targets(events):
    np.testing.assert_array_equal(make_selector(events, "session"), [1, 1, 1, 2, 2, 2])
    np.testing.assert_array_equal(create_targets(events, "category"), [1, 1, 2, 2, 1, 2])


def test_ids_follow_first_seen_order():
    events = pd.DataFrame({"kind": ["z", "a", "z", "m", "a"]})
    index, levels = make_event_index(events, "kind")
    np.testing.assert_array_equal(index, [1, 2, 1, 3, 2])
    assert levels["kind"].tolist() == ["z", "a", "m"]


def test_multi_field_selector(events):
    selector = make_selector(events, ["session", "category"])
    np.testing.assert_array_equal(selector, [1, 1, 2, 3, 4, 3])


def test_missing_field_is_spec_error(events):
    with pytest.raises(SpecError):
        create_targets(events, "condition")
    with pytest.raises(SpecError):
        make_selector(events, ["session", "block"])


def test_missing_spec_is_config_error(events):
    with pytest.raises(ConfigError):
        create_targets(events, None)
    with pytest.raises(ConfigError):
        make_selector(events, "")


def test_train_index_crosses_field_specs(events):
    crossed = make_train_index(events, [["category"], ["session"]])
    np.testing.assert_array_equal(crossed, make_selector(events, ["category", "session"]))
    np.testing.assert_array_equal(make_train_index(events, "category"), [1, 1, 2, 2, 1, 2])


def test_filter_events(events):
    mask = filter_events(events, "session == 2 and category == 'B'")
    np.testing.assert_array_equal(np.flatnonzero(mask), [3, 5])
    assert filter_events(events, "").all()
    with pytest.raises(ConfigError):
        filter_events(events, "no_such_field > 1")
