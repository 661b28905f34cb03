from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from patclass.patterns.dims import Pattern, PatternDims, init_chan, init_events, init_freq, init_time


def _scenario_events() -> pd.DataFrame:
    return init_events(
        [
            {"category": "A", "session": 1, "trial": 1},
            {"category": "A", "session": 1, "trial": 2},
            {"category": "B", "session": 1, "trial": 3},
            {"category": "B", "session": 2, "trial": 1},
            {"category": "A", "session": 2, "trial": 2},
            {"category": "B", "session": 2, "trial": 3},
        ]
    )


@pytest.fixture
def events() -> pd.DataFrame:
    return _scenario_events()


@pytest.fixture
def dims(events) -> PatternDims:
    return PatternDims(
        ev=events,
        chan=init_chan([1, 2, 3], regions=["L", "L", "R"]),
        time=init_time([0, 10, 20, 30], step=10),
        freq=init_freq([4, 8]),
    )


@pytest.fixture
def pattern(dims) -> Pattern:
    rng = np.random.default_rng(0)
    mat = rng.normal(0.0, 0.1, size=dims.shape)
    is_b = (dims.ev["category"] == "B").to_numpy()
    mat[is_b] += 1.0
    return Pattern(name="volt", source="subj1", dims=dims, mat=mat)
