"""Label, fold and group vectors derived from per-observation event fields."""
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from patclass.errors import ConfigError, SpecError

__all__ = [
    "FieldSpec",
    "resolve_fields",
    "make_event_index",
    "create_targets",
    "make_selector",
    "make_train_index",
    "filter_events",
]

FieldSpec = Union[str, Sequence[str]]


def resolve_fields(events: pd.DataFrame, spec: Optional[FieldSpec], *, role: str = "field spec") -> List[str]:
    """Validate a field spec against the event columns once, up front."""
    if spec is None or (isinstance(spec, str) and not spec.strip()):
        raise ConfigError(f"You must specify a {role}.")
    fields = [spec] if isinstance(spec, str) else [str(f) for f in spec]
    if not fields:
        raise ConfigError(f"You must specify a {role}.")
    missing = [f for f in fields if f not in events.columns]
    if missing:
        raise SpecError(f"{role} field(s) not found in events: {missing}.")
    return fields


def make_event_index(
    events: pd.DataFrame,
    spec: FieldSpec,
    *,
    role: str = "field spec",
) -> Tuple[np.ndarray, pd.DataFrame]:
    """Dense 1-based index of distinct field-value combinations.

    Combinations are numbered in first-seen order scanning events in input
    order. Missing values form their own category.

    Returns:
        index: integer array, one entry per event.
        levels: one row per index value holding the field values.
    """
    fields = resolve_fields(events, spec, role=role)
    n = len(events)
    if n == 0:
        return np.zeros(0, dtype=int), events.loc[:, fields].iloc[0:0].reset_index(drop=True)

    combined = np.zeros(n, dtype=np.int64)
    for field in fields:
        codes, uniques = pd.factorize(events[field], sort=False, use_na_sentinel=False)
        combined = combined * max(len(uniques), 1) + codes

    index, _ = pd.factorize(combined, sort=False)
    _, first = np.unique(index, return_index=True)
    levels = events.loc[:, fields].iloc[first].reset_index(drop=True)
    return index.astype(int) + 1, levels


def create_targets(events: pd.DataFrame, regressor: FieldSpec) -> np.ndarray:
    """Label vector for classification, positionally aligned to ``events``."""
    index, _ = make_event_index(events, regressor, role="regressor")
    return index


def make_selector(events: pd.DataFrame, selector: FieldSpec) -> np.ndarray:
    """Fold id per observation; each distinct combination is one fold."""
    index, _ = make_event_index(events, selector, role="selector")
    return index


def make_train_index(events: pd.DataFrame, train_bins: Any) -> np.ndarray:
    """Training-group ids; a list of field specs is crossed into one factor."""
    if isinstance(train_bins, (list, tuple)) and any(isinstance(b, (list, tuple)) for b in train_bins):
        fields: List[str] = []
        for item in train_bins:
            fields.extend(resolve_fields(events, item, role="train_bins"))
        train_bins = fields
    index, _ = make_event_index(events, train_bins, role="train_bins")
    return index


def filter_events(events: pd.DataFrame, expression: Optional[str], *, role: str = "event") -> np.ndarray:
    """Boolean mask of rows matching a pandas query expression."""
    if expression is None or not str(expression).strip():
        return np.ones(len(events), dtype=bool)
    try:
        mask = events.eval(expression, engine="python")
    except Exception as exc:
        raise ConfigError(f"Could not evaluate {role} filter {expression!r}: {exc}") from exc
    mask = np.asarray(mask)
    if mask.shape != (len(events),) or mask.dtype != bool:
        raise ConfigError(f"{role.capitalize()} filter {expression!r} must give one boolean per row.")
    return mask
