"""Resolve bin specifications into index groups and summary elements.

Each ``*_bins`` function takes one axis descriptor plus a parsed bin spec and
returns ``(new_frame, bins)``: the replacement descriptor (one row per bin)
and a list of 0-based index arrays into the original axis. The pattern array
itself is never touched here; see :mod:`patclass.patterns.aggregate`.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from data.events import make_event_index
from patclass.errors import ConfigError, ShapeError, SpecError, SpecTypeError
from patclass.patterns.binspec import (
    BIN_PARAM_KEYS,
    BinSpec,
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
from patclass.patterns.dims import DIM_NAMES, Pattern, collapse_records

__all__ = [
    "Bins",
    "resolve_groups",
    "event_bins",
    "chan_bins",
    "time_bins",
    "freq_bins",
    "bin_dim",
    "pattern_bins",
]

logger = logging.getLogger(__name__)

Bins = List[np.ndarray]


def _check_labels(labels: Optional[Sequence[Any]], n_bins: int, axis: str) -> Optional[List[str]]:
    if labels is None or len(labels) == 0:
        return None
    if isinstance(labels, str) or not all(isinstance(lab, str) for lab in labels):
        raise ConfigError(f"{axis} bin labels must be a list of strings, got {labels!r}.")
    if len(labels) != n_bins:
        raise ConfigError(f"{axis} bin labels ({len(labels)}) must match the number of bins ({n_bins}).")
    return list(labels)


def _check_not_empty(bins: Bins, n_elements: int, axis: str) -> None:
    if n_elements > 0 and (len(bins) == 0 or all(b.size == 0 for b in bins)):
        raise ShapeError(f"Every bin on the {axis} axis is empty; the axis would be binned into oblivion.")


def _query_mask(frame: pd.DataFrame, expression: str, axis: str) -> np.ndarray:
    try:
        mask = frame.eval(expression, engine="python")
    except Exception as exc:
        raise ConfigError(f"Could not evaluate {axis} bin expression {expression!r}: {exc}") from exc
    mask = np.asarray(mask)
    if mask.shape != (len(frame),) or mask.dtype != bool:
        raise ConfigError(f"{axis} bin expression {expression!r} must give one boolean per element.")
    return mask


def _membership_mask(frame: pd.DataFrame, fields: Sequence[str], values: Sequence[Any], axis: str) -> np.ndarray:
    present = [f for f in fields if f in frame.columns]
    if not present:
        raise SpecError(f"{axis} bin fields {list(fields)} not found; available: {list(frame.columns)}.")
    mask = np.zeros(len(frame), dtype=bool)
    for field in present:
        mask |= frame[field].isin(list(values)).to_numpy()
    return mask


def resolve_groups(spec: BinSpec, frame: pd.DataFrame, axis: str) -> Bins:
    """Index groups for every spec variant except :class:`Factor`."""
    n = len(frame)
    if isinstance(spec, CollapseAll):
        return [np.arange(n, dtype=int)]
    if isinstance(spec, OnePerElement):
        return [np.array([i], dtype=int) for i in range(n)]
    if isinstance(spec, Explicit):
        groups = [np.asarray(g, dtype=int).reshape(-1) for g in spec.groups]
        for group in groups:
            if group.size and (group.min() < 0 or group.max() >= n):
                raise ConfigError(f"{axis} bin indices {group.tolist()} out of range for {n} elements.")
        return groups
    if isinstance(spec, Ranges):
        if "avg" not in frame.columns:
            raise SpecTypeError(f"Range bins need an 'avg' column on the {axis} axis.")
        avg = frame["avg"].to_numpy(dtype=float)
        return [np.flatnonzero((avg >= lo) & (avg < hi)) for lo, hi in spec.edges]
    if isinstance(spec, ValueMembership):
        return [np.flatnonzero(_membership_mask(frame, spec.fields, g, axis)) for g in spec.groups]
    if isinstance(spec, Predicate):
        return [np.flatnonzero(_query_mask(frame, expr, axis)) for expr in spec.expressions]
    if isinstance(spec, Mixed):
        groups: Bins = []
        for part in spec.parts:
            groups.extend(resolve_groups(part, frame, axis))
        return groups
    raise SpecTypeError(f"Bin spec {spec!r} cannot be resolved on the {axis} axis.")


def _natural_labels(spec: BinSpec) -> Optional[List[str]]:
    if isinstance(spec, Predicate):
        return list(spec.expressions)
    if isinstance(spec, ValueMembership):
        return [" ".join(str(v) for v in group) for group in spec.groups]
    if isinstance(spec, Mixed):
        labels: List[str] = []
        for part in spec.parts:
            labels.extend(_natural_labels(part) or [""])
        return labels
    return None


def _factor_bins(events: pd.DataFrame, fields: Sequence[str]) -> Tuple[Bins, List[str]]:
    index, levels = make_event_index(events, list(fields), role="event bin")
    bins: Bins = []
    labels: List[str] = []
    for code, level in enumerate(levels.itertuples(index=False), start=1):
        values = list(level)
        # missing categories never get a bin on the events axis
        if any(pd.isna(v) for v in values if np.ndim(v) == 0):
            continue
        bins.append(np.flatnonzero(index == code))
        labels.append(" ".join(str(v) for v in values))
    return bins, labels


def event_bins(events: pd.DataFrame, spec: BinSpec, labels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Bins]:
    """Bin the events axis; each output event summarises one bin."""
    if isinstance(spec, Factor):
        bins, natural = _factor_bins(events, spec.fields)
    else:
        bins = resolve_groups(spec, events, "events")
        natural = _natural_labels(spec)
    _check_not_empty(bins, len(events), "events")
    user_labels = _check_labels(labels, len(bins), "events")

    records: List[Dict[str, Any]] = []
    for i, idx in enumerate(bins):
        record = collapse_records(events.iloc[idx]) if idx.size else {}
        if user_labels is not None:
            record["label"] = user_labels[i]
        elif natural is not None:
            record["label"] = natural[i]
        elif "label" not in record:
            record["label"] = str(i + 1)
        else:
            record["label"] = str(record["label"])
        records.append(record)

    columns = list(events.columns) + ([] if "label" in events.columns else ["label"])
    return pd.DataFrame.from_records(records, columns=columns), bins


def _free_numbers(used: Sequence[int], count: int) -> List[int]:
    taken = set(int(u) for u in used)
    out: List[int] = []
    candidate = 1
    while len(out) < count:
        if candidate not in taken:
            out.append(candidate)
        candidate += 1
    return out


def chan_bins(chan: pd.DataFrame, spec: BinSpec, labels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Bins]:
    """Bin the channels axis.

    Channel numbers stay unique: a bin whose members disagree on ``number``
    is assigned the smallest unused positive number. Without user labels a
    bin keeps its members' common label, then their common region, and
    otherwise joins the member labels.
    """
    bins = resolve_groups(spec, chan, "channels")
    _check_not_empty(bins, len(chan), "channels")
    user_labels = _check_labels(labels, len(bins), "channels")

    records: List[Dict[str, Any]] = []
    for i, idx in enumerate(bins):
        members = chan.iloc[idx]
        record = collapse_records(members) if idx.size else {}
        record.setdefault("number", np.nan)
        if user_labels is not None:
            record["label"] = user_labels[i]
        elif "label" in record:
            record["label"] = str(record["label"])
        elif "region" in record and not pd.isna(record["region"]):
            record["label"] = str(record["region"])
        else:
            record["label"] = " ".join(str(v) for v in members.get("label", members.get("number", []))).strip()
        records.append(record)

    numbers = [r["number"] for r in records]
    bad = [i for i, num in enumerate(numbers) if pd.isna(num)]
    if bad:
        used = [num for num in numbers if not pd.isna(num)]
        for i, new in zip(bad, _free_numbers(used, len(bad))):
            records[i]["number"] = new

    columns = list(chan.columns)
    for required in ("number", "region", "label"):
        if required not in columns:
            columns.append(required)
    frame = pd.DataFrame.from_records(records, columns=columns)
    frame["number"] = frame["number"].astype(int)
    return frame, bins


def _fmt(value: float, *, rounded: bool = False) -> str:
    if value is None or math.isnan(value):
        return "nan"
    if rounded:
        return str(int(round(value)))
    return f"{value:g}"


def _range_bins(
    frame: pd.DataFrame,
    spec: BinSpec,
    labels: Optional[Sequence[str]],
    *,
    axis: str,
    unit: str,
    rounded: bool,
) -> Tuple[pd.DataFrame, Bins]:
    bins = resolve_groups(spec, frame, axis)
    _check_not_empty(bins, len(frame), axis)
    user_labels = _check_labels(labels, len(bins), axis)

    records: List[Dict[str, Any]] = []
    for i, idx in enumerate(bins):
        if idx.size:
            members = frame.iloc[idx]
            record = collapse_records(members)
            start = float(np.nanmin(members["start"].to_numpy(dtype=float)))
            end = float(np.nanmax(members["end"].to_numpy(dtype=float)))
        else:
            record = {}
            start = end = float("nan")
        record["start"] = start
        record["end"] = end
        record["avg"] = float("nan") if math.isnan(start) else (start + end) / 2.0
        if user_labels is not None:
            record["label"] = user_labels[i]
        elif idx.size == 1 and "label" in record:
            record["label"] = str(record["label"])
        else:
            record["label"] = f"{_fmt(start, rounded=rounded)} to {_fmt(end, rounded=rounded)} {unit}"
        records.append(record)

    columns = list(frame.columns)
    for required in ("start", "end", "avg", "label"):
        if required not in columns:
            columns.append(required)
    return pd.DataFrame.from_records(records, columns=columns), bins


def time_bins(time: pd.DataFrame, spec: BinSpec, labels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Bins]:
    """Bin the time axis; empty ranges become NaN placeholder elements."""
    return _range_bins(time, spec, labels, axis="time", unit="ms", rounded=False)


def freq_bins(freq: pd.DataFrame, spec: BinSpec, labels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Bins]:
    """Bin the frequency axis; empty ranges become NaN placeholder elements."""
    return _range_bins(freq, spec, labels, axis="frequency", unit="Hz", rounded=True)


_BINNERS = (event_bins, chan_bins, time_bins, freq_bins)


def bin_dim(axis: int, frame: pd.DataFrame, value: Any, labels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Optional[Bins]]:
    """Parse and apply one axis' raw bin definition.

    Returns the frame unchanged and ``None`` bins when ``value`` is empty.
    """
    spec = parse_bin_spec(DIM_NAMES[axis], value, frame)
    if spec is None:
        return frame, None
    return _BINNERS[axis](frame, spec, labels)


def pattern_bins(pattern: Pattern, params: Dict[str, Any]) -> Tuple[Pattern, List[Optional[Bins]]]:
    """Resolve bins on all four axes of ``pattern`` from a params mapping.

    Only the dimension descriptors are updated. The returned pattern drops
    its in-memory array when any axis changed, since the array no longer
    matches; reduce it with :func:`patclass.patterns.aggregate.pattern_means`.
    """
    dims = pattern.dims
    bins: List[Optional[Bins]] = [None, None, None, None]
    for axis, (key, label_key) in enumerate(BIN_PARAM_KEYS):
        value = params.get(key)
        frame, axis_bins = bin_dim(axis, dims[axis], value, params.get(label_key))
        if axis_bins is None:
            continue
        bins[axis] = axis_bins
        dims = dims.replace_axis(axis, frame)
        logger.debug("Binned %s axis of '%s': %d -> %d", DIM_NAMES[axis], pattern.name, len(pattern.dims[axis]), len(frame))

    changed = any(b is not None for b in bins)
    binned = pattern.copy_with(dims=dims, mat=None if changed else pattern.mat)
    empty = [DIM_NAMES[i] for i, n in enumerate(binned.shape) if n == 0]
    if empty:
        raise ShapeError(f"A dimension of pattern {pattern.name} was binned into oblivion: {empty}.", path=pattern.file)
    return binned, bins
