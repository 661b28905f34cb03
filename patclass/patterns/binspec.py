"""Declarative bin specifications parsed once into tagged variants.

Raw config values (strings, nested lists, arrays, mappings) are turned into
one of the frozen dataclasses below by :func:`parse_bin_spec`; the resolver
in :mod:`patclass.patterns.binning` then only dispatches on the variant type.
"""
from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from patclass.errors import ConfigError, SpecError, SpecTypeError

__all__ = [
    "CollapseAll",
    "OnePerElement",
    "Explicit",
    "Ranges",
    "Factor",
    "ValueMembership",
    "Predicate",
    "Mixed",
    "BinSpec",
    "parse_bin_spec",
    "BIN_PARAM_KEYS",
]

# params key / label key for each axis, in axis order
BIN_PARAM_KEYS: Tuple[Tuple[str, str], ...] = (
    ("eventbins", "eventbinlabels"),
    ("chanbins", "chanbinlabels"),
    ("MSbins", "MSbinlabels"),
    ("freqbins", "freqbinlabels"),
)

_COLLAPSE_TOKENS = {":", "all"}
_ITER_TOKENS = {"iter"}


@dataclass(frozen=True)
class CollapseAll:
    """One bin holding every element of the axis."""


@dataclass(frozen=True)
class OnePerElement:
    """One singleton bin per element."""


@dataclass(frozen=True)
class Explicit:
    """Bins given directly as 0-based index groups."""

    groups: Tuple[Tuple[int, ...], ...]


@dataclass(frozen=True)
class Ranges:
    """Half-open ``[low, high)`` ranges applied to element averages."""

    edges: Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class Factor:
    """One bin per distinct combination of the named fields."""

    fields: Tuple[str, ...]


@dataclass(frozen=True)
class ValueMembership:
    """Bin ``i`` holds elements whose value in any of ``fields`` is in ``groups[i]``."""

    fields: Tuple[str, ...]
    groups: Tuple[Tuple[Any, ...], ...]


@dataclass(frozen=True)
class Predicate:
    """One bin per pandas query expression."""

    expressions: Tuple[str, ...]


@dataclass(frozen=True)
class Mixed:
    """Single-bin specs resolved independently, one bin per part."""

    parts: Tuple[Union[ValueMembership, Predicate], ...]


BinSpec = Union[CollapseAll, OnePerElement, Explicit, Ranges, Factor, ValueMembership, Predicate, Mixed]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, np.ndarray):
        return value.size == 0
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) == 0
    return False


def _is_int_group(value: Any) -> bool:
    if isinstance(value, (str, bytes, Mapping)):
        return False
    try:
        arr = np.asarray(value)
    except (TypeError, ValueError):  # pragma: no cover - ragged input
        return False
    if arr.ndim == 0:
        return isinstance(value, Integral)
    return arr.ndim == 1 and (arr.size == 0 or np.issubdtype(arr.dtype, np.integer))


def _is_str_group(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0 and all(isinstance(v, str) for v in value)


def _int_tuple(value: Any) -> Tuple[int, ...]:
    return tuple(int(v) for v in np.atleast_1d(np.asarray(value)))


def _parse_ranges(axis: str, value: Any) -> Ranges:
    try:
        edges = np.asarray(value, dtype=float)
    except (TypeError, ValueError) as exc:
        raise SpecTypeError(f"{axis} bins must be numeric [low, high] pairs, got {value!r}.") from exc
    if edges.ndim == 1 and edges.size == 2:
        edges = edges.reshape(1, 2)
    if edges.ndim != 2 or edges.shape[1] != 2:
        raise SpecTypeError(f"{axis} bins must have shape [nbins x 2], got {edges.shape}.")
    if np.any(np.isnan(edges)):
        raise ConfigError(f"{axis} bins contain NaN edges: {edges.tolist()}.")
    if np.any(edges[:, 0] >= edges[:, 1]):
        raise ConfigError(f"{axis} bins must satisfy low < high: {edges.tolist()}.")
    if edges.shape[0] > 1 and np.any(edges[1:, 0] < edges[:-1, 1]):
        raise ConfigError(f"{axis} bins must be ascending and non-overlapping: {edges.tolist()}.")
    return Ranges(edges=tuple((float(lo), float(hi)) for lo, hi in edges))


def _parse_events(value: Any, columns: Sequence[str]) -> BinSpec:
    if isinstance(value, str):
        if value in columns:
            return Factor(fields=(value,))
        return Predicate(expressions=(value,))
    if isinstance(value, Mapping):
        if "field" not in value or "values" not in value:
            raise SpecTypeError(f"Event bin mapping needs 'field' and 'values' keys, got {sorted(value)}.")
        fields = value["field"]
        fields = (fields,) if isinstance(fields, str) else tuple(str(f) for f in fields)
        missing = [f for f in fields if f not in columns]
        if missing:
            raise SpecError(f"Event bin field(s) not found in events: {missing}.")
        groups = tuple(tuple(g) if isinstance(g, (list, tuple)) else (g,) for g in value["values"])
        return ValueMembership(fields=fields, groups=groups)
    if isinstance(value, (list, tuple)):
        if all(isinstance(v, str) for v in value):
            present = [v in columns for v in value]
            if all(present):
                return Factor(fields=tuple(value))
            if not any(present):
                return Predicate(expressions=tuple(value))
            raise SpecTypeError(
                f"Event bins mix field names and filter expressions: {list(value)!r}."
            )
        if all(_is_int_group(v) and not isinstance(v, Integral) for v in value):
            return Explicit(groups=tuple(_int_tuple(v) for v in value))
    raise SpecTypeError(f"Unsupported event bin specification: {value!r}.")


def _parse_chan_entry(entry: Any) -> Union[ValueMembership, Predicate]:
    if isinstance(entry, str):
        return Predicate(expressions=(entry,))
    if _is_int_group(entry):
        return ValueMembership(fields=("number",), groups=(_int_tuple(entry),))
    if _is_str_group(entry):
        return ValueMembership(fields=("label", "region"), groups=(tuple(entry),))
    raise SpecTypeError(f"Channel bin definition is invalid: {entry!r}.")


def _parse_chan(value: Any) -> BinSpec:
    if isinstance(value, str) or _is_int_group(value):
        entries = [value]
    elif isinstance(value, (list, tuple)):
        entries = list(value)
    else:
        raise SpecTypeError(f"Unsupported channel bin specification: {value!r}.")
    parts = tuple(_parse_chan_entry(entry) for entry in entries)
    if all(isinstance(p, Predicate) for p in parts):
        return Predicate(expressions=tuple(p.expressions[0] for p in parts))
    if all(isinstance(p, ValueMembership) for p in parts) and len({p.fields for p in parts}) == 1:
        return ValueMembership(fields=parts[0].fields, groups=tuple(p.groups[0] for p in parts))
    return Mixed(parts=parts)


def parse_bin_spec(axis: str, value: Any, frame: Optional[pd.DataFrame] = None) -> Optional[BinSpec]:
    """Parse one axis' raw bin definition; ``None`` means leave the axis alone.

    Args:
        axis: one of ``"ev"``, ``"chan"``, ``"time"``, ``"freq"``.
        value: raw configuration value.
        frame: the axis descriptor, used to tell event field names from
            filter expressions.
    """
    if _is_empty(value):
        return None
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _COLLAPSE_TOKENS:
            return CollapseAll()
        if token in _ITER_TOKENS:
            return OnePerElement()
    if axis in {"time", "freq"}:
        return _parse_ranges(axis, value)
    if axis == "ev":
        columns = [] if frame is None else [str(c) for c in frame.columns]
        return _parse_events(value, columns)
    if axis == "chan":
        return _parse_chan(value)
    raise ValueError(f"Unknown axis '{axis}'.")
