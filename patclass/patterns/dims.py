"""Pattern data model: a rank-4 array plus one descriptor table per axis.

Axes are ordered observations (events) x channels x time x frequency.
Each descriptor is a :class:`pandas.DataFrame` with one row per element
along that axis, so field lookups resolve once to whole columns.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from patclass.errors import ShapeError
from patclass.utils.io import load_artifact

__all__ = [
    "DIM_NAMES",
    "PatternDims",
    "Pattern",
    "init_events",
    "init_chan",
    "init_time",
    "init_freq",
    "collapse_records",
]

DIM_NAMES: Tuple[str, str, str, str] = ("ev", "chan", "time", "freq")


def init_events(records: Iterable[Mapping[str, Any]] | pd.DataFrame) -> pd.DataFrame:
    """Build an events table from a sequence of observation records."""
    if isinstance(records, pd.DataFrame):
        return records.reset_index(drop=True)
    return pd.DataFrame.from_records(list(records))


def init_chan(
    numbers: Sequence[int],
    regions: Optional[Sequence[Any]] = None,
    labels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Build a channel table; labels default to the channel numbers."""
    numbers = [int(n) for n in numbers]
    if len(set(numbers)) != len(numbers):
        raise ValueError("Channel numbers must be unique.")
    if regions is None:
        regions = [np.nan] * len(numbers)
    if labels is None:
        labels = [str(n) for n in numbers]
    if not (len(regions) == len(labels) == len(numbers)):
        raise ValueError("numbers, regions and labels must have the same length.")
    return pd.DataFrame({"number": numbers, "region": list(regions), "label": [str(x) for x in labels]})


def init_time(ms_values: Sequence[float], step: Optional[float] = None) -> pd.DataFrame:
    """One time element per sample, spanning [v, v + step] milliseconds."""
    values = np.asarray(ms_values, dtype=float).reshape(-1)
    if step is None:
        step = float(np.median(np.diff(values))) if values.size > 1 else 0.0
    start = values
    end = values + step
    frame = pd.DataFrame({"start": start, "end": end, "avg": (start + end) / 2.0})
    frame["label"] = [f"{s:g} to {e:g} ms" for s, e in zip(start, end)]
    return frame


def init_freq(freqs: Optional[Sequence[float]] = None) -> pd.DataFrame:
    """Point frequency elements; an empty input gives one placeholder element."""
    values = np.asarray([] if freqs is None else freqs, dtype=float).reshape(-1)
    if values.size == 0:
        return pd.DataFrame({"start": [np.nan], "end": [np.nan], "avg": [np.nan], "label": [""]})
    frame = pd.DataFrame({"start": values, "end": values, "avg": values})
    frame["label"] = [f"{v:g} Hz" for v in values]
    return frame


def _is_constant(values: pd.Series) -> bool:
    if values.empty:
        return False
    try:
        return values.nunique(dropna=False) == 1
    except TypeError:
        first = values.iloc[0]
        return all(_same(first, v) for v in values.iloc[1:])


def _same(a: Any, b: Any) -> bool:
    try:
        return bool(np.array_equal(np.asarray(a), np.asarray(b)))
    except (TypeError, ValueError):
        return a == b


def collapse_records(frame: pd.DataFrame) -> Dict[str, Any]:
    """Keep fields that have one common value across all rows of ``frame``."""
    collapsed: Dict[str, Any] = {}
    for column in frame.columns:
        if _is_constant(frame[column]):
            collapsed[column] = frame[column].iloc[0]
    return collapsed


@dataclass
class PatternDims:
    """Descriptor tables for the four pattern axes."""

    ev: pd.DataFrame
    chan: pd.DataFrame
    time: pd.DataFrame
    freq: pd.DataFrame

    def __getitem__(self, axis: int) -> pd.DataFrame:
        return getattr(self, DIM_NAMES[axis])

    def replace_axis(self, axis: int, frame: pd.DataFrame) -> "PatternDims":
        return replace(self, **{DIM_NAMES[axis]: frame.reset_index(drop=True)})

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return tuple(len(self[axis]) for axis in range(4))  # type: ignore[return-value]


@dataclass
class Pattern:
    """A named pattern for one source (subject), optionally backed by a file."""

    kind: ClassVar[str] = "pattern"

    name: str
    source: str
    dims: PatternDims
    mat: Optional[np.ndarray] = None
    file: Optional[Path] = None
    params: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return self.dims.shape

    def check_shape(self) -> None:
        """Enforce non-empty axes and array/descriptor agreement."""
        shape = self.shape
        empty = [DIM_NAMES[i] for i, n in enumerate(shape) if n == 0]
        if empty:
            raise ShapeError(
                f"Pattern '{self.name}' has zero-length axis: {', '.join(empty)}.",
                path=self.file,
            )
        if self.mat is not None and tuple(self.mat.shape) != shape:
            raise ShapeError(
                f"Pattern '{self.name}' array shape {tuple(self.mat.shape)} does not "
                f"match dimension sizes {shape}.",
                path=self.file,
            )

    def load_mat(self, mmap_mode: Optional[str] = None) -> np.ndarray:
        """Return the pattern array, loading it from ``file`` if needed."""
        if self.mat is not None:
            return self.mat
        if self.file is None:
            raise FileNotFoundError(f"Pattern '{self.name}' has no array and no file.")
        stored = load_artifact(self.file, kind="pattern", mmap_mode=mmap_mode)
        if stored.mat is None:
            raise FileNotFoundError(f"Pattern file {self.file} holds no array.")
        return stored.mat

    def copy_with(self, **changes: Any) -> "Pattern":
        return replace(self, **changes)

