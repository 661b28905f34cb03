"""Build and re-bin pattern artifacts.

The raw array comes from an extraction callable supplied by the caller:

    extract(events, dims, params) -> ndarray [events x channels x time x freq]

where ``events`` is the chunk of (filtered) events to extract and ``dims``
the unbinned descriptors for that chunk. Channel, time and frequency bins
are applied to each chunk as it arrives; event bins are reduced one bin at
a time so the unbinned array is never held in full.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from data.events import filter_events
from patclass.errors import ConfigError, ShapeError
from patclass.patterns.aggregate import array_fetcher, iter_bin_means, pattern_means, stack_bin_means
from patclass.patterns.binning import Bins, pattern_bins
from patclass.patterns.dims import Pattern, PatternDims, init_events, init_freq, init_time
from patclass.utils.io import DEFAULT_LOCK_TIMEOUT, load_artifact, pattern_path, save_artifact
from patclass.utils.logging_utils import Timer, progress

__all__ = ["PATTERN_DEFAULTS", "filter_pattern", "create_pattern", "bin_pattern"]

logger = logging.getLogger(__name__)

Extractor = Callable[[pd.DataFrame, PatternDims, Dict[str, Any]], np.ndarray]

PATTERN_DEFAULTS: Dict[str, Any] = {
    "event_filter": "",
    "chan_filter": "",
    "offset_ms": -200,
    "duration_ms": 2200,
    "samplerate": None,
    "freqs": [],
    "overwrite": False,
    "update_only": False,
}


def filter_pattern(
    pattern: Pattern,
    event_filter: Optional[str] = None,
    chan_filter: Optional[Union[str, Sequence[int]]] = None,
) -> Pattern:
    """Keep events matching ``event_filter`` and channels matching ``chan_filter``.

    ``chan_filter`` is either a query expression on the channel table or a
    list of channel numbers to keep.
    """
    ev_mask = filter_events(pattern.dims.ev, event_filter, role="event")
    chan = pattern.dims.chan
    if chan_filter is None or isinstance(chan_filter, str):
        chan_mask = filter_events(chan, chan_filter, role="channel")
    else:
        chan_mask = chan["number"].isin([int(c) for c in chan_filter]).to_numpy()

    if not ev_mask.any() or not chan_mask.any():
        raise ShapeError(f"Filtering would remove a dimension of pattern '{pattern.name}'.", path=pattern.file)
    if ev_mask.all() and chan_mask.all():
        return pattern

    dims = pattern.dims.replace_axis(0, pattern.dims.ev[ev_mask]).replace_axis(1, chan[chan_mask])
    mat = pattern.mat
    if mat is not None:
        mat = mat[np.flatnonzero(ev_mask)][:, np.flatnonzero(chan_mask)]
    return pattern.copy_with(dims=dims, mat=mat)


def _ms_values(params: Mapping[str, Any]) -> tuple:
    rate = params.get("samplerate")
    if not rate:
        raise ConfigError("samplerate (Hz) is required to build the time axis.")
    step = int(1000 // float(rate))
    if step <= 0:
        raise ConfigError(f"samplerate {rate} Hz is too high for millisecond resolution.")
    offset = float(params["offset_ms"])
    end = offset + float(params["duration_ms"]) - step
    return np.arange(offset, end + step / 2.0, step), step


def _reduce_events(fetch: Callable[[np.ndarray], np.ndarray], n_events: int, event_bins: Optional[Bins],
                   chunks: Sequence[np.ndarray], out_shape: Sequence[int], desc: Optional[str]) -> np.ndarray:
    if event_bins is not None:
        stream = iter_bin_means(fetch, progress(event_bins, total=len(event_bins), desc=desc))
        return stack_bin_means(stream, len(event_bins))
    mat = np.full((n_events,) + tuple(out_shape), np.nan, dtype=float)
    for idx in progress(chunks, total=len(chunks), desc=desc):
        mat[idx] = fetch(idx)
    return mat


def _session_chunks(events: pd.DataFrame) -> List[np.ndarray]:
    if "session" not in events.columns:
        return [np.arange(len(events))]
    session = events["session"].to_numpy()
    return [np.flatnonzero(session == s) for s in pd.unique(events["session"])]


def create_pattern(
    source: str,
    events: Union[pd.DataFrame, Sequence[Mapping[str, Any]]],
    chan: pd.DataFrame,
    extract: Extractor,
    params: Optional[Mapping[str, Any]] = None,
    pat_name: str = "pattern",
    res_dir: Union[str, Path] = ".",
) -> Pattern:
    """
    Create a pattern for one source and save it to
    ``<res_dir>/patterns/pattern_<pat_name>_<source>.joblib``.

    Args:
        source: source (subject) identifier.
        events: one record per observation.
        chan: channel table (see :func:`patclass.patterns.dims.init_chan`).
        extract: returns the raw array for a chunk of events.
        params: ``event_filter``, ``chan_filter``, ``offset_ms``,
            ``duration_ms``, ``samplerate``, ``freqs``, ``overwrite``,
            ``update_only`` and the bin keys read by
            :func:`patclass.patterns.binning.pattern_bins`. Anything else
            is passed on to ``extract``.
        pat_name: logical name of the pattern.
        res_dir: results directory.

    Returns:
        The new pattern; with ``update_only`` its array is not computed.
    """
    params = {**PATTERN_DEFAULTS, **dict(params or {})}
    path = pattern_path(res_dir, pat_name, source)
    if not params["overwrite"] and path.exists():
        logger.info("Pattern exists in %s; skipping.", path)
        return load_artifact(path, kind="pattern", mmap_mode="r").copy_with(mat=None)

    ms_values, step = _ms_values(params)
    dims = PatternDims(
        ev=init_events(events),
        chan=chan.reset_index(drop=True),
        time=init_time(ms_values, step),
        freq=init_freq(params["freqs"]),
    )
    pattern = Pattern(name=pat_name, source=source, dims=dims, file=path, params=dict(params))
    src = filter_pattern(pattern, params["event_filter"], params["chan_filter"])
    binned, bins = pattern_bins(src, params)
    binned = binned.copy_with(file=path)

    if params["update_only"]:
        logger.info("Pattern %s for %s initialised without data.", pat_name, source)
        return binned

    src_events = src.dims.ev

    def fetch(indices: np.ndarray) -> np.ndarray:
        chunk_events = src_events.iloc[indices].reset_index(drop=True)
        raw = np.asarray(extract(chunk_events, src.dims.replace_axis(0, chunk_events), params), dtype=float)
        expected = (len(indices),) + src.shape[1:]
        if raw.shape != expected:
            raise ShapeError(f"Extractor returned shape {raw.shape}, expected {expected}.", path=path)
        return pattern_means(raw, [None] + bins[1:])

    with Timer(name=f"create {pat_name} {source}", logger=logger):
        mat = _reduce_events(
            fetch, len(src_events), bins[0], _session_chunks(src_events),
            binned.shape[1:], desc=f"{pat_name} {source}",
        )
    result = binned.copy_with(mat=mat)
    result.check_shape()
    save_artifact(result, path, lock_timeout=float(params.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)))
    return result


def bin_pattern(
    pattern: Pattern,
    params: Mapping[str, Any],
    pat_name: Optional[str] = None,
    res_dir: Optional[Union[str, Path]] = None,
) -> Pattern:
    """Re-bin an existing pattern and save it as a new pattern artifact.

    ``pat_name`` defaults to the input name (replacing it on disk);
    ``res_dir`` defaults to the directory the input pattern was saved under.
    """
    params = dict(params)
    pat_name = pat_name or pattern.name
    if res_dir is None:
        if pattern.file is None:
            raise ConfigError("res_dir is required for a pattern that is not stored on disk.")
        res_dir = Path(pattern.file).parent.parent
    path = pattern_path(res_dir, pat_name, pattern.source)
    if not params.get("overwrite", True) and path.exists():
        logger.info("Pattern exists in %s; skipping.", path)
        return load_artifact(path, kind="pattern", mmap_mode="r").copy_with(mat=None)

    binned, bins = pattern_bins(pattern, params)
    src = pattern.load_mat(mmap_mode="r")
    take = array_fetcher(src, axis=0)

    def fetch(indices: np.ndarray) -> np.ndarray:
        return pattern_means(take(indices), [None] + bins[1:])

    with Timer(name=f"bin {pattern.name} -> {pat_name}", logger=logger):
        mat = _reduce_events(
            fetch, pattern.shape[0], bins[0], [np.arange(pattern.shape[0])],
            binned.shape[1:], desc=None,
        )
    result = binned.copy_with(
        name=pat_name,
        file=path,
        mat=mat,
        params={**pattern.params, **params},
        stats={},
    )
    result.check_shape()
    save_artifact(result, path, lock_timeout=float(params.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)))
    return result
