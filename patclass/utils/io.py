"""I/O utilities for pattern and stat artifacts."""
from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterator, Optional

import joblib

from patclass.errors import LockTimeout

__all__ = [
    "DEFAULT_LOCK_TIMEOUT",
    "ensure_dir",
    "artifact_filename",
    "pattern_path",
    "stat_path",
    "artifact_lock",
    "save_artifact",
    "load_artifact",
]

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 100.0


def ensure_dir(path: Path) -> Path:
    """Create directory if missing and return the path."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_filename(kind: str, name: str, source: str) -> str:
    """Deterministic file name keyed on artifact kind, logical name and source id."""
    return f"{kind}_{name}_{source}.joblib"


def pattern_path(res_dir: Path | str, name: str, source: str) -> Path:
    return Path(res_dir) / "patterns" / artifact_filename("pattern", name, source)


def stat_path(res_dir: Path | str, name: str, source: str) -> Path:
    return Path(res_dir) / artifact_filename("stat", name, source)


@contextlib.contextmanager
def artifact_lock(
    path: Path | str,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
    poll_interval: float = 0.5,
) -> Iterator[Path]:
    """Hold an advisory ``<path>.lock`` file; raise :class:`LockTimeout` after ``timeout`` seconds."""
    target = Path(path)
    lock_path = target.with_name(target.name + ".lock")
    ensure_dir(lock_path.parent)
    deadline = time.monotonic() + float(timeout)
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            break
        except FileExistsError:
            if time.monotonic() >= deadline:
                raise LockTimeout(f"Could not acquire lock {lock_path} within {timeout:g}s.", path=target)
            time.sleep(min(poll_interval, max(deadline - time.monotonic(), 0.0)))
    try:
        with os.fdopen(fd, "w") as fh:
            fh.write(str(os.getpid()))
        logger.debug("Locked %s", target)
        yield lock_path
    finally:
        with contextlib.suppress(FileNotFoundError):
            lock_path.unlink()
        logger.debug("Released %s", target)


def save_artifact(obj: Any, path: Path | str, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> Path:
    """Write ``obj`` with joblib in one step: temp file in place, then ``os.replace``."""
    target = Path(path)
    ensure_dir(target.parent)
    with artifact_lock(target, timeout=lock_timeout):
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        os.close(fd)
        try:
            joblib.dump(obj, tmp_name)
            os.replace(tmp_name, target)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise
    logger.info("Saved %s", target)
    return target


def load_artifact(path: Path | str, *, kind: Optional[str] = None, mmap_mode: Optional[str] = None) -> Any:
    """Load a joblib artifact, checking its ``kind`` attribute when requested."""
    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"Artifact not found: {target}")
    obj = joblib.load(target, mmap_mode=mmap_mode)
    if kind is not None and getattr(obj, "kind", None) != kind:
        raise TypeError(f"Artifact {target} is not a {kind}: {type(obj).__name__}")
    return obj
