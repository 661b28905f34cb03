"""Error taxonomy shared by pattern binning and classification."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

__all__ = [
    "PatclassError",
    "ConfigError",
    "SpecError",
    "ShapeError",
    "SpecTypeError",
    "TrainingFailure",
    "LockTimeout",
]


class PatclassError(Exception):
    """Base class for all errors raised by patclass.

    ``path`` is the artifact that would have been written, when known.
    """

    def __init__(self, message: str, *, path: Optional[Path | str] = None) -> None:
        self.message = message
        self.path = None if path is None else str(path)
        super().__init__(self._format())

    def _format(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message} (artifact: {self.path})"

    def with_path(self, path: Path | str) -> "PatclassError":
        """Attach an artifact path after the fact and refresh the message."""
        self.path = str(path)
        self.args = (self._format(),)
        return self

    def _fields(self) -> Dict[str, Any]:
        return {"path": self.path}

    def __reduce__(self):
        # joblib workers send errors back pickled; keyword fields must survive
        return _rebuild, (type(self), self.message, self._fields())


def _rebuild(cls, message: str, fields: Dict[str, Any]) -> PatclassError:
    return cls(message, **fields)


class ConfigError(PatclassError, ValueError):
    """A required spec is missing or the configuration is inconsistent."""


class SpecError(ConfigError):
    """A regressor/selector spec names fields absent from the records."""


class ShapeError(PatclassError, ValueError):
    """An axis would be binned to zero length, or grid cells disagree in shape."""


class SpecTypeError(PatclassError, TypeError):
    """A bin specification value has an unsupported shape or type."""


class TrainingFailure(PatclassError, RuntimeError):
    """The training function raised while fitting one fold/repetition."""

    def __init__(
        self,
        message: str,
        *,
        fold: int,
        rep: int,
        cell: Optional[Tuple[int, ...]] = None,
        path: Optional[Path | str] = None,
    ) -> None:
        self.fold = int(fold)
        self.rep = int(rep)
        self.cell = None if cell is None else tuple(int(c) for c in cell)
        super().__init__(message, path=path)

    def _format(self) -> str:
        where = f"fold {self.fold}, rep {self.rep}"
        if self.cell is not None:
            where += f", cell {self.cell}"
        text = f"{self.message} [{where}]"
        if self.path is not None:
            text += f" (artifact: {self.path})"
        return text

    def _fields(self) -> Dict[str, Any]:
        return {"fold": self.fold, "rep": self.rep, "cell": self.cell, "path": self.path}

    def at_cell(self, cell: Tuple[int, ...]) -> "TrainingFailure":
        self.cell = tuple(int(c) for c in cell)
        self.args = (self._format(),)
        return self


class LockTimeout(PatclassError, TimeoutError):
    """The advisory artifact lock could not be acquired in time."""
