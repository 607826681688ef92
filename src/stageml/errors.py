"""
Exception taxonomy shared by storage, data containers and stages.

Every error is raised to the immediate caller. Nothing in the package retries
or silently recovers; callers decide whether to abort a pipeline or skip a
stage.
"""

from __future__ import annotations


class StageMLError(Exception):
    """Base class for all package errors."""


class SchemaMismatchError(StageMLError):
    """A Dataframe column does not match the schema a stage was fit on."""


class NotFittedError(StageMLError):
    """transform/predict/save called on a stage that was never fit or loaded."""


class AlreadyFittedError(StageMLError):
    """fit called twice without an intervening reset."""


class ClosedError(StageMLError):
    """Operation on a closed stage or Dataframe."""


class DeletedError(StageMLError):
    """Operation on a deleted stage or Dataframe."""


class NotFoundError(StageMLError, KeyError):
    """Nothing is stored under the requested model name."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0]) if self.args else ""


class ParseError(StageMLError, ValueError):
    """Malformed tabular input."""


class InvalidFractionError(StageMLError, ValueError):
    """Split fraction outside the open interval (0, 1)."""


class IOFailure(StageMLError, OSError):
    """Underlying storage read/write failure."""


__all__ = [
    "StageMLError",
    "SchemaMismatchError",
    "NotFittedError",
    "AlreadyFittedError",
    "ClosedError",
    "DeletedError",
    "NotFoundError",
    "ParseError",
    "InvalidFractionError",
    "IOFailure",
]
