"""Exception taxonomy for tree signal analysis.

Every error raised on purpose by the library derives from
:class:`TreeSignalError`. The concrete classes also derive from the builtin
exception a caller would naturally catch (``ValueError`` for bad input,
``RuntimeError`` for internal defects).
"""

from __future__ import annotations

from typing import Iterable


class TreeSignalError(Exception):
    """Base class for all library errors."""


class InvalidTree(TreeSignalError, ValueError):
    """The edge description does not form a single rooted tree."""


class ScoreMismatch(TreeSignalError, ValueError):
    """Score data references nodes or features inconsistent with the tree."""


class UnknownMode(TreeSignalError, ValueError):
    """The evaluator was configured with an unsupported mode."""


class CandidateInvariantViolation(TreeSignalError, RuntimeError):
    """An internally produced result broke a structural invariant.

    This indicates a bug in the library rather than bad input.
    """


def preview(items: Iterable[object], limit: int = 5) -> str:
    """Render the first ``limit`` offenders for an error message."""
    items = list(items)
    shown = ", ".join(map(repr, items[:limit]))
    if len(items) > limit:
        shown += f", ... ({len(items)} total)"
    return shown


__all__ = [
    "TreeSignalError",
    "InvalidTree",
    "ScoreMismatch",
    "UnknownMode",
    "CandidateInvariantViolation",
    "preview",
]
