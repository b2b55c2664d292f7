# slang_analysis/errors.py
"""
Diagnostics for the Slang semantic-analysis passes.

Type errors are plain values: inference and lowering append them to a
list and keep going, so one bad expression never hides the rest of the
program's problems.  Exceptions are reserved for misuse of the library
itself (malformed loader input, a solver that cannot converge within an
explicit iteration bound).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List

from .ast_nodes import GENERIC_SPAN, SourceSpan


class ErrorKind(Enum):
    UNDEFINED_NAME = "undefined-name"
    UNIFICATION_FAILURE = "unification-failure"
    INFINITE_TYPE = "infinite-type"
    UNDEFINED_FIELD = "undefined-field"


@dataclass(frozen=True)
class TypeCheckError:
    """A single type error: where it happened and what went wrong."""

    location: SourceSpan
    message: str
    kind: ErrorKind = ErrorKind.UNIFICATION_FAILURE

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"

    def to_json(self) -> Dict[str, object]:
        loc = self.location
        return {
            "kind": self.kind.value,
            "message": self.message,
            "location": {
                "line_start": loc.line_start,
                "line_end": loc.line_end,
                "column_start": loc.column_start,
                "column_end": loc.column_end,
            },
        }


def sort_errors(errors: Iterable[TypeCheckError]) -> List[TypeCheckError]:
    """Order errors by source position; generic locations sort first."""
    return sorted(errors, key=lambda e: e.location)


def format_errors(errors: Iterable[TypeCheckError]) -> str:
    return "\n".join(str(e) for e in errors)


class TreeLoadError(ValueError):
    """Raised when an S-expression cannot be mapped to a program tree node."""

    def __init__(self, message: str, location: SourceSpan = GENERIC_SPAN) -> None:
        super().__init__(message)
        self.location = location

    def __str__(self) -> str:
        if self.location.is_generic:
            return self.args[0]
        return f"{self.location}: {self.args[0]}"


class ConvergenceError(RuntimeError):
    """A dataflow solver exceeded its iteration bound."""

    def __init__(self, analysis: str, iterations: int) -> None:
        super().__init__(
            f"{analysis} did not converge after {iterations} iterations"
        )
        self.analysis = analysis
        self.iterations = iterations
