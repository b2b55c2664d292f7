# slang_analysis/config.py
"""
Configuration for the semantic-analysis passes, plus the logging setup
used by tools that embed them.

The library itself never installs log handlers; call
:func:`configure_logging` from a script or test session to see output.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from .ast_nodes import MAIN_FUNCTION_NAME
from .dataflow import WorklistStrategy

LOG_FORMAT = "%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s"


@dataclass
class AnalysisConfig:
    """Tuning knobs shared by inference, lowering and the dataflow solvers."""
    main_function_name: str = MAIN_FUNCTION_NAME
    max_iterations: Optional[int] = None
    worklist_strategy: WorklistStrategy = WorklistStrategy.FIFO
    verbosity: int = 0

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if not self.main_function_name:
            problems.append("main_function_name must not be empty")
        if self.max_iterations is not None and self.max_iterations <= 0:
            problems.append("max_iterations must be positive when set")
        if not isinstance(self.worklist_strategy, WorklistStrategy):
            problems.append(f"unknown worklist strategy: {self.worklist_strategy!r}")
        if self.verbosity < 0:
            problems.append("verbosity must be non-negative")
        return problems

    def validated(self) -> "AnalysisConfig":
        problems = self.validate()
        if problems:
            raise ValueError("invalid analysis configuration: " + "; ".join(problems))
        return self


def configure_logging(verbosity: int = 0) -> logging.Handler:
    """Set up the ``slang_analysis`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.

    Returns
    -------
    The handler that was attached, so callers can remove it again.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))
    root = logging.getLogger("slang_analysis")
    root.setLevel(level)
    root.addHandler(handler)
    return handler
