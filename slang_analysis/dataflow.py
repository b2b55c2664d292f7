"""
slang_analysis/dataflow.py
══════════════════════════

Generic worklist dataflow framework over
:class:`~slang_analysis.cfg.ControlFlowGraph`.

An analysis supplies four hooks and a direction:

    initial_value()         fact at the graph boundary (entry for
                            FORWARD, exit for BACKWARD)
    boundary_value()        starting fact of every other block
    meet(values, block)     combine neighbour facts
    transfer(input, block)  the block's effect

``analyze(cfg)`` seeds every block with ``boundary_value()``, pins the
boundary block, then pops blocks off a worklist, recomputing IN from
the neighbours (or ``initial_value()`` at the boundary) and OUT through
``transfer``.  Neighbours are re-queued only when the block's output
fact changed.

Termination needs a finite-height lattice and monotone ``meet`` and
``transfer``; the solver relies on that rather than checking it.  An
explicit ``max_iterations`` turns non-termination into a
:class:`~slang_analysis.errors.ConvergenceError`.

Facts are compared with ``==``, so they should be immutable values
(``frozenset``, tuples, or dicts that are never mutated after
``transfer`` returns them).

License: MIT
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Set,
    TypeVar,
)

from .cfg import BasicBlock, ControlFlowGraph
from .errors import ConvergenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ===========================================================================
# DIRECTION AND WORKLIST ORDER
# ===========================================================================

class Direction(enum.Enum):
    """Direction of dataflow propagation."""
    FORWARD = "forward"
    BACKWARD = "backward"


class WorklistStrategy(enum.Enum):
    """Strategy for selecting the next worklist block."""
    FIFO = "fifo"
    LIFO = "lifo"
    RPO = "rpo"         # Reverse post-order (best for forward)
    PO = "po"           # Post-order (best for backward)


# ===========================================================================
# FACT FORMATTING
# ===========================================================================

def format_fact(fact: Any) -> str:
    """Deterministic rendering: sets and mappings are sorted by key."""
    if isinstance(fact, (set, frozenset)):
        return "{" + ", ".join(sorted(str(x) for x in fact)) + "}"
    if isinstance(fact, Mapping):
        items = sorted(fact.items(), key=lambda kv: str(kv[0]))
        return "{" + ", ".join(f"{k}: {v}" for k, v in items) + "}"
    return str(fact)


# ===========================================================================
# RESULT
# ===========================================================================

@dataclass(frozen=True)
class DataflowResult(Generic[T]):
    """Facts computed by one ``analyze`` call.

    Attributes
    ----------
    in_facts : dict
        Map from block → fact before the block's statements.
    out_facts : dict
        Map from block → fact after the block's statements.
    direction : Direction
        Direction the analysis ran in.
    iterations : int
        Number of blocks popped from the worklist.
    """
    in_facts: Dict[BasicBlock, T] = field(default_factory=dict)
    out_facts: Dict[BasicBlock, T] = field(default_factory=dict)
    direction: Direction = Direction.FORWARD
    iterations: int = 0

    def get_in(self, block: BasicBlock) -> Optional[T]:
        return self.in_facts.get(block)

    def get_out(self, block: BasicBlock) -> Optional[T]:
        return self.out_facts.get(block)

    def fact_at(self, block: BasicBlock, *, before: bool = True) -> Optional[T]:
        """IN fact when ``before`` is true, OUT fact otherwise."""
        return self.get_in(block) if before else self.get_out(block)

    def pretty_print(
        self,
        block_printer: Callable[[BasicBlock], str] = str,
        fact_printer: Callable[[Any], str] = format_fact,
    ) -> str:
        lines = [f"Dataflow Analysis Result ({self.direction.name}):"]
        for block, in_fact in self.in_facts.items():
            lines.append(f"  {block_printer(block)}:")
            lines.append(f"    IN:  {fact_printer(in_fact)}")
            lines.append(f"    OUT: {fact_printer(self.out_facts.get(block))}")
        return "\n".join(lines) + "\n"


# ===========================================================================
# ANALYSIS BASE CLASS
# ===========================================================================

class DataflowAnalysis(ABC, Generic[T]):
    """Abstract base for an intraprocedural dataflow analysis.

    Subclasses set ``direction`` and implement the four hooks.
    """

    direction: Direction = Direction.FORWARD

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def initial_value(self) -> T:
        """Fact at the entry (FORWARD) or exit (BACKWARD) block."""
        ...

    @abstractmethod
    def boundary_value(self) -> T:
        """Fact of every other block before the first iteration."""
        ...

    @abstractmethod
    def meet(self, values: List[T], block: BasicBlock) -> T:
        """Combine the facts flowing into ``block``."""
        ...

    @abstractmethod
    def transfer(self, input: T, block: BasicBlock) -> T:
        """Effect of ``block``'s statements on ``input``."""
        ...

    def format_fact(self, fact: T) -> str:
        return format_fact(fact)

    # -----------------------------------------------------------------------
    # Solver
    # -----------------------------------------------------------------------

    def analyze(
        self,
        cfg: ControlFlowGraph,
        strategy: WorklistStrategy = WorklistStrategy.FIFO,
        max_iterations: Optional[int] = None,
    ) -> DataflowResult[T]:
        """Run the worklist algorithm to a fixpoint.

        Parameters
        ----------
        cfg:
            Graph to analyse; it is not modified.
        strategy:
            Initial worklist order and queue discipline.
        max_iterations:
            Upper bound on worklist pops; ``None`` means unbounded.

        Returns
        -------
        DataflowResult
            IN/OUT facts for every block of ``cfg``.

        Raises
        ------
        ConvergenceError
            If ``max_iterations`` is exceeded.
        """
        forward = self.direction is Direction.FORWARD
        in_facts: Dict[BasicBlock, T] = {}
        out_facts: Dict[BasicBlock, T] = {}
        for block in cfg.blocks:
            in_facts[block] = self.boundary_value()
            out_facts[block] = self.boundary_value()

        boundary = cfg.entry if forward else cfg.exit
        if forward:
            in_facts[boundary] = self.initial_value()
        else:
            out_facts[boundary] = self.initial_value()

        worklist: Deque[BasicBlock] = deque(self._initial_order(cfg, strategy))
        in_worklist: Set[BasicBlock] = set(worklist)
        iterations = 0

        while worklist:
            block = worklist.pop() if strategy is WorklistStrategy.LIFO else worklist.popleft()
            in_worklist.discard(block)
            iterations += 1
            if max_iterations is not None and iterations > max_iterations:
                raise ConvergenceError(self.name, max_iterations)

            if forward:
                if block is boundary:
                    new_in = self.initial_value()
                else:
                    new_in = self.meet([out_facts[p] for p in block.predecessors if p in out_facts], block)
                in_facts[block] = new_in
                new_out = self.transfer(new_in, block)
                changed = new_out != out_facts[block]
                out_facts[block] = new_out
                neighbours = block.successors
            else:
                if block is boundary:
                    new_out = self.initial_value()
                else:
                    new_out = self.meet([in_facts[s] for s in block.successors if s in in_facts], block)
                out_facts[block] = new_out
                new_in = self.transfer(new_out, block)
                changed = new_in != in_facts[block]
                in_facts[block] = new_in
                neighbours = block.predecessors

            if changed:
                for n in neighbours:
                    if n not in in_worklist:
                        worklist.append(n)
                        in_worklist.add(n)

        logger.debug(
            "%s (%s) converged after %d iteration(s) over %d block(s)",
            self.name, self.direction.name, iterations, len(cfg.blocks),
        )
        return DataflowResult(in_facts, out_facts, self.direction, iterations)

    @staticmethod
    def _initial_order(cfg: ControlFlowGraph, strategy: WorklistStrategy) -> List[BasicBlock]:
        if strategy is WorklistStrategy.RPO:
            return cfg.reverse_postorder()
        if strategy is WorklistStrategy.PO:
            return list(reversed(cfg.reverse_postorder()))
        if strategy is WorklistStrategy.LIFO:
            return list(reversed(cfg.blocks))
        return list(cfg.blocks)
