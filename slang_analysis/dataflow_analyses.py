"""
slang_analysis/dataflow_analyses.py
═══════════════════════════════════

Concrete analyses built on :mod:`slang_analysis.dataflow`.

    ReachingDefinitions   forward, may   set of variable names
    LiveVariables         backward, may  set of variable names
    ConstantPropagation   forward        name → ConstValue

A *definition* is a ``let`` or an assignment whose left-hand side is a
plain variable.  Assignments through an index, a field or ``deref`` do
not define a name; their left-hand side is a use.

``if`` and ``while`` statements sit in their own condition block; only
their condition is visited by the transfer functions, the branches live
in other blocks.

License: MIT
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Union

from . import ast_nodes as A
from .cfg import BasicBlock, ControlFlowGraph, build_cfg_for_function, build_cfg_for_program
from .dataflow import DataflowAnalysis, DataflowResult, Direction, WorklistStrategy

logger = logging.getLogger(__name__)

NameSet = FrozenSet[str]


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DEFS AND USES
# ═════════════════════════════════════════════════════════════════════════

def defined_name(stmt: A.Stmt) -> Optional[str]:
    """Name defined by ``stmt``, or ``None``."""
    if isinstance(stmt, A.LetStmt):
        return stmt.name
    if isinstance(stmt, A.AssignStmt) and isinstance(stmt.lhs, A.VarExpr):
        return stmt.lhs.name
    return None


def expression_uses(expr: A.Expr, acc: Optional[Set[str]] = None) -> Set[str]:
    """Variable names read by ``expr``.

    Field names on the right of ``.`` are not variables.  A lambda
    contributes the names its body reads minus its own parameters.
    """
    if acc is None:
        acc = set()
    if isinstance(expr, A.VarExpr):
        acc.add(expr.name)
    elif isinstance(expr, A.BinaryExpr):
        expression_uses(expr.left, acc)
        expression_uses(expr.right, acc)
    elif isinstance(expr, A.IfExpr):
        expression_uses(expr.condition, acc)
        expression_uses(expr.then_expr, acc)
        expression_uses(expr.else_expr, acc)
    elif isinstance(expr, (A.ParenExpr, A.RefExpr, A.DerefExpr)):
        expression_uses(expr.expr, acc)
    elif isinstance(expr, A.RecordExpr):
        for _, value in expr.fields:
            expression_uses(value, acc)
    elif isinstance(expr, A.FieldAccess):
        expression_uses(expr.lhs, acc)
    elif isinstance(expr, A.ArrayInit):
        for element in expr.elements:
            expression_uses(element, acc)
    elif isinstance(expr, A.ArrayAccess):
        expression_uses(expr.array, acc)
        expression_uses(expr.index, acc)
    elif isinstance(expr, A.NamedFunctionCall):
        for arg in expr.arguments:
            expression_uses(arg, acc)
    elif isinstance(expr, A.ExpressionFunctionCall):
        expression_uses(expr.target, acc)
        for arg in expr.arguments:
            expression_uses(arg, acc)
    elif isinstance(expr, A.InlinedFunction):
        inner: Set[str] = set()
        for stmt in expr.body.stmts:
            _nested_uses(stmt, inner)
        acc |= inner - set(expr.params)
    return acc


def _nested_uses(stmt: A.Stmt, acc: Set[str]) -> None:
    # Whole-statement walk, used for lambda bodies only.
    if isinstance(stmt, A.BlockStmt):
        for s in stmt.stmts:
            _nested_uses(s, acc)
    elif isinstance(stmt, A.IfStmt):
        expression_uses(stmt.condition, acc)
        _nested_uses(stmt.then_body, acc)
        _nested_uses(stmt.else_body, acc)
    elif isinstance(stmt, A.WhileStmt):
        expression_uses(stmt.condition, acc)
        _nested_uses(stmt.body, acc)
    else:
        acc |= statement_uses(stmt)


def statement_uses(stmt: A.Stmt) -> Set[str]:
    """Variable names a single CFG statement reads."""
    uses: Set[str] = set()
    if isinstance(stmt, A.LetStmt):
        expression_uses(stmt.expr, uses)
    elif isinstance(stmt, A.AssignStmt):
        expression_uses(stmt.expr, uses)
        if not isinstance(stmt.lhs, A.VarExpr):
            expression_uses(stmt.lhs, uses)
    elif isinstance(stmt, A.PrintStmt):
        for arg in stmt.args:
            expression_uses(arg, uses)
    elif isinstance(stmt, (A.ExprStmt, A.ReturnStmt)):
        expression_uses(stmt.expr, uses)
    elif isinstance(stmt, A.DerefStmt):
        expression_uses(stmt.lhs, uses)
        expression_uses(stmt.rhs, uses)
    elif isinstance(stmt, (A.IfStmt, A.WhileStmt)):
        expression_uses(stmt.condition, uses)
    return uses


def graph_names(cfg: ControlFlowGraph) -> FrozenSet[str]:
    """Every name a statement of ``cfg`` reads or defines."""
    names: Set[str] = set()
    for block in cfg.blocks:
        for stmt in block.stmts:
            names |= statement_uses(stmt)
            name = defined_name(stmt)
            if name is not None:
                names.add(name)
    return frozenset(names)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — REACHING DEFINITIONS
# ═════════════════════════════════════════════════════════════════════════
#
#  Direction:   FORWARD
#  Confluence:  union (may)
#  Lattice:     subsets of variable names
#  Transfer:    OUT = (IN − kill) ∪ gen
# ═════════════════════════════════════════════════════════════════════════

class ReachingDefinitions(DataflowAnalysis[NameSet]):
    """Which variables have a definition that may reach each block.

    Definitions are tracked by variable name, so a later ``x = ...``
    kills an earlier ``let x`` and replaces it with itself.
    """

    direction = Direction.FORWARD

    def initial_value(self) -> NameSet:
        return frozenset()

    def boundary_value(self) -> NameSet:
        return frozenset()

    def meet(self, values: List[NameSet], block: BasicBlock) -> NameSet:
        result: Set[str] = set()
        for v in values:
            result |= v
        return frozenset(result)

    def transfer(self, input: NameSet, block: BasicBlock) -> NameSet:
        gen: Set[str] = set()
        for stmt in block.stmts:
            name = defined_name(stmt)
            if name is not None:
                gen.add(name)
        # Every definition of a name kills the older ones and regenerates it.
        return frozenset((input - gen) | gen)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — LIVE VARIABLES
# ═════════════════════════════════════════════════════════════════════════
#
#  Direction:   BACKWARD
#  Confluence:  union (may)
#  Lattice:     subsets of variable names
#  Transfer:    IN = (OUT − def) ∪ use, statement by statement in reverse
# ═════════════════════════════════════════════════════════════════════════

class LiveVariables(DataflowAnalysis[NameSet]):
    """Variables whose current value may still be read later."""

    direction = Direction.BACKWARD

    def initial_value(self) -> NameSet:
        return frozenset()

    def boundary_value(self) -> NameSet:
        return frozenset()

    def meet(self, values: List[NameSet], block: BasicBlock) -> NameSet:
        result: Set[str] = set()
        for v in values:
            result |= v
        return frozenset(result)

    def transfer(self, input: NameSet, block: BasicBlock) -> NameSet:
        live = set(input)
        for stmt in reversed(block.stmts):
            name = defined_name(stmt)
            if name is not None:
                live.discard(name)
            live |= statement_uses(stmt)
        return frozenset(live)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — CONSTANT PROPAGATION
# ═════════════════════════════════════════════════════════════════════════
#
#  Direction:   FORWARD
#  Confluence:  per-name join on the flat lattice
#  Lattice:     name → TOP | CONST(v) | BOTTOM
#  Transfer:    evaluate the right-hand side of every definition
#
#  Every name the graph mentions, and every parameter, starts as BOTTOM
#  at the entry.  Interior blocks start empty, so a name missing from a
#  fact that has not been reached yet is TOP.  BOTTOM means the value is
#  not a compile-time constant.
# ═════════════════════════════════════════════════════════════════════════

class ConstKind(enum.Enum):
    TOP = "top"
    CONST = "const"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class ConstValue:
    """One point of the flat constant lattice."""
    kind: ConstKind
    value: Any = None

    @classmethod
    def top(cls) -> "ConstValue":
        return _TOP

    @classmethod
    def bottom(cls) -> "ConstValue":
        return _BOTTOM

    @classmethod
    def const(cls, value: Any) -> "ConstValue":
        return cls(ConstKind.CONST, value)

    @property
    def is_top(self) -> bool:
        return self.kind is ConstKind.TOP

    @property
    def is_bottom(self) -> bool:
        return self.kind is ConstKind.BOTTOM

    @property
    def is_const(self) -> bool:
        return self.kind is ConstKind.CONST

    def join(self, other: "ConstValue") -> "ConstValue":
        if self.is_top:
            return other
        if other.is_top:
            return self
        if self.is_bottom or other.is_bottom:
            return _BOTTOM
        # bool and number constants never compare equal here
        if type(self.value) is type(other.value) and self.value == other.value:
            return self
        return _BOTTOM

    def __str__(self) -> str:
        if self.is_top:
            return "TOP"
        if self.is_bottom:
            return "BOTTOM"
        v = self.value
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, float):
            return A.format_number(v)
        if isinstance(v, str):
            return f'"{v}"'
        if v is None:
            return "none"
        return str(v)


_TOP = ConstValue(ConstKind.TOP)
_BOTTOM = ConstValue(ConstKind.BOTTOM)

ConstEnv = Mapping[str, ConstValue]


def _is_number(v: Any) -> bool:
    return isinstance(v, float) and not isinstance(v, bool)


def _fold(op: A.Operator, left: Any, right: Any) -> ConstValue:
    """Fold ``left op right``; anything ill-typed or undefined is BOTTOM."""
    if op is A.Operator.PLUS:
        if _is_number(left) and _is_number(right):
            return ConstValue.const(left + right)
        if isinstance(left, str) and isinstance(right, str):
            return ConstValue.const(left + right)
        return _BOTTOM
    if op in A.ARITHMETIC_OPERATORS:
        if not (_is_number(left) and _is_number(right)):
            return _BOTTOM
        if op is A.Operator.MINUS:
            return ConstValue.const(left - right)
        if op is A.Operator.TIMES:
            return ConstValue.const(left * right)
        if right == 0:
            return _BOTTOM
        if op is A.Operator.DIV:
            return ConstValue.const(left / right)
        return ConstValue.const(math.fmod(left, right))
    if op in A.COMPARISON_OPERATORS:
        if not (_is_number(left) and _is_number(right)):
            return _BOTTOM
        if op is A.Operator.LT:
            return ConstValue.const(left < right)
        if op is A.Operator.GT:
            return ConstValue.const(left > right)
        if op is A.Operator.LEQ:
            return ConstValue.const(left <= right)
        return ConstValue.const(left >= right)
    if op in A.EQUALITY_OPERATORS:
        same = type(left) is type(right) and left == right
        return ConstValue.const(same if op is A.Operator.EQ else not same)
    if op in A.LOGICAL_OPERATORS:
        if not (isinstance(left, bool) and isinstance(right, bool)):
            return _BOTTOM
        if op is A.Operator.AND:
            return ConstValue.const(left and right)
        return ConstValue.const(left or right)
    return _BOTTOM


def evaluate_constant(
    expr: A.Expr,
    env: ConstEnv,
    unknown: Optional[ConstValue] = None,
) -> ConstValue:
    """Abstract value of ``expr`` under ``env``.

    A name missing from ``env`` evaluates to ``unknown``, BOTTOM by default.
    """
    if unknown is None:
        unknown = _BOTTOM
    if isinstance(expr, A.NumberLiteral):
        return ConstValue.const(float(expr.value))
    if isinstance(expr, A.BoolLiteral):
        return ConstValue.const(bool(expr.value))
    if isinstance(expr, A.StringLiteral):
        return ConstValue.const(expr.value)
    if isinstance(expr, A.NoneValue):
        return ConstValue.const(None)
    if isinstance(expr, A.VarExpr):
        return env.get(expr.name, unknown)
    if isinstance(expr, A.ParenExpr):
        return evaluate_constant(expr.expr, env, unknown)
    if isinstance(expr, A.BinaryExpr):
        left = evaluate_constant(expr.left, env, unknown)
        right = evaluate_constant(expr.right, env, unknown)
        if left.is_bottom or right.is_bottom:
            return _BOTTOM
        if left.is_top or right.is_top:
            return _TOP
        return _fold(expr.op, left.value, right.value)
    if isinstance(expr, A.IfExpr):
        cond = evaluate_constant(expr.condition, env, unknown)
        if cond.is_const and isinstance(cond.value, bool):
            return evaluate_constant(expr.then_expr if cond.value else expr.else_expr, env, unknown)
        if cond.is_top:
            return _TOP
        then_value = evaluate_constant(expr.then_expr, env, unknown)
        return then_value.join(evaluate_constant(expr.else_expr, env, unknown))
    # reads, calls, records, arrays, references and lambdas
    return _BOTTOM


class ConstantPropagation(DataflowAnalysis[ConstEnv]):
    """Forward constant propagation over variable names.

    Facts are plain dicts that are never mutated once returned.

    ``params`` names values that flow in from outside the graph (function
    parameters); they are not constant at the entry.  Every name read or
    defined inside the graph is treated the same way.
    """

    direction = Direction.FORWARD

    def __init__(self, params: Iterable[str] = ()) -> None:
        self.params = tuple(params)
        self._entry_names: FrozenSet[str] = frozenset(self.params)

    def analyze(
        self,
        cfg: ControlFlowGraph,
        strategy: WorklistStrategy = WorklistStrategy.FIFO,
        max_iterations: Optional[int] = None,
    ) -> DataflowResult[ConstEnv]:
        self._entry_names = frozenset(self.params) | graph_names(cfg)
        return super().analyze(cfg, strategy, max_iterations)

    def initial_value(self) -> ConstEnv:
        return {name: _BOTTOM for name in self._entry_names}

    def boundary_value(self) -> ConstEnv:
        return {}

    def meet(self, values: List[ConstEnv], block: BasicBlock) -> ConstEnv:
        result: Dict[str, ConstValue] = {}
        for env in values:
            for name, value in env.items():
                result[name] = result.get(name, _TOP).join(value)
        return result

    def transfer(self, input: ConstEnv, block: BasicBlock) -> ConstEnv:
        # an empty input has not been reached from the entry yet
        unknown = _BOTTOM if input else _TOP
        env = dict(input)
        for stmt in block.stmts:
            name = defined_name(stmt)
            if name is not None:
                env[name] = evaluate_constant(stmt.expr, env, unknown)
        return env

    def format_fact(self, fact: ConstEnv) -> str:
        items = sorted(fact.items())
        return "{" + ", ".join(f"{k}: {v}" for k, v in items) + "}"

    @staticmethod
    def constant_at(result: DataflowResult[ConstEnv], block: BasicBlock,
                    name: str, *, before: bool = True) -> Optional[Any]:
        """The constant ``name`` holds at ``block``, or ``None`` if it has none."""
        env = result.fact_at(block, before=before) or {}
        value = env.get(name, _TOP)
        return value.value if value.is_const else None


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — CONVENIENCE RUNNER
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisResults:
    """Results of the three standard analyses over one graph."""
    cfg: ControlFlowGraph
    reaching_defs: DataflowResult[NameSet]
    live_vars: DataflowResult[NameSet]
    constants: DataflowResult[ConstEnv]

    @property
    def all_analyses(self) -> List[tuple]:
        return [
            ("reaching_defs", self.reaching_defs),
            ("live_vars", self.live_vars),
            ("constants", self.constants),
        ]

    def pretty_print(self) -> str:
        parts = []
        for name, result in self.all_analyses:
            parts.append(f"== {name} ==")
            parts.append(result.pretty_print())
        return "\n".join(parts)


def run_all_analyses(
    target: Union[ControlFlowGraph, A.Function, A.ProgramUnit],
    config: Optional[Any] = None,
) -> AnalysisResults:
    """Build the graph if needed and run every standard analysis on it.

    Parameters
    ----------
    target : a CFG, a function, or a program
    config : optional :class:`~slang_analysis.config.AnalysisConfig`
        supplying the worklist strategy and iteration bound.
    """
    strategy = WorklistStrategy.FIFO
    max_iterations = None
    main_name = A.MAIN_FUNCTION_NAME
    if config is not None:
        config.validated()
        strategy = config.worklist_strategy
        max_iterations = config.max_iterations
        main_name = config.main_function_name

    if isinstance(target, ControlFlowGraph):
        cfg = target
    elif isinstance(target, A.Function):
        cfg = build_cfg_for_function(target)
    elif isinstance(target, A.ProgramUnit):
        cfg = build_cfg_for_program(target, main_name)
    else:
        raise TypeError(f"Cannot analyse {type(target).__name__}")

    params = target.params if isinstance(target, A.Function) else ()
    constants = ConstantPropagation(params)
    results = AnalysisResults(
        cfg=cfg,
        reaching_defs=ReachingDefinitions().analyze(cfg, strategy, max_iterations),
        live_vars=LiveVariables().analyze(cfg, strategy, max_iterations),
        constants=constants.analyze(cfg, strategy, max_iterations),
    )
    logger.info("ran %d analyses over %s (%d blocks)",
                len(results.all_analyses), cfg.name, len(cfg.blocks))
    return results
