# slang_analysis/ast_nodes.py
"""
Untyped Slang program tree.

This is the tree produced by the parser front end and read (never
mutated) by type inference, lowering and CFG construction.  Every node
carries a :class:`SourceSpan` used verbatim in diagnostics.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, ClassVar, Dict, List, Optional, Tuple, Union


MAIN_FUNCTION_NAME = "__module__main__"


# ── Source Location ──────────────────────────────────────────────

@functools.total_ordering
@dataclass(frozen=True)
class SourceSpan:
    """Start/end line and column of a node in the source text."""
    line_start: int = -1
    line_end: int = -1
    column_start: int = -1
    column_end: int = -1

    GENERIC: ClassVar["SourceSpan"]

    def _key(self) -> Tuple[int, int, int, int]:
        return (self.line_start, self.column_start, self.line_end, self.column_end)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SourceSpan):
            return NotImplemented
        return self._key() < other._key()

    @property
    def is_generic(self) -> bool:
        return self == SourceSpan.GENERIC

    def __str__(self) -> str:
        if self.is_generic:
            return "@"
        return (
            f"[{self.line_start}:{self.column_start} --  "
            f"{self.line_end}:{self.column_end}]"
        )


SourceSpan.GENERIC = SourceSpan(-1, -1, -1, -1)
GENERIC_SPAN = SourceSpan.GENERIC


# ── Operators ────────────────────────────────────────────────────

class Operator(Enum):
    PLUS = "+"
    MINUS = "-"
    TIMES = "*"
    DIV = "/"
    MOD = "%"
    EQ = "=="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LEQ = "<="
    GEQ = ">="
    AND = "&&"
    OR = "||"

    @classmethod
    def from_symbol(cls, symbol: str) -> "Operator":
        for op in cls:
            if op.value == symbol:
                return op
        raise ValueError(f"Unknown operator: {symbol}")

    def __str__(self) -> str:
        return self.value


ARITHMETIC_OPERATORS = frozenset({Operator.MINUS, Operator.TIMES, Operator.DIV, Operator.MOD})
COMPARISON_OPERATORS = frozenset({Operator.LT, Operator.GT, Operator.LEQ, Operator.GEQ})
EQUALITY_OPERATORS = frozenset({Operator.EQ, Operator.NEQ})
LOGICAL_OPERATORS = frozenset({Operator.AND, Operator.OR})


# ── Expressions ──────────────────────────────────────────────────

@dataclass
class NumberLiteral:
    value: float
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class BoolLiteral:
    value: bool
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class StringLiteral:
    value: str
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class NoneValue:
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class VarExpr:
    name: str
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ReadInputExpr:
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class BinaryExpr:
    left: Expr
    op: Operator
    right: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class IfExpr:
    condition: Expr
    then_expr: Expr
    else_expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ParenExpr:
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class RecordExpr:
    """Record literal; ``fields`` keeps the source order of the entries."""
    fields: List[Tuple[str, Expr]]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class RefExpr:
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class DerefExpr:
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class FieldAccess:
    """``lhs.rhs``; the parser always produces a :class:`VarExpr` on the right."""
    lhs: Expr
    rhs: VarExpr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ArrayInit:
    elements: List[Expr]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ArrayAccess:
    array: Expr
    index: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class NamedFunctionCall:
    name: str
    arguments: List[Expr]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ExpressionFunctionCall:
    target: Expr
    arguments: List[Expr]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class InlinedFunction:
    params: List[str]
    body: BlockStmt
    loc: SourceSpan = GENERIC_SPAN


Expr = Union[
    NumberLiteral, BoolLiteral, StringLiteral, NoneValue, VarExpr,
    ReadInputExpr, BinaryExpr, IfExpr, ParenExpr, RecordExpr, RefExpr,
    DerefExpr, FieldAccess, ArrayInit, ArrayAccess, NamedFunctionCall,
    ExpressionFunctionCall, InlinedFunction,
]


# ── Statements ───────────────────────────────────────────────────

@dataclass
class LetStmt:
    name: str
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class AssignStmt:
    lhs: Expr
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class BlockStmt:
    stmts: List[Stmt] = field(default_factory=list)
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class WhileStmt:
    condition: Expr
    body: BlockStmt
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class PrintStmt:
    args: List[Expr]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class IfStmt:
    condition: Expr
    then_body: BlockStmt
    else_body: BlockStmt
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ExprStmt:
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ReturnStmt:
    expr: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class DerefStmt:
    """``deref(lhs) = rhs``"""
    lhs: Expr
    rhs: Expr
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class Function:
    name: str
    params: List[str]
    body: BlockStmt
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class StructStmt:
    name: str
    functions: List[Function]
    fields: Dict[str, Expr]
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class BreakStmt:
    loc: SourceSpan = GENERIC_SPAN


@dataclass
class ContinueStmt:
    loc: SourceSpan = GENERIC_SPAN


Stmt = Union[
    LetStmt, AssignStmt, WhileStmt, PrintStmt, IfStmt, ExprStmt,
    ReturnStmt, BlockStmt, DerefStmt, StructStmt, BreakStmt,
    ContinueStmt, Function,
]


# ── Program structure ────────────────────────────────────────────

@dataclass
class Module:
    """One compilation unit.

    ``functions`` contains the implicit main body (named
    ``__module__main__``) alongside every top-level function declaration.
    """
    functions: List[Function]
    inlined_functions: List[InlinedFunction] = field(default_factory=list)
    loc: SourceSpan = GENERIC_SPAN

    def main_function(self, main_name: str = MAIN_FUNCTION_NAME) -> Optional[Function]:
        for fn in self.functions:
            if fn.name == main_name:
                return fn
        return None


@dataclass
class ProgramUnit:
    modules: List[Module]
    loc: SourceSpan = GENERIC_SPAN


def make_module(
    stmts: List[Stmt],
    loc: SourceSpan = GENERIC_SPAN,
    main_name: str = MAIN_FUNCTION_NAME,
) -> Module:
    """Split a flat list of top-level statements into a :class:`Module`.

    Function declarations become module functions, expression statements
    holding a lambda become module inlined functions, and everything else
    forms the body of the implicit main function.
    """
    main_body: List[Stmt] = []
    functions: List[Function] = []
    inlined: List[InlinedFunction] = []
    for stmt in stmts:
        if isinstance(stmt, Function):
            functions.append(stmt)
        elif isinstance(stmt, ExprStmt) and isinstance(stmt.expr, InlinedFunction):
            inlined.append(stmt.expr)
        else:
            main_body.append(stmt)
    main = Function(main_name, [], BlockStmt(main_body, loc), loc)
    return Module([main] + functions, inlined, loc)


def make_program(stmts: List[Stmt], loc: SourceSpan = GENERIC_SPAN) -> ProgramUnit:
    """Single-module program from a flat statement list."""
    return ProgramUnit([make_module(stmts, loc)], loc)


def desugar_for(
    var: str,
    init: Expr,
    condition: Expr,
    update: Stmt,
    body: List[Stmt],
    loc: SourceSpan = GENERIC_SPAN,
) -> BlockStmt:
    """Rewrite ``for (var = init; condition; update) { body }`` as a while loop."""
    init_stmt = AssignStmt(VarExpr(var, loc), init, loc)
    loop = WhileStmt(condition, BlockStmt(list(body) + [update], loc), loc)
    return BlockStmt([init_stmt, loop], loc)


# ── Pretty printer ───────────────────────────────────────────────

_PRINTERS: Dict[type, Callable[..., str]] = {}


def _printer(node_type: type):
    def deco(fn):
        _PRINTERS[node_type] = fn
        return fn
    return deco


def pretty_print(node, indent: int = 0) -> str:
    """Render a tree node back to (approximate) Slang surface syntax."""
    printer = _PRINTERS.get(type(node))
    if printer is None:
        raise TypeError(f"No printer for {type(node).__name__}")
    return printer(node, "  " * indent, indent)


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _args(exprs) -> str:
    return ", ".join(pretty_print(e) for e in exprs)


@_printer(NumberLiteral)
def _p_number(n, pad, depth):
    return format_number(n.value)


@_printer(BoolLiteral)
def _p_bool(n, pad, depth):
    return "true" if n.value else "false"


@_printer(StringLiteral)
def _p_string(n, pad, depth):
    return f'"{n.value}"'


@_printer(NoneValue)
def _p_none(n, pad, depth):
    return "None"


@_printer(VarExpr)
def _p_var(n, pad, depth):
    return n.name


@_printer(ReadInputExpr)
def _p_read(n, pad, depth):
    return "readInput()"


@_printer(BinaryExpr)
def _p_binary(n, pad, depth):
    return f"{pretty_print(n.left)} {n.op} {pretty_print(n.right)}"


@_printer(IfExpr)
def _p_if_expr(n, pad, depth):
    return (
        f"if ({pretty_print(n.condition)}) then {pretty_print(n.then_expr)} "
        f"else {pretty_print(n.else_expr)}"
    )


@_printer(ParenExpr)
def _p_paren(n, pad, depth):
    return f"({pretty_print(n.expr)})"


@_printer(RecordExpr)
def _p_record(n, pad, depth):
    entries = ", ".join(f"{name}: {pretty_print(e)}" for name, e in n.fields)
    return "{" + entries + "}"


@_printer(RefExpr)
def _p_ref(n, pad, depth):
    return f"ref({pretty_print(n.expr)})"


@_printer(DerefExpr)
def _p_deref(n, pad, depth):
    return f"deref({pretty_print(n.expr)})"


@_printer(FieldAccess)
def _p_field(n, pad, depth):
    return f"{pretty_print(n.lhs)}.{pretty_print(n.rhs)}"


@_printer(ArrayInit)
def _p_array(n, pad, depth):
    return f"[{_args(n.elements)}]"


@_printer(ArrayAccess)
def _p_index(n, pad, depth):
    return f"{pretty_print(n.array)}[{pretty_print(n.index)}]"


@_printer(NamedFunctionCall)
def _p_call(n, pad, depth):
    return f"{n.name}({_args(n.arguments)})"


@_printer(ExpressionFunctionCall)
def _p_call_expr(n, pad, depth):
    return f"{pretty_print(n.target)}({_args(n.arguments)})"


@_printer(InlinedFunction)
def _p_lambda(n, pad, depth):
    return f"fun ({', '.join(n.params)}) => {pretty_print(n.body, depth).lstrip()}"


@_printer(LetStmt)
def _p_let(n, pad, depth):
    return f"{pad}let {n.name} = {pretty_print(n.expr)};"


@_printer(AssignStmt)
def _p_assign(n, pad, depth):
    return f"{pad}{pretty_print(n.lhs)} = {pretty_print(n.expr)};"


@_printer(BlockStmt)
def _p_block(n, pad, depth):
    inner = "\n".join(pretty_print(s, depth + 1) for s in n.stmts)
    return f"{pad}{{\n{inner}\n{pad}}}" if inner else f"{pad}{{}}"


@_printer(WhileStmt)
def _p_while(n, pad, depth):
    return (
        f"{pad}while ({pretty_print(n.condition)}) {{\n"
        + "\n".join(pretty_print(s, depth + 1) for s in n.body.stmts)
        + f"\n{pad}}}"
    )


@_printer(PrintStmt)
def _p_print(n, pad, depth):
    return f"{pad}print({_args(n.args)});"


@_printer(IfStmt)
def _p_if(n, pad, depth):
    then = "\n".join(pretty_print(s, depth + 1) for s in n.then_body.stmts)
    other = "\n".join(pretty_print(s, depth + 1) for s in n.else_body.stmts)
    return (
        f"{pad}if ({pretty_print(n.condition)}) {{\n{then}\n{pad}}} "
        f"else {{\n{other}\n{pad}}}"
    )


@_printer(ExprStmt)
def _p_expr_stmt(n, pad, depth):
    return f"{pad}{pretty_print(n.expr)};"


@_printer(ReturnStmt)
def _p_return(n, pad, depth):
    return f"{pad}return {pretty_print(n.expr)};"


@_printer(DerefStmt)
def _p_deref_stmt(n, pad, depth):
    return f"{pad}deref({pretty_print(n.lhs)}) = {pretty_print(n.rhs)};"


@_printer(Function)
def _p_function(n, pad, depth):
    body = "\n".join(pretty_print(s, depth + 1) for s in n.body.stmts)
    return f"{pad}fun {n.name}({', '.join(n.params)}) {{\n{body}\n{pad}}}"


@_printer(StructStmt)
def _p_struct(n, pad, depth):
    lines = [f"{pad}struct {n.name} {{"]
    lines.extend(f"{pad}  {name} : {pretty_print(e)}" for name, e in n.fields.items())
    lines.extend(pretty_print(fn, depth + 1) for fn in n.functions)
    lines.append(f"{pad}}}")
    return "\n".join(lines)


@_printer(BreakStmt)
def _p_break(n, pad, depth):
    return f"{pad}break;"


@_printer(ContinueStmt)
def _p_continue(n, pad, depth):
    return f"{pad}continue;"


@_printer(Module)
def _p_module(n, pad, depth):
    parts = [pretty_print(fn, depth) for fn in n.functions]
    parts.extend(pad + pretty_print(fn, depth) for fn in n.inlined_functions)
    return "\n\n".join(parts)


@_printer(ProgramUnit)
def _p_program(n, pad, depth):
    return "\n".join(pretty_print(m, depth) for m in n.modules)
