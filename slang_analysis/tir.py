# slang_analysis/tir.py
"""
Typed intermediate representation (TIR).

The TIR mirrors the untyped tree one-to-one; every node additionally
carries the type inference assigned to it.  Nodes are frozen: a typed
tree is built once by :mod:`.lowering` and only read afterwards.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Tuple, Union

from .ast_nodes import GENERIC_SPAN, Operator, SourceSpan, format_number
from .type_algebra import BOOL, NONE, NUM, STRING, UNIT, SlangType


class TirNode:
    """Marker base class for every typed node."""

    __slots__ = ()


# ── Expressions ──────────────────────────────────────────────────

@dataclass(frozen=True)
class TirNumber(TirNode):
    value: float
    type: SlangType = NUM
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirBool(TirNode):
    value: bool
    type: SlangType = BOOL
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirString(TirNode):
    value: str
    type: SlangType = STRING
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirNone(TirNode):
    type: SlangType = NONE
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirVar(TirNode):
    name: str
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirReadInput(TirNode):
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirBinary(TirNode):
    left: TirExpr
    op: Operator
    right: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirIfExpr(TirNode):
    condition: TirExpr
    then_expr: TirExpr
    else_expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirParen(TirNode):
    expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirRecord(TirNode):
    fields: Tuple[Tuple[str, TirExpr], ...]
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirRef(TirNode):
    expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirDeref(TirNode):
    expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirFieldAccess(TirNode):
    lhs: TirExpr
    rhs: TirVar
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirArrayInit(TirNode):
    elements: Tuple[TirExpr, ...]
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirArrayAccess(TirNode):
    array: TirExpr
    index: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirNamedCall(TirNode):
    name: str
    arguments: Tuple[TirExpr, ...]
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirExprCall(TirNode):
    target: TirExpr
    arguments: Tuple[TirExpr, ...]
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirInlinedFunction(TirNode):
    params: Tuple[Tuple[str, SlangType], ...]
    body: TirBlock
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


TirExpr = Union[
    TirNumber, TirBool, TirString, TirNone, TirVar, TirReadInput,
    TirBinary, TirIfExpr, TirParen, TirRecord, TirRef, TirDeref,
    TirFieldAccess, TirArrayInit, TirArrayAccess, TirNamedCall,
    TirExprCall, TirInlinedFunction,
]


# ── Statements ───────────────────────────────────────────────────

@dataclass(frozen=True)
class TirLet(TirNode):
    name: str
    expr: TirExpr
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirAssign(TirNode):
    lhs: TirExpr
    expr: TirExpr
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirBlock(TirNode):
    stmts: Tuple[TirStmt, ...]
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirWhile(TirNode):
    condition: TirExpr
    body: TirBlock
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirPrint(TirNode):
    args: Tuple[TirExpr, ...]
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirIf(TirNode):
    condition: TirExpr
    then_body: TirBlock
    else_body: TirBlock
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirExprStmt(TirNode):
    expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirReturn(TirNode):
    expr: TirExpr
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirDerefStmt(TirNode):
    lhs: TirExpr
    rhs: TirExpr
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirFunction(TirNode):
    name: str
    params: Tuple[Tuple[str, SlangType], ...]
    body: TirBlock
    return_type: SlangType
    type: SlangType
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirStruct(TirNode):
    name: str
    functions: Tuple[TirFunction, ...]
    fields: Tuple[Tuple[str, TirExpr], ...]
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirBreak(TirNode):
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirContinue(TirNode):
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


TirStmt = Union[
    TirLet, TirAssign, TirWhile, TirPrint, TirIf, TirExprStmt, TirReturn,
    TirBlock, TirDerefStmt, TirStruct, TirBreak, TirContinue, TirFunction,
]


# ── Program structure ────────────────────────────────────────────

@dataclass(frozen=True)
class TirModule(TirNode):
    functions: Tuple[TirFunction, ...]
    inlined_functions: Tuple[TirInlinedFunction, ...] = ()
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


@dataclass(frozen=True)
class TirProgramUnit(TirNode):
    modules: Tuple[TirModule, ...]
    type: SlangType = UNIT
    loc: SourceSpan = GENERIC_SPAN


# ── Traversal ────────────────────────────────────────────────────

def _children(value) -> Iterator[TirNode]:
    if isinstance(value, TirNode):
        yield value
    elif isinstance(value, tuple):
        for item in value:
            yield from _children(item)


def walk(node: TirNode) -> Iterator[TirNode]:
    """Pre-order iteration over ``node`` and every typed node below it."""
    yield node
    for f in dataclasses.fields(node):
        for child in _children(getattr(node, f.name)):
            yield from walk(child)


def _rebuild(value, fn: Callable[[SlangType], SlangType]):
    if isinstance(value, TirNode):
        return map_types(value, fn)
    if isinstance(value, SlangType):
        return fn(value)
    if isinstance(value, tuple):
        return tuple(_rebuild(item, fn) for item in value)
    return value


def map_types(node: TirNode, fn: Callable[[SlangType], SlangType]) -> TirNode:
    """Copy of ``node`` with ``fn`` applied to every type in the subtree."""
    changes = {f.name: _rebuild(getattr(node, f.name), fn) for f in dataclasses.fields(node)}
    return dataclasses.replace(node, **changes)


# ── Pretty printer ───────────────────────────────────────────────

_PRINTERS: Dict[type, Callable[..., str]] = {}


def _printer(node_type: type):
    def deco(fn):
        _PRINTERS[node_type] = fn
        return fn
    return deco


def pretty_print_tir(node: TirNode, indent: int = 0) -> str:
    """Render a typed node; every typed expression is followed by ``: type``."""
    printer = _PRINTERS.get(type(node))
    if printer is None:
        raise TypeError(f"No printer for {type(node).__name__}")
    return printer(node, "  " * indent, indent)


_p = pretty_print_tir


def _args(exprs) -> str:
    return ", ".join(_p(e) for e in exprs)


def _params(params) -> str:
    return ", ".join(f"{name}: {t}" for name, t in params)


def _lines(stmts, depth: int) -> str:
    return "\n".join(_p(s, depth) for s in stmts)


@_printer(TirNumber)
def _p_number(n, pad, depth):
    return f"{format_number(n.value)} : {n.type}"


@_printer(TirBool)
def _p_bool(n, pad, depth):
    return f"{'true' if n.value else 'false'} : {n.type}"


@_printer(TirString)
def _p_string(n, pad, depth):
    return f'"{n.value}" : {n.type}'


@_printer(TirNone)
def _p_none(n, pad, depth):
    return f"None : {n.type}"


@_printer(TirVar)
def _p_var(n, pad, depth):
    return f"{n.name} : {n.type}"


@_printer(TirReadInput)
def _p_read(n, pad, depth):
    return f"readInput() : {n.type}"


@_printer(TirBinary)
def _p_binary(n, pad, depth):
    return f"({_p(n.left)} {n.op} {_p(n.right)}) : {n.type}"


@_printer(TirIfExpr)
def _p_if_expr(n, pad, depth):
    return (
        f"(if ({_p(n.condition)}) then {_p(n.then_expr)} "
        f"else {_p(n.else_expr)}) : {n.type}"
    )


@_printer(TirParen)
def _p_paren(n, pad, depth):
    return f"({_p(n.expr)}) : {n.type}"


@_printer(TirRecord)
def _p_record(n, pad, depth):
    entries = ", ".join(f"{name}: {_p(e)}" for name, e in n.fields)
    return "{" + entries + "} : " + str(n.type)


@_printer(TirRef)
def _p_ref(n, pad, depth):
    return f"ref({_p(n.expr)}) : {n.type}"


@_printer(TirDeref)
def _p_deref(n, pad, depth):
    return f"deref({_p(n.expr)}) : {n.type}"


@_printer(TirFieldAccess)
def _p_field(n, pad, depth):
    return f"{_p(n.lhs)}.{n.rhs.name} : {n.type}"


@_printer(TirArrayInit)
def _p_array(n, pad, depth):
    return f"[{_args(n.elements)}] : {n.type}"


@_printer(TirArrayAccess)
def _p_index(n, pad, depth):
    return f"{_p(n.array)}[{_p(n.index)}] : {n.type}"


@_printer(TirNamedCall)
def _p_call(n, pad, depth):
    return f"{n.name}({_args(n.arguments)}) : {n.type}"


@_printer(TirExprCall)
def _p_call_expr(n, pad, depth):
    return f"{_p(n.target)}({_args(n.arguments)}) : {n.type}"


@_printer(TirInlinedFunction)
def _p_lambda(n, pad, depth):
    return f"fun({_params(n.params)}) => {_p(n.body, depth).lstrip()} : {n.type}"


@_printer(TirLet)
def _p_let(n, pad, depth):
    return f"{pad}let {n.name} = {_p(n.expr)};"


@_printer(TirAssign)
def _p_assign(n, pad, depth):
    return f"{pad}{_p(n.lhs)} = {_p(n.expr)};"


@_printer(TirBlock)
def _p_block(n, pad, depth):
    if not n.stmts:
        return f"{pad}{{}}"
    return f"{pad}{{\n{_lines(n.stmts, depth + 1)}\n{pad}}}"


@_printer(TirWhile)
def _p_while(n, pad, depth):
    return f"{pad}while ({_p(n.condition)}) {{\n{_lines(n.body.stmts, depth + 1)}\n{pad}}}"


@_printer(TirPrint)
def _p_print(n, pad, depth):
    return f"{pad}print({_args(n.args)});"


@_printer(TirIf)
def _p_if(n, pad, depth):
    return (
        f"{pad}if ({_p(n.condition)}) {{\n{_lines(n.then_body.stmts, depth + 1)}\n"
        f"{pad}}} else {{\n{_lines(n.else_body.stmts, depth + 1)}\n{pad}}}"
    )


@_printer(TirExprStmt)
def _p_expr_stmt(n, pad, depth):
    return f"{pad}{_p(n.expr)};"


@_printer(TirReturn)
def _p_return(n, pad, depth):
    return f"{pad}return {_p(n.expr)};"


@_printer(TirDerefStmt)
def _p_deref_stmt(n, pad, depth):
    return f"{pad}deref({_p(n.lhs)}) = {_p(n.rhs)};"


@_printer(TirFunction)
def _p_function(n, pad, depth):
    return (
        f"{pad}fun {n.name}({_params(n.params)}): {n.return_type} {{\n"
        f"{_lines(n.body.stmts, depth + 1)}\n{pad}}}"
    )


@_printer(TirStruct)
def _p_struct(n, pad, depth):
    lines = [f"{pad}struct {n.name} {{"]
    lines.extend(f"{pad}  {name} : {_p(e)}" for name, e in n.fields)
    lines.extend(_p(fn, depth + 1) for fn in n.functions)
    lines.append(f"{pad}}}")
    return "\n".join(lines)


@_printer(TirBreak)
def _p_break(n, pad, depth):
    return f"{pad}break;"


@_printer(TirContinue)
def _p_continue(n, pad, depth):
    return f"{pad}continue;"


@_printer(TirModule)
def _p_module(n, pad, depth):
    parts = [_p(fn, depth) for fn in n.functions]
    parts.extend(pad + _p(fn, depth) for fn in n.inlined_functions)
    return "\n\n".join(parts)


@_printer(TirProgramUnit)
def _p_program(n, pad, depth):
    return "\n".join(_p(m, depth) for m in n.modules)
