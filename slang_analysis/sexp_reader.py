"""slang_analysis/sexp_reader.py – S-expression → untyped Slang tree loader.

Converts the output of ``sexpdata.loads`` (nested Python lists,
:class:`sexpdata.Symbol`, strings, ints, floats) into the nodes of
:mod:`slang_analysis.ast_nodes`.  It stands in for the real parser front
end in tests and small tools.

* **Head-symbol dispatch** – every list ``(tag ...)`` is dispatched on
  ``tag`` to a ``_load_<tag>`` helper registered in a table.
* **Strict shapes** – anything unexpected raises :class:`TreeLoadError`.
* **Spans** – a trailing ``(@ ls cs le ce)`` on any list form sets the
  node's :class:`SourceSpan`; without one the span is generic.  Bare
  names and literals take the span of the form around them, and
  ``(var x (@ ...))`` gives a name a span of its own.

Public API
----------
``load_program(text) -> ProgramUnit``
    One or more top-level statements, split into a single module.

``load_statements(text) -> list``
    One or more statements, unchanged.

``load_expression(text) -> Expr``
    A single expression.

Surface syntax
--------------
::

    ;; statements
    (let x <e>)                 (assign <lhs> <e>)
    (while <c> <s>...)          (print <e>...)
    (if <c> (then <s>...) (else <s>...))
    (expr <e>)                  (return <e>)
    (block <s>...)              (deref-set <lhs> <e>)
    (struct Name (fields (f <e>)...) (functions (fun ...)...))
    (break)                     (continue)
    (fun name (p...) <s>...)
    (for x <init> <cond> <update-stmt> <s>...)

    ;; expressions
    42  1.5  "text"  true  false  none  x
    (read)                      (<op> <l> <r>)     ;; + - * / % == != < > <= >= && ||
    (if-expr <c> <t> <e>)       (paren <e>)
    (record (f <e>)...)         (ref <e>)          (deref <e>)
    (field <e> name)            (array <e>...)     (index <a> <i>)
    (call name <e>...)          (call-expr <target> <e>...)
    (var x)
    (lambda (p...) <s>...)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

import sexpdata
from sexpdata import Symbol

from . import ast_nodes as A
from .errors import TreeLoadError

logger = logging.getLogger(__name__)

Sexp = Any  # Union[list, Symbol, str, int, float]


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _sym_name(s: Sexp) -> str:
    """Extract the string name from a ``sexpdata.Symbol``, or raise."""
    if isinstance(s, Symbol):
        return s.value()
    raise TreeLoadError(f"Expected symbol, got {type(s).__name__}: {s!r}")


def _expect_list(s: Sexp, *, min_len: int = 0, max_len: int = -1) -> list:
    if not isinstance(s, list):
        raise TreeLoadError(f"Expected list, got {type(s).__name__}: {s!r}")
    if len(s) < min_len:
        raise TreeLoadError(
            f"({_head(s)} ...) needs at least {min_len - 1} argument(s), got {len(s) - 1}"
        )
    if 0 <= max_len < len(s):
        raise TreeLoadError(
            f"({_head(s)} ...) takes at most {max_len - 1} argument(s), got {len(s) - 1}"
        )
    return s


def _head(s: list) -> str:
    if not s:
        raise TreeLoadError("Unexpected empty list")
    return _sym_name(s[0])


def _as_number(s: Sexp) -> float:
    if isinstance(s, (int, float)) and not isinstance(s, bool):
        return float(s)
    raise TreeLoadError(f"Expected number, got {type(s).__name__}: {s!r}")


def _split_span(s: list) -> Tuple[list, A.SourceSpan]:
    """Strip a trailing ``(@ ls cs le ce)`` and return it as a span."""
    if len(s) > 1:
        last = s[-1]
        if isinstance(last, list) and last and isinstance(last[0], Symbol) and last[0].value() == "@":
            if len(last) != 5:
                raise TreeLoadError(f"Span form takes four numbers: {last!r}")
            ls, cs, le, ce = (int(_as_number(v)) for v in last[1:])
            return s[:-1], A.SourceSpan(line_start=ls, line_end=le, column_start=cs, column_end=ce)
    return s, A.GENERIC_SPAN


def _names(s: Sexp) -> List[str]:
    return [_sym_name(p) for p in _expect_list(s)]


def _register(table: dict, tag: str):
    """Decorator: register a loader function under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


# Populated by the ``@_register`` decorator below.
_STMT_DISPATCH: Dict[str, Callable[[list, A.SourceSpan], A.Stmt]] = {}
_EXPR_DISPATCH: Dict[str, Callable[[list, A.SourceSpan], A.Expr]] = {}

_ATOM_SYMBOLS = {
    "true": lambda loc: A.BoolLiteral(True, loc),
    "false": lambda loc: A.BoolLiteral(False, loc),
    "none": lambda loc: A.NoneValue(loc),
}


# ═══════════════════════════════════════════════════════════════════════
#  Expressions
# ═══════════════════════════════════════════════════════════════════════

def load_expr(s: Sexp, enclosing: A.SourceSpan = A.GENERIC_SPAN) -> A.Expr:
    """Load an expression from a raw S-expression.

    Atoms carry no span of their own and get ``enclosing``.
    """
    if isinstance(s, Symbol):
        name = s.value()
        atom = _ATOM_SYMBOLS.get(name)
        if atom is not None:
            return atom(enclosing)
        return A.VarExpr(name, enclosing)
    if isinstance(s, bool):
        return A.BoolLiteral(s, enclosing)
    if isinstance(s, (int, float)):
        return A.NumberLiteral(float(s), enclosing)
    if isinstance(s, str):
        return A.StringLiteral(s, enclosing)
    if isinstance(s, list) and s:
        form, loc = _split_span(s)
        tag = _head(form)
        loader = _EXPR_DISPATCH.get(tag)
        if loader is not None:
            return loader(form, loc)
        try:
            op = A.Operator.from_symbol(tag)
        except ValueError:
            raise TreeLoadError(f"Unknown expression form: ({tag} ...)", loc) from None
        _expect_list(form, min_len=3, max_len=3)
        return A.BinaryExpr(load_expr(form[1], loc), op, load_expr(form[2], loc), loc)
    raise TreeLoadError(f"Expected expression, got: {s!r}")


@_register(_EXPR_DISPATCH, "var")
def _load_var(s: list, loc: A.SourceSpan) -> A.VarExpr:
    _expect_list(s, min_len=2, max_len=2)
    return A.VarExpr(_sym_name(s[1]), loc)


@_register(_EXPR_DISPATCH, "read")
def _load_read(s: list, loc: A.SourceSpan) -> A.ReadInputExpr:
    _expect_list(s, max_len=1)
    return A.ReadInputExpr(loc)


@_register(_EXPR_DISPATCH, "if-expr")
def _load_if_expr(s: list, loc: A.SourceSpan) -> A.IfExpr:
    _expect_list(s, min_len=4, max_len=4)
    return A.IfExpr(load_expr(s[1], loc), load_expr(s[2], loc), load_expr(s[3], loc), loc)


@_register(_EXPR_DISPATCH, "paren")
def _load_paren(s: list, loc: A.SourceSpan) -> A.ParenExpr:
    _expect_list(s, min_len=2, max_len=2)
    return A.ParenExpr(load_expr(s[1], loc), loc)


@_register(_EXPR_DISPATCH, "record")
def _load_record(s: list, loc: A.SourceSpan) -> A.RecordExpr:
    fields = []
    for entry in s[1:]:
        pair = _expect_list(entry, min_len=2, max_len=2)
        fields.append((_sym_name(pair[0]), load_expr(pair[1], loc)))
    return A.RecordExpr(fields, loc)


@_register(_EXPR_DISPATCH, "ref")
def _load_ref(s: list, loc: A.SourceSpan) -> A.RefExpr:
    _expect_list(s, min_len=2, max_len=2)
    return A.RefExpr(load_expr(s[1], loc), loc)


@_register(_EXPR_DISPATCH, "deref")
def _load_deref(s: list, loc: A.SourceSpan) -> A.DerefExpr:
    _expect_list(s, min_len=2, max_len=2)
    return A.DerefExpr(load_expr(s[1], loc), loc)


@_register(_EXPR_DISPATCH, "field")
def _load_field(s: list, loc: A.SourceSpan) -> A.FieldAccess:
    _expect_list(s, min_len=3, max_len=3)
    return A.FieldAccess(load_expr(s[1], loc), A.VarExpr(_sym_name(s[2]), loc), loc)


@_register(_EXPR_DISPATCH, "array")
def _load_array(s: list, loc: A.SourceSpan) -> A.ArrayInit:
    return A.ArrayInit([load_expr(e, loc) for e in s[1:]], loc)


@_register(_EXPR_DISPATCH, "index")
def _load_index(s: list, loc: A.SourceSpan) -> A.ArrayAccess:
    _expect_list(s, min_len=3, max_len=3)
    return A.ArrayAccess(load_expr(s[1], loc), load_expr(s[2], loc), loc)


@_register(_EXPR_DISPATCH, "call")
def _load_call(s: list, loc: A.SourceSpan) -> A.NamedFunctionCall:
    _expect_list(s, min_len=2)
    return A.NamedFunctionCall(_sym_name(s[1]), [load_expr(e, loc) for e in s[2:]], loc)


@_register(_EXPR_DISPATCH, "call-expr")
def _load_call_expr(s: list, loc: A.SourceSpan) -> A.ExpressionFunctionCall:
    _expect_list(s, min_len=2)
    return A.ExpressionFunctionCall(load_expr(s[1], loc), [load_expr(e, loc) for e in s[2:]], loc)


@_register(_EXPR_DISPATCH, "lambda")
def _load_lambda(s: list, loc: A.SourceSpan) -> A.InlinedFunction:
    _expect_list(s, min_len=2)
    body = A.BlockStmt([load_stmt(x) for x in s[2:]], loc)
    return A.InlinedFunction(_names(s[1]), body, loc)


# ═══════════════════════════════════════════════════════════════════════
#  Statements
# ═══════════════════════════════════════════════════════════════════════

def load_stmt(s: Sexp) -> A.Stmt:
    """Load a statement from a raw S-expression."""
    if not isinstance(s, list) or not s:
        raise TreeLoadError(f"Expected statement form (tag ...), got: {s!r}")
    form, loc = _split_span(s)
    tag = _head(form)
    loader = _STMT_DISPATCH.get(tag)
    if loader is None:
        raise TreeLoadError(f"Unknown statement form: ({tag} ...)", loc)
    return loader(form, loc)


def _block(stmts: List[Sexp], loc: A.SourceSpan) -> A.BlockStmt:
    return A.BlockStmt([load_stmt(x) for x in stmts], loc)


@_register(_STMT_DISPATCH, "let")
def _load_let(s: list, loc: A.SourceSpan) -> A.LetStmt:
    _expect_list(s, min_len=3, max_len=3)
    return A.LetStmt(_sym_name(s[1]), load_expr(s[2], loc), loc)


@_register(_STMT_DISPATCH, "assign")
def _load_assign(s: list, loc: A.SourceSpan) -> A.AssignStmt:
    _expect_list(s, min_len=3, max_len=3)
    return A.AssignStmt(load_expr(s[1], loc), load_expr(s[2], loc), loc)


@_register(_STMT_DISPATCH, "while")
def _load_while(s: list, loc: A.SourceSpan) -> A.WhileStmt:
    _expect_list(s, min_len=2)
    return A.WhileStmt(load_expr(s[1], loc), _block(s[2:], loc), loc)


@_register(_STMT_DISPATCH, "print")
def _load_print(s: list, loc: A.SourceSpan) -> A.PrintStmt:
    return A.PrintStmt([load_expr(e, loc) for e in s[1:]], loc)


@_register(_STMT_DISPATCH, "if")
def _load_if(s: list, loc: A.SourceSpan) -> A.IfStmt:
    _expect_list(s, min_len=3, max_len=4)
    branches: Dict[str, A.BlockStmt] = {}
    for part in s[2:]:
        part = _expect_list(part, min_len=1)
        name = _head(part)
        if name not in ("then", "else") or name in branches:
            raise TreeLoadError(f"Unexpected branch ({name} ...) in if", loc)
        branches[name] = _block(part[1:], loc)
    if "then" not in branches:
        raise TreeLoadError("if needs a (then ...) branch", loc)
    else_body = branches.get("else", A.BlockStmt([], loc))
    return A.IfStmt(load_expr(s[1], loc), branches["then"], else_body, loc)


@_register(_STMT_DISPATCH, "expr")
def _load_expr_stmt(s: list, loc: A.SourceSpan) -> A.ExprStmt:
    _expect_list(s, min_len=2, max_len=2)
    return A.ExprStmt(load_expr(s[1], loc), loc)


@_register(_STMT_DISPATCH, "return")
def _load_return(s: list, loc: A.SourceSpan) -> A.ReturnStmt:
    _expect_list(s, min_len=2, max_len=2)
    return A.ReturnStmt(load_expr(s[1], loc), loc)


@_register(_STMT_DISPATCH, "block")
def _load_block(s: list, loc: A.SourceSpan) -> A.BlockStmt:
    return _block(s[1:], loc)


@_register(_STMT_DISPATCH, "deref-set")
def _load_deref_set(s: list, loc: A.SourceSpan) -> A.DerefStmt:
    _expect_list(s, min_len=3, max_len=3)
    return A.DerefStmt(load_expr(s[1], loc), load_expr(s[2], loc), loc)


@_register(_STMT_DISPATCH, "struct")
def _load_struct(s: list, loc: A.SourceSpan) -> A.StructStmt:
    _expect_list(s, min_len=2, max_len=4)
    fields: Dict[str, A.Expr] = {}
    functions: List[A.Function] = []
    for section in s[2:]:
        section = _expect_list(section, min_len=1)
        name = _head(section)
        if name == "fields":
            for entry in section[1:]:
                pair = _expect_list(entry, min_len=2, max_len=2)
                fields[_sym_name(pair[0])] = load_expr(pair[1], loc)
        elif name == "functions":
            for entry in section[1:]:
                fn = load_stmt(entry)
                if not isinstance(fn, A.Function):
                    raise TreeLoadError("struct functions must be (fun ...) forms", loc)
                functions.append(fn)
        else:
            raise TreeLoadError(f"Unknown struct section ({name} ...)", loc)
    return A.StructStmt(_sym_name(s[1]), functions, fields, loc)


@_register(_STMT_DISPATCH, "break")
def _load_break(s: list, loc: A.SourceSpan) -> A.BreakStmt:
    _expect_list(s, max_len=1)
    return A.BreakStmt(loc)


@_register(_STMT_DISPATCH, "continue")
def _load_continue(s: list, loc: A.SourceSpan) -> A.ContinueStmt:
    _expect_list(s, max_len=1)
    return A.ContinueStmt(loc)


@_register(_STMT_DISPATCH, "fun")
def _load_fun(s: list, loc: A.SourceSpan) -> A.Function:
    _expect_list(s, min_len=3)
    return A.Function(_sym_name(s[1]), _names(s[2]), _block(s[3:], loc), loc)


@_register(_STMT_DISPATCH, "for")
def _load_for(s: list, loc: A.SourceSpan) -> A.BlockStmt:
    _expect_list(s, min_len=5)
    return A.desugar_for(
        _sym_name(s[1]),
        load_expr(s[2], loc),
        load_expr(s[3], loc),
        load_stmt(s[4]),
        [load_stmt(x) for x in s[5:]],
        loc,
    )


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def _read_forms(text: str) -> list:
    try:
        forms = sexpdata.loads(f"({text})", nil=None, true=None, false=None)
    except Exception as e:
        # sexpdata raises its own bracket errors for unbalanced input
        raise TreeLoadError(f"Malformed S-expression: {e}") from e
    if not isinstance(forms, list):
        raise TreeLoadError(f"Malformed S-expression: {text!r}")
    return forms


def load_statements(text: str) -> List[A.Stmt]:
    """Load every top-level statement in ``text``.

    >>> load_statements('(let x 1) (print x)')
    """
    return [load_stmt(form) for form in _read_forms(text)]


def load_expression(text: str) -> A.Expr:
    """Load a single expression.

    >>> load_expression('(+ x 1)')
    """
    forms = _read_forms(text)
    if len(forms) != 1:
        raise TreeLoadError(f"Expected exactly one expression, got {len(forms)}")
    return load_expr(forms[0])


def load_program(text: str, main_name: str = A.MAIN_FUNCTION_NAME) -> A.ProgramUnit:
    """Load a single-module program from top-level statements."""
    stmts = load_statements(text)
    module = A.make_module(stmts, main_name=main_name)
    logger.debug("loaded %d top-level statement(s), %d function(s)",
                 len(stmts), len(module.functions))
    return A.ProgramUnit([module])
