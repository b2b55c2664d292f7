# tests/conftest.py
"""
Shared fixtures and tree-building helpers for the slang_analysis tests.

Programs are written as S-expressions and loaded with
:func:`slang_analysis.sexp_reader.load_program`; the constants below are
reused across several test modules.
"""

import pytest

from slang_analysis import ast_nodes as A
from slang_analysis.cfg import build_cfg_for_function, build_cfg_for_program
from slang_analysis.config import AnalysisConfig
from slang_analysis.sexp_reader import load_program, load_statements
from slang_analysis.type_algebra import SlangType, TArray, TFun, TRecord, TRef, TVar


# ── Sample programs ──────────────────────────────────────────────

STRAIGHT_LINE = "(let x 10) (let y 20) (assign x 30)"

POLYMORPHIC_ID = """
(fun id (x) (return x))
(let a (call id 1))
(let b (call id true))
(let c (call id "text"))
"""

ARITY_MISMATCH = """
(fun f (x) (return (+ x 1)))
(let y (call f 1 2))
"""

BOOL_TIMES_NUM = "(let x true) (let y (* x 2))"

LOOP_WITH_JUMPS = """
(let x 0)
(while (< x 10)
  (if (== x 5) (then (break)) (else))
  (assign x (+ x 1))
  (continue))
(print x)
"""

COUNTING_LOOP = """
(let i 0)
(let total 0)
(while (< i 3)
  (assign total (+ total i))
  (assign i (+ i 1)))
(print total)
"""


# ── Helpers ──────────────────────────────────────────────────────

def program(text: str) -> A.ProgramUnit:
    return load_program(text)


def main_cfg(text: str):
    """CFG of the main body of a single-module program."""
    return build_cfg_for_program(load_program(text))


def function_cfg(text: str):
    """CFG of the single ``(fun ...)`` form in ``text``."""
    (fn,) = load_statements(text)
    assert isinstance(fn, A.Function)
    return build_cfg_for_function(fn)


def block_with(cfg, stmt_type):
    """First block whose first statement is a ``stmt_type``."""
    for b in cfg.blocks:
        if b.stmts and isinstance(b.stmts[0], stmt_type):
            return b
    raise AssertionError(f"no block holds a {stmt_type.__name__}")


def has_bound_var(t: SlangType) -> bool:
    """True if a bound :class:`TVar` survives anywhere inside ``t``."""
    if isinstance(t, TVar):
        return t.bound is not None
    if isinstance(t, TFun):
        return any(has_bound_var(p) for p in t.params) or has_bound_var(t.ret)
    if isinstance(t, TArray):
        return has_bound_var(t.elem)
    if isinstance(t, TRef):
        return has_bound_var(t.inner)
    if isinstance(t, TRecord):
        return any(has_bound_var(v) for v in t.fields.values())
    return False


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture
def loop_cfg():
    return main_cfg(LOOP_WITH_JUMPS)
