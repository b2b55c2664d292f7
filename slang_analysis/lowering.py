"""
slang_analysis/lowering.py
══════════════════════════

Untyped tree → typed tree (TIR).

:class:`TirLowering` repeats the traversal of
:class:`~slang_analysis.inference.HindleyMilnerInference` step for step,
using the same :class:`~slang_analysis.inference.InferenceSession` rules,
but builds a typed node at each step instead of discarding the type.

Types stored while walking are the live (possibly still unbound)
variables.  Once the whole program has been walked, every node's type
is deep-resolved, so later constraints are reflected everywhere and no
bound variable survives in the result.  Variables that remain are
genuinely unconstrained (for example the parameter of a generic
function).

Entry point
───────────
  lower_program(program) -> (TirProgramUnit, List[TypeCheckError])

A non-empty error list means the typed tree should not be used for
code generation; it is still returned for tooling that wants best-effort
types.

License: MIT
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from . import ast_nodes as A
from . import tir as T
from .config import AnalysisConfig
from .errors import TypeCheckError
from .inference import InferenceSession
from .type_algebra import (
    BOOL,
    UNIT,
    SlangType,
    TArray,
    TFun,
    TRecord,
    TRef,
    resolve_type,
)
from .type_env import TypeEnv

logger = logging.getLogger(__name__)


class TirLowering:
    """Stateful lowering engine; one instance lowers one program."""

    _STMT_RULES: Dict[type, str] = {
        A.LetStmt: "_let",
        A.AssignStmt: "_assign",
        A.ExprStmt: "_expr_stmt",
        A.ReturnStmt: "_return",
        A.PrintStmt: "_print",
        A.IfStmt: "_if",
        A.WhileStmt: "_while",
        A.BlockStmt: "_block_stmt",
        A.Function: "_function_stmt",
        A.DerefStmt: "_deref_stmt",
        A.StructStmt: "_struct",
        A.BreakStmt: "_break",
        A.ContinueStmt: "_continue",
    }

    _EXPR_RULES: Dict[type, str] = {
        A.NumberLiteral: "_number",
        A.BoolLiteral: "_bool",
        A.StringLiteral: "_string",
        A.NoneValue: "_none",
        A.VarExpr: "_var",
        A.ReadInputExpr: "_read_input",
        A.BinaryExpr: "_binary",
        A.IfExpr: "_if_expr",
        A.ParenExpr: "_paren",
        A.InlinedFunction: "_lambda",
        A.NamedFunctionCall: "_named_call",
        A.ExpressionFunctionCall: "_expr_call",
        A.ArrayInit: "_array_init",
        A.ArrayAccess: "_array_access",
        A.RecordExpr: "_record",
        A.FieldAccess: "_field_access",
        A.RefExpr: "_ref",
        A.DerefExpr: "_deref",
    }

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config
        self.session = InferenceSession(config)

    @property
    def errors(self) -> List[TypeCheckError]:
        return list(self.session.errors)

    # ── Program ──────────────────────────────────────────────────────

    def lower_program(self, program: A.ProgramUnit) -> T.TirProgramUnit:
        self.session = InferenceSession(self.config)
        env = TypeEnv.empty()
        modules: List[T.TirModule] = []
        for module in program.modules:
            env, tir_module = self.lower_module(module, env)
            modules.append(tir_module)
        raw = T.TirProgramUnit(tuple(modules), loc=program.loc)
        logger.debug(
            "lowered %d module(s) with %d error(s)", len(modules), len(self.session.errors)
        )
        return T.map_types(raw, resolve_type)

    def lower_module(self, module: A.Module, env: TypeEnv) -> Tuple[TypeEnv, T.TirModule]:
        main, declared = self.session.split_module(module)
        functions: List[T.TirFunction] = []
        for fn in declared:
            env, tir_fn = self.lower_function(fn, env)
            functions.append(tir_fn)
        if main is not None:
            body, body_type = self.lower_block(main.body, env)
            functions.insert(0, T.TirFunction(
                name=main.name,
                params=(),
                body=body,
                return_type=body_type,
                type=TFun((), body_type),
                loc=main.loc,
            ))
        inlined = tuple(self._lambda(lam, env) for lam in module.inlined_functions)
        return env, T.TirModule(tuple(functions), inlined, loc=module.loc)

    def lower_function(self, fn: A.Function, env: TypeEnv) -> Tuple[TypeEnv, T.TirFunction]:
        s = self.session
        param_types, ret, fun_type, inner = s.function_scope(env, fn.name, fn.params)
        body, body_type = self.lower_block(fn.body, inner)
        new_env = s.close_function(env, fn.name, fun_type, ret, body_type, fn.loc)
        tir_fn = T.TirFunction(
            name=fn.name,
            params=tuple(zip(fn.params, param_types)),
            body=body,
            return_type=ret,
            type=fun_type,
            loc=fn.loc,
        )
        return new_env, tir_fn

    # ── Statements ───────────────────────────────────────────────────

    def lower_block(self, block: A.BlockStmt, env: TypeEnv) -> Tuple[T.TirBlock, SlangType]:
        result: SlangType = UNIT
        stmts = []
        for stmt in block.stmts:
            env, tir_stmt, result = self.lower_stmt(stmt, env)
            stmts.append(tir_stmt)
        return T.TirBlock(tuple(stmts), result, loc=block.loc), result

    def lower_stmt(self, stmt: A.Stmt, env: TypeEnv) -> Tuple[TypeEnv, T.TirStmt, SlangType]:
        rule = self._STMT_RULES.get(type(stmt))
        if rule is None:
            raise TypeError(f"Unsupported statement node: {type(stmt).__name__}")
        return getattr(self, rule)(stmt, env)

    def _let(self, stmt: A.LetStmt, env: TypeEnv):
        expr = self.lower_expr(stmt.expr, env)
        scheme = self.session.generalize(env, expr.type)
        return env.extend(stmt.name, scheme), T.TirLet(stmt.name, expr, loc=stmt.loc), UNIT

    def _assign(self, stmt: A.AssignStmt, env: TypeEnv):
        lhs = self.lower_expr(stmt.lhs, env)
        rhs = self.lower_expr(stmt.expr, env)
        self.session.unify(lhs.type, rhs.type, stmt.loc)
        return env, T.TirAssign(lhs, rhs, loc=stmt.loc), UNIT

    def _expr_stmt(self, stmt: A.ExprStmt, env: TypeEnv):
        expr = self.lower_expr(stmt.expr, env)
        return env, T.TirExprStmt(expr, expr.type, loc=stmt.loc), expr.type

    def _return(self, stmt: A.ReturnStmt, env: TypeEnv):
        expr = self.lower_expr(stmt.expr, env)
        return env, T.TirReturn(expr, expr.type, loc=stmt.loc), expr.type

    def _print(self, stmt: A.PrintStmt, env: TypeEnv):
        args = tuple(self.lower_expr(a, env) for a in stmt.args)
        return env, T.TirPrint(args, loc=stmt.loc), UNIT

    def _if(self, stmt: A.IfStmt, env: TypeEnv):
        s = self.session
        cond = self.lower_expr(stmt.condition, env)
        s.unify(cond.type, BOOL, stmt.loc)
        then_body, then_type = self.lower_block(stmt.then_body, env)
        else_body, else_type = self.lower_block(stmt.else_body, env)
        s.unify(then_type, else_type, stmt.loc)
        node = T.TirIf(cond, then_body, else_body, then_type, loc=stmt.loc)
        return env, node, then_type

    def _while(self, stmt: A.WhileStmt, env: TypeEnv):
        cond = self.lower_expr(stmt.condition, env)
        self.session.unify(cond.type, BOOL, stmt.loc)
        body, _ = self.lower_block(stmt.body, env)
        return env, T.TirWhile(cond, body, loc=stmt.loc), UNIT

    def _block_stmt(self, stmt: A.BlockStmt, env: TypeEnv):
        block, block_type = self.lower_block(stmt, env)
        return env, block, block_type

    def _function_stmt(self, stmt: A.Function, env: TypeEnv):
        new_env, tir_fn = self.lower_function(stmt, env)
        return new_env, tir_fn, UNIT

    def _deref_stmt(self, stmt: A.DerefStmt, env: TypeEnv):
        s = self.session
        lhs = self.lower_expr(stmt.lhs, env)
        rhs = self.lower_expr(stmt.rhs, env)
        inner = s.fresh()
        s.unify(lhs.type, TRef(inner), stmt.loc)
        s.unify(inner, rhs.type, stmt.loc)
        return env, T.TirDerefStmt(lhs, rhs, loc=stmt.loc), UNIT

    def _struct(self, stmt: A.StructStmt, env: TypeEnv):
        s = self.session
        fields = tuple((name, self.lower_expr(e, env)) for name, e in stmt.fields.items())
        record = TRecord({name: e.type for name, e in fields})
        scheme = s.generalize(env, record)
        functions = tuple(self.lower_function(fn, env)[1] for fn in stmt.functions)
        node = T.TirStruct(stmt.name, functions, fields, loc=stmt.loc)
        return env.extend(stmt.name, scheme), node, UNIT

    def _break(self, stmt: A.BreakStmt, env: TypeEnv):
        return env, T.TirBreak(loc=stmt.loc), UNIT

    def _continue(self, stmt: A.ContinueStmt, env: TypeEnv):
        return env, T.TirContinue(loc=stmt.loc), UNIT

    # ── Expressions ──────────────────────────────────────────────────

    def lower_expr(self, expr: A.Expr, env: TypeEnv) -> T.TirExpr:
        rule = self._EXPR_RULES.get(type(expr))
        if rule is None:
            raise TypeError(f"Unsupported expression node: {type(expr).__name__}")
        return getattr(self, rule)(expr, env)

    def _number(self, expr: A.NumberLiteral, env):
        return T.TirNumber(expr.value, loc=expr.loc)

    def _bool(self, expr: A.BoolLiteral, env):
        return T.TirBool(expr.value, loc=expr.loc)

    def _string(self, expr: A.StringLiteral, env):
        return T.TirString(expr.value, loc=expr.loc)

    def _none(self, expr: A.NoneValue, env):
        return T.TirNone(loc=expr.loc)

    def _var(self, expr: A.VarExpr, env: TypeEnv):
        return T.TirVar(expr.name, self.session.variable(env, expr.name, expr.loc), loc=expr.loc)

    def _read_input(self, expr: A.ReadInputExpr, env):
        return T.TirReadInput(self.session.fresh(), loc=expr.loc)

    def _binary(self, expr: A.BinaryExpr, env: TypeEnv):
        left = self.lower_expr(expr.left, env)
        right = self.lower_expr(expr.right, env)
        result = self.session.binary(expr.op, left.type, right.type, expr.loc)
        return T.TirBinary(left, expr.op, right, result, loc=expr.loc)

    def _if_expr(self, expr: A.IfExpr, env: TypeEnv):
        s = self.session
        cond = self.lower_expr(expr.condition, env)
        s.unify(cond.type, BOOL, expr.loc)
        then_expr = self.lower_expr(expr.then_expr, env)
        else_expr = self.lower_expr(expr.else_expr, env)
        s.unify(then_expr.type, else_expr.type, expr.loc)
        return T.TirIfExpr(cond, then_expr, else_expr, then_expr.type, loc=expr.loc)

    def _paren(self, expr: A.ParenExpr, env: TypeEnv):
        inner = self.lower_expr(expr.expr, env)
        return T.TirParen(inner, inner.type, loc=expr.loc)

    def _lambda(self, expr: A.InlinedFunction, env: TypeEnv):
        param_types, inner = self.session.lambda_scope(env, expr.params)
        body, body_type = self.lower_block(expr.body, inner)
        return T.TirInlinedFunction(
            tuple(zip(expr.params, param_types)),
            body,
            TFun(tuple(param_types), body_type),
            loc=expr.loc,
        )

    def _named_call(self, expr: A.NamedFunctionCall, env: TypeEnv):
        s = self.session
        callee = s.named_callee(env, expr.name, expr.loc)
        args = tuple(self.lower_expr(a, env) for a in expr.arguments)
        if callee is None:
            result: SlangType = s.fresh()
        else:
            result = s.call(callee, [a.type for a in args], expr.loc)
        return T.TirNamedCall(expr.name, args, result, loc=expr.loc)

    def _expr_call(self, expr: A.ExpressionFunctionCall, env: TypeEnv):
        target = self.lower_expr(expr.target, env)
        args = tuple(self.lower_expr(a, env) for a in expr.arguments)
        result = self.session.call(target.type, [a.type for a in args], expr.loc)
        return T.TirExprCall(target, args, result, loc=expr.loc)

    def _array_init(self, expr: A.ArrayInit, env: TypeEnv):
        s = self.session
        elem = s.fresh()
        elements = []
        for element in expr.elements:
            tir_element = self.lower_expr(element, env)
            s.unify(elem, tir_element.type, expr.loc)
            elements.append(tir_element)
        return T.TirArrayInit(tuple(elements), TArray(elem), loc=expr.loc)

    def _array_access(self, expr: A.ArrayAccess, env: TypeEnv):
        array = self.lower_expr(expr.array, env)
        index = self.lower_expr(expr.index, env)
        elem = self.session.array_element(array.type, index.type, expr.loc)
        return T.TirArrayAccess(array, index, elem, loc=expr.loc)

    def _record(self, expr: A.RecordExpr, env: TypeEnv):
        fields = tuple((name, self.lower_expr(e, env)) for name, e in expr.fields)
        record = TRecord({name: e.type for name, e in fields})
        return T.TirRecord(fields, record, loc=expr.loc)

    def _field_access(self, expr: A.FieldAccess, env: TypeEnv):
        lhs = self.lower_expr(expr.lhs, env)
        result = self.session.field(lhs.type, expr.rhs.name, expr.loc)
        rhs = T.TirVar(expr.rhs.name, result, loc=expr.rhs.loc)
        return T.TirFieldAccess(lhs, rhs, result, loc=expr.loc)

    def _ref(self, expr: A.RefExpr, env: TypeEnv):
        inner = self.lower_expr(expr.expr, env)
        return T.TirRef(inner, TRef(inner.type), loc=expr.loc)

    def _deref(self, expr: A.DerefExpr, env: TypeEnv):
        inner = self.lower_expr(expr.expr, env)
        result = self.session.dereference(inner.type, expr.loc)
        return T.TirDeref(inner, result, loc=expr.loc)


def lower_program(
    program: A.ProgramUnit,
    config: Optional[AnalysisConfig] = None,
) -> Tuple[T.TirProgramUnit, List[TypeCheckError]]:
    """Lower ``program`` to TIR and return it with the collected type errors."""
    lowering = TirLowering(config)
    tree = lowering.lower_program(program)
    return tree, lowering.errors
