"""
slang_analysis/inference.py
═══════════════════════════

Hindley–Milner type inference (Algorithm W with let-polymorphism) over
the untyped Slang tree.

Entry point
───────────
  infer_program(program) -> List[TypeCheckError]

An empty list means the program is well typed.  Errors are collected,
never raised: a failed constraint is recorded and inference continues
with a fresh placeholder type so later mistakes are still reported.

Module processing
─────────────────
For each module, in order:

  1. every declared function (everything except the implicit main) is
     inferred and then generalized in the environment that precedes it,
     so later functions and the main body see a polymorphic binding;
  2. the main body is inferred in the resulting environment;
  3. module-level lambdas are inferred in the same environment.

The environment carries over from one module to the next.

:class:`InferenceSession` owns the fresh-variable counter, the error
list and the unifier.  Both this module and :mod:`.lowering` drive the
same session rules, which keeps standalone inference and the typed tree
in agreement.

License: MIT
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from . import ast_nodes as A
from .config import AnalysisConfig
from .errors import ErrorKind, TypeCheckError
from .type_algebra import (
    BOOL,
    NONE,
    NUM,
    STRING,
    UNIT,
    SlangType,
    TArray,
    TFun,
    TRecord,
    TRef,
    TVar,
    TypeScheme,
    free_vars,
    prune,
    substitute,
)
from .type_env import TypeEnv
from .unification import Unifier

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — INFERENCE SESSION
# ═══════════════════════════════════════════════════════════════════════════

class InferenceSession:
    """
    State shared by one inference or lowering run.

    Every :class:`TVar` a run creates comes from this session's counter,
    so two sessions never share variables and may run side by side.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()
        self._next_id = 0
        self.errors: List[TypeCheckError] = []
        self.unifier = Unifier(self.errors)

    # ── Variables, generalization, instantiation ────────────────────

    def fresh(self) -> TVar:
        var = TVar(self._next_id)
        self._next_id += 1
        return var

    def fresh_many(self, count: int) -> List[SlangType]:
        return [self.fresh() for _ in range(count)]

    def generalize(self, env: TypeEnv, t: SlangType) -> TypeScheme:
        """Quantify the variables of ``t`` that are not free in ``env``."""
        return TypeScheme(frozenset(free_vars(t) - env.free_vars()), t)

    def instantiate(self, scheme: TypeScheme) -> SlangType:
        if not scheme.vars:
            return scheme.body
        mapping: Dict[int, SlangType] = {v: self.fresh() for v in sorted(scheme.vars)}
        return substitute(scheme.body, mapping)

    # ── Error reporting ──────────────────────────────────────────────

    def unify(self, a: SlangType, b: SlangType, location: A.SourceSpan) -> bool:
        return self.unifier.unify(a, b, location)

    def report(self, location: A.SourceSpan, message: str, kind: ErrorKind) -> None:
        logger.debug("type error at %s: %s", location, message)
        self.errors.append(TypeCheckError(location, message, kind))

    # ── Rules shared by inference and lowering ───────────────────────

    def variable(self, env: TypeEnv, name: str, location: A.SourceSpan) -> SlangType:
        scheme = env.lookup(name)
        if scheme is None:
            self.report(location, f"Undefined variable: {name}", ErrorKind.UNDEFINED_NAME)
            return self.fresh()
        return self.instantiate(scheme)

    def binary(
        self,
        op: A.Operator,
        left: SlangType,
        right: SlangType,
        location: A.SourceSpan,
    ) -> SlangType:
        if op is A.Operator.PLUS:
            # Num + Num or String + String: both sides share one type.
            result = self.fresh()
            self.unify(left, result, location)
            self.unify(right, result, location)
            return result
        if op in A.ARITHMETIC_OPERATORS:
            self.unify(left, NUM, location)
            self.unify(right, NUM, location)
            return NUM
        if op in A.COMPARISON_OPERATORS:
            self.unify(left, NUM, location)
            self.unify(right, NUM, location)
            return BOOL
        if op in A.EQUALITY_OPERATORS:
            self.unify(left, right, location)
            return BOOL
        self.unify(left, BOOL, location)
        self.unify(right, BOOL, location)
        return BOOL

    def call(
        self,
        callee: SlangType,
        args: Sequence[SlangType],
        location: A.SourceSpan,
    ) -> SlangType:
        result = self.fresh()
        self.unify(callee, TFun(tuple(args), result), location)
        return result

    def named_callee(self, env: TypeEnv, name: str, location: A.SourceSpan) -> Optional[SlangType]:
        scheme = env.lookup(name)
        if scheme is None:
            self.report(location, f"Undefined function: {name}", ErrorKind.UNDEFINED_NAME)
            return None
        return self.instantiate(scheme)

    def field(self, record: SlangType, name: str, location: A.SourceSpan) -> SlangType:
        """
        Type of ``record.name``.

        Only a base already known to be a record is checked; a base that
        is still an unbound variable yields an unconstrained result.
        """
        result = self.fresh()
        base = prune(record)
        if isinstance(base, TRecord):
            field_type = base.fields.get(name)
            if field_type is None:
                self.report(location, f"Record has no field '{name}'", ErrorKind.UNDEFINED_FIELD)
            else:
                self.unify(result, field_type, location)
        return result

    def array_element(
        self,
        array: SlangType,
        index: SlangType,
        location: A.SourceSpan,
    ) -> SlangType:
        elem = self.fresh()
        self.unify(array, TArray(elem), location)
        self.unify(index, NUM, location)
        return elem

    def dereference(self, ref: SlangType, location: A.SourceSpan) -> SlangType:
        inner = self.fresh()
        self.unify(ref, TRef(inner), location)
        return inner

    def function_scope(
        self,
        env: TypeEnv,
        name: str,
        params: Sequence[str],
    ) -> Tuple[List[SlangType], TVar, TFun, TypeEnv]:
        """Fresh signature for a declaration plus the environment of its body.

        The function's own name is bound monomorphically inside the body
        so that it can call itself.
        """
        param_types = self.fresh_many(len(params))
        ret = self.fresh()
        fun_type = TFun(tuple(param_types), ret)
        inner = env.extend(name, TypeScheme.monomorphic(fun_type)).extend_many(
            (p, TypeScheme.monomorphic(t)) for p, t in zip(params, param_types)
        )
        return param_types, ret, fun_type, inner

    def lambda_scope(self, env: TypeEnv, params: Sequence[str]) -> Tuple[List[SlangType], TypeEnv]:
        param_types = self.fresh_many(len(params))
        inner = env.extend_many(
            (p, TypeScheme.monomorphic(t)) for p, t in zip(params, param_types)
        )
        return param_types, inner

    def close_function(
        self,
        env: TypeEnv,
        name: str,
        fun_type: TFun,
        ret: SlangType,
        body_type: SlangType,
        location: A.SourceSpan,
    ) -> TypeEnv:
        """Tie the body's type to the return variable and bind the generalized signature."""
        self.unify(ret, body_type, location)
        return env.extend(name, self.generalize(env, fun_type))

    def split_module(self, module: A.Module) -> Tuple[Optional[A.Function], List[A.Function]]:
        main_name = self.config.main_function_name
        main = None
        declared: List[A.Function] = []
        for fn in module.functions:
            if main is None and fn.name == main_name:
                main = fn
            else:
                declared.append(fn)
        return main, declared


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — ALGORITHM W
# ═══════════════════════════════════════════════════════════════════════════

class HindleyMilnerInference:
    """
    Type checker for a whole :class:`~slang_analysis.ast_nodes.ProgramUnit`.

    Each statement rule returns the (possibly extended) environment and
    the statement's result type (``Unit`` when it yields no value).
    """

    _STMT_RULES: Dict[type, str] = {
        A.LetStmt: "_let",
        A.AssignStmt: "_assign",
        A.ExprStmt: "_expr_stmt",
        A.ReturnStmt: "_expr_stmt",
        A.PrintStmt: "_print",
        A.IfStmt: "_if",
        A.WhileStmt: "_while",
        A.BlockStmt: "_block_stmt",
        A.Function: "_function_stmt",
        A.DerefStmt: "_deref_stmt",
        A.StructStmt: "_struct",
        A.BreakStmt: "_jump",
        A.ContinueStmt: "_jump",
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

    def infer_program(self, program: A.ProgramUnit) -> List[TypeCheckError]:
        # errors and variable ids belong to a single run
        self.session = InferenceSession(self.config)
        env = TypeEnv.empty()
        for index, module in enumerate(program.modules):
            env = self.infer_module(module, env)
            logger.debug(
                "module %d inferred: %d error(s) so far", index, len(self.session.errors)
            )
        return list(self.session.errors)

    def infer_module(self, module: A.Module, env: TypeEnv) -> TypeEnv:
        main, declared = self.session.split_module(module)
        for fn in declared:
            env = self.infer_function(fn, env)
        if main is not None:
            self.infer_block(main.body, env)
        for lam in module.inlined_functions:
            self.infer_expr(lam, env)
        return env

    def infer_function(self, fn: A.Function, env: TypeEnv) -> TypeEnv:
        s = self.session
        _, ret, fun_type, inner = s.function_scope(env, fn.name, fn.params)
        body_type = self.infer_block(fn.body, inner)
        return s.close_function(env, fn.name, fun_type, ret, body_type, fn.loc)

    # ── Statements ───────────────────────────────────────────────────

    def infer_block(self, block: A.BlockStmt, env: TypeEnv) -> SlangType:
        result: SlangType = UNIT
        for stmt in block.stmts:
            env, result = self.infer_stmt(stmt, env)
        return result

    def infer_stmt(self, stmt: A.Stmt, env: TypeEnv) -> Tuple[TypeEnv, SlangType]:
        rule = self._STMT_RULES.get(type(stmt))
        if rule is None:
            raise TypeError(f"Unsupported statement node: {type(stmt).__name__}")
        return getattr(self, rule)(stmt, env)

    def _let(self, stmt: A.LetStmt, env: TypeEnv):
        t = self.infer_expr(stmt.expr, env)
        return env.extend(stmt.name, self.session.generalize(env, t)), UNIT

    def _assign(self, stmt: A.AssignStmt, env: TypeEnv):
        lhs = self.infer_expr(stmt.lhs, env)
        rhs = self.infer_expr(stmt.expr, env)
        self.session.unify(lhs, rhs, stmt.loc)
        return env, UNIT

    def _expr_stmt(self, stmt, env: TypeEnv):
        return env, self.infer_expr(stmt.expr, env)

    def _print(self, stmt: A.PrintStmt, env: TypeEnv):
        for arg in stmt.args:
            self.infer_expr(arg, env)
        return env, UNIT

    def _if(self, stmt: A.IfStmt, env: TypeEnv):
        s = self.session
        s.unify(self.infer_expr(stmt.condition, env), BOOL, stmt.loc)
        then_type = self.infer_block(stmt.then_body, env)
        else_type = self.infer_block(stmt.else_body, env)
        s.unify(then_type, else_type, stmt.loc)
        return env, then_type

    def _while(self, stmt: A.WhileStmt, env: TypeEnv):
        self.session.unify(self.infer_expr(stmt.condition, env), BOOL, stmt.loc)
        self.infer_block(stmt.body, env)
        return env, UNIT

    def _block_stmt(self, stmt: A.BlockStmt, env: TypeEnv):
        return env, self.infer_block(stmt, env)

    def _function_stmt(self, stmt: A.Function, env: TypeEnv):
        return self.infer_function(stmt, env), UNIT

    def _deref_stmt(self, stmt: A.DerefStmt, env: TypeEnv):
        s = self.session
        ref = self.infer_expr(stmt.lhs, env)
        value = self.infer_expr(stmt.rhs, env)
        inner = s.fresh()
        s.unify(ref, TRef(inner), stmt.loc)
        s.unify(inner, value, stmt.loc)
        return env, UNIT

    def _struct(self, stmt: A.StructStmt, env: TypeEnv):
        s = self.session
        record = TRecord({name: self.infer_expr(e, env) for name, e in stmt.fields.items()})
        scheme = s.generalize(env, record)
        for fn in stmt.functions:
            self.infer_function(fn, env)
        return env.extend(stmt.name, scheme), UNIT

    def _jump(self, stmt, env: TypeEnv):
        return env, UNIT

    # ── Expressions ──────────────────────────────────────────────────

    def infer_expr(self, expr: A.Expr, env: TypeEnv) -> SlangType:
        rule = self._EXPR_RULES.get(type(expr))
        if rule is None:
            raise TypeError(f"Unsupported expression node: {type(expr).__name__}")
        return getattr(self, rule)(expr, env)

    def _number(self, expr, env):
        return NUM

    def _bool(self, expr, env):
        return BOOL

    def _string(self, expr, env):
        return STRING

    def _none(self, expr, env):
        return NONE

    def _var(self, expr: A.VarExpr, env: TypeEnv):
        return self.session.variable(env, expr.name, expr.loc)

    def _read_input(self, expr, env):
        return self.session.fresh()

    def _binary(self, expr: A.BinaryExpr, env: TypeEnv):
        left = self.infer_expr(expr.left, env)
        right = self.infer_expr(expr.right, env)
        return self.session.binary(expr.op, left, right, expr.loc)

    def _if_expr(self, expr: A.IfExpr, env: TypeEnv):
        s = self.session
        s.unify(self.infer_expr(expr.condition, env), BOOL, expr.loc)
        then_type = self.infer_expr(expr.then_expr, env)
        else_type = self.infer_expr(expr.else_expr, env)
        s.unify(then_type, else_type, expr.loc)
        return then_type

    def _paren(self, expr: A.ParenExpr, env: TypeEnv):
        return self.infer_expr(expr.expr, env)

    def _lambda(self, expr: A.InlinedFunction, env: TypeEnv):
        param_types, inner = self.session.lambda_scope(env, expr.params)
        body_type = self.infer_block(expr.body, inner)
        return TFun(tuple(param_types), body_type)

    def _named_call(self, expr: A.NamedFunctionCall, env: TypeEnv):
        s = self.session
        callee = s.named_callee(env, expr.name, expr.loc)
        args = [self.infer_expr(a, env) for a in expr.arguments]
        if callee is None:
            return s.fresh()
        return s.call(callee, args, expr.loc)

    def _expr_call(self, expr: A.ExpressionFunctionCall, env: TypeEnv):
        target = self.infer_expr(expr.target, env)
        args = [self.infer_expr(a, env) for a in expr.arguments]
        return self.session.call(target, args, expr.loc)

    def _array_init(self, expr: A.ArrayInit, env: TypeEnv):
        s = self.session
        elem = s.fresh()
        for element in expr.elements:
            s.unify(elem, self.infer_expr(element, env), expr.loc)
        return TArray(elem)

    def _array_access(self, expr: A.ArrayAccess, env: TypeEnv):
        array = self.infer_expr(expr.array, env)
        index = self.infer_expr(expr.index, env)
        return self.session.array_element(array, index, expr.loc)

    def _record(self, expr: A.RecordExpr, env: TypeEnv):
        return TRecord({name: self.infer_expr(e, env) for name, e in expr.fields})

    def _field_access(self, expr: A.FieldAccess, env: TypeEnv):
        record = self.infer_expr(expr.lhs, env)
        return self.session.field(record, expr.rhs.name, expr.loc)

    def _ref(self, expr: A.RefExpr, env: TypeEnv):
        return TRef(self.infer_expr(expr.expr, env))

    def _deref(self, expr: A.DerefExpr, env: TypeEnv):
        return self.session.dereference(self.infer_expr(expr.expr, env), expr.loc)


def infer_program(
    program: A.ProgramUnit,
    config: Optional[AnalysisConfig] = None,
) -> List[TypeCheckError]:
    """Type-check ``program``; an empty list means it is well typed."""
    return HindleyMilnerInference(config).infer_program(program)
