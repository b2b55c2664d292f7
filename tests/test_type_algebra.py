# tests/test_type_algebra.py
"""
Tests for the type terms, prune, unification and the type environment.
"""

import pytest

from slang_analysis.errors import ErrorKind
from slang_analysis.type_algebra import (
    BOOL,
    NUM,
    STRING,
    UNIT,
    TArray,
    TFun,
    TRecord,
    TRef,
    TVar,
    TypeScheme,
    contains_unbound,
    free_vars,
    prune,
    resolve_type,
    substitute,
)
from slang_analysis.type_env import TypeEnv
from slang_analysis.unification import Unifier, occurs_in


class TestRendering:

    def test_primitives(self):
        assert [str(t) for t in (NUM, BOOL, STRING, UNIT)] == ["Num", "Bool", "String", "Unit"]

    def test_composites(self):
        t = TFun((NUM, TArray(BOOL)), TRef(STRING))
        assert str(t) == "(Num, [Bool]) -> Ref<String>"
        assert str(TRecord({"a": NUM, "b": BOOL})) == "{a: Num, b: Bool}"

    def test_bound_variable_renders_as_binding(self):
        v = TVar(3)
        assert str(v) == "t3"
        v.bound = NUM
        assert str(v) == "Num"

    def test_scheme(self):
        scheme = TypeScheme(frozenset({1, 0}), TFun((TVar(0),), TVar(1)))
        assert str(scheme) == "forall t0 t1. (t0) -> t1"
        assert str(TypeScheme.monomorphic(NUM)) == "Num"


class TestPrune:
    """prune follows binding chains and compresses them."""

    def test_unbound_is_itself(self):
        v = TVar(0)
        assert prune(v) is v

    def test_chain_resolves_to_root(self):
        a, b, c = TVar(0), TVar(1), TVar(2)
        a.bound = b
        b.bound = c
        c.bound = NUM
        assert prune(a) == NUM
        # path compression re-points every link at the root
        assert a.bound == NUM
        assert b.bound == NUM

    def test_idempotent(self):
        a, b = TVar(0), TVar(1)
        a.bound = b
        first = prune(a)
        assert prune(first) is first
        assert first is b

    def test_non_variable_untouched(self):
        t = TArray(NUM)
        assert prune(t) is t


class TestFreeVarsAndResolution:

    def test_free_vars_skip_bound(self):
        a, b = TVar(0), TVar(1)
        a.bound = NUM
        assert free_vars(TFun((a, b), TArray(b))) == {1}

    def test_resolve_type_is_deep(self):
        a, b = TVar(0), TVar(1)
        b.bound = BOOL
        a.bound = TArray(b)
        assert resolve_type(TRef(a)) == TRef(TArray(BOOL))

    def test_substitute_only_mapped(self):
        a, b = TVar(0), TVar(1)
        result = substitute(TFun((a,), b), {0: NUM})
        assert result.params == (NUM,)
        assert result.ret is b

    def test_contains_unbound(self):
        assert not contains_unbound(TArray(NUM))
        assert contains_unbound(TArray(TVar(5)))


class TestUnifier:

    def test_binds_variable(self):
        u = Unifier()
        v = TVar(0)
        assert u.unify(v, NUM)
        assert prune(v) == NUM
        assert u.errors == []

    def test_same_variable_unifies(self):
        v = TVar(0)
        assert Unifier().unify(v, v)

    def test_occurs_check(self):
        u = Unifier()
        v = TVar(0)
        assert not u.unify(v, TArray(v))
        (error,) = u.errors
        assert error.kind is ErrorKind.INFINITE_TYPE
        assert error.message == "Infinite type: t0 occurs in [t0]"
        assert v.is_free

    def test_occurs_in(self):
        v = TVar(7)
        assert occurs_in(7, TFun((NUM,), TRef(v)))
        assert not occurs_in(8, TFun((NUM,), TRef(v)))

    def test_arity_mismatch(self):
        u = Unifier()
        assert not u.unify(TFun((NUM,), NUM), TFun((NUM, NUM), TVar(0)))
        assert u.errors[0].message == "Function arity mismatch: expected 1 params, got 2"

    def test_function_components(self):
        a, b = TVar(0), TVar(1)
        assert Unifier().unify(TFun((a,), b), TFun((NUM,), BOOL))
        assert (prune(a), prune(b)) == (NUM, BOOL)

    def test_records_need_identical_field_sets(self):
        u = Unifier()
        assert not u.unify(TRecord({"b": NUM, "a": NUM}), TRecord({"c": NUM}))
        assert u.errors[0].message == "Record field mismatch: [a, b] vs [c]"

    def test_record_field_types(self):
        v = TVar(0)
        assert Unifier().unify(TRecord({"a": v}), TRecord({"a": STRING}))
        assert prune(v) == STRING

    def test_ground_mismatch(self):
        u = Unifier()
        assert not u.unify(BOOL, NUM)
        assert u.errors[0].message == "Cannot unify Bool with Num"
        assert u.errors[0].kind is ErrorKind.UNIFICATION_FAILURE

    def test_constructor_mismatch(self):
        u = Unifier()
        assert not u.unify(TArray(NUM), TRef(NUM))
        assert u.errors[0].message == "Cannot unify [Num] with Ref<Num>"

    def test_shared_error_list(self):
        shared = []
        Unifier(shared).unify(NUM, STRING)
        assert len(shared) == 1


class TestTypeEnv:

    def test_extend_is_persistent(self):
        base = TypeEnv.empty().extend("x", TypeScheme.monomorphic(NUM))
        inner = base.extend("y", TypeScheme.monomorphic(BOOL))
        assert "y" in inner
        assert "y" not in base
        assert base["x"].body == NUM

    def test_shadowing(self):
        env = TypeEnv.empty().extend("x", TypeScheme.monomorphic(NUM))
        env = env.extend("x", TypeScheme.monomorphic(BOOL))
        assert env.lookup("x").body == BOOL
        assert [name for name, _ in env.items()] == ["x"]

    def test_missing_name(self):
        env = TypeEnv.empty()
        assert env.lookup("nope") is None
        with pytest.raises(KeyError):
            env["nope"]

    def test_extend_many_empty_returns_self(self):
        env = TypeEnv.empty()
        assert env.extend_many([]) is env

    def test_free_vars_respect_quantifiers(self):
        a, b = TVar(0), TVar(1)
        env = TypeEnv.empty().extend("f", TypeScheme(frozenset({0}), TFun((a,), b)))
        assert env.free_vars() == {1}
