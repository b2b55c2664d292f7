# tests/test_inference.py
"""
Tests for Hindley-Milner inference over whole programs.
"""

import pytest

from slang_analysis import ast_nodes as A
from slang_analysis.config import AnalysisConfig
from slang_analysis.errors import ErrorKind, format_errors, sort_errors
from slang_analysis.inference import HindleyMilnerInference, InferenceSession, infer_program
from slang_analysis.sexp_reader import load_statements
from slang_analysis.type_algebra import NUM, TFun, TVar, TypeScheme, prune
from slang_analysis.type_env import TypeEnv
from tests.conftest import (
    ARITY_MISMATCH,
    BOOL_TIMES_NUM,
    COUNTING_LOOP,
    LOOP_WITH_JUMPS,
    POLYMORPHIC_ID,
    program,
)


def messages(text):
    return [e.message for e in infer_program(program(text))]


class TestWellTypedPrograms:

    def test_let_polymorphism_over_functions(self):
        assert messages(POLYMORPHIC_ID) == []

    def test_let_polymorphism_over_lambdas(self):
        src = """
        (let id (lambda (x) (return x)))
        (let a (call-expr id 1))
        (let b (call-expr id true))
        """
        assert messages(src) == []

    def test_recursion(self):
        src = """
        (fun fact (n)
          (if (< n 1)
            (then (return 1))
            (else (return (* n (call fact (- n 1)))))))
        (print (call fact 5))
        """
        assert messages(src) == []

    def test_loops_and_jumps(self):
        assert messages(LOOP_WITH_JUMPS) == []
        assert messages(COUNTING_LOOP) == []

    def test_arrays_and_references(self):
        src = """
        (let xs (array 1 2 3))
        (let y (+ (index xs 0) 1))
        (let r (ref y))
        (deref-set r 2)
        (print (+ (deref r) 1))
        """
        assert messages(src) == []

    def test_string_concatenation(self):
        assert messages('(let s (+ "a" "b")) (print s)') == []

    def test_struct_fields(self):
        src = "(struct Point (fields (x 1) (y 2))) (print (+ (field Point x) 1))"
        assert messages(src) == []

    def test_field_of_unknown_record_is_unchecked(self):
        assert messages("(fun get (r) (return (field r anything)))") == []

    def test_read_input_is_flexible(self):
        assert messages("(let n (read)) (print (+ n 1))") == []


class TestTypeErrors:

    def test_arity_mismatch_reports_once(self):
        errors = infer_program(program(ARITY_MISMATCH))
        assert len(errors) == 1
        assert "arity" in errors[0].message
        assert errors[0].message == "Function arity mismatch: expected 1 params, got 2"

    def test_bool_used_as_number(self):
        assert messages(BOOL_TIMES_NUM) == ["Cannot unify Bool with Num"]

    def test_error_carries_location(self):
        errors = infer_program(program("(let x (* true 2 (@ 2 9 2 17)))"))
        assert str(errors[0]) == "[2:9 --  2:17]: Cannot unify Bool with Num"

    def test_undefined_variable(self):
        (error,) = infer_program(program("(print y)"))
        assert error.message == "Undefined variable: y"
        assert error.kind is ErrorKind.UNDEFINED_NAME

    def test_undefined_variable_location(self):
        (error,) = infer_program(program("(print (+ 1 (var y (@ 3 7 3 8))) (@ 3 1 3 12))"))
        assert str(error) == "[3:7 --  3:8]: Undefined variable: y"
        (error,) = infer_program(program("(print y (@ 4 1 4 9))"))
        assert str(error) == "[4:1 --  4:9]: Undefined variable: y"

    def test_undefined_function_still_checks_arguments(self):
        assert messages("(let z (call nope 1 (+ true 1)))") == [
            "Undefined function: nope",
            "Cannot unify Num with Bool",
        ]

    def test_missing_record_field(self):
        (error,) = infer_program(program("(let r (record (a 1))) (print (field r b))"))
        assert error.message == "Record has no field 'b'"
        assert error.kind is ErrorKind.UNDEFINED_FIELD

    def test_infinite_type(self):
        (error,) = infer_program(program("(fun self (x) (return (call-expr x x)))"))
        assert error.kind is ErrorKind.INFINITE_TYPE
        assert error.message.startswith("Infinite type: t")

    def test_lambda_parameters_are_monomorphic(self):
        src = """
        (let g (lambda (f)
          (let a (call-expr f 1))
          (let b (call-expr f true))
          (return a)))
        """
        assert messages(src) == ["Cannot unify Num with Bool"]

    def test_if_expression_branches_agree(self):
        assert messages('(let v (if-expr true 1 "x"))') == ["Cannot unify Num with String"]

    def test_array_elements_agree(self):
        assert messages("(let xs (array 1 true))") == ["Cannot unify Num with Bool"]

    def test_while_condition_is_bool(self):
        assert messages("(while 1 (print 1))") == ["Cannot unify Num with Bool"]

    def test_deref_assignment_type(self):
        assert messages('(let r (ref 1)) (deref-set r "s")') == ["Cannot unify Num with String"]

    def test_errors_are_collected_not_raised(self):
        errors = infer_program(program(BOOL_TIMES_NUM + " (print missing)"))
        assert len(errors) == 2


class TestProgramStructure:

    def test_environment_carries_across_modules(self):
        first = A.make_module(load_statements("(fun inc (x) (return (+ x 1)))"))
        second = A.make_module(load_statements("(print (call inc 1))"))
        assert infer_program(A.ProgramUnit([first, second])) == []

    def test_module_inlined_functions_are_checked(self):
        unit = program("(expr (lambda (x) (return (* x true))))")
        assert len(unit.modules[0].inlined_functions) == 1
        assert messages("(expr (lambda (x) (return (* x true))))") == ["Cannot unify Bool with Num"]

    def test_custom_main_name(self):
        module = A.make_module(load_statements("(print undefined_name)"), main_name="main")
        cfg = AnalysisConfig(main_function_name="main")
        errors = infer_program(A.ProgramUnit([module]), cfg)
        assert [e.message for e in errors] == ["Undefined variable: undefined_name"]

    def test_deterministic(self):
        text = BOOL_TIMES_NUM + " (print missing) " + ARITY_MISMATCH
        assert messages(text) == messages(text)

    def test_errors_property_is_a_copy(self):
        engine = HindleyMilnerInference()
        engine.infer_program(program("(print y)"))
        engine.errors.clear()
        assert len(engine.errors) == 1

    def test_engine_reuse_starts_clean(self):
        engine = HindleyMilnerInference()
        first = engine.infer_program(program(BOOL_TIMES_NUM))
        second = engine.infer_program(program(BOOL_TIMES_NUM))
        assert len(first) == 1
        assert [str(e) for e in second] == [str(e) for e in first]
        assert engine.infer_program(program(POLYMORPHIC_ID)) == []
        assert engine.errors == []

    def test_variable_ids_restart_per_run(self):
        engine = HindleyMilnerInference()
        engine.infer_program(program(POLYMORPHIC_ID))
        engine.infer_program(program(COUNTING_LOOP))
        clean = HindleyMilnerInference()
        clean.infer_program(program(COUNTING_LOOP))
        assert engine.session.fresh().id == clean.session.fresh().id


class TestSession:
    """The generalize/instantiate pair behind let-polymorphism."""

    def test_fresh_ids_increase(self):
        s = InferenceSession()
        a, b = s.fresh(), s.fresh()
        assert (a.id, b.id) == (0, 1)

    def test_generalize_skips_environment_vars(self):
        s = InferenceSession()
        a, b = s.fresh(), s.fresh()
        env = TypeEnv.empty().extend("z", TypeScheme.monomorphic(a))
        scheme = s.generalize(env, TFun((a,), b))
        assert scheme.vars == frozenset({b.id})

    def test_instantiate_gives_fresh_copies(self):
        s = InferenceSession()
        a = s.fresh()
        scheme = s.generalize(TypeEnv.empty(), TFun((a,), a))
        first = s.instantiate(scheme)
        second = s.instantiate(scheme)
        assert first.params[0] is not second.params[0]
        assert first.params[0] is first.ret
        assert isinstance(first.ret, TVar)
        s.unify(first.params[0], NUM, A.GENERIC_SPAN)
        assert prune(second.ret) is second.ret


class TestErrorHelpers:

    def test_sort_and_format(self):
        errors = infer_program(program(
            "(let a (* true 1 (@ 5 1 5 9))) (let b (* true 1 (@ 2 1 2 9)))"
        ))
        ordered = sort_errors(errors)
        assert [e.location.line_start for e in ordered] == [2, 5]
        assert format_errors(ordered).splitlines()[0].startswith("[2:1 --  2:9]")

    def test_to_json(self):
        (error,) = infer_program(program("(print y)"))
        payload = error.to_json()
        assert payload["kind"] == "undefined-name"
        assert payload["location"]["line_start"] == -1
