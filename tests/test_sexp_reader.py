# tests/test_sexp_reader.py
"""
Tests for the S-expression loader: source text → untyped tree nodes.
"""

import pytest

from slang_analysis import ast_nodes as A
from slang_analysis.errors import TreeLoadError
from slang_analysis.sexp_reader import load_expression, load_program, load_statements


class TestExpressions:

    def test_atoms(self):
        assert load_expression("42") == A.NumberLiteral(42.0)
        assert load_expression("1.5") == A.NumberLiteral(1.5)
        assert load_expression("true") == A.BoolLiteral(True)
        assert load_expression("false") == A.BoolLiteral(False)
        assert load_expression("none") == A.NoneValue()
        assert load_expression('"hi"') == A.StringLiteral("hi")
        assert load_expression("x") == A.VarExpr("x")

    def test_every_operator(self):
        for op in A.Operator:
            expr = load_expression(f"({op.value} a b)")
            assert isinstance(expr, A.BinaryExpr)
            assert expr.op is op

    def test_compound_forms(self):
        assert isinstance(load_expression("(read)"), A.ReadInputExpr)
        assert load_expression("(paren 1)") == A.ParenExpr(A.NumberLiteral(1.0))
        assert load_expression("(ref x)") == A.RefExpr(A.VarExpr("x"))
        assert load_expression("(deref x)") == A.DerefExpr(A.VarExpr("x"))
        assert load_expression("(index a 0)") == A.ArrayAccess(A.VarExpr("a"), A.NumberLiteral(0.0))
        assert load_expression("(array 1 2)").elements == [A.NumberLiteral(1.0), A.NumberLiteral(2.0)]

    def test_record_keeps_order(self):
        rec = load_expression("(record (b 1) (a 2))")
        assert [name for name, _ in rec.fields] == ["b", "a"]

    def test_field_rhs_is_variable(self):
        access = load_expression("(field p x)")
        assert access.rhs == A.VarExpr("x")

    def test_calls(self):
        call = load_expression("(call f 1 y)")
        assert call.name == "f" and len(call.arguments) == 2
        expr_call = load_expression("(call-expr (paren g) 1)")
        assert isinstance(expr_call.target, A.ParenExpr)

    def test_lambda(self):
        lam = load_expression("(lambda (x y) (return (+ x y)))")
        assert lam.params == ["x", "y"]
        assert isinstance(lam.body.stmts[0], A.ReturnStmt)

    def test_if_expr(self):
        expr = load_expression("(if-expr c 1 2)")
        assert isinstance(expr, A.IfExpr)

    def test_span(self):
        expr = load_expression("(+ 1 2 (@ 3 4 3 9))")
        assert expr.loc == A.SourceSpan(line_start=3, line_end=3, column_start=4, column_end=9)
        assert str(expr.loc) == "[3:4 --  3:9]"

    def test_atoms_take_enclosing_span(self):
        expr = load_expression("(+ x 2 (@ 3 4 3 9))")
        assert expr.left.loc == expr.loc
        assert expr.right.loc == expr.loc

    def test_var_form_has_own_span(self):
        expr = load_expression("(+ (var x (@ 1 1 1 2)) 2 (@ 1 1 1 9))")
        assert expr.left == A.VarExpr("x", A.SourceSpan(line_start=1, line_end=1, column_start=1, column_end=2))
        assert load_expression("(var y)") == A.VarExpr("y")

    def test_statement_span_reaches_names(self):
        (stmt,) = load_statements("(print y (@ 4 1 4 9))")
        assert stmt.args[0].loc == stmt.loc


class TestStatements:

    def test_simple_forms(self):
        stmts = load_statements("""
        (let x 1) (assign x 2) (print x 1) (expr (call f)) (return x)
        (deref-set r 1) (break) (continue) (block (print 1))
        """)
        assert [type(s) for s in stmts] == [
            A.LetStmt, A.AssignStmt, A.PrintStmt, A.ExprStmt, A.ReturnStmt,
            A.DerefStmt, A.BreakStmt, A.ContinueStmt, A.BlockStmt,
        ]

    def test_if_branches(self):
        (stmt,) = load_statements("(if c (then (print 1)) (else (print 2) (print 3)))")
        assert len(stmt.then_body.stmts) == 1
        assert len(stmt.else_body.stmts) == 2

    def test_if_without_else(self):
        (stmt,) = load_statements("(if c (then (print 1)))")
        assert stmt.else_body.stmts == []

    def test_while(self):
        (stmt,) = load_statements("(while (< i 3) (assign i (+ i 1)))")
        assert isinstance(stmt.body, A.BlockStmt)

    def test_function(self):
        (fn,) = load_statements("(fun add (a b) (return (+ a b)))")
        assert fn.name == "add" and fn.params == ["a", "b"]

    def test_struct(self):
        (st,) = load_statements(
            "(struct P (fields (x 1) (y 2)) (functions (fun get (p) (return (field p x)))))"
        )
        assert list(st.fields) == ["x", "y"]
        assert [f.name for f in st.functions] == ["get"]

    def test_for_is_desugared(self):
        (stmt,) = load_statements("(for i 0 (< i 3) (assign i (+ i 1)) (print i))")
        assert isinstance(stmt, A.BlockStmt)
        init, loop = stmt.stmts
        assert init == A.AssignStmt(A.VarExpr("i"), A.NumberLiteral(0.0))
        assert isinstance(loop, A.WhileStmt)
        assert [type(s) for s in loop.body.stmts] == [A.PrintStmt, A.AssignStmt]


class TestProgram:

    def test_splits_module(self):
        unit = load_program("(fun f (x) (return x)) (let a 1) (expr (lambda (y) (return y)))")
        (module,) = unit.modules
        assert [f.name for f in module.functions] == [A.MAIN_FUNCTION_NAME, "f"]
        assert len(module.inlined_functions) == 1
        assert isinstance(module.main_function().body.stmts[0], A.LetStmt)

    def test_empty(self):
        unit = load_program("")
        assert unit.modules[0].main_function().body.stmts == []


class TestErrors:

    def test_unknown_statement(self):
        with pytest.raises(TreeLoadError, match="Unknown statement form"):
            load_statements("(frobnicate 1)")

    def test_unknown_expression(self):
        with pytest.raises(TreeLoadError, match="Unknown expression form"):
            load_expression("(frobnicate 1)")

    def test_wrong_arity(self):
        with pytest.raises(TreeLoadError):
            load_statements("(let x)")

    def test_statement_must_be_list(self):
        with pytest.raises(TreeLoadError):
            load_statements("x")

    def test_unbalanced(self):
        with pytest.raises(TreeLoadError):
            load_statements("(let x 1")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            load_expression("1 2")

    def test_error_location(self):
        with pytest.raises(TreeLoadError) as info:
            load_statements("(bogus (@ 1 2 1 8))")
        assert str(info.value).startswith("[1:2 --  1:8]")
