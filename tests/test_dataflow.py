# tests/test_dataflow.py
"""
Tests for the worklist solver and the standard analyses.
"""

import pytest

from slang_analysis import ast_nodes as A
from slang_analysis.config import AnalysisConfig
from slang_analysis.dataflow import DataflowAnalysis, Direction, WorklistStrategy, format_fact
from slang_analysis.dataflow_analyses import (
    ConstantPropagation,
    ConstValue,
    LiveVariables,
    ReachingDefinitions,
    defined_name,
    evaluate_constant,
    expression_uses,
    run_all_analyses,
    statement_uses,
)
from slang_analysis.errors import ConvergenceError
from slang_analysis.sexp_reader import load_expression, load_statements
from tests.conftest import (
    COUNTING_LOOP,
    LOOP_WITH_JUMPS,
    STRAIGHT_LINE,
    block_with,
    function_cfg,
    main_cfg,
    program,
)


class TestDefsAndUses:

    def test_defined_name(self):
        let, assign, indexed = load_statements(
            "(let x 1) (assign y 2) (assign (index a 0) 3)"
        )
        assert defined_name(let) == "x"
        assert defined_name(assign) == "y"
        assert defined_name(indexed) is None
        assert statement_uses(indexed) == {"a"}

    def test_field_name_is_not_a_use(self):
        assert expression_uses(load_expression("(field r name)")) == {"r"}

    def test_lambda_captures(self):
        expr = load_expression("(lambda (x) (return (+ x y)))")
        assert expression_uses(expr) == {"y"}

    def test_condition_only(self):
        (stmt,) = load_statements("(while (< i n) (print body_only))")
        assert statement_uses(stmt) == {"i", "n"}


class TestReachingDefinitions:

    def test_straight_line(self):
        cfg = main_cfg(STRAIGHT_LINE)
        result = ReachingDefinitions().analyze(cfg)
        assert result.direction is Direction.FORWARD
        assert result.get_out(cfg.exit) >= {"x", "y"}
        assert result.get_in(cfg.entry) == frozenset()

    def test_grows_along_the_chain(self):
        cfg = main_cfg(STRAIGHT_LINE)
        result = ReachingDefinitions().analyze(cfg)
        first = block_with(cfg, A.LetStmt)
        assert result.get_in(first) == frozenset()
        assert result.get_out(first) == {"x"}

    def test_loop_definitions_reach_condition(self):
        cfg = main_cfg(COUNTING_LOOP)
        result = ReachingDefinitions().analyze(cfg)
        cond = block_with(cfg, A.WhileStmt)
        assert result.get_in(cond) == {"i", "total"}


class TestLiveVariables:

    def test_backward_chain(self):
        cfg = main_cfg("(let x 1) (let y (+ x 1)) (print y)")
        result = LiveVariables().analyze(cfg)
        assert result.direction is Direction.BACKWARD
        let_x, let_y = [b for b in cfg if b.stmts and isinstance(b.stmts[0], A.LetStmt)]
        assert result.get_in(let_x) == frozenset()
        assert result.get_out(let_x) == {"x"}
        assert result.get_in(let_y) == {"x"}
        assert result.get_in(block_with(cfg, A.PrintStmt)) == {"y"}
        assert result.get_in(cfg.exit) == frozenset()

    def test_loop_keeps_counter_live(self):
        cfg = main_cfg(COUNTING_LOOP)
        result = LiveVariables().analyze(cfg)
        cond = block_with(cfg, A.WhileStmt)
        assert result.get_in(cond) == {"i", "total"}

    def test_dead_store(self):
        cfg = main_cfg("(let x 1) (assign x 2) (print x)")
        result = LiveVariables().analyze(cfg)
        first = block_with(cfg, A.LetStmt)
        assert "x" not in result.get_out(first)


class TestConstantPropagation:

    def test_folding(self):
        cfg = main_cfg("(let x 2) (let y (* x 3)) (let s (+ \"a\" \"b\"))")
        result = ConstantPropagation().analyze(cfg)
        assert ConstantPropagation.constant_at(result, cfg.exit, "y") == 6.0
        assert ConstantPropagation.constant_at(result, cfg.exit, "s") == "ab"

    def test_agreeing_branches_stay_constant(self):
        cfg = main_cfg("(let c (read)) (if (> c 0) (then (let x 2)) (else (let x 2)))")
        result = ConstantPropagation().analyze(cfg)
        assert ConstantPropagation.constant_at(result, cfg.exit, "x") == 2.0
        assert result.get_in(cfg.exit)["c"].is_bottom

    def test_disagreeing_branches_collapse(self):
        cfg = main_cfg("(let c (read)) (if (> c 0) (then (let x 1)) (else (let x 2)))")
        result = ConstantPropagation().analyze(cfg)
        assert result.get_in(cfg.exit)["x"].is_bottom
        assert ConstantPropagation.constant_at(result, cfg.exit, "x") is None

    def test_loop_counter_is_not_constant(self):
        cfg = main_cfg(COUNTING_LOOP)
        result = ConstantPropagation().analyze(cfg)
        cond = block_with(cfg, A.WhileStmt)
        assert result.get_in(cond)["i"].is_bottom

    def test_division_by_zero_is_bottom(self):
        assert evaluate_constant(load_expression("(/ 1 0)"), {}).is_bottom

    def test_unknown_name_is_not_constant(self):
        assert evaluate_constant(load_expression("(+ q 1)"), {}).is_bottom

    def test_unreached_name_can_stay_optimistic(self):
        expr = load_expression("(+ q 1)")
        assert evaluate_constant(expr, {}, ConstValue.top()).is_top

    def test_parameter_reaching_one_branch(self):
        cfg = function_cfg("""
        (fun f (p)
          (let y 0)
          (if (> p 0) (then (assign y p)) (else))
          (return y))
        """)
        result = ConstantPropagation(["p"]).analyze(cfg)
        ret = block_with(cfg, A.ReturnStmt)
        assert result.get_in(ret)["y"].is_bottom
        assert ConstantPropagation.constant_at(result, ret, "y") is None

    def test_entry_names_start_as_bottom(self):
        cfg = function_cfg("(fun f (p q) (let y (+ p 1)) (return y))")
        result = ConstantPropagation(["p", "q"]).analyze(cfg)
        entry = result.get_in(cfg.entry)
        assert set(entry) == {"p", "q", "y"}
        assert all(v.is_bottom for v in entry.values())

    def test_parameter_read_in_graph_is_bottom(self):
        cfg = function_cfg("(fun f (p) (let y 1) (if (> p 0) (then (assign y p)) (else)) (print y))")
        result = ConstantPropagation().analyze(cfg)
        assert result.get_in(block_with(cfg, A.PrintStmt))["y"].is_bottom

    def test_run_all_passes_function_parameters(self):
        (fn,) = load_statements("(fun f (p) (let y p) (return y))")
        results = run_all_analyses(fn)
        ret = block_with(results.cfg, A.ReturnStmt)
        assert results.constants.get_in(ret)["y"].is_bottom
        assert "p" in results.constants.get_in(results.cfg.entry)

    def test_join(self):
        one, two = ConstValue.const(1.0), ConstValue.const(2.0)
        assert ConstValue.top().join(one) == one
        assert one.join(one) == one
        assert one.join(two).is_bottom
        assert ConstValue.const(True).join(ConstValue.const(1.0)).is_bottom

    def test_rendering(self):
        assert str(ConstValue.const(3.0)) == "3"
        assert str(ConstValue.const(True)) == "true"
        assert str(ConstValue.bottom()) == "BOTTOM"


class TestSolver:

    def test_max_iterations(self):
        cfg = main_cfg(LOOP_WITH_JUMPS)
        with pytest.raises(ConvergenceError):
            ReachingDefinitions().analyze(cfg, max_iterations=1)

    def test_strategies_agree(self):
        cfg = main_cfg(COUNTING_LOOP)
        results = [
            LiveVariables().analyze(cfg, strategy)
            for strategy in WorklistStrategy
        ]
        for other in results[1:]:
            assert other.in_facts == results[0].in_facts
            assert other.out_facts == results[0].out_facts

    @pytest.mark.parametrize("analysis", [
        ReachingDefinitions, LiveVariables, ConstantPropagation,
    ])
    def test_same_graph_same_result(self, analysis):
        cfg = main_cfg(LOOP_WITH_JUMPS)
        first = analysis().analyze(cfg)
        second = analysis().analyze(cfg)
        assert first.in_facts == second.in_facts
        assert first.out_facts == second.out_facts
        assert first.direction == second.direction

    def test_reused_analysis_same_result(self):
        cfg = main_cfg(COUNTING_LOOP)
        analysis = ConstantPropagation()
        first = analysis.analyze(cfg)
        second = analysis.analyze(cfg)
        assert first.in_facts == second.in_facts
        assert first.out_facts == second.out_facts

    def test_deterministic_output(self):
        first = ReachingDefinitions().analyze(main_cfg(LOOP_WITH_JUMPS)).pretty_print()
        second = ReachingDefinitions().analyze(main_cfg(LOOP_WITH_JUMPS)).pretty_print()
        assert first == second

    def test_pretty_print_format(self):
        cfg = main_cfg("(let x 1)")
        text = ReachingDefinitions().analyze(cfg).pretty_print()
        assert text.splitlines()[0] == "Dataflow Analysis Result (FORWARD):"
        assert "  BB2:\n    IN:  {}\n    OUT: {x}\n" in text

    def test_format_fact_sorts(self):
        assert format_fact(frozenset({"b", "a"})) == "{a, b}"
        assert format_fact({"y": 1, "x": 2}) == "{x: 2, y: 1}"

    def test_custom_analysis(self):

        class BlockCount(DataflowAnalysis):
            """Longest statement count on any path, capped so it terminates."""

            def initial_value(self):
                return 0

            def boundary_value(self):
                return 0

            def meet(self, values, block):
                return max(values, default=0)

            def transfer(self, input, block):
                return min(input + len(block.stmts), 100)

        cfg = main_cfg(STRAIGHT_LINE)
        assert BlockCount().analyze(cfg).get_out(cfg.exit) == 3


class TestRunAll:

    def test_runs_every_analysis(self):
        results = run_all_analyses(program(COUNTING_LOOP))
        assert [name for name, _ in results.all_analyses] == [
            "reaching_defs", "live_vars", "constants",
        ]
        assert "== live_vars ==" in results.pretty_print()

    def test_config_threads_bound(self):
        with pytest.raises(ConvergenceError):
            run_all_analyses(program(COUNTING_LOOP), AnalysisConfig(max_iterations=2))

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            run_all_analyses(program(COUNTING_LOOP), AnalysisConfig(max_iterations=0))

    def test_rejects_other_targets(self):
        with pytest.raises(TypeError):
            run_all_analyses("not a program")
