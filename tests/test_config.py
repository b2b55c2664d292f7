# tests/test_config.py
"""
Tests for AnalysisConfig validation and logging setup.
"""

import logging

import pytest

import slang_analysis
from slang_analysis.config import LOG_FORMAT, AnalysisConfig, configure_logging
from slang_analysis.dataflow import WorklistStrategy


class TestAnalysisConfig:

    def test_defaults_are_valid(self):
        cfg = AnalysisConfig()
        assert cfg.validate() == []
        assert cfg.main_function_name == "__module__main__"
        assert cfg.worklist_strategy is WorklistStrategy.FIFO
        assert cfg.validated() is cfg

    def test_collects_every_problem(self):
        cfg = AnalysisConfig(main_function_name="", max_iterations=0, verbosity=-1)
        assert len(cfg.validate()) == 3

    def test_unknown_strategy(self):
        cfg = AnalysisConfig(worklist_strategy="fifo")
        with pytest.raises(ValueError, match="worklist strategy"):
            cfg.validated()


class TestConfigureLogging:

    @pytest.mark.parametrize("verbosity, level", [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (5, logging.DEBUG),
    ])
    def test_levels(self, verbosity, level):
        logger = logging.getLogger("slang_analysis")
        old_level = logger.level
        handler = configure_logging(verbosity)
        try:
            assert logger.level == level
            assert handler in logger.handlers
            assert handler.formatter._fmt == LOG_FORMAT
        finally:
            logger.removeHandler(handler)
            logger.setLevel(old_level)


class TestPackageSurface:

    def test_version(self):
        assert slang_analysis.__version__ == "0.1.0"

    def test_reexports(self):
        for name in ("infer_program", "lower_program", "build_cfg", "run_all_analyses", "load_program"):
            assert name in slang_analysis.__all__
            assert callable(getattr(slang_analysis, name))

    def test_list_submodules(self):
        assert "inference" in slang_analysis.list_submodules()
        assert slang_analysis.list_submodules() == sorted(slang_analysis.list_submodules())

    def test_quick_start(self):
        program = slang_analysis.load_program("(fun id (x) (return x)) (let a (call id 1))")
        assert slang_analysis.infer_program(program) == []
