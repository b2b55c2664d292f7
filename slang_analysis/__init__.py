"""
slang_analysis — Semantic Analysis Middle End for Slang
=======================================================

Static semantic analysis for the Slang teaching language: Hindley-Milner
type inference with let-polymorphism, lowering to a fully typed tree,
control-flow graph construction, and a worklist dataflow framework.

Core modules
------------
ast_nodes
    Untyped program tree as produced by the parser front end.
errors
    Collected type errors and the exceptions raised by the library.
type_algebra
    Type terms, type schemes, ``prune`` and free-variable queries.
unification
    Robinson unification with occurs check.
type_env
    Persistent scoped type environment.
inference
    The inference engine (``infer_program``).
tir
    Typed intermediate representation.
lowering
    Untyped tree → typed tree (``lower_program``).
cfg
    Control-flow graph construction.
dataflow
    Generic worklist solver.
dataflow_analyses
    Reaching definitions, live variables, constant propagation.
sexp_reader
    S-expression loader for program trees.
config
    ``AnalysisConfig`` and logging setup.

Quick start
-----------
>>> from slang_analysis import load_program, infer_program
>>> program = load_program('(fun id (x) (return x)) (let a (call id 1))')
>>> infer_program(program)
[]
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# Every module is required; an import failure is fatal.
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "ast_nodes": [
        "SourceSpan",
        "Operator",
        "Function",
        "Module",
        "ProgramUnit",
        "make_module",
        "make_program",
        "desugar_for",
        "MAIN_FUNCTION_NAME",
    ],
    "errors": [
        "ErrorKind",
        "TypeCheckError",
        "TreeLoadError",
        "ConvergenceError",
    ],
    "type_algebra": [
        "SlangType",
        "TVar",
        "TPrimitive",
        "TFun",
        "TArray",
        "TRecord",
        "TRef",
        "TypeScheme",
        "prune",
        "free_vars",
        "resolve_type",
    ],
    "unification": [
        "Unifier",
        "occurs_in",
    ],
    "type_env": [
        "TypeEnv",
    ],
    "inference": [
        "HindleyMilnerInference",
        "infer_program",
    ],
    "tir": [
        "pretty_print_tir",
    ],
    "lowering": [
        "TirLowering",
        "lower_program",
    ],
    "cfg": [
        "BasicBlock",
        "ControlFlowGraph",
        "CFGBuilder",
        "EdgeKind",
        "build_cfg",
        "build_cfg_for_function",
        "build_cfg_for_program",
    ],
    "dataflow": [
        "Direction",
        "WorklistStrategy",
        "DataflowAnalysis",
        "DataflowResult",
    ],
    "dataflow_analyses": [
        "ReachingDefinitions",
        "LiveVariables",
        "ConstantPropagation",
        "ConstValue",
        "AnalysisResults",
        "run_all_analyses",
    ],
    "sexp_reader": [
        "load_program",
        "load_statements",
        "load_expression",
    ],
    "config": [
        "AnalysisConfig",
        "configure_logging",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"slang_analysis: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"slang_analysis.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

_log.debug("slang_analysis %s loaded %d submodules", __version__, len(_CORE_MODULES))


def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_CORE_MODULES)


__all__ += ["list_submodules", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block — gives IDEs full visibility without runtime cost
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .ast_nodes import (
        MAIN_FUNCTION_NAME as MAIN_FUNCTION_NAME,
        Function as Function,
        Module as Module,
        Operator as Operator,
        ProgramUnit as ProgramUnit,
        SourceSpan as SourceSpan,
        desugar_for as desugar_for,
        make_module as make_module,
        make_program as make_program,
    )
    from .cfg import (
        BasicBlock as BasicBlock,
        CFGBuilder as CFGBuilder,
        ControlFlowGraph as ControlFlowGraph,
        EdgeKind as EdgeKind,
        build_cfg as build_cfg,
        build_cfg_for_function as build_cfg_for_function,
        build_cfg_for_program as build_cfg_for_program,
    )
    from .config import AnalysisConfig as AnalysisConfig, configure_logging as configure_logging
    from .dataflow import (
        DataflowAnalysis as DataflowAnalysis,
        DataflowResult as DataflowResult,
        Direction as Direction,
        WorklistStrategy as WorklistStrategy,
    )
    from .dataflow_analyses import (
        AnalysisResults as AnalysisResults,
        ConstantPropagation as ConstantPropagation,
        ConstValue as ConstValue,
        LiveVariables as LiveVariables,
        ReachingDefinitions as ReachingDefinitions,
        run_all_analyses as run_all_analyses,
    )
    from .errors import (
        ConvergenceError as ConvergenceError,
        ErrorKind as ErrorKind,
        TreeLoadError as TreeLoadError,
        TypeCheckError as TypeCheckError,
    )
    from .inference import HindleyMilnerInference as HindleyMilnerInference, infer_program as infer_program
    from .lowering import TirLowering as TirLowering, lower_program as lower_program
    from .sexp_reader import (
        load_expression as load_expression,
        load_program as load_program,
        load_statements as load_statements,
    )
    from .tir import pretty_print_tir as pretty_print_tir
    from .type_algebra import (
        SlangType as SlangType,
        TArray as TArray,
        TFun as TFun,
        TPrimitive as TPrimitive,
        TRecord as TRecord,
        TRef as TRef,
        TVar as TVar,
        TypeScheme as TypeScheme,
        free_vars as free_vars,
        prune as prune,
        resolve_type as resolve_type,
    )
    from .type_env import TypeEnv as TypeEnv
    from .unification import Unifier as Unifier, occurs_in as occurs_in
