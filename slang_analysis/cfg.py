"""
slang_analysis.cfg
==================

Builds control-flow graphs (CFGs) over the untyped Slang tree.

A CFG is a directed graph of *basic blocks*.  Block 0 is always the
synthetic entry and block 1 the synthetic exit; the remaining blocks
are numbered in creation order.  Each simple statement gets its own
block, ``if`` and ``while`` get a condition block holding the statement
itself, and declarations (functions, structs) become empty pass-through
blocks.

Public API
----------
    BasicBlock              - a single basic block
    EdgeKind                - the control-flow meaning of an edge
    ControlFlowGraph        - the graph for one function or program
    CFGBuilder              - the builder (one graph per call)
    build_cfg_for_function  - graph of one function body
    build_cfg_for_program   - graph of the main bodies of every module
    build_cfg               - dispatch on function vs. program

Implementation notes
--------------------
* Construction is bottom-up: every statement produces a *segment*
  (entry block, fall-through exit block, and the ``break``/``continue``
  blocks that still need a destination).  A ``while`` wires its body's
  pending breaks to its exit block and its pending continues to its
  condition block, so a jump always resolves to the innermost loop.
* ``break``, ``continue`` and ``return`` end the fall-through path.
  ``return`` goes straight to the exit block.  Statements after a jump
  are unreachable and are dropped from the finished graph.
* A ``break``/``continue`` outside every loop is wired to the exit
  block (with a warning), so no pending jump survives construction.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from . import ast_nodes as A

logger = logging.getLogger(__name__)


class EdgeKind(enum.Enum):
    FALL_THROUGH = "fall"
    BRANCH_TRUE = "true"
    BRANCH_FALSE = "false"
    BACK_EDGE = "back"
    BREAK = "break"
    CONTINUE = "continue"
    RETURN = "return"


# ---------------------------------------------------------------------------
#  Basic blocks
# ---------------------------------------------------------------------------

class BasicBlock:
    """A basic block in the CFG.

    Attributes
    ----------
    id : int
        Identifier, unique within its graph.
    stmts : list
        Statements of the block, in order.  Empty for entry, exit,
        merge and declaration blocks.
    kind : str
        ``"entry"``, ``"exit"``, ``"body"``, ``"if-cond"``,
        ``"loop-cond"``, ``"loop-exit"``, ``"merge"``, ``"jump"``,
        ``"return"``, ``"decl"`` or ``"empty"``.
    successors, predecessors : list[BasicBlock]
        Neighbouring blocks without duplicates, in the order edges were added.
    """

    __slots__ = ("id", "stmts", "kind", "successors", "predecessors")

    def __init__(self, block_id: int, stmts: Optional[List[A.Stmt]] = None, kind: str = "body") -> None:
        self.id = block_id
        self.stmts: List[A.Stmt] = stmts if stmts is not None else []
        self.kind = kind
        self.successors: List[BasicBlock] = []
        self.predecessors: List[BasicBlock] = []

    def label(self) -> str:
        if not self.stmts:
            return f"[{self.kind}]"
        return "\n".join(statement_label(s) for s in self.stmts)

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, BasicBlock):
            return NotImplemented
        return self.id == other.id

    def __str__(self) -> str:
        return f"BB{self.id}"

    def __repr__(self) -> str:
        return f"BasicBlock(id={self.id}, kind={self.kind!r}, stmts={len(self.stmts)})"


def statement_label(stmt: A.Stmt) -> str:
    """One-line rendering of a statement as it appears inside a block."""
    if isinstance(stmt, A.IfStmt):
        return f"if ({A.pretty_print(stmt.condition)})"
    if isinstance(stmt, A.WhileStmt):
        return f"while ({A.pretty_print(stmt.condition)})"
    return A.pretty_print(stmt).strip()


# ---------------------------------------------------------------------------
#  The graph
# ---------------------------------------------------------------------------

class ControlFlowGraph:
    """Control flow graph of one function or of a program's main bodies."""

    def __init__(
        self,
        entry: BasicBlock,
        exit: BasicBlock,
        blocks: List[BasicBlock],
        edge_kinds: Dict[Tuple[int, int], EdgeKind],
        name: str = "",
    ) -> None:
        self.entry = entry
        self.exit = exit
        self.blocks = blocks
        self.name = name
        self._edge_kinds = edge_kinds
        self._by_id = {b.id: b for b in blocks}

    def __iter__(self) -> Iterator[BasicBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def block(self, block_id: int) -> BasicBlock:
        return self._by_id[block_id]

    def edges(self) -> List[Tuple[BasicBlock, BasicBlock, EdgeKind]]:
        return [
            (b, s, self.edge_kind(b, s))
            for b in self.blocks
            for s in b.successors
        ]

    def edge_kind(self, src: BasicBlock, dst: BasicBlock) -> EdgeKind:
        return self._edge_kinds.get((src.id, dst.id), EdgeKind.FALL_THROUGH)

    def blocks_of_kind(self, kind: str) -> List[BasicBlock]:
        return [b for b in self.blocks if b.kind == kind]

    def reachable_from(self, start: BasicBlock) -> Set[BasicBlock]:
        seen: Set[BasicBlock] = set()
        stack = [start]
        while stack:
            b = stack.pop()
            if b in seen:
                continue
            seen.add(b)
            stack.extend(b.successors)
        return seen

    def reverse_postorder(self) -> List[BasicBlock]:
        """Blocks reachable from entry in reverse post-order, then any others."""
        order: List[BasicBlock] = []
        seen: Set[BasicBlock] = set()
        stack: List[Tuple[BasicBlock, int]] = [(self.entry, 0)]
        seen.add(self.entry)
        while stack:
            block, index = stack.pop()
            if index < len(block.successors):
                stack.append((block, index + 1))
                succ = block.successors[index]
                if succ not in seen:
                    seen.add(succ)
                    stack.append((succ, 0))
            else:
                order.append(block)
        order.reverse()
        order.extend(b for b in self.blocks if b not in seen)
        return order

    # ----- rendering --------------------------------------------------------

    def pretty_print(self) -> str:
        lines = ["CFG:"]
        for b in self.blocks:
            lines.append(f"  {b.id}:")
            for stmt in b.stmts:
                lines.append(f"    {statement_label(stmt)}")
            if b.successors:
                lines.append("    -> " + ", ".join(str(s) for s in b.successors))
        return "\n".join(lines) + "\n"

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this CFG."""
        lines = ["digraph CFG {"]
        title = title or self.name
        if title:
            lines.append(f'  label="{title}";')
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for b in self.blocks:
            lbl = b.label().replace('"', '\\"').replace("\n", "\\n")
            color = ""
            if b is self.entry:
                color = ', style=filled, fillcolor="#ccffcc"'
            elif b is self.exit:
                color = ', style=filled, fillcolor="#ffcccc"'
            lines.append(f'  BB{b.id} [label="BB{b.id}\\n{lbl}"{color}];')
        for src, dst, kind in self.edges():
            style = ""
            if kind == EdgeKind.BRANCH_TRUE:
                style = ", color=green, fontcolor=green"
            elif kind == EdgeKind.BRANCH_FALSE:
                style = ", color=red, fontcolor=red"
            elif kind == EdgeKind.BACK_EDGE:
                style = ", style=dashed, color=blue, fontcolor=blue"
            elif kind in (EdgeKind.BREAK, EdgeKind.CONTINUE, EdgeKind.RETURN):
                style = ", style=dotted"
            lines.append(f'  BB{src.id} -> BB{dst.id} [label="{kind.value}"{style}];')
        lines.append("}")
        return "\n".join(lines)

    def render(self, filename: str, fmt: str = "svg", title: Optional[str] = None) -> str:
        """Draw the graph with Graphviz; returns the path of the written file.

        Requires the optional ``graphviz`` package (``pip install slang-analysis[viz]``).
        """
        try:
            import graphviz
        except ImportError as exc:
            raise ImportError(
                "Rendering a CFG requires the 'graphviz' package. "
                "Install it with:  pip install slang-analysis[viz]"
            ) from exc
        source = graphviz.Source(self.to_dot(title), format=fmt)
        return source.render(filename, cleanup=True)

    def __repr__(self) -> str:
        edges = sum(len(b.successors) for b in self.blocks)
        return f"ControlFlowGraph(name={self.name!r}, blocks={len(self.blocks)}, edges={edges})"


# ---------------------------------------------------------------------------
#  Builder
# ---------------------------------------------------------------------------

@dataclass
class _Segment:
    """Partial graph for one statement or statement list.

    ``exit`` is None when control never falls out of the segment (it
    ends in a jump or a return).
    """
    entry: BasicBlock
    exit: Optional[BasicBlock]
    breaks: List[BasicBlock] = field(default_factory=list)
    continues: List[BasicBlock] = field(default_factory=list)


class CFGBuilder:
    """Builds one :class:`ControlFlowGraph` per ``build_*`` call."""

    def __init__(self, main_function_name: str = A.MAIN_FUNCTION_NAME) -> None:
        self.main_function_name = main_function_name
        self._reset()

    def _reset(self) -> None:
        self._next_id = 0
        self._blocks: List[BasicBlock] = []
        self._edge_kinds: Dict[Tuple[int, int], EdgeKind] = {}
        self._exit: Optional[BasicBlock] = None

    # ----- public -----------------------------------------------------------

    def build_for_function(self, function: A.Function) -> ControlFlowGraph:
        self._reset()
        entry = self._new_block(kind="entry")
        self._exit = self._new_block(kind="exit")
        body = self._build_stmt(function.body)
        return self._finish(entry, body, function.name)

    def build_for_program(self, program: A.ProgramUnit) -> ControlFlowGraph:
        self._reset()
        entry = self._new_block(kind="entry")
        self._exit = self._new_block(kind="exit")
        stmts: List[A.Stmt] = []
        for module in program.modules:
            main = module.main_function(self.main_function_name)
            if main is not None:
                stmts.extend(main.body.stmts)
        body = self._build_list(stmts)
        return self._finish(entry, body, "<program>")

    # ----- helpers ----------------------------------------------------------

    def _new_block(self, stmts: Optional[List[A.Stmt]] = None, kind: str = "body") -> BasicBlock:
        block = BasicBlock(self._next_id, stmts, kind)
        self._next_id += 1
        self._blocks.append(block)
        return block

    def _add_edge(self, src: BasicBlock, dst: BasicBlock, kind: EdgeKind = EdgeKind.FALL_THROUGH) -> None:
        if dst not in src.successors:
            src.successors.append(dst)
        if src not in dst.predecessors:
            dst.predecessors.append(src)
        self._edge_kinds.setdefault((src.id, dst.id), kind)

    def _finish(self, entry: BasicBlock, body: _Segment, name: str) -> ControlFlowGraph:
        exit_block = self._exit
        assert exit_block is not None
        self._add_edge(entry, body.entry)
        if body.exit is not None:
            self._add_edge(body.exit, exit_block)
        for jump in body.breaks + body.continues:
            logger.warning(
                "%s: %s outside of a loop; wiring it to the exit block",
                name, statement_label(jump.stmts[0]),
            )
            self._add_edge(jump, exit_block, EdgeKind.RETURN)

        blocks = self._prune(entry, exit_block)
        logger.debug("built CFG for %s: %d block(s)", name, len(blocks))
        return ControlFlowGraph(entry, exit_block, blocks, dict(self._edge_kinds), name)

    def _prune(self, entry: BasicBlock, exit_block: BasicBlock) -> List[BasicBlock]:
        """Keep entry, exit and every block reachable from entry."""
        reachable: Set[BasicBlock] = set()
        stack = [entry]
        while stack:
            b = stack.pop()
            if b in reachable:
                continue
            reachable.add(b)
            stack.extend(b.successors)
        reachable.add(exit_block)

        for b in self._blocks:
            if b in reachable:
                b.predecessors = [p for p in b.predecessors if p in reachable]
            else:
                for succ in b.successors:
                    if succ in reachable:
                        succ.predecessors = [p for p in succ.predecessors if p is not b]
        return [b for b in self._blocks if b in reachable]

    # ----- statements -------------------------------------------------------

    def _build_list(self, stmts: List[A.Stmt]) -> _Segment:
        if not stmts:
            empty = self._new_block(kind="empty")
            return _Segment(empty, empty)

        first = self._build_stmt(stmts[0])
        entry = first.entry
        current = first.exit
        breaks = list(first.breaks)
        continues = list(first.continues)
        for stmt in stmts[1:]:
            seg = self._build_stmt(stmt)
            if current is not None:
                self._add_edge(current, seg.entry)
            current = seg.exit
            breaks.extend(seg.breaks)
            continues.extend(seg.continues)
        return _Segment(entry, current, breaks, continues)

    def _build_stmt(self, stmt: A.Stmt) -> _Segment:
        if isinstance(stmt, (A.LetStmt, A.AssignStmt, A.PrintStmt, A.ExprStmt, A.DerefStmt)):
            block = self._new_block([stmt])
            return _Segment(block, block)

        if isinstance(stmt, A.ReturnStmt):
            block = self._new_block([stmt], kind="return")
            self._add_edge(block, self._exit, EdgeKind.RETURN)
            return _Segment(block, None)

        if isinstance(stmt, A.BlockStmt):
            return self._build_list(stmt.stmts)

        if isinstance(stmt, A.IfStmt):
            return self._build_if(stmt)

        if isinstance(stmt, A.WhileStmt):
            return self._build_while(stmt)

        if isinstance(stmt, A.BreakStmt):
            block = self._new_block([stmt], kind="jump")
            return _Segment(block, None, breaks=[block])

        if isinstance(stmt, A.ContinueStmt):
            block = self._new_block([stmt], kind="jump")
            return _Segment(block, None, continues=[block])

        if isinstance(stmt, (A.Function, A.StructStmt)):
            block = self._new_block(kind="decl")
            return _Segment(block, block)

        raise TypeError(f"Unsupported statement node: {type(stmt).__name__}")

    def _build_if(self, stmt: A.IfStmt) -> _Segment:
        cond = self._new_block([stmt], kind="if-cond")
        then_seg = self._build_stmt(stmt.then_body)
        else_seg = self._build_stmt(stmt.else_body)
        self._add_edge(cond, then_seg.entry, EdgeKind.BRANCH_TRUE)
        self._add_edge(cond, else_seg.entry, EdgeKind.BRANCH_FALSE)

        merge: Optional[BasicBlock] = None
        if then_seg.exit is not None or else_seg.exit is not None:
            merge = self._new_block(kind="merge")
            for branch_exit in (then_seg.exit, else_seg.exit):
                if branch_exit is not None:
                    self._add_edge(branch_exit, merge)
        return _Segment(
            cond,
            merge,
            then_seg.breaks + else_seg.breaks,
            then_seg.continues + else_seg.continues,
        )

    def _build_while(self, stmt: A.WhileStmt) -> _Segment:
        cond = self._new_block([stmt], kind="loop-cond")
        after = self._new_block(kind="loop-exit")
        body = self._build_stmt(stmt.body)
        self._add_edge(cond, body.entry, EdgeKind.BRANCH_TRUE)
        if body.exit is not None:
            self._add_edge(body.exit, cond, EdgeKind.BACK_EDGE)
        self._add_edge(cond, after, EdgeKind.BRANCH_FALSE)
        for jump in body.breaks:
            self._add_edge(jump, after, EdgeKind.BREAK)
        for jump in body.continues:
            self._add_edge(jump, cond, EdgeKind.CONTINUE)
        return _Segment(cond, after)


def build_cfg_for_function(function: A.Function) -> ControlFlowGraph:
    return CFGBuilder().build_for_function(function)


def build_cfg_for_program(
    program: A.ProgramUnit,
    main_function_name: str = A.MAIN_FUNCTION_NAME,
) -> ControlFlowGraph:
    return CFGBuilder(main_function_name).build_for_program(program)


def build_cfg(target: Union[A.Function, A.ProgramUnit]) -> ControlFlowGraph:
    """Build the CFG of a single function or of a whole program."""
    if isinstance(target, A.Function):
        return build_cfg_for_function(target)
    if isinstance(target, A.ProgramUnit):
        return build_cfg_for_program(target)
    raise TypeError(f"Cannot build a CFG for {type(target).__name__}")


def cfg_summary(cfg: ControlFlowGraph) -> Dict[str, int]:
    """Block/edge counts, handy for logging and tests."""
    return {
        "blocks": len(cfg.blocks),
        "edges": sum(len(b.successors) for b in cfg.blocks),
        "conditions": len(cfg.blocks_of_kind("if-cond")) + len(cfg.blocks_of_kind("loop-cond")),
        "jumps": len(cfg.blocks_of_kind("jump")),
    }
