"""
slang_analysis/type_algebra.py
══════════════════════════════

Type universe for Slang's Hindley–Milner inference.

A :class:`TVar` is a union-find node: while ``bound`` is ``None`` the
variable is free, and once unification binds it every lookup goes
through :func:`prune`, which follows the chain to its root and
compresses it.  All other variants are immutable values.

    Var(id)  Num  Bool  String  None  Unit
    Fun(params, ret)  Array(elem)  Record{name: T}  Ref(T)

License: MIT
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Set, Tuple


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPE VARIANTS
# ═══════════════════════════════════════════════════════════════════════════

class SlangType(ABC):
    """Base class of every Slang type."""

    @abstractmethod
    def pretty(self) -> str:
        """Human-readable rendering; bound variables show their binding."""
        ...

    def __str__(self) -> str:
        return self.pretty()


class TVar(SlangType):
    """A type variable, equal only to itself."""

    __slots__ = ("id", "bound")

    def __init__(self, var_id: int, bound: Optional[SlangType] = None) -> None:
        self.id = var_id
        self.bound = bound

    @property
    def is_free(self) -> bool:
        return self.bound is None

    def pretty(self) -> str:
        if self.bound is not None:
            return self.bound.pretty()
        return f"t{self.id}"

    def __repr__(self) -> str:
        if self.bound is not None:
            return f"TVar({self.id}, bound={self.bound!r})"
        return f"TVar({self.id})"


@dataclass(frozen=True)
class TPrimitive(SlangType):
    """Ground types: Num, Bool, String, None and Unit."""
    name: str

    def pretty(self) -> str:
        return self.name


NUM = TPrimitive("Num")
BOOL = TPrimitive("Bool")
STRING = TPrimitive("String")
NONE = TPrimitive("None")
UNIT = TPrimitive("Unit")


@dataclass(frozen=True)
class TFun(SlangType):
    params: Tuple[SlangType, ...]
    ret: SlangType

    def pretty(self) -> str:
        return f"({', '.join(p.pretty() for p in self.params)}) -> {self.ret.pretty()}"


@dataclass(frozen=True)
class TArray(SlangType):
    elem: SlangType

    def pretty(self) -> str:
        return f"[{self.elem.pretty()}]"


@dataclass(frozen=True)
class TRecord(SlangType):
    """Record type.  Field order is kept for display only; equality ignores it."""
    fields: Mapping[str, SlangType] = field(default_factory=dict)

    def pretty(self) -> str:
        entries = ", ".join(f"{k}: {v.pretty()}" for k, v in self.fields.items())
        return "{" + entries + "}"

    def field_names(self) -> FrozenSet[str]:
        return frozenset(self.fields)


@dataclass(frozen=True)
class TRef(SlangType):
    inner: SlangType

    def pretty(self) -> str:
        return f"Ref<{self.inner.pretty()}>"


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — TYPE SCHEMES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TypeScheme:
    """``∀ vars . body``"""

    vars: FrozenSet[int]
    body: SlangType

    @classmethod
    def monomorphic(cls, t: SlangType) -> "TypeScheme":
        return cls(frozenset(), t)

    def free_vars(self) -> Set[int]:
        return free_vars(self.body) - self.vars

    def __str__(self) -> str:
        if not self.vars:
            return self.body.pretty()
        quantified = " ".join(f"t{v}" for v in sorted(self.vars))
        return f"forall {quantified}. {self.body.pretty()}"


# ═══════════════════════════════════════════════════════════════════════════
#  PART 3 — RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════

def prune(t: SlangType) -> SlangType:
    """
    Follow ``t``'s binding chain to its representative.

    Every variable visited on the way is re-pointed directly at the
    representative (path compression), so repeated lookups are O(1).
    """
    if not isinstance(t, TVar) or t.bound is None:
        return t

    root = t.bound
    while isinstance(root, TVar) and root.bound is not None:
        root = root.bound

    node: SlangType = t
    while isinstance(node, TVar) and node.bound is not None and node.bound is not root:
        following = node.bound
        node.bound = root
        node = following
    return root


def free_vars(t: SlangType) -> Set[int]:
    """Ids of the unbound variables reachable from ``t``."""
    p = prune(t)
    if isinstance(p, TVar):
        return {p.id}
    if isinstance(p, TFun):
        result: Set[int] = set()
        for param in p.params:
            result |= free_vars(param)
        return result | free_vars(p.ret)
    if isinstance(p, TArray):
        return free_vars(p.elem)
    if isinstance(p, TRef):
        return free_vars(p.inner)
    if isinstance(p, TRecord):
        result = set()
        for ft in p.fields.values():
            result |= free_vars(ft)
        return result
    return set()


def resolve_type(t: SlangType) -> SlangType:
    """Deep resolution: rebuild ``t`` with no bound variable left anywhere inside."""
    p = prune(t)
    if isinstance(p, TFun):
        return TFun(tuple(resolve_type(x) for x in p.params), resolve_type(p.ret))
    if isinstance(p, TArray):
        return TArray(resolve_type(p.elem))
    if isinstance(p, TRef):
        return TRef(resolve_type(p.inner))
    if isinstance(p, TRecord):
        return TRecord({k: resolve_type(v) for k, v in p.fields.items()})
    return p


def substitute(t: SlangType, mapping: Mapping[int, SlangType]) -> SlangType:
    """Replace free variables by id; anything not in ``mapping`` is shared."""
    p = prune(t)
    if isinstance(p, TVar):
        return mapping.get(p.id, p)
    if isinstance(p, TFun):
        return TFun(tuple(substitute(x, mapping) for x in p.params), substitute(p.ret, mapping))
    if isinstance(p, TArray):
        return TArray(substitute(p.elem, mapping))
    if isinstance(p, TRef):
        return TRef(substitute(p.inner, mapping))
    if isinstance(p, TRecord):
        return TRecord({k: substitute(v, mapping) for k, v in p.fields.items()})
    return p


def contains_unbound(t: SlangType) -> bool:
    return bool(free_vars(t))

