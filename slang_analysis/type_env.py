"""
slang_analysis/type_env.py
══════════════════════════

Persistent typing environment.

Each :class:`TypeEnv` holds a small frame of bindings and a pointer to
its parent.  ``extend`` never touches an existing environment, so a
scope can be entered and left without copying or undoing anything.

License: MIT
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional, Set, Tuple

from .type_algebra import TypeScheme


class TypeEnv:
    """Immutable name → :class:`TypeScheme` mapping."""

    __slots__ = ("_frame", "_parent", "_depth")

    def __init__(
        self,
        frame: Optional[Dict[str, TypeScheme]] = None,
        parent: Optional["TypeEnv"] = None,
    ) -> None:
        self._frame: Dict[str, TypeScheme] = dict(frame or {})
        self._parent = parent
        self._depth = 0 if parent is None else parent._depth + 1

    @classmethod
    def empty(cls) -> "TypeEnv":
        return cls()

    def extend(self, name: str, scheme: TypeScheme) -> "TypeEnv":
        return TypeEnv({name: scheme}, self)

    def extend_many(self, bindings: Iterable[Tuple[str, TypeScheme]]) -> "TypeEnv":
        frame: Dict[str, TypeScheme] = {}
        for name, scheme in bindings:
            frame[name] = scheme
        if not frame:
            return self
        return TypeEnv(frame, self)

    def lookup(self, name: str) -> Optional[TypeScheme]:
        env: Optional[TypeEnv] = self
        while env is not None:
            scheme = env._frame.get(name)
            if scheme is not None:
                return scheme
            env = env._parent
        return None

    def __getitem__(self, name: str) -> TypeScheme:
        scheme = self.lookup(name)
        if scheme is None:
            raise KeyError(name)
        return scheme

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def items(self) -> Iterator[Tuple[str, TypeScheme]]:
        """Visible bindings, innermost first; shadowed names are skipped."""
        seen: Set[str] = set()
        env: Optional[TypeEnv] = self
        while env is not None:
            for name, scheme in env._frame.items():
                if name not in seen:
                    seen.add(name)
                    yield name, scheme
            env = env._parent

    def free_vars(self) -> Set[int]:
        """Union of every visible scheme's free variables."""
        result: Set[int] = set()
        for _, scheme in self.items():
            result |= scheme.free_vars()
        return result

    def __len__(self) -> int:
        return sum(1 for _ in self.items())

    def __repr__(self) -> str:
        names = ", ".join(name for name, _ in self.items())
        return f"TypeEnv(depth={self._depth}, names=[{names}])"
