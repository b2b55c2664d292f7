"""
slang_analysis/unification.py
═════════════════════════════

Structural unification over the Slang type algebra.

Unification binds free :class:`~slang_analysis.type_algebra.TVar` nodes
in place.  A failure is recorded as a
:class:`~slang_analysis.errors.TypeCheckError` on the owning
:class:`Unifier` and reported to the caller as ``False``; it never
raises.  Within one call, unification stops at the first mismatch,
keeping whatever bindings were made before it.

License: MIT
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .ast_nodes import GENERIC_SPAN, SourceSpan
from .errors import ErrorKind, TypeCheckError
from .type_algebra import (
    SlangType,
    TArray,
    TFun,
    TRecord,
    TRef,
    TVar,
    prune,
)

logger = logging.getLogger(__name__)


def occurs_in(var_id: int, t: SlangType) -> bool:
    """Does the free variable ``var_id`` appear anywhere inside ``t``?"""
    p = prune(t)
    if isinstance(p, TVar):
        return p.id == var_id
    if isinstance(p, TFun):
        return any(occurs_in(var_id, x) for x in p.params) or occurs_in(var_id, p.ret)
    if isinstance(p, TArray):
        return occurs_in(var_id, p.elem)
    if isinstance(p, TRef):
        return occurs_in(var_id, p.inner)
    if isinstance(p, TRecord):
        return any(occurs_in(var_id, ft) for ft in p.fields.values())
    return False


def _keys(record: TRecord) -> str:
    return "[" + ", ".join(sorted(record.fields)) + "]"


class Unifier:
    """
    Unification with error collection.

    Implements:
      - ``unify(a, b, location)`` — make ``a`` and ``b`` equal, returning
        success/failure
      - ``errors``                — every failure recorded so far

    The error list may be shared with the caller (an inference session
    passes its own list) so that unification failures and other
    diagnostics interleave in discovery order.
    """

    def __init__(self, errors: Optional[List[TypeCheckError]] = None) -> None:
        self._errors: List[TypeCheckError] = errors if errors is not None else []

    @property
    def errors(self) -> List[TypeCheckError]:
        return list(self._errors)

    def unify(
        self,
        a: SlangType,
        b: SlangType,
        location: SourceSpan = GENERIC_SPAN,
    ) -> bool:
        """
        Unify types ``a`` and ``b``.

        Returns True on success, False on failure (adds to self.errors).
        """
        error = self._unify(a, b, location)
        if error is None:
            return True
        logger.debug("unification failed at %s: %s", location, error.message)
        self._errors.append(error)
        return False

    def _unify(
        self,
        a: SlangType,
        b: SlangType,
        location: SourceSpan,
    ) -> Optional[TypeCheckError]:
        pa = prune(a)
        pb = prune(b)

        if pa is pb:
            return None

        # ── At least one side is a free variable → bind it ───────────
        if isinstance(pa, TVar):
            return self._bind(pa, pb, location)
        if isinstance(pb, TVar):
            return self._bind(pb, pa, location)

        # ── Both structural → recurse into children ─────────────────
        if isinstance(pa, TFun) and isinstance(pb, TFun):
            if len(pa.params) != len(pb.params):
                return TypeCheckError(
                    location,
                    f"Function arity mismatch: expected {len(pa.params)} params, "
                    f"got {len(pb.params)}",
                    ErrorKind.UNIFICATION_FAILURE,
                )
            for pa_param, pb_param in zip(pa.params, pb.params):
                error = self._unify(pa_param, pb_param, location)
                if error is not None:
                    return error
            return self._unify(pa.ret, pb.ret, location)

        if isinstance(pa, TArray) and isinstance(pb, TArray):
            return self._unify(pa.elem, pb.elem, location)

        if isinstance(pa, TRef) and isinstance(pb, TRef):
            return self._unify(pa.inner, pb.inner, location)

        if isinstance(pa, TRecord) and isinstance(pb, TRecord):
            if pa.field_names() != pb.field_names():
                return TypeCheckError(
                    location,
                    f"Record field mismatch: {_keys(pa)} vs {_keys(pb)}",
                    ErrorKind.UNIFICATION_FAILURE,
                )
            for name, field_type in pa.fields.items():
                error = self._unify(field_type, pb.fields[name], location)
                if error is not None:
                    return error
            return None

        # ── Ground types must be identical ───────────────────────────
        if pa == pb:
            return None

        return TypeCheckError(
            location,
            f"Cannot unify {pa} with {pb}",
            ErrorKind.UNIFICATION_FAILURE,
        )

    @staticmethod
    def _bind(var: TVar, target: SlangType, location: SourceSpan) -> Optional[TypeCheckError]:
        if occurs_in(var.id, target):
            return TypeCheckError(
                location,
                f"Infinite type: t{var.id} occurs in {target}",
                ErrorKind.INFINITE_TYPE,
            )
        var.bound = target
        return None
