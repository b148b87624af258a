from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def dominates(a: tuple[float, ...], b: tuple[float, ...], *, tol: float = 1e-9) -> bool:
    """Return True if vector a Pareto-dominates b (minimisation).

    a dominates b iff:
      - a_i <= b_i for all i
      - a_i <  b_i for at least one i
    """
    if len(a) != len(b):
        raise ValueError("dimension mismatch")

    le_all = True
    lt_any = False
    for ai, bi in zip(a, b, strict=True):
        if ai > bi + tol:
            le_all = False
            break
        if ai < bi - tol:
            lt_any = True

    return le_all and lt_any


def relative_difference(a: float, b: float) -> float:
    scale = max(abs(a), abs(b))
    if scale <= 0.0:
        return 0.0
    return abs(a - b) / scale


def is_near_duplicate(a: tuple[float, ...], b: tuple[float, ...], *, rel_tol: float = 0.05) -> bool:
    """True when every objective differs by less than rel_tol (relative)."""
    if len(a) != len(b):
        raise ValueError("dimension mismatch")
    return all(relative_difference(ai, bi) < rel_tol for ai, bi in zip(a, b, strict=True))


def dedupe_similar(
    items: Iterable[T],
    key: Callable[[T], tuple[float, ...]],
    *,
    rel_tol: float = 0.05,
) -> list[T]:
    """Drop items whose objectives are all within rel_tol of an earlier item.

    The first occurrence wins.
    """
    kept: list[T] = []
    kept_vecs: list[tuple[float, ...]] = []
    for item in items:
        vec = key(item)
        if any(is_near_duplicate(vec, other, rel_tol=rel_tol) for other in kept_vecs):
            continue
        kept.append(item)
        kept_vecs.append(vec)
    return kept


def pareto_filter(items: Iterable[T], key: Callable[[T], tuple[float, ...]]) -> list[T]:
    """Keep only non-dominated items, preserving input order.

    O(n^2); sweep results never exceed a handful of candidates.
    """
    nondominated: list[T] = []
    nondominated_vecs: list[tuple[float, ...]] = []

    for item in items:
        vec = key(item)

        dominated = False
        to_remove: list[int] = []

        for i, nd_vec in enumerate(nondominated_vecs):
            if dominates(nd_vec, vec):
                dominated = True
                break
            if dominates(vec, nd_vec):
                to_remove.append(i)

        if dominated:
            continue

        for idx in reversed(to_remove):
            nondominated.pop(idx)
            nondominated_vecs.pop(idx)

        nondominated.append(item)
        nondominated_vecs.append(vec)

    return nondominated
