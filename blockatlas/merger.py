"""Greedy merge of face-adjacent bare cubes."""

from __future__ import annotations

import logging
from typing import List, Tuple

from .model import CubeTemplate

log = logging.getLogger(__name__)


def is_mergeable(cube: CubeTemplate) -> bool:
    """Only cubes with nothing but a non-flat ``pos``/``size`` may be merged."""

    return cube.is_bare() and not cube.has_zero_dimension


def merge_cubes(cubes: List[CubeTemplate]) -> List[CubeTemplate]:
    """Fold face-adjacent bare cubes into larger ones.

    Returns the unmergeable cubes (in input order) followed by the merged set.
    Mergeable cubes are mutated in place.
    """

    unmergeable: List[CubeTemplate] = []
    candidates: List[CubeTemplate] = []
    for cube in cubes:
        (candidates if is_mergeable(cube) else unmergeable).append(cube)

    merged: List[CubeTemplate] = []
    for cube in candidates:
        restart = True
        while restart:
            restart = False
            for i, other in enumerate(merged):
                if _try_merge_one_way(cube, other):
                    log.debug("Merged cube %s into %s", _extent(other), _extent(cube))
                    del merged[i]
                    restart = True
                    break
                if _try_merge_one_way(other, cube):
                    log.debug("Merged cube %s into %s", _extent(cube), _extent(other))
                    del merged[i]
                    cube = other
                    restart = True
                    break
        merged.append(cube)
    return unmergeable + merged


def _try_merge_one_way(a: CubeTemplate, b: CubeTemplate) -> bool:
    """Grow ``a`` to absorb ``b`` when ``b`` sits directly after ``a`` on one axis."""

    for axis in range(3):
        others = [i for i in range(3) if i != axis]
        if any(a.pos[i] != b.pos[i] or a.size[i] != b.size[i] for i in others):
            continue
        if a.pos[axis] + a.size[axis] == b.pos[axis]:
            a.size[axis] += b.size[axis]
            return True
    return False


def _extent(cube: CubeTemplate) -> Tuple[list, list]:
    return list(cube.pos), list(cube.size)
