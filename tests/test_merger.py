from __future__ import annotations

import itertools
import random

import pytest

from blockatlas.merger import is_mergeable, merge_cubes
from blockatlas.model import CubeTemplate


def _unit(x, y, z) -> CubeTemplate:
    return CubeTemplate(pos=[x, y, z], size=[1, 1, 1])


def _voxels(cube: CubeTemplate):
    ranges = [range(int(p), int(p + s)) for p, s in zip(cube.pos, cube.size)]
    return set(itertools.product(*ranges))


def _random_tiling(seed: int, extent: int = 4, density: float = 0.6):
    rng = random.Random(seed)
    cells = [c for c in itertools.product(range(extent), repeat=3) if rng.random() < density]
    rng.shuffle(cells)
    return cells


def test_row_merges_into_one_cube():
    merged = merge_cubes([_unit(0, 0, 0), _unit(1, 0, 0), _unit(2, 0, 0)])
    assert len(merged) == 1
    assert merged[0].pos == [0, 0, 0]
    assert merged[0].size == [3, 1, 1]


def test_merge_works_in_either_order():
    merged = merge_cubes([_unit(0, 0, 1), _unit(0, 0, 0)])
    assert len(merged) == 1
    assert merged[0].pos == [0, 0, 0]
    assert merged[0].size == [1, 1, 2]


def test_unmergeable_cubes_come_first_untouched():
    textured = CubeTemplate(pos=[1, 0, 0], size=[1, 1, 1], textures={"*": "up"})
    flat = CubeTemplate(pos=[2, 0, 0], size=[1, 0, 1])
    merged = merge_cubes([_unit(0, 0, 0), textured, flat, _unit(3, 0, 0)])
    assert merged[:2] == [textured, flat]
    assert len(merged) == 4


def test_mergeability():
    assert is_mergeable(_unit(0, 0, 0))
    assert not is_mergeable(CubeTemplate(pos=[0, 2, 3], size=[0, 4, 5]))
    assert not is_mergeable(CubeTemplate(pos=[0, 0, 0], size=[1, 1, 1], rot=[0, 45, 0]))


@pytest.mark.parametrize("seed", range(8))
def test_random_tilings_preserve_voxels(seed):
    cells = _random_tiling(seed)
    merged = merge_cubes([_unit(*c) for c in cells])

    assert sum(c.size[0] * c.size[1] * c.size[2] for c in merged) == len(cells)
    covered = set()
    for cube in merged:
        voxels = _voxels(cube)
        assert not covered & voxels
        covered |= voxels
    assert covered == set(cells)
    assert len(merged) <= len(cells)


@pytest.mark.parametrize("seed", range(4))
def test_total_volume_is_order_independent(seed):
    cells = _random_tiling(seed)
    shuffled = list(cells)
    random.Random(seed + 100).shuffle(shuffled)
    a = merge_cubes([_unit(*c) for c in cells])
    b = merge_cubes([_unit(*c) for c in shuffled])
    volume = lambda cubes: sum(c.size[0] * c.size[1] * c.size[2] for c in cubes)
    assert volume(a) == volume(b) == len(cells)
