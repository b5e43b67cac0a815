from __future__ import annotations

import logging

import pytest

from blockatlas.diagnostics import StrictModeError
from blockatlas.expander import BoneTemplateMaker, center_of_mass, scale_cubes
from blockatlas.model import Block, ResolvedCube

from conftest import make_tables


def _maker(tables=None, **kwargs) -> BoneTemplateMaker:
    return BoneTemplateMaker(tables or make_tables(), **kwargs)


def test_full_block_is_scaled_toward_its_center():
    bone = _maker().make_bone_template(Block("stone"))
    assert len(bone.cubes) == 1
    cube = bone.cubes[0]
    assert cube.origin == pytest.approx([0.4, 0.4, 0.4])
    assert cube.size == pytest.approx([15.2, 15.2, 15.2])
    assert sorted(cube.uv) == sorted(["west", "east", "down", "up", "north", "south"])
    assert bone.rotation is None


def test_faces_share_structurally_equal_references():
    maker = _maker()
    maker.make_bone_template(Block("stone"))
    maker.make_bone_template(Block("stone"))
    # one reference per face name, reused by the second block
    assert len(maker.texture_refs) == 6


def test_conditions_pick_cubes():
    maker = _maker(scale=1.0)
    bottom = maker.make_bone_template(Block("spruce_slab", {"top_slot_bit": 0}))
    top = maker.make_bone_template(Block("spruce_slab", {"top_slot_bit": 1}))
    assert [c.origin for c in bottom.cubes] == [[0, 0, 0]]
    assert [c.origin for c in top.cubes] == [[0, 8, 0]]


def test_bare_cubes_are_merged():
    tables = make_tables(
        block_shapes={"individual_blocks": {"double": "double"}, "patterns": {}},
        block_shape_geos={
            "double": [
                {"pos": [0, 0, 0], "size": [16, 8, 16]},
                {"pos": [0, 8, 0], "size": [16, 8, 16]},
            ]
        },
    )
    bone = _maker(tables, scale=1.0).make_bone_template(Block("double"))
    assert len(bone.cubes) == 1
    assert bone.cubes[0].size == [16, 16, 16]


def test_copy_keeps_both_rotations():
    tables = make_tables(
        block_shapes={"individual_blocks": {"tilted": "tilted_post"}, "patterns": {}},
        block_shape_geos={
            "post": [{"pos": [6, 0, 6], "size": [4, 16, 4], "rot": [0, 45, 0], "pivot": [8, 8, 8]}],
            "tilted_post": [{"copy": "post", "rot": [90, 0, 0], "pivot": [8, 0, 8]}],
        },
    )
    bone = _maker(tables, scale=1.0).make_bone_template(Block("tilted"))
    (cube,) = bone.cubes
    assert cube.rotation == [0, 45, 0]
    assert cube.pivot == [8, 8, 8]
    assert len(cube.extra_rotations) == 1
    assert cube.extra_rotations[0].rot == [90, 0, 0]
    assert cube.extra_rotations[0].pivot == [8, 0, 8]


def test_copy_moves_rotation_onto_unrotated_cubes_and_translates():
    tables = make_tables(
        block_shapes={"individual_blocks": {"shifted": "shifted"}, "patterns": {}},
        block_shape_geos={
            "plate": [{"pos": [0, 0, 0], "size": [16, 1, 16], "textures": {"*": "up"}}],
            "shifted": [{"copy": "plate", "rot": [0, 90, 0], "translate": [0, 4, 0]}],
        },
    )
    bone = _maker(tables, scale=1.0).make_bone_template(Block("shifted"))
    (cube,) = bone.cubes
    assert cube.origin == [0, 4, 0]
    assert cube.rotation == [0, 90, 0]
    assert cube.pivot == [8, 12, 8]
    assert cube.extra_rotations == []


def test_copy_inherits_fields():
    tables = make_tables(
        block_shapes={"individual_blocks": {"mirror": "mirror"}, "patterns": {}},
        block_shape_geos={
            "plate": [{"pos": [0, 0, 0], "size": [16, 1, 16], "flip_textures_horizontally": ["up"]}],
            "mirror": [{"copy": "plate", "flip_textures_horizontally": ["up", "down"], "textures": {"*": "side"}}],
        },
    )
    bone = _maker(tables, scale=1.0).make_bone_template(Block("mirror"))
    (cube,) = bone.cubes
    assert not cube.flips["up"].horizontal
    assert cube.flips["down"].horizontal


@pytest.mark.parametrize(
    "geos",
    [
        {"loop": [{"copy": "loop"}]},
        {"loop": [{"copy": "other"}], "other": [{"copy": "loop"}]},
        {"loop": [{"copy": "a"}], "a": [{"copy": "b"}], "b": [{"copy": "a"}]},
    ],
)
def test_copy_cycles_are_cut(geos, caplog):
    tables = make_tables(block_shapes={"individual_blocks": {"x": "loop"}, "patterns": {}}, block_shape_geos=geos)
    with caplog.at_level(logging.ERROR):
        bone = _maker(tables).make_bone_template(Block("x"))
    assert bone.cubes == []
    assert any("Cyclic" in r.getMessage() for r in caplog.records)


def test_copy_cycle_raises_in_strict_mode():
    tables = make_tables(block_shapes={"individual_blocks": {"x": "loop"}, "patterns": {}}, block_shape_geos={"loop": [{"copy": "loop"}]})
    with pytest.raises(StrictModeError):
        _maker(tables, strict=True).make_bone_template(Block("x"))


def test_copy_block_expands_embedded_block():
    block = Block("flower_pot", block_entity_data={"PlantBlock": {"name": "minecraft:stone", "states": {}}})
    maker = _maker(scale=1.0)
    bone = maker.make_bone_template(block)
    assert [c.origin for c in bone.cubes] == [[5, 0, 5], [0, 6, 0]]
    assert bone.cubes[1].size == [16, 16, 16]
    assert any(ref.block_name == "stone" for ref in maker.texture_refs)


def test_copy_block_without_entity_data_logs(caplog):
    with caplog.at_level(logging.ERROR):
        bone = _maker(scale=1.0).make_bone_template(Block("flower_pot"))
    assert len(bone.cubes) == 1
    assert any("PlantBlock" in r.getMessage() for r in caplog.records)


def test_copy_block_depth_is_limited():
    inner = {"name": "flower_pot", "states": {}}
    for _ in range(5):
        inner = {"name": "flower_pot", "states": {}, "block_entity_data": {"PlantBlock": inner}}
    block = Block("flower_pot", block_entity_data={"PlantBlock": inner})

    relaxed = _maker(scale=1.0, max_copy_block_depth=2).make_bone_template(block)
    assert len(relaxed.cubes) == 3
    with pytest.raises(StrictModeError):
        _maker(scale=1.0, strict=True, max_copy_block_depth=2).make_bone_template(block)


def test_special_texture_path():
    maker = _maker()
    maker.make_bone_template(Block("torch"))
    paths = {ref.texture_path_override for ref in maker.texture_refs}
    assert paths == {"textures/blocks/torch_on"}


def test_flat_faces_are_croppable():
    maker = _maker()
    bone = maker.make_bone_template(Block("rail"))
    (cube,) = bone.cubes
    assert list(cube.uv) == ["down"]
    assert maker.texture_refs[cube.uv["down"]].croppable
    assert maker.texture_refs[cube.uv["down"]].texture_face == "up"


def test_block_states_override_feeds_conditions_and_tints():
    tables = make_tables(
        block_shapes={"individual_blocks": {"cauldron": "cauldron"}, "patterns": {}},
        block_shape_geos={
            "cauldron": [
                {
                    "pos": [2, 2, 2],
                    "size": [12, 0, 12],
                    "block_states": {"fill_level": "${#block_states.level}"},
                    "if": "fill_level>0",
                    "tint": "${#block_entity_data.CustomColor ?? #3F76E4}",
                    "terrain_texture": "cauldron_water",
                }
            ]
        },
    )
    maker = _maker(tables)
    empty = maker.make_bone_template(Block("cauldron", {"level": 0}))
    assert empty.cubes == []

    full = maker.make_bone_template(Block("cauldron", {"level": 3}, {"CustomColor": -16776961}))
    (cube,) = full.cubes
    ref = maker.texture_refs[cube.uv["down"]]
    assert ref.terrain_texture_override == "cauldron_water"
    assert ref.block_name is None
    assert ref.tint == pytest.approx((0.0, 0.0, 1.0))


def test_none_texture_removes_face():
    tables = make_tables(
        block_shapes={"individual_blocks": {"open": "open"}, "patterns": {}},
        block_shape_geos={"open": [{"pos": [0, 0, 0], "size": [16, 16, 16], "textures": {"up": "none"}}]},
    )
    bone = _maker(tables).make_bone_template(Block("open"))
    assert "up" not in bone.cubes[0].uv
    assert len(bone.cubes[0].uv) == 5


def test_missing_geometry_falls_back_to_block(caplog):
    tables = make_tables(block_shapes={"individual_blocks": {"odd": "no_such_shape"}, "patterns": {}})
    with caplog.at_level(logging.ERROR):
        bone = _maker(tables, scale=1.0).make_bone_template(Block("odd"))
    assert bone.cubes[0].size == [16, 16, 16]
    assert caplog.records


def test_center_of_mass():
    cubes = [
        ResolvedCube(origin=[0, 0, 0], size=[2, 2, 2]),
        ResolvedCube(origin=[6, 0, 0], size=[2, 2, 2]),
    ]
    assert center_of_mass(cubes) == [4.0, 1.0, 1.0]
    # all flat: weighted by surface instead of volume
    assert center_of_mass([ResolvedCube(origin=[0, 1, 0], size=[16, 0, 16])]) == [8.0, 1.0, 8.0]
    assert center_of_mass([]) == [8.0, 8.0, 8.0]


def test_scale_moves_pivots_with_cubes():
    cube = ResolvedCube(origin=[0, 0, 0], size=[16, 16, 16], rotation=[0, 45, 0], pivot=[16, 8, 8])
    (scaled,) = scale_cubes([cube], 0.5)
    assert scaled.origin == [4.0, 4.0, 4.0]
    assert scaled.size == [8.0, 8.0, 8.0]
    assert scaled.pivot == [12.0, 8.0, 8.0]
