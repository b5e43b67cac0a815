from __future__ import annotations

import json
import logging

import pytest

from blockatlas.tables import RuleTables


def test_from_dicts_rejects_unknown_tables():
    with pytest.raises(ValueError):
        RuleTables.from_dicts(block_shapez={})


def test_load_from_folders(tmp_path, caplog):
    data = tmp_path / "data"
    rp = tmp_path / "rp"
    (rp / "textures").mkdir(parents=True)
    data.mkdir()
    (data / "blockShapes.json").write_text(json.dumps({"individual_blocks": {"a": "b"}, "patterns": {}}))
    (data / "ignored.json").write_text(json.dumps({"blocks": ["barrier"], "block_entities": ["Bell"]}))
    (rp / "blocks.json").write_text(json.dumps({"stone": {"textures": "stone"}}))
    (rp / "textures" / "flipbook_textures.json").write_text(
        json.dumps([{"flipbook_texture": "textures/blocks/lava_still", "replicate": 2}])
    )

    with caplog.at_level(logging.WARNING):
        tables = RuleTables.load(data, rp)
    assert tables.block_shapes["individual_blocks"] == {"a": "b"}
    assert tables.blocks_dot_json == {"stone": {"textures": "stone"}}
    assert tables.ignored_blocks == ["barrier"]
    assert tables.ignored_block_entities == ["Bell"]
    assert tables.flipbook_sizes() == {"textures/blocks/lava_still": 2}
    # the missing tables are reported, not fatal
    assert len(caplog.records) == 5


def test_mapping_accessors_default_empty():
    tables = RuleTables()
    assert tables.blocks_dot_json_patches == {}
    assert tables.blocks_to_use_carried_textures == []
    assert tables.transparent_blocks == {}
    assert tables.terrain_texture_tints == {"terrain_texture_keys": {}, "colors": {}}
    assert tables.flipbook_sizes() == {}


def test_missing_flipbooks_register_single_frames():
    tables = RuleTables(texture_atlas_mappings={"missing_flipbook_textures": ["textures/blocks/soul_lantern"]})
    assert tables.flipbook_sizes() == {"textures/blocks/soul_lantern": 1}
