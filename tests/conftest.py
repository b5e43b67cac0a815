from __future__ import annotations

import io

import pytest
from PIL import Image

from blockatlas.images import MemoryFetcher
from blockatlas.tables import RuleTables


def png_bytes(width: int, height: int, color=(128, 128, 128, 255), *, opaque_box=None) -> bytes:
    """PNG of a solid colour; with ``opaque_box=(x, y, w, h)`` only that box is filled."""

    if opaque_box is None:
        img = Image.new("RGBA", (width, height), color)
    else:
        img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        x, y, w, h = opaque_box
        img.paste(Image.new("RGBA", (w, h), color), (x, y))
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def make_tables(**overrides) -> RuleTables:
    tables = dict(
        block_shapes={
            "individual_blocks": {
                "stone": "block",
                "oak_slab": "block",
                "rail": "rail",
                "flower_pot": "flower_pot",
                "torch": "torch{textures/blocks/torch_on}",
            },
            "patterns": {
                "_slab$": "slab",
                "slab": "block",
            },
        },
        block_shape_geos={
            "block": [{"pos": [0, 0, 0], "size": [16, 16, 16]}],
            "slab": [
                {"pos": [0, 0, 0], "size": [16, 8, 16], "if": "top_slot_bit==0"},
                {"pos": [0, 8, 0], "size": [16, 8, 16], "if": "top_slot_bit==1"},
            ],
            "rail": [{"pos": [0, 1, 0], "size": [16, 0, 16], "textures": {"*": "up"}}],
            "flower_pot": [
                {"pos": [5, 0, 5], "size": [6, 6, 6]},
                {"copy_block": "entity.PlantBlock", "translate": [0, 6, 0]},
            ],
            "torch": [{"pos": [7, 0, 7], "size": [2, 10, 2], "textures": {"*": "#tex"}}],
        },
        blocks_dot_json={
            "stone": {"textures": "stone"},
            "oak_slab": {"textures": "planks"},
            "spruce_slab": {"textures": "planks"},
            "rail": {"textures": "rail"},
            "flower_pot": {"textures": "flower_pot"},
            "glass": {"textures": "glass"},
        },
        terrain_texture={
            "texture_data": {
                "stone": {"textures": "textures/blocks/stone"},
                "planks": {"textures": ["textures/blocks/planks_oak", "textures/blocks/planks_spruce"]},
                "rail": {"textures": "textures/blocks/rail_normal"},
                "flower_pot": {"textures": "textures/blocks/flower_pot"},
                "glass": {"textures": "textures/blocks/glass"},
                "missing": {"textures": "textures/misc/missing_texture"},
            }
        },
    )
    tables.update(overrides)
    return RuleTables.from_dicts(**tables)


@pytest.fixture
def tables() -> RuleTables:
    return make_tables()


@pytest.fixture
def fetcher() -> MemoryFetcher:
    return MemoryFetcher(
        {
            "textures/blocks/stone.png": png_bytes(16, 16, (120, 120, 120, 255)),
            "textures/blocks/planks_oak.png": png_bytes(16, 16, (160, 120, 60, 255)),
            "textures/blocks/planks_spruce.png": png_bytes(16, 16, (100, 70, 40, 255)),
            "textures/blocks/rail_normal.png": png_bytes(16, 16, (90, 90, 90, 255), opaque_box=(2, 0, 12, 16)),
            "textures/blocks/flower_pot.png": png_bytes(16, 16, (150, 80, 50, 255)),
            "textures/blocks/torch_on.png": png_bytes(16, 16, (250, 200, 80, 255), opaque_box=(7, 6, 2, 10)),
        }
    )
