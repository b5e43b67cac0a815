from __future__ import annotations

import io
import random

import numpy as np
import pytest
from PIL import Image

from blockatlas.atlas import PackedRect, add_outlines, build_atlas, outline_scale, pack_best, potpack
from blockatlas.images import Crop, ImageFragment


def _solid(w: int, h: int, alpha: int = 255) -> np.ndarray:
    pixels = np.full((h, w, 4), 100, dtype=np.uint8)
    pixels[:, :, 3] = alpha
    return pixels


def _fragment(w, h, alpha=255, **kwargs) -> ImageFragment:
    return ImageFragment(pixels=_solid(w, h, alpha), source_x=0.0, source_y=0.0, w=float(w), h=float(h), **kwargs)


def _assert_valid_packing(packing, rects):
    assert 0 < packing.fill <= 1
    assert sum(r.w * r.h for r in rects) <= packing.width * packing.height
    occupied = np.zeros((packing.height, packing.width), dtype=np.int32)
    for rect in packing.rects:
        assert 0 <= rect.x and rect.x + rect.w <= packing.width
        assert 0 <= rect.y and rect.y + rect.h <= packing.height
        occupied[rect.y : rect.y + rect.h, rect.x : rect.x + rect.w] += 1
    assert occupied.max() == 1


@pytest.mark.parametrize("seed", range(6))
def test_random_packings_are_valid(seed):
    rng = random.Random(seed)
    rects = [PackedRect(index=i, w=rng.randint(1, 32), h=rng.randint(1, 32)) for i in range(rng.randint(1, 40))]
    packing = pack_best(rects)
    _assert_valid_packing(packing, rects)
    assert sorted(r.index for r in packing.rects) == list(range(len(rects)))


def test_equal_squares_pack_perfectly():
    rects = [PackedRect(index=i, w=16, h=16) for i in range(4)]
    packing = potpack(rects)
    assert packing.fill == 1.0
    assert (packing.width, packing.height) == (32, 32)


def test_build_atlas_places_every_fragment():
    fragments = [_fragment(16, 16), _fragment(8, 8, alpha=0), _fragment(4, 12)]
    result = build_atlas(fragments, outline_width=0, multiple_opacities=False)
    assert len(result.uvs) == 3
    assert 0 < result.fill_efficiency <= 1
    for uv, frag in zip(result.uvs, fragments):
        assert uv.uv_size == (frag.w, frag.h)
        x, y = uv.uv
        assert 0 <= x and x + frag.w <= result.width
        assert 0 <= y and y + frag.h <= result.height
    assert result.uvs[0].transparency == 0.0
    assert result.uvs[1].transparency == 1.0
    assert list(result.images) == ["hologram"]


def test_fragment_pixels_land_at_their_uvs():
    red = np.zeros((4, 4, 4), dtype=np.uint8)
    red[:, :, 0] = 255
    red[:, :, 3] = 255
    fragments = [_fragment(8, 8), ImageFragment(pixels=red, source_x=0.0, source_y=0.0, w=4.0, h=4.0)]
    result = build_atlas(fragments, outline_width=0, multiple_opacities=False, opacity=1.0)
    x, y = (int(v) for v in result.uvs[1].uv)
    assert result.canvas[y : y + 4, x : x + 4, 0].min() == 255


def test_fractional_source_rect_keeps_subpixel_offset():
    fragment = ImageFragment(pixels=_solid(16, 16), source_x=2.5, source_y=0.0, w=3.0, h=4.0)
    result = build_atlas([fragment], outline_width=0, multiple_opacities=False)
    assert result.uvs[0].uv == (0.5, 0.0)
    assert result.uvs[0].uv_size == (3.0, 4.0)
    assert (result.width, result.height) == (4, 4)


def test_crop_is_carried_into_uvs():
    crop = Crop(x=0.25, y=0.0, w=0.5, h=1.0)
    result = build_atlas([_fragment(8, 16, crop=crop)], outline_width=0, multiple_opacities=False)
    assert result.uvs[0].crop == crop
    assert result.uvs[0].to_dict()["crop"] == {"x": 0.25, "y": 0.0, "w": 0.5, "h": 1.0}


def test_opacity_variants_are_png_images():
    result = build_atlas([_fragment(4, 4)], outline_width=0, opacity_levels=(0.5, 1.0))
    assert list(result.images) == ["hologram_opacity_0.5", "hologram_opacity_1"]
    with Image.open(io.BytesIO(result.images["hologram_opacity_0.5"])) as img:
        assert img.size == (4, 4)
        assert img.getpixel((0, 0))[3] == 128


def test_outline_upscales_canvas():
    result = build_atlas([_fragment(4, 4)], outline_width=0.25, multiple_opacities=False)
    assert result.image_scale == 4
    assert result.canvas.shape == (16, 16, 4)
    # uvs stay in unscaled atlas pixels
    assert (result.width, result.height) == (4, 4)
    with Image.open(io.BytesIO(result.images["hologram"])) as img:
        assert img.size == (16, 16)


def test_outline_scale():
    assert outline_scale(0.25) == 4
    assert outline_scale(1) == 1
    assert outline_scale(2) == 1
    assert outline_scale(0.3) == 3


def test_outlines_only_touch_edges_of_opaque_regions():
    canvas = np.zeros((3, 3, 4), dtype=np.uint8)
    canvas[:, :, :3] = 200
    canvas[:, :, 3] = 255
    canvas[0, 2, 3] = 0
    out = add_outlines(canvas, [PackedRect(index=0, w=3, h=3)], scale=4, color="#F00", opacity=1.0)
    assert out.shape == (12, 12, 4)
    # centre of the middle pixel has no edge
    assert out[5, 5].tolist() == [200, 200, 200, 255]
    # fragment border
    assert out[0, 0].tolist() == [255, 0, 0, 255]
    assert out[5, 0].tolist() == [255, 0, 0, 255]
    # the transparent pixel stays untouched
    assert out[1, 9].tolist() == [200, 200, 200, 0]
    # the pixel left of it gets an edge on its right side
    assert out[1, 7].tolist() == [255, 0, 0, 255]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"outline_width": -1},
        {"outline_opacity": 2},
        {"opacity": -0.1},
        {"opacity_levels": ()},
        {"outline_alpha_threshold": 300},
    ],
)
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        build_atlas([_fragment(1, 1)], **kwargs)
