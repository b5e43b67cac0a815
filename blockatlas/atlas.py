"""Texture atlas construction: rectangle packing, compositing, outlines and opacity variants."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor

from .images import Crop, ImageFragment

log = logging.getLogger(__name__)

DEFAULT_OPACITY_LEVELS = (0.4, 0.5, 0.6, 0.7, 0.8, 0.9)


@dataclass(slots=True)
class ImageUv:
    """Where one fragment ended up, in atlas pixel units (before outline upscaling)."""

    uv: Tuple[float, float]
    uv_size: Tuple[float, float]
    transparency: float = 0.0
    crop: Optional[Crop] = None

    def to_dict(self) -> dict:
        out: dict = {"uv": list(self.uv), "uv_size": list(self.uv_size), "transparency": self.transparency}
        if self.crop is not None:
            out["crop"] = self.crop.to_dict()
        return out


@dataclass(slots=True)
class PackedRect:
    index: int
    w: int
    h: int
    x: int = 0
    y: int = 0


@dataclass(slots=True)
class Packing:
    width: int
    height: int
    fill: float
    rects: List[PackedRect]


@dataclass(slots=True)
class AtlasBuildResult:
    width: int
    height: int
    fill_efficiency: float
    uvs: List[ImageUv]
    # composed atlas (after outlines, before opacity); `image_scale` x the packed size
    canvas: np.ndarray
    image_scale: int = 1
    images: Dict[str, bytes] = field(default_factory=dict)


def build_atlas(
    fragments: Sequence[ImageFragment],
    *,
    outline_width: float = 0.25,
    outline_color: str = "#00F",
    outline_opacity: float = 0.65,
    outline_alpha_threshold: int = 0,
    multiple_opacities: bool = True,
    opacity: float = 0.9,
    opacity_levels: Sequence[float] = DEFAULT_OPACITY_LEVELS,
) -> AtlasBuildResult:
    """Pack image fragments into one atlas and return the images + per-fragment UVs."""

    if outline_width < 0:
        raise ValueError("outline_width must be >= 0")
    if not 0.0 <= outline_opacity <= 1.0:
        raise ValueError("outline_opacity must be within [0, 1]")
    if not 0.0 <= opacity <= 1.0:
        raise ValueError("opacity must be within [0, 1]")
    if multiple_opacities and not opacity_levels:
        raise ValueError("opacity_levels must not be empty when multiple_opacities is set")
    if not 0 <= outline_alpha_threshold <= 255:
        raise ValueError("outline_alpha_threshold must be within [0, 255]")

    sources, offsets, actual_sizes, rects = _integral_source_rects(fragments)
    packing = pack_best(rects)
    atlas_w = max(1, packing.width)
    atlas_h = max(1, packing.height)
    log.info("Packed texture atlas %dx%d with %.2f%% space efficiency", atlas_w, atlas_h, packing.fill * 100)

    canvas = np.zeros((atlas_h, atlas_w, 4), dtype=np.uint8)
    placed = sorted(packing.rects, key=lambda r: r.index)
    for rect in placed:
        sx, sy = sources[rect.index]
        _blit(canvas, fragments[rect.index].pixels, sx, sy, rect)

    uvs = [
        ImageUv(
            uv=(rect.x + offsets[rect.index][0], rect.y + offsets[rect.index][1]),
            uv_size=actual_sizes[rect.index],
            transparency=_transparency(canvas, rect),
            crop=fragments[rect.index].crop,
        )
        for rect in placed
    ]

    image_scale = 1
    composed = canvas
    if outline_width > 0:
        image_scale = outline_scale(outline_width)
        composed = add_outlines(
            canvas,
            placed,
            scale=image_scale,
            color=outline_color,
            opacity=outline_opacity,
            alpha_threshold=outline_alpha_threshold,
        )

    images: Dict[str, bytes] = {}
    if multiple_opacities:
        for level in opacity_levels:
            images[f"hologram_opacity_{level:g}"] = _image_to_bytes(_with_opacity(composed, level))
    else:
        images["hologram"] = _image_to_bytes(_with_opacity(composed, opacity))

    return AtlasBuildResult(
        width=int(atlas_w),
        height=int(atlas_h),
        fill_efficiency=float(packing.fill),
        uvs=uvs,
        canvas=composed,
        image_scale=image_scale,
        images=images,
    )


def _integral_source_rects(fragments: Sequence[ImageFragment]):
    # Only whole pixels can be copied: widen fractional rects to whole pixels and
    # remember the sub-pixel offset so UVs stay exact.
    sources: List[Tuple[int, int]] = []
    offsets: List[Tuple[float, float]] = []
    actual_sizes: List[Tuple[float, float]] = []
    rects: List[PackedRect] = []
    for idx, frag in enumerate(fragments):
        actual_sizes.append((float(frag.w), float(frag.h)))
        w = float(frag.w)
        h = float(frag.h)
        off_x = frag.source_x - math.floor(frag.source_x)
        off_y = frag.source_y - math.floor(frag.source_y)
        w += off_x
        h += off_y
        sources.append((int(math.floor(frag.source_x)), int(math.floor(frag.source_y))))
        offsets.append((off_x, off_y))
        rects.append(PackedRect(index=idx, w=max(1, int(math.ceil(w))), h=max(1, int(math.ceil(h)))))
    return sources, offsets, actual_sizes, rects


def pack_best(rects: Sequence[PackedRect]) -> Packing:
    """Pack twice (area-first and height-then-width presorts) and keep the denser result."""

    by_area = [PackedRect(r.index, r.w, r.h) for r in sorted(rects, key=lambda r: r.w * r.h, reverse=True)]
    by_height = [PackedRect(r.index, r.w, r.h) for r in sorted(rects, key=lambda r: (r.h, r.w), reverse=True)]
    first = potpack(by_area)
    second = potpack(by_height)
    return first if first.fill > second.fill else second


def potpack(rects: List[PackedRect]) -> Packing:
    """Guillotine-style packer filling free spaces in a near-square strip (Mapbox potpack).

    Assigns ``x``/``y`` on the given rects. The sort by height is stable, so the
    caller's presort decides ties.
    """

    area = 0
    max_width = 0
    for rect in rects:
        area += rect.w * rect.h
        max_width = max(max_width, rect.w)
    ordered = sorted(rects, key=lambda r: r.h, reverse=True)

    start_width = max(int(math.ceil(math.sqrt(area / 0.95))), max_width)
    # free spaces as [x, y, w, h]; the first one is unbounded downwards
    spaces: List[List[float]] = [[0, 0, start_width, math.inf]]
    width = 0
    height = 0

    for rect in ordered:
        for i in range(len(spaces) - 1, -1, -1):
            space = spaces[i]
            if rect.w > space[2] or rect.h > space[3]:
                continue
            rect.x = int(space[0])
            rect.y = int(space[1])
            height = max(height, rect.y + rect.h)
            width = max(width, rect.x + rect.w)
            if rect.w == space[2] and rect.h == space[3]:
                last = spaces.pop()
                if i < len(spaces):
                    spaces[i] = last
            elif rect.h == space[3]:
                space[0] += rect.w
                space[2] -= rect.w
            elif rect.w == space[2]:
                space[1] += rect.h
                space[3] -= rect.h
            else:
                spaces.append([space[0] + rect.w, space[1], space[2] - rect.w, rect.h])
                space[1] += rect.h
                space[3] -= rect.h
            break

    fill = area / float(width * height) if width and height else 0.0
    return Packing(width=int(width), height=int(height), fill=fill, rects=list(rects))


def _blit(canvas: np.ndarray, pixels: np.ndarray, sx: int, sy: int, rect: PackedRect) -> None:
    src_h, src_w = pixels.shape[:2]
    x0 = max(sx, 0)
    y0 = max(sy, 0)
    x1 = min(sx + rect.w, src_w)
    y1 = min(sy + rect.h, src_h)
    if x1 <= x0 or y1 <= y0:
        return
    dx = rect.x + (x0 - sx)
    dy = rect.y + (y0 - sy)
    canvas[dy : dy + (y1 - y0), dx : dx + (x1 - x0), :] = pixels[y0:y1, x0:x1, :]


def _transparency(canvas: np.ndarray, rect: PackedRect) -> float:
    region = canvas[rect.y : rect.y + rect.h, rect.x : rect.x + rect.w, 3]
    if region.size == 0:
        return 1.0
    return float(np.mean(255.0 - region.astype(np.float64)) / 255.0)


def outline_scale(outline_width: float) -> int:
    return int(round(max(1.0 / outline_width, 1.0)))


def add_outlines(
    canvas: np.ndarray,
    rects: Sequence[PackedRect],
    *,
    scale: int,
    color: str,
    opacity: float,
    alpha_threshold: int = 0,
) -> np.ndarray:
    """Upscale ``canvas`` by ``scale`` and draw outlines around opaque texture regions.

    A pixel is an edge pixel on a side when it is opaque and its neighbour on
    that side (or the fragment border) has alpha <= ``alpha_threshold``.
    """

    scale = max(1, int(scale))
    big = np.repeat(np.repeat(canvas, scale, axis=0), scale, axis=1)
    mask = np.zeros(big.shape[:2], dtype=bool)
    alpha = canvas[:, :, 3].astype(np.int32)

    for rect in rects:
        x, y, w, h = rect.x, rect.y, rect.w, rect.h
        region = alpha[y : y + h, x : x + w]
        h, w = region.shape
        if h == 0 or w == 0:
            continue
        # outside the fragment counts as transparent
        padded = np.pad(region, 1, constant_values=0)
        opaque = region > 0

        def edge(dy: int, dx: int) -> np.ndarray:
            return opaque & (padded[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w] <= alpha_threshold)

        left, right, top, bottom = edge(0, -1), edge(0, 1), edge(-1, 0), edge(1, 0)
        top_left, top_right = edge(-1, -1), edge(-1, 1)
        bottom_left, bottom_right = edge(1, -1), edge(1, 1)

        stamp = np.zeros((h, scale, w, scale), dtype=bool)
        last = scale - 1
        stamp[:, 1:last, :, 0] |= left[:, None, :]
        stamp[:, 1:last, :, last] |= right[:, None, :]
        stamp[:, 0, :, 1:last] |= top[:, :, None]
        stamp[:, last, :, 1:last] |= bottom[:, :, None]
        stamp[:, 0, :, 0] |= top | left | top_left
        stamp[:, 0, :, last] |= top | right | top_right
        stamp[:, last, :, 0] |= bottom | left | bottom_left
        stamp[:, last, :, last] |= bottom | right | bottom_right
        mask[y * scale : (y + h) * scale, x * scale : (x + w) * scale] |= stamp.reshape(h * scale, w * scale)

    return _blend_color(big, mask, color, opacity)


def _blend_color(pixels: np.ndarray, mask: np.ndarray, color: str, opacity: float) -> np.ndarray:
    out = pixels.copy()
    if not mask.any():
        return out
    rgb = np.asarray(ImageColor.getrgb(color)[:3], dtype=np.float64)
    dst = out[mask].astype(np.float64)
    dst_a = dst[:, 3:4] / 255.0
    out_a = opacity + dst_a * (1.0 - opacity)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    out_rgb = (rgb * opacity + dst[:, :3] * dst_a * (1.0 - opacity)) / safe_a
    blended = np.concatenate([out_rgb, out_a * 255.0], axis=1)
    out[mask] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return out


def _with_opacity(pixels: np.ndarray, opacity: float) -> np.ndarray:
    out = pixels.copy()
    out[:, :, 3] = np.clip(np.rint(out[:, :, 3].astype(np.float64) * opacity), 0, 255).astype(np.uint8)
    return out


def _image_to_bytes(img: Image.Image | np.ndarray) -> bytes:
    import io

    if isinstance(img, np.ndarray):
        img = Image.fromarray(img)
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()
