"""Texture image fetching, decoding and per-fragment processing."""

from __future__ import annotations

import io
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from .texrefs import TextureFragment, Tint

log = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch(self, path: str) -> Optional[bytes]:
        """Raw file bytes for a resource pack relative path, or ``None``."""


class DirectoryFetcher:
    """Reads resources from one or more unpacked resource pack folders; earlier folders win."""

    def __init__(self, *roots: str | Path) -> None:
        if not roots:
            raise ValueError("DirectoryFetcher needs at least one folder")
        self.roots = [Path(r) for r in roots]

    def fetch(self, path: str) -> Optional[bytes]:
        for root in self.roots:
            candidate = root / path
            if candidate.is_file():
                return candidate.read_bytes()
        return None


class MemoryFetcher:
    def __init__(self, files: Mapping[str, bytes]) -> None:
        self.files = dict(files)

    def fetch(self, path: str) -> Optional[bytes]:
        return self.files.get(path)


@dataclass(slots=True)
class SourceImage:
    pixels: np.ndarray  # (H, W, 4) uint8
    is_tga: bool = False
    not_found: bool = False

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(slots=True, frozen=True)
class Crop:
    """Cropped sub-rectangle, relative to the originally requested rectangle."""

    x: float
    y: float
    w: float
    h: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass(slots=True)
class ImageFragment:
    """A processed image plus the source rectangle (pixels) to copy into the atlas."""

    pixels: np.ndarray
    source_x: float
    source_y: float
    w: float
    h: float
    crop: Optional[Crop] = None


class ImageCache:
    """Path -> decoded image; the first stored value for a path wins."""

    def __init__(self) -> None:
        self._images: Dict[str, SourceImage] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> Optional[SourceImage]:
        return self._images.get(path)

    def put(self, path: str, image: SourceImage) -> SourceImage:
        with self._lock:
            return self._images.setdefault(path, image)

    def get_or_load(self, path: str, loader: Callable[[str], SourceImage]) -> SourceImage:
        cached = self.get(path)
        if cached is not None:
            return cached
        return self.put(path, loader(path))

    def __len__(self) -> int:
        return len(self._images)


def load_source_image(fetcher: Fetcher, texture_path: str) -> SourceImage:
    """Load ``<path>.png``, falling back to ``<path>.tga``, else a placeholder."""

    for ext, is_tga in ((".png", False), (".tga", True)):
        data = fetcher.fetch(texture_path + ext)
        if data is None:
            continue
        try:
            with Image.open(io.BytesIO(data)) as img:
                pixels = np.asarray(img.convert("RGBA"), dtype=np.uint8).copy()
        except (UnidentifiedImageError, OSError) as exc:
            log.warning("Could not decode %s%s: %s", texture_path, ext, exc)
            continue
        if is_tga:
            log.debug("Fetched TGA texture %s.tga", texture_path)
        return SourceImage(pixels=pixels, is_tga=is_tga)
    log.warning("No texture found at %s", texture_path)
    return SourceImage(pixels=placeholder_pixels(texture_path), not_found=True)


def placeholder_pixels(text: str) -> np.ndarray:
    """Opaque image with ``text`` written on it, for textures that failed to load."""

    font = ImageFont.load_default()
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = probe.textbbox((0, 0), text, font=font)
    img = Image.new("RGBA", (max(1, right - left + 2), max(1, bottom - top + 2)), (0, 0, 0, 255))
    ImageDraw.Draw(img).text((1 - left, 1 - top), text, fill=(255, 0, 255, 255), font=font)
    return np.asarray(img, dtype=np.uint8).copy()


def tint_pixels(pixels: np.ndarray, tint: Tint, only_opaque: bool = False) -> np.ndarray:
    """Multiply RGB by ``tint``.

    With ``only_opaque`` (legacy TGA convention) only fully opaque pixels are
    tinted and every pixel is made opaque.
    """

    out = pixels.copy()
    rgb = out[:, :, :3].astype(np.float64) * np.asarray(tint, dtype=np.float64)
    rgb = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    if only_opaque:
        mask = out[:, :, 3] == 255
        out[mask, :3] = rgb[mask]
        out[:, :, 3] = 255
    else:
        out[:, :, :3] = rgb
    return out


def scale_opacity(pixels: np.ndarray, opacity: float) -> np.ndarray:
    out = pixels.copy()
    out[:, :, 3] = np.clip(np.rint(out[:, :, 3].astype(np.float64) * opacity), 0, 255).astype(np.uint8)
    return out


def opaque_bounds(pixels: np.ndarray, x: int, y: int, w: int, h: int) -> Optional[tuple[int, int, int, int]]:
    """Bounding box (x, y, w, h) of pixels with alpha > 0 inside a rectangle, or ``None``."""

    region = pixels[y : y + h, x : x + w, 3]
    ys, xs = np.nonzero(region > 0)
    if xs.size == 0:
        return None
    min_x, max_x = int(xs.min()), int(xs.max())
    min_y, max_y = int(ys.min()), int(ys.max())
    return x + min_x, y + min_y, max_x - min_x + 1, max_y - min_y + 1


def process_fragment(
    fragment: TextureFragment,
    image: SourceImage,
    *,
    flipbook_sizes: Optional[Mapping[str, int]] = None,
) -> ImageFragment:
    uv = fragment.uv
    uv_size = fragment.uv_size
    if image.not_found:
        uv = (0.0, 0.0)
        uv_size = (1.0, 1.0)

    pixels = image.pixels
    if fragment.tint is not None:
        pixels = tint_pixels(pixels, fragment.tint, image.is_tga and not fragment.tint_like_png)
    if fragment.opacity != 1:
        pixels = scale_opacity(pixels, fragment.opacity)

    image_w = float(image.width)
    image_h = float(image.height)
    frames = (flipbook_sizes or {}).get(fragment.texture_path)
    if frames:
        # only the first frame of an animated strip is used
        image_w = image_h = image_w / frames
        log.debug("Using flipbook texture for %s, %sx%s", fragment.texture_path, image_w, image_h)

    source_x = uv[0] * image_w
    source_y = uv[1] * image_h
    w = uv_size[0] * image_w
    h = uv_size[1] * image_h
    crop = None
    if fragment.croppable and w > 0 and h > 0:
        # scan every pixel the (possibly fractional) rectangle touches
        scan_x = max(math.floor(source_x), 0)
        scan_y = max(math.floor(source_y), 0)
        scan_w = min(math.ceil(source_x + w), pixels.shape[1]) - scan_x
        scan_h = min(math.ceil(source_y + h), pixels.shape[0]) - scan_y
        bounds = opaque_bounds(pixels, scan_x, scan_y, scan_w, scan_h)
        if bounds is not None:
            bx, by, bw, bh = bounds
            left = max(float(bx), source_x)
            top = max(float(by), source_y)
            right = min(float(bx + bw), source_x + w)
            bottom = min(float(by + bh), source_y + h)
            candidate = Crop(x=(left - source_x) / w, y=(top - source_y) / h, w=(right - left) / w, h=(bottom - top) / h)
            if candidate != Crop(0.0, 0.0, 1.0, 1.0):
                log.debug("Cropped part of image %s to %s", fragment.texture_path, candidate)
                crop = candidate
                source_x, source_y, w, h = left, top, right - left, bottom - top
    return ImageFragment(pixels=pixels, source_x=source_x, source_y=source_y, w=w, h=h, crop=crop)


def load_image_fragments(
    fragments: Sequence[TextureFragment],
    fetcher: Fetcher,
    *,
    flipbook_sizes: Optional[Mapping[str, int]] = None,
    max_workers: int = 8,
    cache: Optional[ImageCache] = None,
) -> List[ImageFragment]:
    """Load every distinct texture path once (concurrently), then process each fragment."""

    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")
    cache = cache if cache is not None else ImageCache()
    paths = list(dict.fromkeys(f.texture_path for f in fragments))
    log.info("Loading %d images for %d texture fragments", len(paths), len(fragments))

    def _load(path: str) -> SourceImage:
        return cache.get_or_load(path, lambda p: load_source_image(fetcher, p))

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        images = dict(zip(paths, pool.map(_load, paths)))
    return [process_fragment(f, images[f.texture_path], flipbook_sizes=flipbook_sizes) for f in fragments]
