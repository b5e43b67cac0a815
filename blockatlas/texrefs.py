"""Texture references, their deduplicated fragments and terrain-texture-key resolution."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from PIL import ImageColor

from .model import SIDE_FACES
from .tables import RuleTables

log = logging.getLogger(__name__)

MISSING_KEY = "missing"

Tint = Tuple[float, float, float]
T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class TextureReference:
    """One face's request for a texture, before resolution.

    Exactly one of three addressing modes is used: a direct
    ``texture_path_override``, a ``terrain_texture_override`` key, or
    ``block_name`` + ``texture_face`` looked up through blocks.json.
    """

    uv: Tuple[float, float]
    uv_size: Tuple[float, float]
    block_name: Optional[str] = None
    texture_face: Optional[str] = None
    variant: int = -1
    texture_path_override: Optional[str] = None
    terrain_texture_override: Optional[str] = None
    tint: Optional[Tint] = None
    croppable: bool = False


@dataclass(slots=True, frozen=True)
class TextureFragment:
    """A unique image region + tint + opacity; one packing slot in the atlas."""

    texture_path: str
    uv: Tuple[float, float]
    uv_size: Tuple[float, float]
    tint: Optional[Tint] = None
    tint_like_png: bool = False
    opacity: float = 1.0
    croppable: bool = False


class IndexedSet(Generic[T]):
    """Insertion-ordered set of hashable values addressed by index.

    ``add`` returns the index of the stored value; adding an equal value
    again returns the first index. Safe to share between threads.
    """

    def __init__(self) -> None:
        self._items: List[T] = []
        self._index: Dict[T, int] = {}
        self._lock = threading.Lock()

    def add(self, item: T) -> int:
        with self._lock:
            idx = self._index.get(item)
            if idx is None:
                idx = len(self._items)
                self._items.append(item)
                self._index[item] = idx
            return idx

    def index(self, item: T) -> int:
        return self._index[item]

    def __contains__(self, item: object) -> bool:
        return item in self._index

    def __getitem__(self, idx: int) -> T:
        return self._items[idx]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))


def hex_to_tint(color: str) -> Tint:
    r, g, b = ImageColor.getrgb(color)[:3]
    return (r / 255.0, g / 255.0, b / 255.0)


def argb_to_tint(value: str | int) -> Tint:
    """Tint from a signed 32-bit ARGB integer (cauldron water colours)."""

    code = (2**32 + int(float(value))) & 0xFFFFFFFF
    return ((code >> 16 & 0xFF) / 255.0, (code >> 8 & 0xFF) / 255.0, (code & 0xFF) / 255.0)


class TextureResolver:
    """Resolves texture references to fragments against the resource pack tables."""

    def __init__(self, tables: RuleTables) -> None:
        self._blocks = tables.blocks_dot_json
        self._texture_data: Dict[str, Any] = tables.terrain_texture.get("texture_data", {})
        self._patches = tables.blocks_dot_json_patches
        self._use_carried = set(tables.blocks_to_use_carried_textures)
        self._transparent = tables.transparent_blocks
        tints = tables.terrain_texture_tints
        self._key_tints: Dict[str, Any] = tints["terrain_texture_keys"]
        self._named_colors: Dict[str, str] = tints["colors"]

    def resolve(self, ref: TextureReference) -> TextureFragment:
        tint = ref.tint
        tint_like_png = False
        opacity = 1.0
        if ref.texture_path_override is not None:
            texture_path = ref.texture_path_override
        else:
            key, variant = self.terrain_texture_key(ref)
            texture_path, entry_tint = self.texture_path_and_tint(key, variant)
            if tint is None and entry_tint is not None:
                tint = hex_to_tint(entry_tint)
            if texture_path is None:
                log.error("No texture for block %s on side %s", ref.block_name, ref.texture_face)
                texture_path, _ = self.texture_path_and_tint(MISSING_KEY, -1)
                if texture_path is None:
                    texture_path = f"textures/{MISSING_KEY}"
            if tint is None and key in self._key_tints:
                tint, tint_like_png = self._key_tint(key)
            if ref.block_name in self._transparent:
                opacity = float(self._transparent[ref.block_name])
        return TextureFragment(
            texture_path=texture_path,
            uv=ref.uv,
            uv_size=ref.uv_size,
            tint=tint,
            tint_like_png=tint_like_png,
            opacity=opacity,
            croppable=ref.croppable,
        )

    def resolve_all(self, refs: List[TextureReference]) -> Tuple[IndexedSet[TextureFragment], List[int]]:
        """Deduplicate fragments; returns the fragment set and each reference's fragment index."""

        fragments: IndexedSet[TextureFragment] = IndexedSet()
        indices = [fragments.add(self.resolve(ref)) for ref in refs]
        log.debug("%d texture references -> %d unique fragments", len(refs), len(fragments))
        return fragments, indices

    def terrain_texture_key(self, ref: TextureReference) -> Tuple[str, int]:
        """Terrain texture key for a block-addressed reference, plus the (possibly patched) variant."""

        if ref.terrain_texture_override is not None:
            return ref.terrain_texture_override, ref.variant
        block_name = ref.block_name or ""
        variant = ref.variant
        if block_name not in self._blocks and block_name in self._patches:
            patched = self._patches[block_name]
            if "." in patched:
                patched, variant_str = patched.split(".", 1)
                variant = int(variant_str)
            block_name = patched
        entry = self._blocks.get(block_name)
        if not entry:
            log.error("No blocks.json entry for %s", block_name)
            return MISSING_KEY, variant

        face = ref.texture_face or "*"
        if face.startswith("carried"):
            carried_key = self._carried_key(block_name, entry, face)
            if carried_key is not None:
                return carried_key, variant

        keys = None
        if block_name in self._use_carried:
            keys = entry.get("carried_textures")
            log.debug("Using carried textures for %s", block_name)
            if not keys:
                log.error("Specified carried texture in blocks.json for %s could not be found", block_name)
        if not keys:
            keys = entry.get("textures")
        if not keys:
            if "carried_textures" in entry:
                keys = entry["carried_textures"]
                log.error("No texture entry found in blocks.json for block %s; defaulting to carried texture", block_name)
            else:
                log.error("No texture entry found in blocks.json for block %s", block_name)
                return MISSING_KEY, variant

        if isinstance(keys, str):
            return keys, variant
        if face in keys:
            return keys[face], variant
        if face in SIDE_FACES and "side" in keys:
            return keys["side"], variant
        if "*" in keys:
            return keys["*"], variant
        default_face = next(iter(keys))
        log.error("Unknown texture face %s for %s; defaulting to %s", face, block_name, default_face)
        return keys[default_face], variant

    @staticmethod
    def _carried_key(block_name: str, entry: Dict[str, Any], face: str) -> Optional[str]:
        carried = entry.get("carried_textures")
        if carried is None:
            log.error("No carried texture for %s", block_name)
            return None
        if face == "carried":
            if isinstance(carried, str):
                return carried
            log.error("Specified carried texture for %s has multiple faces", block_name)
            return None
        carried_face = face[len("carried_"):]
        if isinstance(carried, str):
            return carried
        key = carried.get(carried_face)
        if key is None and carried_face in SIDE_FACES:
            key = carried.get("side")
        if key is None:
            log.error("Could not find carried texture face %s for %s", carried_face, block_name)
        return key

    def texture_path_and_tint(self, key: str, variant: int) -> Tuple[Optional[str], Optional[str]]:
        textures = (self._texture_data.get(key) or {}).get("textures")
        if not textures:
            log.warning("No terrain_texture.json entry for key %s", key)
            return None, None
        if isinstance(textures, list):
            if len(textures) == 1:
                textures = textures[0]
            else:
                if variant == -1:
                    log.warning("Unknown variant to choose for terrain texture key %s; defaulting to the first", key)
                    variant = 0
                if not 0 <= variant < len(textures):
                    log.error("Variant %s does not exist for terrain texture key %s; defaulting to 0", variant, key)
                    variant = 0
                textures = textures[variant]
        if isinstance(textures, str):
            return textures, None
        return textures.get("path"), textures.get("overlay_color") or textures.get("tint_color")

    def _key_tint(self, key: str) -> Tuple[Optional[Tint], bool]:
        color = self._key_tints[key]
        tint_like_png = False
        if isinstance(color, dict):
            tint_like_png = bool(color.get("tint_like_png", False))
            color = color.get("tint", "")
        if color.startswith("#"):
            return hex_to_tint(color), tint_like_png
        if color in self._named_colors:
            return hex_to_tint(self._named_colors[color]), tint_like_png
        log.error("No tint color %s", color)
        return None, tint_like_png
