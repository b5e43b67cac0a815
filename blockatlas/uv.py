"""Per-face UV layout for cube templates (texture pixel space, 16 per block)."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from .model import FACE_NAMES, SIDE_FACES, CubeTemplate, FaceUv, Vec2


def visible_faces(cube: CubeTemplate) -> Tuple[str, ...]:
    """Faces kept for a cube.

    Each zero-length axis keeps only one (double-sided) face, so a cube that is
    flat along two axes keeps none.
    """

    kept = set(FACE_NAMES)
    if cube.w == 0:
        kept &= {"west"}
    if cube.h == 0:
        kept &= {"down"}
    if cube.d == 0:
        kept &= {"north"}
    return tuple(face for face in FACE_NAMES if face in kept)


def calculate_uv(cube: CubeTemplate) -> Dict[str, FaceUv]:
    """UV origin and size for every visible face of ``cube``."""

    faces = visible_faces(cube)
    if cube.box_uv is not None:
        layout = box_uv_layout(cube.box_uv, cube.box_uv_size or cube.size)
    else:
        layout = auto_uv_layout(cube)
    return {face: layout[face] for face in faces}


def box_uv_layout(box_uv: Vec2, box_size) -> Dict[str, FaceUv]:
    """Unwrapped-box layout around a single anchor (entity-model convention)."""

    w, h, d = (float(s) for s in box_size)
    offsets = {
        "up": ([d, 0.0], [w, d]),
        "down": ([w + d, 0.0], [w, d]),
        "west": ([0.0, d], [d, h]),
        "north": ([d, d], [w, h]),
        "east": ([w + d, d], [d, h]),
        "south": ([w + 2 * d, d], [w, h]),
    }
    return {
        face: FaceUv(uv=[uv[0] + box_uv[0], uv[1] + box_uv[1]], uv_size=size)
        for face, (uv, size) in offsets.items()
    }


def auto_uv_layout(cube: CubeTemplate) -> Dict[str, FaceUv]:
    # Faces sample the part of a full block face the cube occupies, as if
    # projected onto the block boundary.
    x, y, z = cube.x, cube.y, cube.z
    w, h, d = cube.w, cube.h, cube.d
    defaults = {
        "west": ([z, 16 - y - h], [d, h]),
        "east": ([16 - z - d, 16 - y - h], [d, h]),
        "down": ([16 - x - w, 16 - z - d], [w, d]),
        "up": ([16 - x - w, z], [w, d]),
        "north": ([x, 16 - y - h], [w, h]),
        "south": ([16 - x - w, 16 - y - h], [w, h]),
    }
    out: Dict[str, FaceUv] = {}
    for face, (uv, size) in defaults.items():
        override_uv = _face_override(cube.uv, face)
        override_size = _face_override(cube.uv_sizes, face)
        out[face] = FaceUv(
            uv=list(override_uv) if override_uv is not None else uv,
            uv_size=list(override_size) if override_size is not None else size,
        )
    return out


def _face_override(table: Optional[Dict[str, Vec2]], face: str) -> Optional[Vec2]:
    if not table:
        return None
    if face in table:
        return table[face]
    if face in SIDE_FACES and "side" in table:
        return table["side"]
    return table.get("*")


def face_flip(cube: CubeTemplate, face: str) -> Tuple[bool, bool]:
    """(horizontal, vertical) texture flips requested for ``face``."""

    horizontal = _flip_listed(cube.flip_textures_horizontally, face)
    vertical = _flip_listed(cube.flip_textures_vertically, face)
    if cube.box_uv is not None:
        horizontal ^= face not in ("north", "south")
        vertical ^= face == "up"
    return horizontal, vertical


def _flip_listed(faces, face: str) -> bool:
    if not faces:
        return False
    listed = face in faces
    listed ^= face in SIDE_FACES and "side" in faces
    listed ^= "*" in faces
    return bool(listed)
