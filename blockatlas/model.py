"""Core data types: blocks, cube templates, resolved cubes and bone templates."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple


Vec3 = List[float]
Vec2 = List[float]

FACE_NAMES = ("west", "east", "down", "up", "north", "south")
SIDE_FACES = ("west", "east", "north", "south")
BLOCK_CENTER = (8.0, 8.0, 8.0)


@dataclass(slots=True)
class Block:
    """One block palette entry."""

    name: str
    states: Dict[str, Any] = field(default_factory=dict)
    block_entity_data: Optional[Dict[str, Any]] = None
    copied_via_copy_block: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Block":
        return cls(
            name=str(data["name"]),
            states=dict(data.get("states") or {}),
            block_entity_data=(dict(data["block_entity_data"]) if data.get("block_entity_data") is not None else None),
        )

    def with_states(self, overrides: Dict[str, Any]) -> "Block":
        clone = deepcopy(self)
        clone.states = {**clone.states, **overrides}
        return clone

    def state_entries(self) -> List[Tuple[str, Any]]:
        """Block states followed by first-level block entity data as ``entity.<key>``."""

        entries = list(self.states.items())
        if self.block_entity_data:
            entries.extend((f"entity.{k}", v) for k, v in self.block_entity_data.items())
        return entries


@dataclass(slots=True)
class ExtraRotation:
    rot: Vec3
    pivot: Vec3


# JSON key -> CubeTemplate attribute.
_TEMPLATE_KEYS = {
    "pos": "pos",
    "size": "size",
    "textures": "textures",
    "uv": "uv",
    "uv_sizes": "uv_sizes",
    "block_states": "block_states",
    "if": "condition",
    "copy": "copy",
    "copy_block": "copy_block",
    "rot": "rot",
    "pivot": "pivot",
    "translate": "translate",
    "tint": "tint",
    "box_uv": "box_uv",
    "box_uv_size": "box_uv_size",
    "flip_textures_horizontally": "flip_textures_horizontally",
    "flip_textures_vertically": "flip_textures_vertically",
    "terrain_texture": "terrain_texture",
    "variant": "variant",
    "ignore_eigenvariant": "ignore_eigenvariant",
    "texture_size": "texture_size",
    "arrays": "arrays",
    "extra_rots": "extra_rots",
}

FLIP_FIELDS = ("flip_textures_horizontally", "flip_textures_vertically")
# Fields never propagated from a copying cube to the copied cubes.
COPY_EXCLUDED_FIELDS = ("copy", "rot", "pivot", "translate", "copy_chain")


@dataclass(slots=True)
class CubeTemplate:
    """A declarative cube from the shape geometry table.

    Every optional field is ``None`` when absent. Templates are always cloned
    from the shared table before they are touched.
    """

    pos: Optional[Vec3] = None
    size: Optional[Vec3] = None
    textures: Optional[Dict[str, str]] = None
    uv: Optional[Dict[str, Vec2]] = None
    uv_sizes: Optional[Dict[str, Vec2]] = None
    block_states: Optional[Dict[str, Any]] = None
    condition: Optional[str] = None
    copy: Optional[str] = None
    copy_block: Optional[str] = None
    rot: Optional[Vec3] = None
    pivot: Optional[Vec3] = None
    translate: Optional[Vec3] = None
    tint: Optional[str] = None
    box_uv: Optional[Vec2] = None
    box_uv_size: Optional[Vec3] = None
    flip_textures_horizontally: Optional[List[str]] = None
    flip_textures_vertically: Optional[List[str]] = None
    terrain_texture: Optional[str] = None
    variant: Optional[int] = None
    ignore_eigenvariant: Optional[bool] = None
    texture_size: Optional[Vec2] = None
    arrays: Optional[Dict[str, list]] = None
    extra_rots: Optional[List[ExtraRotation]] = None
    block_override: Optional[Block] = None
    # shapes this template was copied through; guards against copy cycles
    copy_chain: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "CubeTemplate":
        kwargs: dict = {}
        for key, value in data.items():
            attr = _TEMPLATE_KEYS.get(key)
            if attr is None:
                continue
            value = deepcopy(value)
            if attr == "extra_rots":
                value = [ExtraRotation(rot=list(r["rot"]), pivot=list(r.get("pivot", BLOCK_CENTER))) for r in value]
            kwargs[attr] = value
        return cls(**kwargs)

    def set_fields(self) -> List[str]:
        return [f.name for f in fields(self) if f.name != "copy_chain" and getattr(self, f.name) is not None]

    def is_bare(self) -> bool:
        """True when only ``pos`` and ``size`` are set (merge candidate)."""

        return set(self.set_fields()) == {"pos", "size"}

    @property
    def has_zero_dimension(self) -> bool:
        return any(float(s) == 0.0 for s in (self.size or (0, 0, 0)))

    # x/y/z/w/h/d views over pos and size
    @property
    def x(self) -> float:
        return self.pos[0]

    @x.setter
    def x(self, value: float) -> None:
        self.pos[0] = value

    @property
    def y(self) -> float:
        return self.pos[1]

    @y.setter
    def y(self, value: float) -> None:
        self.pos[1] = value

    @property
    def z(self) -> float:
        return self.pos[2]

    @z.setter
    def z(self, value: float) -> None:
        self.pos[2] = value

    @property
    def w(self) -> float:
        return self.size[0]

    @w.setter
    def w(self, value: float) -> None:
        self.size[0] = value

    @property
    def h(self) -> float:
        return self.size[1]

    @h.setter
    def h(self, value: float) -> None:
        self.size[1] = value

    @property
    def d(self) -> float:
        return self.size[2]

    @d.setter
    def d(self, value: float) -> None:
        self.size[2] = value


@dataclass(slots=True)
class FaceUv:
    uv: Vec2
    uv_size: Vec2


@dataclass(slots=True)
class FaceFlip:
    horizontal: bool = False
    vertical: bool = False


@dataclass(slots=True)
class ResolvedCube:
    """A concrete bone cube. ``uv`` maps face name -> texture reference index."""

    origin: Vec3
    size: Vec3
    uv: Dict[str, int] = field(default_factory=dict)
    flips: Dict[str, FaceFlip] = field(default_factory=dict)
    rotation: Optional[Vec3] = None
    pivot: Optional[Vec3] = None
    extra_rotations: List[ExtraRotation] = field(default_factory=list)
    # filled in once the atlas exists
    face_uvs: Dict[str, FaceUv] = field(default_factory=dict)

    def translated(self, offset: Vec3) -> "ResolvedCube":
        out = deepcopy(self)
        out.origin = [a + b for a, b in zip(out.origin, offset)]
        if out.pivot is not None:
            out.pivot = [a + b for a, b in zip(out.pivot, offset)]
        for extra in out.extra_rotations:
            extra.pivot = [a + b for a, b in zip(extra.pivot, offset)]
        return out

    def to_dict(self) -> dict:
        out: dict = {"origin": list(self.origin), "size": list(self.size)}
        if self.face_uvs:
            out["uv"] = {face: {"uv": list(fu.uv), "uv_size": list(fu.uv_size)} for face, fu in self.face_uvs.items()}
        else:
            out["uv"] = dict(self.uv)
        if self.rotation is not None:
            out["rotation"] = list(self.rotation)
            out["pivot"] = list(self.pivot if self.pivot is not None else BLOCK_CENTER)
        if self.extra_rotations:
            out["extra_rotations"] = [{"rotation": list(e.rot), "pivot": list(e.pivot)} for e in self.extra_rotations]
        return out


@dataclass(slots=True)
class BoneTemplate:
    """Unpositioned mesh fragment for one palette entry."""

    cubes: List[ResolvedCube] = field(default_factory=list)
    rotation: Optional[Vec3] = None
    pivot: Optional[Vec3] = None

    def to_dict(self) -> dict:
        out: dict = {"cubes": [c.to_dict() for c in self.cubes]}
        if self.rotation is not None:
            out["rotation"] = list(self.rotation)
            out["pivot"] = list(self.pivot if self.pivot is not None else BLOCK_CENTER)
        return out


def position_bone_template(template: BoneTemplate, block_pos: Vec3) -> BoneTemplate:
    """Clone a bone template and move it to ``block_pos`` (in block-space units)."""

    bone = deepcopy(template)
    bone.cubes = [cube.translated(block_pos) for cube in bone.cubes]
    if bone.pivot is not None:
        bone.pivot = [a + b for a, b in zip(bone.pivot, block_pos)]
    elif bone.rotation is not None:
        bone.pivot = [a + b for a, b in zip(BLOCK_CENTER, block_pos)]
    return bone


def js_string(value: Any) -> str:
    """String conversion matching how rule tables spell values (``true``, ``3``)."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return "null"
    return str(value)


def lookup_state_value(table: dict, value: Any) -> Tuple[bool, Any]:
    """Look up a block state value in a rule table keyed by stringified values."""

    if isinstance(value, str) and value in table:
        return True, table[value]
    key = js_string(value)
    if key in table:
        return True, table[key]
    return False, None
