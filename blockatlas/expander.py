"""Block -> bone template expansion.

A block's shape names a list of cube templates. Templates are processed as a
work queue: ``copy`` re-enqueues another shape's templates (inheriting the
copying template's fields), ``copy_block`` expands a block stored in the
block entity data, everything else becomes a concrete cube. Bare cubes are
then merged, faces get texture references and the result is scaled toward
the bone's center of mass.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence

from .diagnostics import programmer_error
from .expressions import evaluate_conditional, interpolate
from .merger import merge_cubes
from .model import (
    BLOCK_CENTER,
    COPY_EXCLUDED_FIELDS,
    FLIP_FIELDS,
    SIDE_FACES,
    Block,
    BoneTemplate,
    CubeTemplate,
    ExtraRotation,
    FaceFlip,
    ResolvedCube,
    Vec3,
)
from .shapes import DEFAULT_SHAPE, ShapeResolver, split_shape_id
from .tables import RuleTables
from .texrefs import IndexedSet, TextureReference, Tint, argb_to_tint, hex_to_tint
from .uv import calculate_uv, face_flip
from .variants import RotationResolver, VariantResolver

log = logging.getLogger(__name__)

DEFAULT_IGNORED_BLOCKS = ("air", "piston_arm_collision", "sticky_piston_arm_collision")
DEFAULT_TEXTURE_SIZE = (16, 16)

_COPY_BLOCK_RE = re.compile(r"^entity\.(.+)$")
_TEXTURE_PATH_RE = re.compile(r"^textures/.+[^/]$")


class BoneTemplateMaker:
    """Builds unpositioned bone templates for palette blocks.

    Every face texture request is added to ``texture_refs``; resolved cube
    faces store the index of their reference in that set.
    """

    def __init__(
        self,
        tables: RuleTables,
        *,
        scale: float = 0.95,
        strict: bool = False,
        ignored_blocks: Iterable[str] = DEFAULT_IGNORED_BLOCKS,
        max_copy_block_depth: int = 8,
    ) -> None:
        self.tables = tables
        self.scale = float(scale)
        self.strict = bool(strict)
        self.ignored_blocks = set(ignored_blocks) | set(tables.ignored_blocks)
        self.max_copy_block_depth = int(max_copy_block_depth)
        self.shapes = ShapeResolver(tables)
        self.variants = VariantResolver(tables, self.shapes)
        self.rotations = RotationResolver(tables)
        self.texture_refs: IndexedSet[TextureReference] = IndexedSet()

    def make_bone_templates(self, palette: Sequence[Block]) -> List[BoneTemplate]:
        return [self.make_bone_template(block) for block in palette]

    def make_bone_template(self, block: Block) -> BoneTemplate:
        shape_id = self.shapes.resolve(block.name)
        cubes = self.expand(block, shape_id)
        if not cubes:
            log.debug("No cubes are being rendered for block %s", block.name)
        cubes = scale_cubes(cubes, self.scale)
        rotation = self.rotations.rotation(block, shape_id)
        return BoneTemplate(
            cubes=cubes,
            rotation=rotation,
            pivot=list(BLOCK_CENTER) if rotation is not None else None,
        )

    def expand(self, block: Block, shape_id: str, _depth: int = 0) -> List[ResolvedCube]:
        """Unscaled resolved cubes for ``block`` rendered with shape ``shape_id``."""

        shape, special_texture = split_shape_id(shape_id)
        pending: Deque[CubeTemplate] = deque(self._shape_templates(shape))
        concrete: List[CubeTemplate] = []
        copied_block_cubes: List[ResolvedCube] = []

        while pending:
            cube = pending.popleft()
            if cube.block_states is not None:
                states = {
                    name: interpolate(block, value, cube.arrays) if isinstance(value, str) else value
                    for name, value in cube.block_states.items()
                }
                cube.block_states = states
                cube.block_override = block.with_states(states)
            if cube.condition is not None:
                if not evaluate_conditional(cube.block_override or block, cube.condition):
                    continue
                cube.condition = None
            if cube.terrain_texture is not None:
                cube.terrain_texture = interpolate(cube.block_override or block, cube.terrain_texture, cube.arrays)

            if cube.copy is not None:
                pending.extend(self._copy(cube, shape))
            elif cube.copy_block is not None:
                copied_block_cubes.extend(self._copy_block(block, cube, _depth))
            elif cube.pos is None or cube.size is None:
                log.error("Cube in block shape %s has no pos/size; skipping", shape)
            else:
                concrete.append(cube)

        resolved: List[ResolvedCube] = []
        if concrete:
            context = _FaceContext(self, block, special_texture, shape_id)
            resolved = [self._resolve_cube(cube, context) for cube in merge_cubes(concrete)]
        return resolved + copied_block_cubes

    def _shape_templates(self, shape: str) -> List[CubeTemplate]:
        raw = self.tables.block_shape_geos.get(shape)
        if raw is None:
            log.error('Could not find geometry for block shape %s; defaulting to "%s"', shape, DEFAULT_SHAPE)
            raw = self.tables.block_shape_geos.get(DEFAULT_SHAPE, [])
        return [CubeTemplate.from_dict(entry) for entry in raw]

    def _copy(self, parent: CubeTemplate, root_shape: str) -> List[CubeTemplate]:
        target = parent.copy
        if target == root_shape or target in parent.copy_chain:
            chain = " -> ".join((root_shape,) + parent.copy_chain + (target,))
            programmer_error(log, f"Cyclic block shape copy: {chain}", strict=self.strict)
            return []

        copied = self._shape_templates(target)
        inherited = [f for f in parent.set_fields() if f not in COPY_EXCLUDED_FIELDS]
        for child in copied:
            child.copy_chain = parent.copy_chain + (target,)
            if parent.translate is not None:
                base = child.translate or [0.0, 0.0, 0.0]
                child.translate = [a + b for a, b in zip(base, parent.translate)]
            for name in inherited:
                _inherit_field(child, parent, name)
            if parent.rot is not None:
                if child.rot is not None:
                    # Two rotations about different pivots don't compose into one;
                    # the parent's becomes the outermost extra rotation.
                    extra = ExtraRotation(rot=list(parent.rot), pivot=list(parent.pivot or BLOCK_CENTER))
                    child.extra_rots = [extra] + (child.extra_rots or [])
                else:
                    child.rot = list(parent.rot)
                    child.pivot = list(parent.pivot) if parent.pivot is not None else child.pivot
        return copied

    def _copy_block(self, block: Block, cube: CubeTemplate, depth: int) -> List[ResolvedCube]:
        match = _COPY_BLOCK_RE.match(cube.copy_block or "")
        if not match:
            log.error("Incorrectly formatted copy_block property: %s", cube.copy_block)
            return []
        prop = match.group(1)
        data = (block.block_entity_data or {}).get(prop)
        if not isinstance(data, dict) or "name" not in data:
            log.error("Cannot find block entity property %s on block %s", prop, block.name)
            return []
        if depth >= self.max_copy_block_depth:
            programmer_error(
                log,
                f"copy_block nested deeper than {self.max_copy_block_depth} levels in {block.name}",
                strict=self.strict,
            )
            return []

        copied = Block.from_dict({**data, "name": re.sub(r"^minecraft:", "", str(data["name"]))})
        if copied.name in self.ignored_blocks:
            return []
        copied.copied_via_copy_block = True
        cubes = self.expand(copied, self.shapes.resolve(copied.name), depth + 1)
        if cube.translate is not None:
            cubes = [c.translated(cube.translate) for c in cubes]
        return cubes

    def _resolve_cube(self, cube: CubeTemplate, ctx: "_FaceContext") -> ResolvedCube:
        translate = cube.translate or [0.0, 0.0, 0.0]
        out = ResolvedCube(origin=list(cube.pos), size=list(cube.size))
        variant = ctx.variant_for(cube)
        texture_size = cube.texture_size or DEFAULT_TEXTURE_SIZE
        croppable = cube.has_zero_dimension
        tint = ctx.tint_for(cube)

        for face, face_uv in calculate_uv(cube).items():
            texture_face = _texture_face(cube, face)
            if texture_face == "none":
                continue
            texture_face = interpolate(cube.block_override or ctx.block, texture_face, cube.arrays)
            ref = self._texture_ref(cube, ctx, face_uv, texture_size, texture_face, variant, tint, croppable)
            out.uv[face] = self.texture_refs.add(ref)
            horizontal, vertical = face_flip(cube, face)
            out.flips[face] = FaceFlip(horizontal=horizontal, vertical=vertical)

        if cube.rot is not None:
            out.rotation = list(cube.rot)
            out.pivot = list(cube.pivot or BLOCK_CENTER)
        for extra in cube.extra_rots or []:
            out.extra_rotations.append(ExtraRotation(rot=list(extra.rot), pivot=list(extra.pivot)))
        if any(translate):
            out = out.translated(translate)
        return out

    def _texture_ref(self, cube, ctx, face_uv, texture_size, texture_face, variant, tint, croppable) -> TextureReference:
        uv = (face_uv.uv[0] / texture_size[0], face_uv.uv[1] / texture_size[1])
        uv_size = (face_uv.uv_size[0] / texture_size[0], face_uv.uv_size[1] / texture_size[1])
        path_override = None
        if texture_face == "#tex":
            if ctx.special_texture:
                path_override = ctx.special_texture
            else:
                log.error("No #tex for block %s and block shape %s", ctx.block.name, ctx.shape_id)
        elif _TEXTURE_PATH_RE.match(texture_face):
            path_override = texture_face
        if path_override is not None:
            return TextureReference(uv=uv, uv_size=uv_size, texture_path_override=path_override, tint=tint, croppable=croppable)
        if cube.terrain_texture:
            return TextureReference(
                uv=uv,
                uv_size=uv_size,
                variant=variant,
                terrain_texture_override=cube.terrain_texture,
                tint=tint,
                croppable=croppable,
            )
        return TextureReference(
            uv=uv,
            uv_size=uv_size,
            block_name=ctx.block.name,
            texture_face=texture_face,
            variant=variant,
            tint=tint,
            croppable=croppable,
        )


class _FaceContext:
    """Per-expansion state shared by the cubes of one block."""

    def __init__(self, maker: BoneTemplateMaker, block: Block, special_texture: Optional[str], shape_id: str) -> None:
        self.maker = maker
        self.block = block
        self.special_texture = special_texture
        self.shape_id = shape_id
        self.variant = maker.variants.variant(block)
        self._variant_without_eigenvariant: Optional[int] = None

    def variant_for(self, cube: CubeTemplate) -> int:
        if cube.variant is not None:
            return int(cube.variant)
        if cube.ignore_eigenvariant:
            if cube.block_override is not None:
                return self.maker.variants.variant(cube.block_override, ignore_eigenvariant=True)
            if self._variant_without_eigenvariant is None:
                self._variant_without_eigenvariant = self.maker.variants.variant(self.block, ignore_eigenvariant=True)
            return self._variant_without_eigenvariant
        if cube.block_override is not None:
            return self.maker.variants.variant(cube.block_override)
        return self.variant

    def tint_for(self, cube: CubeTemplate) -> Optional[Tint]:
        if cube.tint is None:
            return None
        tint = interpolate(cube.block_override or self.block, cube.tint, cube.arrays)
        try:
            if tint.startswith("#"):
                return hex_to_tint(tint)
            return argb_to_tint(tint)
        except ValueError:
            log.error("Invalid tint %r on block %s", tint, self.block.name)
            return None


def _texture_face(cube: CubeTemplate, face: str) -> str:
    textures: Dict[str, str] = cube.textures or {}
    if face in textures:
        return textures[face]
    if face in SIDE_FACES and "side" in textures:
        return textures["side"]
    return textures.get("*", face)


def _inherit_field(child: CubeTemplate, parent: CubeTemplate, name: str) -> None:
    parent_value = getattr(parent, name)
    child_value = getattr(child, name)
    if name in FLIP_FIELDS:
        faces = list(child_value or [])
        for face in parent_value:
            if face in faces:
                faces.remove(face)
            else:
                faces.append(face)
        setattr(child, name, faces)
    elif name == "extra_rots":
        setattr(child, name, [ExtraRotation(list(e.rot), list(e.pivot)) for e in parent_value] + (child_value or []))
    elif isinstance(parent_value, dict):
        setattr(child, name, {**parent_value, **(child_value or {})})
    elif child_value is None:
        setattr(child, name, parent_value)


def center_of_mass(cubes: Sequence[ResolvedCube]) -> Vec3:
    """Volume-weighted center; flat-only bones are weighted by surface instead."""

    for flat_weighting in (False, True):
        total = 0.0
        center = [0.0, 0.0, 0.0]
        for cube in cubes:
            dims = [max(s, 1.0) for s in cube.size] if flat_weighting else cube.size
            mass = dims[0] * dims[1] * dims[2]
            total += mass
            for i in range(3):
                center[i] += (cube.origin[i] + cube.size[i] / 2.0) * mass
        if total > 0:
            return [c / total for c in center]
    if cubes:
        log.error("Bone has zero mass")
    return list(BLOCK_CENTER)


def scale_cubes(cubes: List[ResolvedCube], scale: float) -> List[ResolvedCube]:
    """Scale cubes toward their center of mass; sizes and pivots scale along."""

    if scale == 1.0 or not cubes:
        return cubes
    center = center_of_mass(cubes)

    def scaled(point: Vec3) -> Vec3:
        return [(p - c) * scale + c for p, c in zip(point, center)]

    for cube in cubes:
        cube.origin = scaled(cube.origin)
        cube.size = [s * scale for s in cube.size]
        if cube.pivot is not None:
            cube.pivot = scaled(cube.pivot)
        for extra in cube.extra_rotations:
            extra.pivot = scaled(extra.pivot)
    return cubes
