"""High-level pipeline tying together bone expansion, texture resolution, image loading and atlas packing."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from . import atlas as atlas_mod
from .atlas import DEFAULT_OPACITY_LEVELS, AtlasBuildResult, ImageUv
from .diagnostics import Diagnostic, capture_diagnostics
from .expander import DEFAULT_IGNORED_BLOCKS, BoneTemplateMaker
from .images import Crop, Fetcher, ImageCache, load_image_fragments
from .model import Block, BoneTemplate, FaceUv, ResolvedCube
from .tables import RuleTables
from .texrefs import TextureFragment, TextureReference, TextureResolver

log = logging.getLogger(__name__)

DEFAULT_IGNORED_BLOCK_ENTITIES = (
    "Beacon",
    "Beehive",
    "Bell",
    "BrewingStand",
    "ChiseledBookshelf",
    "CommandBlock",
    "Comparator",
    "Conduit",
    "EnchantTable",
    "EndGateway",
    "JigsawBlock",
    "Lodestone",
    "SculkCatalyst",
    "SculkShrieker",
    "SculkSensor",
    "CalibratedSculkSensor",
    "StructureBlock",
    "BrushableBlock",
    "TrialSpawner",
    "Vault",
)


@dataclass(slots=True)
class AtlasOptions:
    outline_width: float = 0.25  # atlas pixels; 0 disables outlines
    outline_color: str = "#00F"
    outline_opacity: float = 0.65
    outline_alpha_threshold: int = 0
    multiple_opacities: bool = True
    opacity: float = 0.9  # used when multiple_opacities is off
    opacity_levels: Tuple[float, ...] = DEFAULT_OPACITY_LEVELS


@dataclass(slots=True)
class PipelineOptions:
    scale: float = 0.95
    strict: bool = False
    ignored_blocks: Tuple[str, ...] = DEFAULT_IGNORED_BLOCKS
    ignored_block_entities: Tuple[str, ...] = DEFAULT_IGNORED_BLOCK_ENTITIES
    max_workers: int = 8
    atlas: AtlasOptions = field(default_factory=AtlasOptions)


@dataclass(slots=True)
class PipelineResult:
    bones: List[BoneTemplate]
    texture_refs: List[TextureReference]
    fragments: List[TextureFragment]
    # per texture reference: index of its fragment / its final atlas placement
    fragment_indices: List[int]
    uvs: List[ImageUv]
    atlas: AtlasBuildResult
    diagnostics: List[Diagnostic] = field(default_factory=list)


def build(
    palette: Sequence[Block | dict],
    tables: RuleTables,
    fetcher: Fetcher,
    *,
    options: PipelineOptions | None = None,
    image_cache: ImageCache | None = None,
) -> PipelineResult:
    """Run the whole pipeline for one block palette."""

    opts = options or PipelineOptions()
    _validate(opts)

    with capture_diagnostics() as diagnostics:
        blocks = prepare_palette(
            palette,
            ignored_block_entities=tuple(opts.ignored_block_entities) + tuple(tables.ignored_block_entities),
        )
        maker = BoneTemplateMaker(
            tables,
            scale=float(opts.scale),
            strict=bool(opts.strict),
            ignored_blocks=opts.ignored_blocks,
        )
        bones = [
            BoneTemplate() if block.name in maker.ignored_blocks else maker.make_bone_template(block)
            for block in blocks
        ]
        texture_refs = list(maker.texture_refs)
        log.info("%d blocks -> %d texture references", len(blocks), len(texture_refs))

        fragment_set, fragment_indices = TextureResolver(tables).resolve_all(texture_refs)
        fragments = list(fragment_set)
        image_fragments = load_image_fragments(
            fragments,
            fetcher,
            flipbook_sizes=tables.flipbook_sizes(),
            max_workers=int(opts.max_workers),
            cache=image_cache,
        )

        atlas_result = atlas_mod.build_atlas(
            image_fragments,
            outline_width=float(opts.atlas.outline_width),
            outline_color=str(opts.atlas.outline_color),
            outline_opacity=float(opts.atlas.outline_opacity),
            outline_alpha_threshold=int(opts.atlas.outline_alpha_threshold),
            multiple_opacities=bool(opts.atlas.multiple_opacities),
            opacity=float(opts.atlas.opacity),
            opacity_levels=tuple(opts.atlas.opacity_levels),
        )
        uvs = [atlas_result.uvs[i] for i in fragment_indices]
        for bone in bones:
            resolve_bone_uvs(bone, uvs)

    return PipelineResult(
        bones=bones,
        texture_refs=texture_refs,
        fragments=fragments,
        fragment_indices=fragment_indices,
        uvs=uvs,
        atlas=atlas_result,
        diagnostics=list(diagnostics.records),
    )


def _validate(opts: PipelineOptions) -> None:
    if opts.scale <= 0:
        raise ValueError("scale must be > 0")
    if opts.max_workers < 1:
        raise ValueError("max_workers must be >= 1")


def prepare_palette(palette: Iterable[Block | dict], *, ignored_block_entities: Iterable[str] = ()) -> List[Block]:
    """Normalize palette entries: strip the ``minecraft:`` namespace and drop unsupported block entity data."""

    ignored = set(ignored_block_entities)
    blocks: List[Block] = []
    for entry in palette:
        block = Block.from_dict(entry) if isinstance(entry, dict) else entry.with_states({})
        block.name = re.sub(r"^minecraft:", "", block.name)
        data = block.block_entity_data
        if data is not None:
            if data.get("id") in ignored:
                block.block_entity_data = None
            else:
                block.block_entity_data = {k: v for k, v in data.items() if k not in ("x", "y", "z")}
        blocks.append(block)
    return blocks


def resolve_bone_uvs(bone: BoneTemplate, uvs: Sequence[ImageUv]) -> None:
    """Replace texture reference indices on every cube face with atlas UVs."""

    for cube in bone.cubes:
        for face, ref_index in cube.uv.items():
            image_uv = uvs[ref_index]
            u, v = image_uv.uv
            su, sv = image_uv.uv_size
            flip = cube.flips.get(face)
            # up/down faces are rotated 180 degrees in block textures
            upside_down = face in ("down", "up")
            if upside_down ^ bool(flip and flip.horizontal):
                u, su = u + su, -su
            if upside_down ^ bool(flip and flip.vertical):
                v, sv = v + sv, -sv
            cube.face_uvs[face] = FaceUv(uv=[u, v], uv_size=[su, sv])
            if image_uv.crop is not None:
                apply_crop(cube, image_uv.crop)


def apply_crop(cube: ResolvedCube, crop: Crop) -> None:
    """Shrink a flat cube to the cropped part of its texture."""

    o = cube.origin
    s = cube.size
    if s[0] == 0:
        o[2] += s[2] * crop.x
        o[1] += s[1] * (1 - crop.h - crop.y)
        s[2] *= crop.w
        s[1] *= crop.h
    elif s[1] == 0:
        o[0] += s[0] * (1 - crop.w - crop.x)
        o[2] += s[2] * (1 - crop.h - crop.y)
        s[0] *= crop.w
        s[2] *= crop.h
    elif s[2] == 0:
        o[0] += s[0] * crop.x
        o[1] += s[1] * (1 - crop.h - crop.y)
        s[0] *= crop.w
        s[1] *= crop.h


def write_bones_json(path: str | Path, bones: Sequence[BoneTemplate]) -> None:
    out_path = Path(path)
    if out_path.parent:
        out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps([bone.to_dict() for bone in bones], indent=2) + "\n", encoding="utf-8")
