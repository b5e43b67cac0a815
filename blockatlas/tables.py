"""Static rule tables consumed by the pipeline.

All tables are plain parsed JSON. They are loaded once per run and treated as
read-only afterwards, so a single ``RuleTables`` instance can be shared by
every stage (and by concurrent image loads).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

log = logging.getLogger(__name__)

DATA_FILES = {
    "block_shapes": "blockShapes.json",
    "block_shape_geos": "blockShapeGeos.json",
    "block_state_defs": "blockStateDefinitions.json",
    "eigenvariants": "blockEigenvariants.json",
    "texture_atlas_mappings": "textureAtlasMappings.json",
}
RESOURCE_PACK_FILES = {
    "blocks_dot_json": "blocks.json",
    "terrain_texture": "textures/terrain_texture.json",
    "flipbook_textures": "textures/flipbook_textures.json",
}


@dataclass
class RuleTables:
    block_shapes: Dict[str, Any] = field(default_factory=lambda: {"individual_blocks": {}, "patterns": {}})
    block_shape_geos: Dict[str, List[dict]] = field(default_factory=dict)
    block_state_defs: Dict[str, Any] = field(default_factory=lambda: {"rotations": {"*": {}}, "texture_variants": {"*": {}}})
    eigenvariants: Dict[str, int] = field(default_factory=dict)
    texture_atlas_mappings: Dict[str, Any] = field(default_factory=dict)
    blocks_dot_json: Dict[str, Any] = field(default_factory=dict)
    terrain_texture: Dict[str, Any] = field(default_factory=lambda: {"texture_data": {}})
    flipbook_textures: List[dict] = field(default_factory=list)
    ignored_blocks: List[str] = field(default_factory=list)
    ignored_block_entities: List[str] = field(default_factory=list)

    @classmethod
    def from_dicts(cls, **tables: Any) -> "RuleTables":
        unknown = set(tables) - {f for f in cls.__dataclass_fields__}
        if unknown:
            raise ValueError(f"unknown rule tables: {', '.join(sorted(unknown))}")
        return cls(**tables)

    @classmethod
    def load(cls, data_dir: str | Path, resource_pack_dir: str | Path | None = None) -> "RuleTables":
        """Load tables from a data directory and (optionally) an unpacked resource pack."""

        data_dir = Path(data_dir)
        loaded: Dict[str, Any] = {}
        for attr, name in DATA_FILES.items():
            path = data_dir / name
            if path.exists():
                loaded[attr] = _read_json(path)
            else:
                log.warning("Rule table %s not found in %s", name, data_dir)
        extra = data_dir / "ignored.json"
        if extra.exists():
            ignored = _read_json(extra)
            loaded["ignored_blocks"] = list(ignored.get("blocks", []))
            loaded["ignored_block_entities"] = list(ignored.get("block_entities", []))
        if resource_pack_dir is not None:
            rp = Path(resource_pack_dir)
            for attr, name in RESOURCE_PACK_FILES.items():
                path = rp / name
                if path.exists():
                    loaded[attr] = _read_json(path)
                else:
                    log.warning("Resource pack file %s not found in %s", name, rp)
        return cls(**loaded)

    # texture atlas mapping accessors
    @property
    def blocks_dot_json_patches(self) -> Dict[str, str]:
        return self.texture_atlas_mappings.get("blocks_dot_json_patches", {})

    @property
    def blocks_to_use_carried_textures(self) -> List[str]:
        return self.texture_atlas_mappings.get("blocks_to_use_carried_textures", [])

    @property
    def transparent_blocks(self) -> Dict[str, float]:
        return self.texture_atlas_mappings.get("transparent_blocks", {})

    @property
    def terrain_texture_tints(self) -> Dict[str, Any]:
        tints = self.texture_atlas_mappings.get("terrain_texture_tints", {})
        return {"terrain_texture_keys": tints.get("terrain_texture_keys", {}), "colors": tints.get("colors", {})}

    def flipbook_sizes(self) -> Dict[str, int]:
        """Texture path -> number of frames replicated along the strip."""

        sizes: Dict[str, int] = {}
        for key in self.texture_atlas_mappings.get("missing_flipbook_textures", []):
            sizes[key] = 1
        for entry in self.flipbook_textures:
            sizes[entry["flipbook_texture"]] = int(entry.get("replicate", 1))
        return sizes


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))
