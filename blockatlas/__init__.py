"""Block palette -> bone geometry + packed texture atlas compiler."""

from .diagnostics import BlockAtlasError, StrictModeError, capture_diagnostics
from .model import Block, BoneTemplate, position_bone_template
from .pipeline import AtlasOptions, PipelineOptions, PipelineResult, build
from .tables import RuleTables

__all__ = [
    "AtlasOptions",
    "Block",
    "BlockAtlasError",
    "BoneTemplate",
    "PipelineOptions",
    "PipelineResult",
    "RuleTables",
    "StrictModeError",
    "build",
    "capture_diagnostics",
    "position_bone_template",
]
