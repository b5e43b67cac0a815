"""Block name -> block shape lookup."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from .tables import RuleTables

log = logging.getLogger(__name__)

DEFAULT_SHAPE = "block"

_SPECIAL_TEXTURE_RE = re.compile(r"^(\w+)\{(textures/[\w/]+)\}$")


class ShapeResolver:
    """Resolves block names to shape ids.

    Order: exact table, then the first matching pattern (later matches are
    shadowed), then ``"block"``. Results are memoized per block name.
    """

    def __init__(self, tables: RuleTables) -> None:
        self._individual: Dict[str, str] = dict(tables.block_shapes.get("individual_blocks", {}))
        self._patterns: List[Tuple[Pattern[str], str]] = [
            (re.compile(rule), shape) for rule, shape in tables.block_shapes.get("patterns", {}).items()
        ]
        self._cache: Dict[str, str] = {}

    def resolve(self, block_name: str) -> str:
        cached = self._cache.get(block_name)
        if cached is not None:
            return cached
        shape = self._individual.get(block_name)
        if shape is None:
            shape = next((s for pattern, s in self._patterns if pattern.search(block_name)), None)
        if shape is None:
            log.debug("No block shape for %s; using %r", block_name, DEFAULT_SHAPE)
            shape = DEFAULT_SHAPE
        self._cache[block_name] = shape
        return shape


def split_shape_id(shape_id: str) -> Tuple[str, Optional[str]]:
    """Split ``shape{textures/path}`` into the bare shape and its special texture path."""

    if "{" not in shape_id:
        return shape_id, None
    match = _SPECIAL_TEXTURE_RE.match(shape_id)
    if not match:
        log.error("Malformed block shape with special texture: %s", shape_id)
        return shape_id[: shape_id.index("{")], None
    return match.group(1), match.group(2)
