"""Block-state-driven rotations and terrain texture variant indices."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Tuple

from .model import Block, Vec3, lookup_state_value
from .shapes import ShapeResolver, split_shape_id
from .tables import RuleTables

log = logging.getLogger(__name__)

EXCLUSIVE_ADD = "#exclusive_add"


class _ScopedRules:
    """One rule family (rotations or texture variants) split into its scopes."""

    def __init__(self, defs: Dict[str, Any]) -> None:
        self.global_rules: Dict[str, Any] = dict(defs.get("*", {}))
        self.by_shape: Dict[str, Dict[str, Any]] = {}
        self.by_name: Dict[str, Dict[str, Any]] = {}
        self.by_name_pattern: List[Tuple[Pattern[str], Dict[str, Any]]] = []
        for shapes, rules in (defs.get("block_shapes") or {}).items():
            for shape in shapes.split(","):
                self.by_shape[shape] = rules
        for names, rules in (defs.get("block_names") or {}).items():
            if names.startswith("/") and names.endswith("/") and len(names) > 1:
                self.by_name_pattern.append((re.compile(names[1:-1]), rules))
            else:
                for name in names.split(","):
                    self.by_name[name] = rules

    def for_name(self, block_name: str) -> Optional[Dict[str, Any]]:
        rules = self.by_name.get(block_name)
        if rules is None:
            rules = next((r for pattern, r in self.by_name_pattern if pattern.search(block_name)), None)
        return rules

    def lookup(self, block_name: str, shape: str, state_name: str) -> Optional[Dict[str, Any]]:
        """Per-state rule: exact name > name pattern > shape > global."""

        for scope in (self.for_name(block_name), self.by_shape.get(shape), self.global_rules):
            if scope is not None and state_name in scope:
                return scope[state_name]
        return None


class RotationResolver:
    def __init__(self, tables: RuleTables) -> None:
        self._rules = _ScopedRules(tables.block_state_defs.get("rotations", {}))

    def rotation(self, block: Block, shape_id: str) -> Optional[Vec3]:
        """Whole-block rotation from block states; contributions of several states are summed."""

        shape, _ = split_shape_id(shape_id)
        rotation: Optional[Vec3] = None
        for state_name, value in block.state_entries():
            rotations = self._rules.lookup(block.name, shape, state_name)
            if rotations is None:
                continue
            found, rot = lookup_state_value(rotations, value)
            if not found:
                log.error("Block state value %r for rotation block state %s not found on %s", value, state_name, block.name)
                continue
            if rotation is None:
                rotation = [float(r) for r in rot]
            else:
                log.debug("Multiple rotation block states for block %s; adding them together", block.name)
                rotation = [a + float(b) for a, b in zip(rotation, rot)]
        return rotation


class VariantResolver:
    """Terrain texture variant index for a block; ``-1`` means unknown."""

    def __init__(self, tables: RuleTables, shapes: ShapeResolver) -> None:
        self._rules = _ScopedRules(tables.block_state_defs.get("texture_variants", {}))
        self._eigenvariants: Dict[str, int] = dict(tables.eigenvariants)
        self._shapes = shapes

    def variant(self, block: Block, ignore_eigenvariant: bool = False) -> int:
        name = block.name
        has_eigenvariant = name in self._eigenvariants
        if has_eigenvariant and not ignore_eigenvariant:
            variant = int(self._eigenvariants[name])
            log.debug("Using eigenvariant %d for block %s", variant, name)
            return variant
        if ignore_eigenvariant and not has_eigenvariant:
            log.warning("Cannot ignore eigenvariant of %s as it doesn't exist", name)

        # variants follow the block's own shape, even for cubes copied from another shape
        shape, _ = split_shape_id(self._shapes.resolve(name))
        entries = block.state_entries()

        shape_rules = self._rules.by_shape.get(shape)
        if shape_rules is not None and shape_rules.get(EXCLUSIVE_ADD):
            return self._exclusive_add(block, shape_rules, entries)
        name_rules = self._rules.for_name(name)
        if name_rules is not None and name_rules.get(EXCLUSIVE_ADD):
            return self._exclusive_add(block, name_rules, entries)
        if not block.states and not block.block_entity_data:
            return -1

        variant = -1
        for state_name, value in entries:
            variants = self._rules.lookup(name, shape, state_name)
            if variants is None:
                continue
            found, new_variant = lookup_state_value(variants, value)
            if not found:
                log.error("Block state value %r for texture-variating block state %s not found on %s", value, state_name, name)
                continue
            if variant != -1:
                log.warning("Multiple texture-variating block states for block %s; using %s", name, state_name)
            variant = int(new_variant)
        return variant

    @staticmethod
    def _exclusive_add(block: Block, rules: Dict[str, Any], entries: List[Tuple[str, Any]]) -> int:
        variant = 0
        for state_name, value in entries:
            if state_name == EXCLUSIVE_ADD or state_name not in rules:
                continue
            found, contribution = lookup_state_value(rules[state_name], value)
            if not found:
                log.error("Block state value %r for texture-variating block state %s not found on %s", value, state_name, block.name)
                continue
            variant += int(contribution)
        return variant
