"""Block value interpolation and block state conditionals used by shape templates.

Interpolation replaces ``${...}`` placeholders in template strings::

    ${Array.colors[entity.Color]}             array lookup keyed by entity data
    ${Array.colors[color]}                    ... or by a block state
    ${#block_name[:-5]}                       path expression with slicing
    ${#block_states.wood_type ?? oak}         default when undefined/empty
    ${#block_entity_data.Item.Name ?? SET_WHOLE_STRING(none)}

Conditionals are ``&&``/``||`` chains of block state comparisons, with ``&&``
binding tighter than ``||``::

    facing_direction==2&&open_bit==1||entity.Lit==1
    entity.Flags&4!=0
    rail_data_bit??0==1

Malformed input is logged and never raises: interpolation yields an empty
substitution and conditionals evaluate to ``True`` so that broken rules show
up as extra geometry instead of silently hiding it.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .model import Block, js_string

log = logging.getLogger(__name__)

COPIED_VIA_COPY_BLOCK = "#copied_via_copy_block"

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")
_ARRAY_RE = re.compile(r"^Array\.(\w+)\[([^\[]+)\]$")
_PATH_RE = re.compile(
    r"^(#block_name|#block_states|#block_entity_data)"
    r"((?:\.\w+|\[-?\d+\])*)"
    r"(\[(-?\d+):(-?\d*)\]|\[:(-?\d+)\])?"
    r"(?:\?\?(.+))?$"
)
_ACCESSOR_RE = re.compile(r"\.(\w+)|\[(-?\d+)\]")
_WHOLE_STRING_RE = re.compile(r"SET_WHOLE_STRING\(([^)]+)\)")

_BOOLEAN_OP_RE = re.compile(r"&&|\|\|")
_COMPARISON_RE = re.compile(r"^((?:entity\.)?[\w:]+(?:(?:\?\?|&)-?\w+)?)(==|!=|>=|<=|>|<)(-?\w+)$")
_STATE_TERM_RE = re.compile(r"^(entity\.)?([\w:]+)(?:(\?\?|&)(-?\w+))?$")

_MISSING = object()


class _WholeString(Exception):
    def __init__(self, value: str) -> None:
        super().__init__(value)
        self.value = value


def interpolate(block: Block, template: str, arrays: Optional[Dict[str, list]] = None) -> str:
    """Substitute block values into every ``${...}`` placeholder of ``template``."""

    try:
        return _PLACEHOLDER_RE.sub(lambda m: _substitute(block, m.group(1), m.group(0), arrays or {}), template)
    except _WholeString as whole:
        return whole.value


def _substitute(block: Block, expression: str, bracketed: str, arrays: Dict[str, list]) -> str:
    array_match = _ARRAY_RE.match(expression)
    if array_match:
        return _array_lookup(block, array_match.group(1), array_match.group(2), arrays)

    match = _PATH_RE.match(re.sub(r"\s", "", expression))
    if not match:
        log.error("Wrongly formatted expression: %s", bracketed)
        return ""
    special_var, chain, slicing, start, end, end_only, default = match.groups()

    value: Any
    if special_var == "#block_name":
        value = block.name
    elif special_var == "#block_states":
        value = block.states
    else:
        value = block.block_entity_data

    for key, index in _ACCESSOR_RE.findall(chain):
        value = _access(value, key if key else int(index))

    if slicing is not None and value is not None:
        lo = int(start) if start else None
        if end_only:
            hi: Optional[int] = int(end_only)
        else:
            hi = int(end) if end else None
        try:
            value = value[lo:hi]
        except TypeError:
            value = None

    if value is None or value == "":
        if default is None:
            log.error("Nothing for %s%s in block %s", special_var, chain, block.name)
            return ""
        whole = _WHOLE_STRING_RE.search(default)
        if whole:
            raise _WholeString(whole.group(1))
        value = default

    log.debug("Changed %s to %s for %s", bracketed, value, block.name)
    return js_string(value)


def _access(value: Any, key: Any) -> Any:
    if value is None:
        return None
    if isinstance(key, int):
        if key < 0 or not isinstance(value, (list, tuple, str)) or key >= len(value):
            return None
        return value[key]
    if isinstance(value, dict):
        return value.get(key)
    return None


def _array_lookup(block: Block, array_name: str, index_var: str, arrays: Dict[str, list]) -> str:
    array = arrays.get(array_name)
    if array is None:
        log.error("Couldn't find array %s in cube", array_name)
        return ""
    if index_var.startswith("entity."):
        prop = index_var[len("entity."):]
        data = block.block_entity_data
        if data is None or prop not in data:
            log.error("Cannot find block entity property %s in %s", prop, block.name)
            return ""
        index = data[prop]
    else:
        if index_var not in block.states:
            log.error("Cannot find block state %s in %s", index_var, block.name)
            return ""
        index = block.states[index_var]
    try:
        i = int(index)
    except (TypeError, ValueError):
        i = -1
    if i < 0 or i >= len(array) or isinstance(index, bool):
        log.error("Array index out of bounds: %s[%s]", array_name, index)
        return ""
    return js_string(array[i])


def evaluate_conditional(block: Block, conditional: str) -> bool:
    """Evaluate a block state conditional; ``&&`` binds tighter than ``||``."""

    trimmed = re.sub(r"\s", "", conditional)
    operators = _BOOLEAN_OP_RE.findall(trimmed)
    values = [_evaluate_term(block, term, conditional) for term in _BOOLEAN_OP_RE.split(trimmed)]

    and_groups: List[bool] = [values[0]]
    for op, value in zip(operators, values[1:]):
        if op == "&&":
            and_groups[-1] = and_groups[-1] and value
        else:
            and_groups.append(value)
    return any(and_groups)


def _evaluate_term(block: Block, term: str, conditional: str) -> bool:
    if term == COPIED_VIA_COPY_BLOCK:
        return block.copied_via_copy_block
    if term == "!" + COPIED_VIA_COPY_BLOCK:
        return not block.copied_via_copy_block

    match = _COMPARISON_RE.match(term)
    if not match:
        log.error('Incorrectly formatted block state expression "%s" from conditional "%s"', term, conditional)
        return True
    state_term, comparison, expected = match.groups()
    operation = _STATE_TERM_RE.match(state_term)
    if not operation:
        log.error("Incorrectly formed block state term: %s", state_term)
        return True
    using_entity_data, state_name, operator, operand_string = operation.groups()

    source_name = "block_entity_data" if using_entity_data else "states"
    data = block.block_entity_data if using_entity_data else block.states
    if data is None:
        log.error("No %s in block %s", source_name, block.name)
        return True
    if operator != "??" and state_name not in data:
        log.error("Cannot find %s %s on block %s", source_name, state_name, block.name)
        return True
    actual = data.get(state_name, _MISSING)

    if operator:
        try:
            operand = int(operand_string)
        except ValueError:
            log.error("%s operand %s is not a number", source_name, operand_string)
            return True
        if operator == "&":
            actual = _to_int32(actual) & _to_int32(operand)
        elif actual is _MISSING or actual is None:
            actual = operand

    return _compare(actual, comparison, expected)


def _to_int32(value: Any) -> int:
    """Signed 32-bit integer for bitwise operators; non-numbers become 0."""

    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    number &= 0xFFFFFFFF
    return number - 2**32 if number >= 2**31 else number


def _compare(actual: Any, comparison: str, expected: str) -> bool:
    """Compare a stored state value against the literal from the expression.

    Numbers (and booleans, stored as bytes) compare numerically; strings
    compare as strings. A number against a non-numeric literal never matches.
    """

    if isinstance(actual, (bool, int, float)):
        try:
            left: Any = float(actual)
            right: Any = float(expected)
        except ValueError:
            return comparison == "!="
    else:
        left = js_string(actual)
        right = expected
    if comparison == "==":
        return left == right
    if comparison == "!=":
        return left != right
    if comparison == ">":
        return left > right
    if comparison == "<":
        return left < right
    if comparison == ">=":
        return left >= right
    return left <= right
