"""UV JSON export helper."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import json

from .atlas import ImageUv


def write_uv_json(
    path: str | Path,
    *,
    width: int,
    height: int,
    fill_efficiency: float,
    uvs: Sequence[ImageUv],
) -> None:
    """Write the atlas UV table, one texture reference per line, indexed like the bone cube UVs."""

    out_path = Path(path)
    if out_path.parent:
        out_path.parent.mkdir(parents=True, exist_ok=True)

    header = [("width", width), ("height", height), ("fill_efficiency", round(float(fill_efficiency), 6))]
    lines = ["{"]
    for key, value in header:
        lines.append(f"  {json.dumps(key)}:{json.dumps(value)},")
    lines.append('  "uvs":[')
    for idx, uv in enumerate(uvs):
        comma = "," if idx != len(uvs) - 1 else ""
        lines.append(f"    {json.dumps(uv.to_dict(), ensure_ascii=False, separators=(',', ':'))}{comma}")
    lines.append("  ]")
    lines.append("}")
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
