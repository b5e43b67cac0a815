"""Command line interface for the block atlas pipeline."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .glb_writer import write_bones_glb
from .images import DirectoryFetcher
from .model import position_bone_template
from .pipeline import AtlasOptions, PipelineOptions, build, write_bones_json
from .tables import RuleTables
from .uv_export import write_uv_json

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blockatlas")
    parser.add_argument("--palette", required=True, help="JSON block palette (list of {name, states, block_entity_data})")
    parser.add_argument("--data-dir", required=True, help="Folder with blockShapes.json, blockShapeGeos.json, ...")
    parser.add_argument(
        "--resource-pack",
        action="append",
        required=True,
        help="Unpacked resource pack folder; repeat to stack packs (earlier ones win)",
    )
    parser.add_argument("--output-dir", required=True, help="Folder for atlas PNGs, bones.json and uv.json")

    parser.add_argument("--glb", help="Also write the palette laid out in a row as a GLB scene to this path")
    parser.add_argument("--diagnostics-out", help="Write captured diagnostics as JSON to this path")
    parser.add_argument("--log-level", default="WARNING", choices=("DEBUG", "INFO", "WARNING", "ERROR"), help="Console log level")

    parser.add_argument("--scale", type=float, default=0.95, help="Scale of every block toward its center of mass")
    parser.add_argument("--strict", action="store_true", help="Abort on programmer-error-class rule table problems")
    parser.add_argument("--max-workers", type=int, default=8, help="Concurrent image loads")

    parser.add_argument("--outline-width", type=float, default=0.25, help="Texture outline width in atlas pixels (0 disables)")
    parser.add_argument("--outline-color", default="#00F", help="Texture outline colour")
    parser.add_argument("--outline-opacity", type=float, default=0.65, help="Texture outline opacity")
    parser.add_argument("--single-opacity", action="store_true", help="Write one atlas image instead of one per opacity level")
    parser.add_argument("--opacity", type=float, default=0.9, help="Atlas opacity with --single-opacity")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = getattr(logging, args.log_level)
    # diagnostics capture lowers the package logger level, so filter on the handler
    console = logging.StreamHandler()
    console.setLevel(level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", handlers=[console])

    atlas_opts = AtlasOptions(
        outline_width=args.outline_width,
        outline_color=args.outline_color,
        outline_opacity=args.outline_opacity,
        multiple_opacities=not args.single_opacity,
        opacity=args.opacity,
    )
    pipeline_opts = PipelineOptions(
        scale=args.scale,
        strict=bool(args.strict),
        max_workers=args.max_workers,
        atlas=atlas_opts,
    )

    palette = json.loads(Path(args.palette).read_text(encoding="utf-8"))
    if isinstance(palette, dict):
        palette = palette.get("palette", [])
    tables = RuleTables.load(args.data_dir, args.resource_pack[0])
    fetcher = DirectoryFetcher(*args.resource_pack)

    result = build(palette, tables, fetcher, options=pipeline_opts)

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for name, png in result.atlas.images.items():
        (out_dir / f"{name}.png").write_bytes(png)
    write_bones_json(out_dir / "bones.json", result.bones)
    write_uv_json(
        out_dir / "uv.json",
        width=result.atlas.width,
        height=result.atlas.height,
        fill_efficiency=result.atlas.fill_efficiency,
        uvs=result.uvs,
    )

    if args.glb:
        positioned = [position_bone_template(bone, [i * 16.0, 0.0, 0.0]) for i, bone in enumerate(result.bones)]
        write_bones_glb(
            args.glb,
            positioned,
            texture_png=next(iter(result.atlas.images.values())),
            texture_width=result.atlas.width,
            texture_height=result.atlas.height,
            name_prefix=Path(args.glb).stem,
        )

    if args.diagnostics_out:
        diag_path = Path(args.diagnostics_out)
        if diag_path.parent:
            diag_path.parent.mkdir(parents=True, exist_ok=True)
        diag_path.write_text(json.dumps([d.to_dict() for d in result.diagnostics], indent=2) + "\n", encoding="utf-8")

    errors = [d for d in result.diagnostics if d.level in ("ERROR", "CRITICAL")]
    log.info(
        "Wrote %d atlas image(s), %d bones, %d diagnostics (%d errors) to %s",
        len(result.atlas.images),
        len(result.bones),
        len(result.diagnostics),
        len(errors),
        out_dir,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
