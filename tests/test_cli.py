from __future__ import annotations

import json

from blockatlas.cli import build_parser, main

from conftest import png_bytes


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def test_cli_writes_outputs(tmp_path):
    data = tmp_path / "data"
    rp = tmp_path / "rp"
    out = tmp_path / "out"
    _write_json(data / "blockShapes.json", {"individual_blocks": {}, "patterns": {}})
    _write_json(data / "blockShapeGeos.json", {"block": [{"pos": [0, 0, 0], "size": [16, 16, 16]}]})
    _write_json(rp / "blocks.json", {"stone": {"textures": "stone"}})
    _write_json(rp / "textures" / "terrain_texture.json", {"texture_data": {"stone": {"textures": "textures/blocks/stone"}}})
    (rp / "textures" / "blocks").mkdir(parents=True)
    (rp / "textures" / "blocks" / "stone.png").write_bytes(png_bytes(16, 16))
    _write_json(tmp_path / "palette.json", {"palette": [{"name": "minecraft:stone", "states": {}}, {"name": "minecraft:air"}]})

    code = main(
        [
            "--palette", str(tmp_path / "palette.json"),
            "--data-dir", str(data),
            "--resource-pack", str(rp),
            "--output-dir", str(out),
            "--glb", str(out / "preview.glb"),
            "--diagnostics-out", str(out / "diagnostics.json"),
            "--single-opacity",
        ]
    )
    assert code == 0
    assert (out / "hologram.png").exists()
    assert (out / "preview.glb").exists()
    bones = json.loads((out / "bones.json").read_text())
    assert len(bones) == 2
    assert bones[1] == {"cubes": []}
    uv_table = json.loads((out / "uv.json").read_text())
    assert uv_table["width"] == 16
    assert uv_table["fill_efficiency"] == 1.0
    diagnostics = json.loads((out / "diagnostics.json").read_text())
    assert all(set(d) == {"level", "source", "message"} for d in diagnostics)


def test_parser_defaults():
    args = build_parser().parse_args(["--palette", "p", "--data-dir", "d", "--resource-pack", "r", "--output-dir", "o"])
    assert args.scale == 0.95
    assert args.outline_width == 0.25
    assert args.resource_pack == ["r"]
    assert not args.strict
