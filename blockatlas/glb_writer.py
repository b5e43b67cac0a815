"""GLB export of positioned bones for inspecting the generated geometry and atlas."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

import numpy as np
from pygltflib import (
    GLTF2,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Image,
    Material,
    Mesh,
    Node,
    PbrMetallicRoughness,
    Primitive,
    Sampler,
    Scene,
    Texture,
    TextureInfo,
)

from .model import BLOCK_CENTER, BoneTemplate, ResolvedCube, Vec3


ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

UNSIGNED_INT = 5125
FLOAT = 5126

ACCESSOR_TYPE_SCALAR = "SCALAR"
ACCESSOR_TYPE_VEC3 = "VEC3"
ACCESSOR_TYPE_VEC2 = "VEC2"

# block-space units per glTF metre
UNITS_PER_METRE = 16.0

# Corner i of a face sits at pos + size * corner; corner i samples
# (u + size_u * (i & 1), v + size_v * (i >> 1)).
FACE_CORNERS = {
    "west": ((1, 1, 0), (1, 1, 1), (1, 0, 0), (1, 0, 1)),
    "east": ((0, 1, 1), (0, 1, 0), (0, 0, 1), (0, 0, 0)),
    "down": ((0, 0, 0), (1, 0, 0), (0, 0, 1), (1, 0, 1)),
    "up": ((0, 1, 1), (1, 1, 1), (0, 1, 0), (1, 1, 0)),
    "north": ((0, 1, 0), (1, 1, 0), (0, 0, 0), (1, 0, 0)),
    "south": ((1, 1, 1), (0, 1, 1), (1, 0, 1), (0, 0, 1)),
}
FACE_NORMALS = {
    "west": (1.0, 0.0, 0.0),
    "east": (-1.0, 0.0, 0.0),
    "down": (0.0, -1.0, 0.0),
    "up": (0.0, 1.0, 0.0),
    "north": (0.0, 0.0, -1.0),
    "south": (0.0, 0.0, 1.0),
}
QUAD_INDICES = (0, 2, 1, 1, 2, 3)


def _align4(n: int) -> int:
    return int(math.ceil(n / 4.0) * 4)


def apply_euler_rotation(points: np.ndarray, rotation: Vec3, pivot: Vec3) -> np.ndarray:
    """Rotate (N, 3) points about ``pivot`` by X, then Y, then Z degrees (geometry convention)."""

    res = np.asarray(points, dtype=np.float64) - np.asarray(pivot, dtype=np.float64)
    for a, b, angle in ((1, 2, rotation[0]), (0, 2, rotation[1]), (0, 1, rotation[2])):
        if not angle:
            continue
        rad = math.radians(-float(angle))
        c, s = math.cos(rad), math.sin(rad)
        pa = res[:, a] * c - res[:, b] * s
        pb = res[:, a] * s + res[:, b] * c
        res[:, a] = pa
        res[:, b] = pb
    return res + np.asarray(pivot, dtype=np.float64)


def _rotate_cube_points(points: np.ndarray, cube: ResolvedCube, bone: BoneTemplate, pivot_only: bool = False) -> np.ndarray:
    # pivot_only: rotate directions (normals) about the origin
    def pivot(p: Sequence[float] | None) -> Vec3:
        if pivot_only:
            return [0.0, 0.0, 0.0]
        return list(p if p is not None else BLOCK_CENTER)

    if cube.rotation is not None:
        points = apply_euler_rotation(points, cube.rotation, pivot(cube.pivot))
    for extra in reversed(cube.extra_rotations):
        points = apply_euler_rotation(points, extra.rot, pivot(extra.pivot))
    if bone.rotation is not None:
        points = apply_euler_rotation(points, bone.rotation, pivot(bone.pivot))
    return points


@dataclass(slots=True)
class BoneMesh:
    name: str
    positions: np.ndarray  # (N, 3) metres
    normals: np.ndarray  # (N, 3)
    texcoords: np.ndarray  # (N, 2) normalized atlas coordinates
    indices: np.ndarray  # (M,)


def bone_mesh(bone: BoneTemplate, *, texture_width: float, texture_height: float, name: str = "bone") -> BoneMesh | None:
    """Triangle mesh for one positioned bone, with UVs normalized to the atlas."""

    positions: List[np.ndarray] = []
    normals: List[np.ndarray] = []
    texcoords: List[List[float]] = []
    indices: List[int] = []
    vertex_count = 0
    for cube in bone.cubes:
        origin = np.asarray(cube.origin, dtype=np.float64)
        size = np.asarray(cube.size, dtype=np.float64)
        for face, face_uv in cube.face_uvs.items():
            corners = origin + size * np.asarray(FACE_CORNERS[face], dtype=np.float64)
            normal = np.asarray([FACE_NORMALS[face]], dtype=np.float64)
            positions.append(_rotate_cube_points(corners, cube, bone))
            normals.append(np.repeat(_rotate_cube_points(normal, cube, bone, pivot_only=True), 4, axis=0))
            for i in range(4):
                texcoords.append(
                    [
                        (face_uv.uv[0] + face_uv.uv_size[0] * (i & 1)) / texture_width,
                        (face_uv.uv[1] + face_uv.uv_size[1] * (i >> 1)) / texture_height,
                    ]
                )
            indices.extend(vertex_count + i for i in QUAD_INDICES)
            vertex_count += 4
    if not positions:
        return None
    return BoneMesh(
        name=name,
        positions=np.concatenate(positions) / UNITS_PER_METRE,
        normals=np.concatenate(normals),
        texcoords=np.asarray(texcoords),
        indices=np.asarray(indices),
    )


def write_bones_glb(
    output_path: str | Path,
    bones: Sequence[BoneTemplate],
    *,
    texture_png: bytes,
    texture_width: float,
    texture_height: float,
    name_prefix: str | None = None,
) -> int:
    """Write positioned bones as a GLB scene; returns the number of meshes written."""

    meshes = []
    for i, bone in enumerate(bones):
        mesh = bone_mesh(bone, texture_width=texture_width, texture_height=texture_height, name=f"bone_{i}")
        if mesh is not None:
            meshes.append(mesh)
    write_glb_scene(str(output_path), meshes=meshes, texture_png=texture_png, name_prefix=name_prefix)
    return len(meshes)


class _GlbBuffer:
    """Single binary buffer with 4-byte aligned views and their accessors."""

    def __init__(self) -> None:
        self.blob = bytearray()
        self.views: List[BufferView] = []
        self.accessors: List[Accessor] = []

    def view(self, data: bytes, target: int | None = None) -> int:
        offset = len(self.blob)
        self.blob.extend(data)
        self.blob.extend(b"\x00" * (_align4(len(self.blob)) - len(self.blob)))
        self.views.append(BufferView(buffer=0, byteOffset=offset, byteLength=len(data), target=target))
        return len(self.views) - 1

    def accessor(self, array: np.ndarray, *, kind: str, with_bounds: bool = False) -> int:
        component = UNSIGNED_INT if kind == ACCESSOR_TYPE_SCALAR else FLOAT
        target = ELEMENT_ARRAY_BUFFER if kind == ACCESSOR_TYPE_SCALAR else ARRAY_BUFFER
        accessor = Accessor(
            bufferView=self.view(array.tobytes(), target),
            componentType=component,
            count=int(array.shape[0]),
            type=kind,
        )
        if with_bounds:
            accessor.min = array.min(axis=0).tolist()
            accessor.max = array.max(axis=0).tolist()
        self.accessors.append(accessor)
        return len(self.accessors) - 1


def write_glb_scene(output_path: str, *, meshes: Sequence[BoneMesh], texture_png: bytes, name_prefix: str | None = None) -> None:
    """One node per mesh; every mesh shares the alpha-blended atlas material."""

    buf = _GlbBuffer()
    image_view = buf.view(texture_png)

    def named(suffix: str) -> str | None:
        return f"{name_prefix}_{suffix}" if name_prefix else None

    gltf_meshes: List[Mesh] = []
    for mesh in meshes:
        positions = np.asarray(mesh.positions, dtype=np.float32)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError("positions must be (N,3)")
        if mesh.normals.shape != positions.shape:
            raise ValueError("normals must match positions")
        if mesh.texcoords.shape != (positions.shape[0], 2):
            raise ValueError("texcoords must be (N,2)")
        attributes = Attributes(
            POSITION=buf.accessor(positions, kind=ACCESSOR_TYPE_VEC3, with_bounds=True),
            NORMAL=buf.accessor(np.asarray(mesh.normals, dtype=np.float32), kind=ACCESSOR_TYPE_VEC3),
            TEXCOORD_0=buf.accessor(np.asarray(mesh.texcoords, dtype=np.float32), kind=ACCESSOR_TYPE_VEC2),
        )
        indices = buf.accessor(np.asarray(mesh.indices, dtype=np.uint32), kind=ACCESSOR_TYPE_SCALAR)
        gltf_meshes.append(Mesh(name=mesh.name, primitives=[Primitive(attributes=attributes, indices=indices, material=0)]))

    material = Material(
        name=named("mat"),
        pbrMetallicRoughness=PbrMetallicRoughness(
            baseColorFactor=[1.0, 1.0, 1.0, 1.0],
            baseColorTexture=TextureInfo(index=0),
            metallicFactor=0.0,
            roughnessFactor=1.0,
        ),
        alphaMode="BLEND",
        doubleSided=True,
    )
    gltf = GLTF2(
        asset=Asset(version="2.0"),
        buffers=[Buffer(byteLength=len(buf.blob))],
        bufferViews=buf.views,
        accessors=buf.accessors,
        meshes=gltf_meshes,
        images=[Image(bufferView=image_view, mimeType="image/png", name=named("atlas"))],
        # nearest, clamp to edge
        samplers=[Sampler(magFilter=9728, minFilter=9728, wrapS=33071, wrapT=33071)],
        textures=[Texture(sampler=0, source=0, name=named("texture"))],
        materials=[material],
        nodes=[Node(mesh=i, name=m.name) for i, m in enumerate(gltf_meshes)],
        scenes=[Scene(nodes=list(range(len(gltf_meshes))))],
        scene=0,
    )
    gltf.set_binary_blob(bytes(buf.blob))
    gltf.save_binary(output_path)
