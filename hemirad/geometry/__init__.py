"""
Hemirad Geometry Module

Scene mesh model (vertices, patches, elements) and vector helpers.
"""

from hemirad.geometry.mesh import (
    Element,
    GeometryError,
    Patch,
    PatchSpec,
    ReflectanceRangeError,
    Scene,
    SceneError,
    build_scene,
)

__all__ = [
    "Element",
    "GeometryError",
    "Patch",
    "PatchSpec",
    "ReflectanceRangeError",
    "Scene",
    "SceneError",
    "build_scene",
]
