"""
Hemirad Hemicube Estimator

Estimates patch-to-element form factors with the hemicube method
(Cohen & Greenberg, 1985). A unit hemicube is centered on the source patch
and oriented along its normal. Each of its five faces is a grid of pixels;
every pixel records the element nearest to the eye in its direction, and
contributes its delta form factor to that element:

    front face:  dF = dA / (pi * r^4)
    side faces:  dF = y * dA / (pi * r^4)

with ``r^2 = x^2 + y^2 + 1`` at the pixel center (hemicube units, the eye at
distance 1 from every face) and ``y`` the height above the patch plane on a
side face. The pixel area ``dA`` is ``(2 / N)^2`` on every face, so the delta
form factors of the whole hemicube sum to one.

Visibility is a pure function of the scene (a software z-buffer compiled
with numba), so the estimate does not depend on any rendering context.

References:
- Cohen & Greenberg: "The Hemi-Cube: A Radiosity Solution for Complex
  Environments" (SIGGRAPH 1985)
- Cohen & Wallace: "Radiosity and Realistic Image Synthesis" (1993)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Sequence, Tuple

import numpy as np

from hemirad.engine.radiosity._hemicube_jit import rasterize_nearest
from hemirad.geometry.core import WORLD_SECONDARY, WORLD_UP, as_vec3, orthonormal_frame
from hemirad.geometry.mesh import Scene

# Distance from the eye to the front face; side faces are half as tall.
HEMICUBE_HALF_HEIGHT = 1.0


class HemicubeSide(Enum):
    FRONT = 0
    LEFT = 1
    RIGHT = 2
    TOP = 3
    BOTTOM = 4


@dataclass(frozen=True)
class HemicubeConfig:
    resolution: int = 512
    near_plane: float = HEMICUBE_HALF_HEIGHT
    up: Tuple[float, float, float] = WORLD_UP
    secondary_up: Tuple[float, float, float] = WORLD_SECONDARY


@dataclass(frozen=True, eq=False)
class HemicubeFace:
    side: HemicubeSide
    axes: np.ndarray  # rows: screen x, screen y, view direction
    x_range: Tuple[float, float]
    y_range: Tuple[float, float]
    width: int
    height: int

    @property
    def is_front(self) -> bool:
        return self.side is HemicubeSide.FRONT


@dataclass(frozen=True, eq=False)
class Hemicube:
    center: np.ndarray
    normal: np.ndarray
    u: np.ndarray
    v: np.ndarray
    resolution: int
    near_plane: float
    faces: Tuple[HemicubeFace, ...] = field(default_factory=tuple)


def _check_resolution(resolution: int) -> int:
    r = int(resolution)
    if r != resolution or r < 2 or r % 2 != 0:
        raise ValueError(f"Hemicube resolution must be an even integer >= 2, got {resolution!r}.")
    return r


def build_hemicube(center: Sequence[float], normal: Sequence[float], config: HemicubeConfig) -> Hemicube:
    """Place a hemicube at ``center`` looking along ``normal``."""
    n_px = _check_resolution(config.resolution)
    if not (math.isfinite(config.near_plane) and config.near_plane > 0.0):
        raise ValueError(f"Near plane must be positive, got {config.near_plane!r}.")
    c = as_vec3(center)
    u, v, n = orthonormal_frame(as_vec3(normal), config.up, config.secondary_up)

    full = (-HEMICUBE_HALF_HEIGHT, HEMICUBE_HALF_HEIGHT)
    half = (0.0, HEMICUBE_HALF_HEIGHT)
    faces = (
        HemicubeFace(HemicubeSide.FRONT, np.stack((v, u, n)), full, full, n_px, n_px),
        HemicubeFace(HemicubeSide.LEFT, np.stack((u, n, -v)), full, half, n_px, n_px // 2),
        HemicubeFace(HemicubeSide.RIGHT, np.stack((u, n, v)), full, half, n_px, n_px // 2),
        HemicubeFace(HemicubeSide.TOP, np.stack((v, n, u)), full, half, n_px, n_px // 2),
        HemicubeFace(HemicubeSide.BOTTOM, np.stack((v, n, -u)), full, half, n_px, n_px // 2),
    )
    return Hemicube(
        center=c,
        normal=n,
        u=u,
        v=v,
        resolution=n_px,
        near_plane=float(config.near_plane),
        faces=faces,
    )


@lru_cache(maxsize=16)
def delta_form_factors(front: bool, resolution: int) -> np.ndarray:
    """
    Delta form factor of every pixel of a front or side face.

    Rows run along the face's screen y axis; for side faces row 0 touches the
    patch plane. The returned array is read-only and shared.
    """
    n_px = _check_resolution(resolution)
    step = 2.0 * HEMICUBE_HALF_HEIGHT / n_px
    d_area = step * step
    x = -HEMICUBE_HALF_HEIGHT + (np.arange(n_px) + 0.5) * step
    if front:
        y = -HEMICUBE_HALF_HEIGHT + (np.arange(n_px) + 0.5) * step
    else:
        y = (np.arange(n_px // 2) + 0.5) * step
    xx, yy = np.meshgrid(x, y)
    r2 = xx * xx + yy * yy + HEMICUBE_HALF_HEIGHT * HEMICUBE_HALF_HEIGHT
    weights = d_area / (np.pi * r2 * r2)
    if not front:
        weights = weights * yy
    weights.setflags(write=False)
    return weights


def project_face(hemicube: Hemicube, face: HemicubeFace, element_quads: np.ndarray) -> np.ndarray:
    """Nearest visible element id per pixel of one face (-1 where nothing is seen)."""
    return rasterize_nearest(
        element_quads,
        hemicube.center,
        np.ascontiguousarray(face.axes, dtype=np.float64),
        float(hemicube.near_plane),
        float(face.x_range[0]),
        float(face.x_range[1]),
        float(face.y_range[0]),
        float(face.y_range[1]),
        int(face.width),
        int(face.height),
    )


def estimate_row(hemicube: Hemicube, element_quads: np.ndarray) -> np.ndarray:
    """Sum the delta form factors of all pixels per nearest element."""
    num_elements = int(element_quads.shape[0])
    row = np.zeros(num_elements, dtype=np.float64)
    if num_elements == 0:
        return row
    for face in hemicube.faces:
        ids = project_face(hemicube, face, element_quads)
        hit = ids >= 0
        if not np.any(hit):
            continue
        weights = delta_form_factors(face.is_front, hemicube.resolution)
        row += np.bincount(ids[hit], weights=weights[hit], minlength=num_elements)
    return row


def estimate_patch_row(scene: Scene, patch_id: int, config: HemicubeConfig) -> np.ndarray:
    """Form factors from patch ``patch_id`` (seen from its center) to every element."""
    patch = scene.patches[patch_id]
    hemicube = build_hemicube(patch.center, patch.normal, config)
    return estimate_row(hemicube, scene.element_quads)
