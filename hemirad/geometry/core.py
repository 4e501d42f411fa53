"""
Hemirad Geometry Core

Small vector helpers shared by the scene mesh model and the hemicube
estimator. Geometry is stored as plain ``float64`` numpy arrays; points and
directions are rows of shape ``(3,)``.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from hemirad.geometry.tolerance import EPS_ANG, EPS_POS


Vec3 = Tuple[float, float, float]

# Global "up" of the scene and the reference used when a normal is parallel to it.
WORLD_UP: Vec3 = (0.0, 0.0, 1.0)
WORLD_SECONDARY: Vec3 = (1.0, 0.0, 0.0)


def as_vec3(v: Sequence[float]) -> np.ndarray:
    arr = np.asarray(v, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}.")
    return arr


def length(v: np.ndarray) -> float:
    return float(math.sqrt(float(np.dot(v, v))))


def unit(v: np.ndarray) -> np.ndarray:
    n = length(v)
    if n <= EPS_POS:
        raise ValueError("Zero-length vector cannot be normalized.")
    return v / n


def quad_center(corners: np.ndarray) -> np.ndarray:
    """Mean of the four corners of a quad given as ``(4, 3)``."""
    return corners.mean(axis=0)


def quad_normal(corners: np.ndarray) -> np.ndarray:
    """
    Unit normal of a quad from its two edges leaving corner 0.

    Orientation follows ``(v1 - v0) x (v3 - v0)``.
    """
    e1 = corners[1] - corners[0]
    e2 = corners[3] - corners[0]
    return unit(np.cross(unit(e1), unit(e2)))


def quad_area(corners: np.ndarray) -> float:
    """
    Area of a planar quad: half the norm of the cross product of its diagonals.

    Exact for any planar quadrilateral, and equal to ``|e1| * |e2|`` for
    rectangles.
    """
    d1 = corners[2] - corners[0]
    d2 = corners[3] - corners[1]
    return 0.5 * length(np.cross(d1, d2))


def quad_is_convex(corners: np.ndarray, normal: np.ndarray, tol: float = 0.0) -> bool:
    """True when every corner turns the same way around ``normal``."""
    for k in range(4):
        a = corners[(k + 1) % 4] - corners[k]
        b = corners[(k + 2) % 4] - corners[(k + 1) % 4]
        if float(np.dot(np.cross(a, b), normal)) < -tol:
            return False
    return True


def quad_planarity(corners: np.ndarray, normal: np.ndarray) -> float:
    """Largest distance of a corner from the plane through corner 0."""
    offsets = (corners - corners[0]) @ normal
    return float(np.max(np.abs(offsets)))


def orthonormal_frame(
    normal: np.ndarray,
    up: Sequence[float] = WORLD_UP,
    secondary: Sequence[float] = WORLD_SECONDARY,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Right-handed frame ``(u, v, n)`` with ``n`` the given normal.

    ``u`` is the scene up vector made orthogonal to ``n``; when ``up`` is
    parallel to ``n`` the secondary reference axis is used instead.
    """
    n = unit(as_vec3(normal))
    helper = as_vec3(up)
    if abs(float(np.dot(unit(helper), n))) > 1.0 - EPS_ANG:
        helper = as_vec3(secondary)
    u = helper - float(np.dot(helper, n)) * n
    u = unit(u)
    v = np.cross(n, u)
    return u, v, n
