"""
Hemirad Scene Mesh Model

Holds the scene geometry used by the radiosity engine: shared vertices,
coarse quadrilateral patches carrying emissivity and reflectance, and the
finer elements each patch is subdivided into.

Geometry is immutable once built. Mutable radiosity state (element
radiosity, patch unshot radiosity, ambient) lives in
:class:`hemirad.engine.radiosity.solver.SolverState`; elements refer to
their owning patch by index into ``Scene.patches``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Sequence, Tuple

import numpy as np

from hemirad.geometry.core import length, quad_area, quad_center, quad_is_convex, quad_normal, quad_planarity
from hemirad.geometry.tolerance import EPS_AREA, EPS_PLANE, EPS_POS, EPS_WELD

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]


class SceneError(ValueError):
    """Malformed scene input."""


class GeometryError(SceneError):
    """Degenerate or non-finite geometry (zero-length edge, zero area, NaN/Inf)."""


class ReflectanceRangeError(SceneError):
    """Reflectance channel outside [0, 1); a value of 1 makes the ambient factor diverge."""


@dataclass(frozen=True)
class PatchSpec:
    """One patch record as read from a scene description."""
    vertices: Tuple[int, int, int, int]
    emissivity: Color = (0.0, 0.0, 0.0)
    reflectance: Color = (0.0, 0.0, 0.0)
    subdivision: int = 1


@dataclass(frozen=True)
class Patch:
    """
    A planar quadrilateral surface unit.

    Elements of the patch occupy the contiguous id span
    ``[first_element, first_element + num_elements)``.
    """
    id: int
    vertices: Tuple[int, int, int, int]
    emissivity: Color
    reflectance: Color
    center: Tuple[float, float, float]
    normal: Tuple[float, float, float]
    area: float
    subdivision: int
    first_element: int
    num_elements: int

    @property
    def element_range(self) -> range:
        return range(self.first_element, self.first_element + self.num_elements)

    @property
    def is_emitter(self) -> bool:
        return any(c > 0.0 for c in self.emissivity)


@dataclass(frozen=True)
class Element:
    """A subdivision of exactly one patch; ``patch`` is the owning patch id."""
    id: int
    vertices: Tuple[int, int, int, int]
    center: Tuple[float, float, float]
    area: float
    patch: int


@dataclass(frozen=True, eq=False)
class Scene:
    vertices: np.ndarray
    patches: Tuple[Patch, ...]
    elements: Tuple[Element, ...]

    @property
    def num_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def num_patches(self) -> int:
        return len(self.patches)

    @property
    def num_elements(self) -> int:
        return len(self.elements)

    @cached_property
    def element_vertex_indices(self) -> np.ndarray:
        return np.array([e.vertices for e in self.elements], dtype=np.int64).reshape(-1, 4)

    @cached_property
    def element_quads(self) -> np.ndarray:
        """Corner positions of every element, shape ``(E, 4, 3)``."""
        return np.ascontiguousarray(self.vertices[self.element_vertex_indices], dtype=np.float64)

    @cached_property
    def element_centers(self) -> np.ndarray:
        return np.array([e.center for e in self.elements], dtype=np.float64).reshape(-1, 3)

    @cached_property
    def element_areas(self) -> np.ndarray:
        return np.array([e.area for e in self.elements], dtype=np.float64)

    @cached_property
    def element_patch(self) -> np.ndarray:
        return np.array([e.patch for e in self.elements], dtype=np.int64)

    @cached_property
    def element_reflectance(self) -> np.ndarray:
        return self.patch_reflectance[self.element_patch]

    @cached_property
    def patch_areas(self) -> np.ndarray:
        return np.array([p.area for p in self.patches], dtype=np.float64)

    @cached_property
    def patch_reflectance(self) -> np.ndarray:
        return np.array([p.reflectance for p in self.patches], dtype=np.float64).reshape(-1, 3)

    @cached_property
    def patch_emissivity(self) -> np.ndarray:
        return np.array([p.emissivity for p in self.patches], dtype=np.float64).reshape(-1, 3)

    @cached_property
    def patch_centers(self) -> np.ndarray:
        return np.array([p.center for p in self.patches], dtype=np.float64).reshape(-1, 3)

    @cached_property
    def patch_normals(self) -> np.ndarray:
        return np.array([p.normal for p in self.patches], dtype=np.float64).reshape(-1, 3)

    @property
    def total_area(self) -> float:
        return float(np.sum(self.patch_areas))

    def elements_of(self, patch_id: int) -> List[Element]:
        p = self.patches[patch_id]
        return [self.elements[e] for e in p.element_range]

    def emitting_patches(self) -> List[int]:
        return [p.id for p in self.patches if p.is_emitter]


def _check_color(values: Sequence[float], label: str, patch_index: int) -> Color:
    try:
        c = tuple(float(x) for x in values)
    except (TypeError, ValueError) as exc:
        raise SceneError(f"Patch {patch_index}: {label} must be three numbers.") from exc
    if len(c) != 3:
        raise SceneError(f"Patch {patch_index}: {label} must have 3 channels, got {len(c)}.")
    return (c[0], c[1], c[2])


def _check_reflectance(values: Sequence[float], patch_index: int) -> Color:
    c = _check_color(values, "reflectance", patch_index)
    for ch in c:
        if not math.isfinite(ch) or ch < 0.0 or ch >= 1.0:
            raise ReflectanceRangeError(
                f"Patch {patch_index}: reflectance {c} must lie in [0, 1) on every channel."
            )
    return c


def _check_emissivity(values: Sequence[float], patch_index: int) -> Color:
    c = _check_color(values, "emissivity", patch_index)
    for ch in c:
        if not math.isfinite(ch) or ch < 0.0:
            raise SceneError(f"Patch {patch_index}: emissivity {c} must be finite and non-negative.")
    return c


def _check_vertex_indices(indices: Sequence[int], num_vertices: int, patch_index: int) -> Tuple[int, int, int, int]:
    idx = tuple(indices)
    if len(idx) != 4:
        raise SceneError(f"Patch {patch_index}: expected 4 vertex indices, got {len(idx)}.")
    out: List[int] = []
    for i in idx:
        if isinstance(i, bool) or int(i) != i:
            raise SceneError(f"Patch {patch_index}: vertex index {i!r} is not an integer.")
        if not 0 <= int(i) < num_vertices:
            raise GeometryError(
                f"Patch {patch_index}: vertex index {i} out of range [0, {num_vertices})."
            )
        out.append(int(i))
    return (out[0], out[1], out[2], out[3])


def _check_vertices(vertices: Sequence[Sequence[float]]) -> np.ndarray:
    verts = np.asarray(vertices, dtype=np.float64)
    if verts.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if verts.ndim != 2 or verts.shape[1] != 3:
        raise GeometryError(f"Vertices must have shape (N, 3), got {verts.shape}.")
    bad = ~np.all(np.isfinite(verts), axis=1)
    if np.any(bad):
        first = int(np.flatnonzero(bad)[0])
        raise GeometryError(f"Vertex {first} has non-finite coordinates {verts[first].tolist()}.")
    return verts


def _patch_frame(corners: np.ndarray, patch_index: int) -> Tuple[np.ndarray, np.ndarray, float]:
    e1 = corners[1] - corners[0]
    e2 = corners[3] - corners[0]
    if length(e1) <= EPS_POS or length(e2) <= EPS_POS:
        raise GeometryError(f"Patch {patch_index}: zero-length edge vector.")
    if length(np.cross(e1, e2)) <= EPS_AREA:
        raise GeometryError(f"Patch {patch_index}: edges are collinear, normal is undefined.")
    normal = quad_normal(corners)
    area = quad_area(corners)
    if not math.isfinite(area) or area <= EPS_AREA:
        raise GeometryError(f"Patch {patch_index}: zero area.")
    scale = max(length(corners[2] - corners[0]), length(corners[3] - corners[1]))
    if quad_planarity(corners, normal) > EPS_PLANE * scale:
        raise GeometryError(f"Patch {patch_index}: corners are not coplanar.")
    # Elements are scan-converted as convex polygons.
    if not quad_is_convex(corners, normal, tol=EPS_AREA * scale * scale):
        raise GeometryError(f"Patch {patch_index}: quad is not convex.")
    return quad_center(corners), normal, area


def _bilinear_grid(corners: np.ndarray, n: int) -> np.ndarray:
    """``(n+1)*(n+1)`` points, row-major with ``k`` along v0->v1 and ``j`` along v0->v3."""
    t = np.linspace(0.0, 1.0, n + 1)
    s = t[None, :, None]   # k
    r = t[:, None, None]   # j
    v0, v1, v2, v3 = corners
    grid = (1.0 - s) * (1.0 - r) * v0 + s * (1.0 - r) * v1 + s * r * v2 + (1.0 - s) * r * v3
    return grid.reshape(-1, 3)


def _weld_key(p: np.ndarray, eps: float = EPS_WELD) -> Tuple[int, int, int]:
    s = 1.0 / eps
    return (int(round(float(p[0]) * s)), int(round(float(p[1]) * s)), int(round(float(p[2]) * s)))


def build_scene(
    vertices: Sequence[Sequence[float]],
    patches: Sequence[PatchSpec],
    *,
    weld: bool = False,
) -> Scene:
    """
    Build the scene mesh: validate patches and subdivide each into elements.

    For a patch with subdivision ``n`` an ``(n+1) x (n+1)`` grid of new
    vertices is generated by bilinear interpolation of its corners, and
    ``n x n`` elements of area ``patch.area / n**2`` are created. The input
    vertices stay at the front of the vertex array.

    With ``weld=True`` generated vertices that coincide within ``EPS_WELD``
    are merged so that elements of adjacent patches share vertices.

    Raises:
        GeometryError: non-finite coordinates, bad vertex indices, zero-length
            edges, zero area, or non-planar or non-convex patches.
        ReflectanceRangeError: a reflectance channel outside [0, 1).
        SceneError: any other malformed patch record.
    """
    verts = _check_vertices(vertices)
    n_input = int(verts.shape[0])

    vertex_rows: List[np.ndarray] = [verts]
    num_vertices = n_input
    welded: Dict[Tuple[int, int, int], int] = {}

    out_patches: List[Patch] = []
    out_elements: List[Element] = []

    for pi, spec in enumerate(patches):
        idx = _check_vertex_indices(spec.vertices, n_input, pi)
        emissivity = _check_emissivity(spec.emissivity, pi)
        reflectance = _check_reflectance(spec.reflectance, pi)
        n = spec.subdivision
        if isinstance(n, bool) or int(n) != n or int(n) < 1:
            raise SceneError(f"Patch {pi}: subdivision must be a positive integer, got {n!r}.")
        n = int(n)

        corners = verts[list(idx)]
        center, normal, area = _patch_frame(corners, pi)

        grid = _bilinear_grid(corners, n)
        grid_ids = np.empty(grid.shape[0], dtype=np.int64)
        new_rows: List[np.ndarray] = []
        for gi, p in enumerate(grid):
            if weld:
                key = _weld_key(p)
                hit = welded.get(key)
                if hit is not None:
                    grid_ids[gi] = hit
                    continue
                welded[key] = num_vertices
            grid_ids[gi] = num_vertices
            new_rows.append(p)
            num_vertices += 1
        if new_rows:
            vertex_rows.append(np.array(new_rows, dtype=np.float64))

        first_element = len(out_elements)
        element_area = area / float(n * n)
        for j in range(n):
            for k in range(n):
                quad = (
                    int(grid_ids[k + j * (n + 1)]),
                    int(grid_ids[(k + 1) + j * (n + 1)]),
                    int(grid_ids[(k + 1) + (j + 1) * (n + 1)]),
                    int(grid_ids[k + (j + 1) * (n + 1)]),
                )
                pts = grid[[k + j * (n + 1), (k + 1) + j * (n + 1), (k + 1) + (j + 1) * (n + 1), k + (j + 1) * (n + 1)]]
                c = quad_center(pts)
                out_elements.append(
                    Element(
                        id=len(out_elements),
                        vertices=quad,
                        center=(float(c[0]), float(c[1]), float(c[2])),
                        area=element_area,
                        patch=pi,
                    )
                )

        out_patches.append(
            Patch(
                id=pi,
                vertices=idx,
                emissivity=emissivity,
                reflectance=reflectance,
                center=(float(center[0]), float(center[1]), float(center[2])),
                normal=(float(normal[0]), float(normal[1]), float(normal[2])),
                area=float(area),
                subdivision=n,
                first_element=first_element,
                num_elements=n * n,
            )
        )
        if out_patches[-1].is_emitter:
            logger.info("Patch %d is emitting %s", pi, emissivity)

    all_vertices = np.concatenate(vertex_rows, axis=0) if vertex_rows else np.zeros((0, 3))
    scene = Scene(vertices=all_vertices, patches=tuple(out_patches), elements=tuple(out_elements))
    logger.info(
        "Scene built: %d patches, %d elements, %d vertices",
        scene.num_patches,
        scene.num_elements,
        scene.num_vertices,
    )
    return scene
