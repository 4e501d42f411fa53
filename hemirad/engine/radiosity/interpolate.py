from __future__ import annotations

import numpy as np

from hemirad.engine.radiosity.solver import SolverState
from hemirad.geometry.mesh import Scene


def _check_state(scene: Scene, state: SolverState) -> None:
    if state.element_radiosity.shape != (scene.num_elements, 3):
        raise ValueError(
            f"State holds {state.element_radiosity.shape[0]} elements, scene has {scene.num_elements}."
        )


def element_colors(scene: Scene, state: SolverState, include_ambient: bool = True) -> np.ndarray:
    """Flat per-element color: radiosity, plus ``rho * ambient`` when requested."""
    _check_state(scene, state)
    colors = state.element_radiosity.copy()
    if include_ambient:
        colors += scene.element_reflectance * state.ambient[None, :]
    return colors


def interpolate_vertex_colors(scene: Scene, state: SolverState, include_ambient: bool = True) -> np.ndarray:
    """
    Per-vertex color for Gouraud shading.

    A vertex referenced by ``k`` elements gets the unweighted mean of their
    colors. Vertices no element references (the input patch corners, unless
    welded into the grid) stay black.
    """
    colors = element_colors(scene, state, include_ambient)
    out = np.zeros((scene.num_vertices, 3), dtype=np.float64)
    if scene.num_elements == 0:
        return out
    idx = scene.element_vertex_indices.ravel()
    sums = np.zeros_like(out)
    np.add.at(sums, idx, np.repeat(colors, 4, axis=0))
    counts = np.bincount(idx, minlength=scene.num_vertices)
    used = counts > 0
    out[used] = sums[used] / counts[used, None]
    return out
