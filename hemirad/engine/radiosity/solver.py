from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import numpy as np

from hemirad.engine.radiosity.form_factors import FormFactorTable, check_table_shape
from hemirad.geometry.mesh import Scene

logger = logging.getLogger(__name__)


class EmptyQueueError(RuntimeError):
    """Refinement requested on a scene without patches."""


@dataclass(frozen=True)
class UnshotEnergyKey:
    patch: int
    energy: float  # squared channel norm of the unshot radiosity


@dataclass(frozen=True, eq=False)
class SolverState:
    """
    Mutable quantities of a progressive refinement run.

    Arrays are indexed by element id (``element_radiosity``) or patch id
    (``patch_radiosity``, ``patch_unshot``), one column per color channel.
    ``ambient`` is the ambient delta of the last step.
    """
    element_radiosity: np.ndarray
    patch_radiosity: np.ndarray
    patch_unshot: np.ndarray
    ambient: np.ndarray = field(default_factory=lambda: np.zeros(3))
    step: int = 0
    last_shot_patch: Optional[int] = None

    def copy(self) -> "SolverState":
        return replace(
            self,
            element_radiosity=self.element_radiosity.copy(),
            patch_radiosity=self.patch_radiosity.copy(),
            patch_unshot=self.patch_unshot.copy(),
            ambient=self.ambient.copy(),
        )


@dataclass(frozen=True)
class StepRecord:
    step: int
    patch: int
    energy: float
    ambient: Tuple[float, float, float]
    unshot_flux: float


def reflection_factor(scene: Scene) -> np.ndarray:
    """
    Overall interreflection factor ``R = 1 / (1 - rho_avg)`` per channel.

    ``rho_avg`` is the area-weighted mean patch reflectance.
    """
    if scene.num_patches == 0:
        raise EmptyQueueError("Scene has no patches.")
    areas = scene.patch_areas
    rho_avg = (areas @ scene.patch_reflectance) / scene.total_area
    return 1.0 / (1.0 - rho_avg)


def initial_ambient(scene: Scene) -> np.ndarray:
    """Ambient estimate of the emitted energy alone: ``R * sum(E_j A_j) / sum(A_j)``."""
    areas = scene.patch_areas
    return reflection_factor(scene) * (areas @ scene.patch_emissivity) / scene.total_area


def initial_state(scene: Scene) -> SolverState:
    """Unshot and radiosity start at the emissivity; the ambient delta starts at zero."""
    emissivity = scene.patch_emissivity
    return SolverState(
        element_radiosity=emissivity[scene.element_patch].copy(),
        patch_radiosity=emissivity.copy(),
        patch_unshot=emissivity.copy(),
        ambient=np.zeros(3, dtype=np.float64),
    )


def unshot_energy(state: SolverState) -> np.ndarray:
    """Squared channel norm of every patch's unshot radiosity."""
    return np.einsum("ij,ij->i", state.patch_unshot, state.patch_unshot)


def unshot_flux(scene: Scene, state: SolverState) -> float:
    """Area-weighted unshot total, summed over channels; a stopping heuristic for callers."""
    return float(np.sum(scene.patch_areas @ state.patch_unshot))


def select_shooting_patch(state: SolverState) -> UnshotEnergyKey:
    """The patch with the largest unshot energy; ties go to the lowest patch id."""
    energy = unshot_energy(state)
    if energy.shape[0] == 0:
        raise EmptyQueueError("No patch to shoot: the scene has no patches.")
    i = int(np.argmax(energy))
    return UnshotEnergyKey(patch=i, energy=float(energy[i]))


def refine_step(scene: Scene, table: FormFactorTable, state: SolverState) -> SolverState:
    """
    One progressive refinement step: shoot the most energetic unshot patch.

    For every element ``e`` of patch ``j``:

        dB_e = rho_j * unshot_i * F(i, e) * A_i / A_e

    ``dB_e`` is added to the element radiosity, and ``dB_e * A_e / A_j`` to
    patch ``j``'s unshot and radiosity. The ambient delta is then re-estimated
    from the area-weighted unshot radiosity, and patch ``i``'s unshot is
    cleared. ``state`` is left untouched; a new state is returned.
    """
    if scene.num_patches == 0:
        raise EmptyQueueError("Refinement requested on a scene with no patches.")
    check_table_shape(table, scene)

    key = select_shooting_patch(state)
    i = key.patch
    shooter_unshot = state.patch_unshot[i].copy()

    element_areas = scene.element_areas
    owner = scene.element_patch
    coupling = table.row(i) * (scene.patch_areas[i] / element_areas)
    d_radiosity = scene.element_reflectance * shooter_unshot[None, :] * coupling[:, None]

    # Deterministic per-patch reduction of the element increments.
    d_patch = np.zeros_like(state.patch_unshot)
    np.add.at(d_patch, owner, d_radiosity * (element_areas / scene.patch_areas[owner])[:, None])

    unshot = state.patch_unshot + d_patch
    areas = scene.patch_areas
    ambient = reflection_factor(scene) * (areas @ unshot) / scene.total_area
    unshot[i] = 0.0

    new_state = SolverState(
        element_radiosity=state.element_radiosity + d_radiosity,
        patch_radiosity=state.patch_radiosity + d_patch,
        patch_unshot=unshot,
        ambient=ambient,
        step=state.step + 1,
        last_shot_patch=i,
    )
    logger.info(
        "Step %d: shot patch %d (energy %.6g), ambient (%.6g, %.6g, %.6g)",
        state.step,
        i,
        key.energy,
        ambient[0],
        ambient[1],
        ambient[2],
    )
    return new_state


def refine(scene: Scene, table: FormFactorTable, state: SolverState, steps: int) -> SolverState:
    """Run exactly ``steps`` refinement steps; the solver never stops on its own."""
    if steps < 0:
        raise ValueError(f"steps must be non-negative, got {steps}.")
    for _ in range(steps):
        state = refine_step(scene, table, state)
    return state


class ProgressiveRefinementSolver:
    """
    Progressive refinement radiosity solver over a precomputed table.

    Keeps the current :class:`SolverState` and a per-step history. Each call
    to :meth:`step` shoots one patch.
    """

    def __init__(self, scene: Scene, table: FormFactorTable, state: Optional[SolverState] = None):
        check_table_shape(table, scene)
        self.scene = scene
        self.table = table
        self.state = state if state is not None else initial_state(scene)
        self.history: List[StepRecord] = []
        if scene.num_patches:
            logger.info("Reflection factor R: %s", np.array2string(reflection_factor(scene), precision=6))
            logger.info("Initial ambient: %s", np.array2string(initial_ambient(scene), precision=6))

    @property
    def current_patch(self) -> Optional[int]:
        return self.state.last_shot_patch

    def step(self) -> StepRecord:
        energy = select_shooting_patch(self.state).energy if self.scene.num_patches else 0.0
        self.state = refine_step(self.scene, self.table, self.state)
        record = StepRecord(
            step=self.state.step,
            patch=int(self.state.last_shot_patch),
            energy=energy,
            ambient=(float(self.state.ambient[0]), float(self.state.ambient[1]), float(self.state.ambient[2])),
            unshot_flux=unshot_flux(self.scene, self.state),
        )
        self.history.append(record)
        return record

    def run(self, steps: int) -> SolverState:
        if steps < 0:
            raise ValueError(f"steps must be non-negative, got {steps}.")
        for _ in range(steps):
            self.step()
        return self.state
