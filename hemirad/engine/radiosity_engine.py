"""Control surface of the radiosity engine: generate, refine, interpolate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from hemirad.config import RadiosityConfig
from hemirad.engine.radiosity import form_factors as _form_factors
from hemirad.engine.radiosity.form_factors import CancellationToken, FormFactorTable
from hemirad.engine.radiosity.interpolate import interpolate_vertex_colors
from hemirad.engine.radiosity.solver import (
    ProgressiveRefinementSolver,
    SolverState,
    StepRecord,
    refine_step,
    unshot_flux,
)
from hemirad.geometry.mesh import Scene


@dataclass(frozen=True)
class RadiosityEngineResult:
    table: FormFactorTable
    state: SolverState
    vertex_colors: np.ndarray
    history: List[StepRecord] = field(default_factory=list)
    unshot_flux: float = 0.0

    @property
    def steps(self) -> int:
        return int(self.state.step)


def generate_form_factors(
    scene: Scene,
    config: Optional[RadiosityConfig] = None,
    *,
    cancel: Optional[CancellationToken] = None,
) -> FormFactorTable:
    cfg = config or RadiosityConfig()
    return _form_factors.generate_form_factors(scene, cfg.hemicube, n_jobs=cfg.n_jobs, cancel=cancel)


def run_radiosity(
    scene: Scene,
    config: Optional[RadiosityConfig] = None,
    *,
    table: Optional[FormFactorTable] = None,
    state: Optional[SolverState] = None,
) -> RadiosityEngineResult:
    """
    Generate (or reuse) the form factor table, run ``config.steps`` refinement
    steps and interpolate vertex colors.
    """
    cfg = config or RadiosityConfig()
    if table is None:
        table = generate_form_factors(scene, cfg)
    solver = ProgressiveRefinementSolver(scene, table, state)
    solver.run(cfg.steps)
    colors = interpolate_vertex_colors(scene, solver.state, include_ambient=cfg.include_ambient)
    return RadiosityEngineResult(
        table=table,
        state=solver.state,
        vertex_colors=colors,
        history=list(solver.history),
        unshot_flux=unshot_flux(scene, solver.state),
    )


__all__ = [
    "RadiosityEngineResult",
    "generate_form_factors",
    "interpolate_vertex_colors",
    "refine_step",
    "run_radiosity",
]
