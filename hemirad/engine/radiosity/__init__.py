from hemirad.engine.radiosity.form_factors import (
    CancellationToken,
    FormFactorCancelled,
    FormFactorTable,
    TableFormatError,
    TableShapeMismatchError,
    generate_form_factors,
    load_table,
)
from hemirad.engine.radiosity.hemicube import HemicubeConfig, build_hemicube, estimate_patch_row
from hemirad.engine.radiosity.interpolate import element_colors, interpolate_vertex_colors
from hemirad.engine.radiosity.solver import (
    EmptyQueueError,
    ProgressiveRefinementSolver,
    SolverState,
    StepRecord,
    UnshotEnergyKey,
    initial_state,
    refine,
    refine_step,
)

__all__ = [
    "CancellationToken",
    "EmptyQueueError",
    "FormFactorCancelled",
    "FormFactorTable",
    "HemicubeConfig",
    "ProgressiveRefinementSolver",
    "SolverState",
    "StepRecord",
    "TableFormatError",
    "TableShapeMismatchError",
    "UnshotEnergyKey",
    "build_hemicube",
    "element_colors",
    "estimate_patch_row",
    "generate_form_factors",
    "initial_state",
    "interpolate_vertex_colors",
    "load_table",
    "refine",
    "refine_step",
]
