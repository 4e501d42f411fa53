from __future__ import annotations

import numpy as np

from hemirad.config import RadiosityConfig
from hemirad.engine.radiosity.hemicube import HemicubeConfig
from hemirad.engine.radiosity_engine import generate_form_factors, run_radiosity
from hemirad.geometry.mesh import PatchSpec, build_scene


def _lit_box():
    s = 4.0
    verts = [
        (0, 0, 0), (s, 0, 0), (s, s, 0), (0, s, 0),
        (0, 0, s), (s, 0, s), (s, s, s), (0, s, s),
    ]
    quads = [(0, 1, 2, 3), (4, 7, 6, 5), (0, 3, 7, 4), (1, 5, 6, 2), (0, 4, 5, 1), (3, 2, 6, 7)]
    patches = [PatchSpec(vertices=q, reflectance=(0.5, 0.5, 0.5), subdivision=2) for q in quads]
    patches[1] = PatchSpec(vertices=quads[1], emissivity=(1.0, 0.5, 0.25), reflectance=(0.5, 0.5, 0.5), subdivision=2)
    return build_scene(verts, patches, weld=True)


def test_run_radiosity_lights_the_floor() -> None:
    scene = _lit_box()
    cfg = RadiosityConfig(hemicube=HemicubeConfig(resolution=16), steps=4)
    result = run_radiosity(scene, cfg)
    assert result.steps == 4
    assert [r.patch for r in result.history][0] == 1
    floor = list(scene.patches[0].element_range)
    assert np.all(result.state.element_radiosity[floor] > 0.0)
    # Channel ratios of the light carry through a grey room.
    r, g, b = result.state.patch_radiosity[0]
    assert r > g > b
    assert result.vertex_colors.shape == (scene.num_vertices, 3)


def test_run_radiosity_reuses_a_given_table() -> None:
    scene = _lit_box()
    cfg = RadiosityConfig(hemicube=HemicubeConfig(resolution=16), steps=0)
    table = generate_form_factors(scene, cfg)
    result = run_radiosity(scene, cfg, table=table)
    assert result.table is table
    assert result.steps == 0
    assert result.history == []
    assert np.allclose(result.state.patch_unshot, scene.patch_emissivity)
