from __future__ import annotations

import numpy as np
import pytest

from hemirad.geometry.mesh import (
    GeometryError,
    PatchSpec,
    ReflectanceRangeError,
    SceneError,
    build_scene,
)


def _unit_square(z: float = 0.0):
    return [(0.0, 0.0, z), (1.0, 0.0, z), (1.0, 1.0, z), (0.0, 1.0, z)]


def _two_adjacent_patches(weld: bool):
    verts = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0), (2.0, 0.0, 0.0), (2.0, 1.0, 0.0)]
    patches = [
        PatchSpec(vertices=(0, 1, 2, 3), reflectance=(0.5, 0.5, 0.5), subdivision=2),
        PatchSpec(vertices=(1, 4, 5, 2), reflectance=(0.5, 0.5, 0.5), subdivision=2),
    ]
    return build_scene(verts, patches, weld=weld)


def test_subdivision_creates_grid_and_conserves_area() -> None:
    verts = [(0.0, 0.0, 0.0), (2.0, 0.0, 0.0), (2.0, 3.0, 0.0), (0.0, 3.0, 0.0)]
    scene = build_scene(verts, [PatchSpec(vertices=(0, 1, 2, 3), subdivision=3)])

    assert scene.num_patches == 1
    assert scene.num_elements == 9
    assert scene.num_vertices == 4 + 16
    patch = scene.patches[0]
    assert patch.area == pytest.approx(6.0)
    assert list(patch.element_range) == list(range(9))
    assert float(np.sum(scene.element_areas)) == pytest.approx(patch.area)
    assert np.allclose(scene.element_areas, 6.0 / 9.0)
    assert np.all(scene.element_patch == 0)
    assert patch.normal == pytest.approx((0.0, 0.0, 1.0))
    assert patch.center == pytest.approx((1.0, 1.5, 0.0))


def test_first_element_shares_corner_zero_and_follows_edges() -> None:
    scene = build_scene(_unit_square(), [PatchSpec(vertices=(0, 1, 2, 3), subdivision=2)])
    first = scene.elements[0]
    corners = scene.vertices[list(first.vertices)]
    assert np.allclose(corners[0], [0.0, 0.0, 0.0])
    assert np.allclose(corners[1], [0.5, 0.0, 0.0])
    assert np.allclose(corners[2], [0.5, 0.5, 0.0])
    assert np.allclose(corners[3], [0.0, 0.5, 0.0])
    assert first.center == pytest.approx((0.25, 0.25, 0.0))
    # Elements only reference generated grid vertices.
    assert int(scene.element_vertex_indices.min()) >= 4


def test_element_ids_are_contiguous_per_patch() -> None:
    scene = _two_adjacent_patches(weld=False)
    assert scene.patches[0].first_element == 0
    assert scene.patches[1].first_element == 4
    assert [e.id for e in scene.elements] == list(range(8))
    assert [e.patch for e in scene.elements_of(1)] == [1, 1, 1, 1]


def test_weld_merges_shared_edge_vertices() -> None:
    plain = _two_adjacent_patches(weld=False)
    welded = _two_adjacent_patches(weld=True)
    assert plain.num_vertices == 6 + 9 + 9
    assert welded.num_vertices == 6 + 9 + 6
    assert welded.num_elements == plain.num_elements


def test_emitting_patches_listed() -> None:
    verts = _unit_square() + _unit_square(2.0)
    scene = build_scene(
        verts,
        [
            PatchSpec(vertices=(0, 1, 2, 3), emissivity=(1.0, 1.0, 1.0)),
            PatchSpec(vertices=(4, 7, 6, 5), reflectance=(0.5, 0.5, 0.5)),
        ],
    )
    assert scene.emitting_patches() == [0]
    assert scene.patch_normals[1] == pytest.approx([0.0, 0.0, -1.0])
    assert np.allclose(scene.patch_emissivity[0], [1.0, 1.0, 1.0])


def test_empty_scene_is_allowed() -> None:
    scene = build_scene([], [])
    assert scene.num_patches == 0
    assert scene.num_elements == 0
    assert scene.element_quads.shape == (0, 4, 3)


def test_vertex_index_out_of_range_raises() -> None:
    with pytest.raises(GeometryError):
        build_scene(_unit_square(), [PatchSpec(vertices=(0, 1, 2, 4))])


def test_zero_area_patch_raises() -> None:
    verts = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0), (3.0, 0.0, 0.0)]
    with pytest.raises(GeometryError):
        build_scene(verts, [PatchSpec(vertices=(0, 1, 2, 3))])


def test_repeated_vertex_raises() -> None:
    with pytest.raises(GeometryError):
        build_scene(_unit_square(), [PatchSpec(vertices=(0, 0, 2, 3))])


def test_non_planar_patch_raises() -> None:
    verts = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.5), (0.0, 1.0, 0.0)]
    with pytest.raises(GeometryError):
        build_scene(verts, [PatchSpec(vertices=(0, 1, 2, 3))])


def test_non_finite_vertex_raises() -> None:
    verts = [(0.0, 0.0, 0.0), (1.0, 0.0, float("nan")), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)]
    with pytest.raises(GeometryError):
        build_scene(verts, [PatchSpec(vertices=(0, 1, 2, 3))])


@pytest.mark.parametrize("rho", [(1.0, 0.5, 0.5), (0.5, -0.1, 0.5)])
def test_reflectance_out_of_range_raises(rho) -> None:
    with pytest.raises(ReflectanceRangeError):
        build_scene(_unit_square(), [PatchSpec(vertices=(0, 1, 2, 3), reflectance=rho)])


def test_negative_emissivity_and_bad_subdivision_raise() -> None:
    with pytest.raises(SceneError):
        build_scene(_unit_square(), [PatchSpec(vertices=(0, 1, 2, 3), emissivity=(-1.0, 0.0, 0.0))])
    with pytest.raises(SceneError):
        build_scene(_unit_square(), [PatchSpec(vertices=(0, 1, 2, 3), subdivision=0)])


def test_non_convex_patch_raises() -> None:
    dart = [(0.0, 0.0, 1.0), (2.0, 0.0, 1.0), (0.5, 0.5, 1.0), (0.0, 2.0, 1.0)]
    with pytest.raises(GeometryError, match="not convex"):
        build_scene(dart, [PatchSpec(vertices=(0, 1, 2, 3))])


def test_self_intersecting_patch_raises() -> None:
    bowtie = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (1.0, 1.0, 0.0)]
    with pytest.raises(GeometryError):
        build_scene(bowtie, [PatchSpec(vertices=(0, 1, 2, 3))])


def test_convex_trapezoid_is_accepted() -> None:
    verts = [(0.0, 0.0, 0.0), (3.0, 0.0, 0.0), (2.0, 1.0, 0.0), (1.0, 1.0, 0.0)]
    scene = build_scene(verts, [PatchSpec(vertices=(0, 1, 2, 3), subdivision=2)])
    assert scene.patches[0].area == pytest.approx(2.0)
    assert float(np.sum(scene.element_areas)) == pytest.approx(2.0)
