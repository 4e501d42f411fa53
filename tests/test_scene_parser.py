from __future__ import annotations

from pathlib import Path

import pytest

from hemirad.geometry.mesh import GeometryError, PatchSpec
from hemirad.parser.scene_parser import SceneParseError, format_scene_text, load_scene, parse_scene_text


_SCENE = """# two facing squares
8
0 0 0
1 0 0
1 1 0
0 1 0
0 0 2
1 0 2
1 1 2
0 1 2
2
0 1 2 3   1 1 1   0 0 0         1
4 7 6 5   0 0 0   0.5 0.25 0.1  2
"""


def test_parse_scene_text_reads_vertices_and_patches() -> None:
    parsed = parse_scene_text(_SCENE)
    assert len(parsed.vertices) == 8
    assert parsed.vertices[6] == (1.0, 1.0, 2.0)
    assert parsed.patches[0] == PatchSpec(
        vertices=(0, 1, 2, 3), emissivity=(1.0, 1.0, 1.0), reflectance=(0.0, 0.0, 0.0), subdivision=1
    )
    assert parsed.patches[1].reflectance == (0.5, 0.25, 0.1)
    assert parsed.patches[1].subdivision == 2


def test_line_breaks_are_not_significant() -> None:
    flat = " ".join(line.split("#", 1)[0] for line in _SCENE.splitlines())
    assert parse_scene_text(flat) == parse_scene_text(_SCENE)


def test_format_scene_text_parses_back() -> None:
    parsed = parse_scene_text(_SCENE)
    again = parse_scene_text(format_scene_text(parsed.vertices, parsed.patches))
    assert again == parsed


def test_bad_token_reports_line_number() -> None:
    text = _SCENE.replace("1 1 0\n", "1 x 0\n", 1)
    with pytest.raises(SceneParseError) as exc:
        parse_scene_text(text)
    assert exc.value.line_no == 5
    assert "Line 5" in str(exc.value)


def test_truncated_file_raises() -> None:
    text = "\n".join(_SCENE.splitlines()[:-1])
    with pytest.raises(SceneParseError, match="Unexpected end of file"):
        parse_scene_text(text)


def test_trailing_tokens_raise() -> None:
    with pytest.raises(SceneParseError, match="trailing"):
        parse_scene_text(_SCENE + "42\n")


def test_negative_count_raises() -> None:
    with pytest.raises(SceneParseError):
        parse_scene_text("-1\n")


def test_load_scene_builds_mesh(tmp_path: Path) -> None:
    path = tmp_path / "scene.dat"
    path.write_text(_SCENE, encoding="utf-8")
    scene = load_scene(path)
    assert scene.num_patches == 2
    assert scene.num_elements == 1 + 4
    assert scene.emitting_patches() == [0]


def test_load_scene_error_carries_filename(tmp_path: Path) -> None:
    path = tmp_path / "broken.dat"
    path.write_text("3\n0 0 0\n", encoding="utf-8")
    with pytest.raises(SceneParseError) as exc:
        load_scene(path)
    assert exc.value.filename == str(path)
    assert str(path) in str(exc.value)


def test_load_scene_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SceneParseError, match="not found"):
        load_scene(tmp_path / "nope.dat")


def test_load_scene_propagates_geometry_errors(tmp_path: Path) -> None:
    path = tmp_path / "bad_index.dat"
    path.write_text("4\n0 0 0\n1 0 0\n1 1 0\n0 1 0\n1\n0 1 2 9  0 0 0  0 0 0  1\n", encoding="utf-8")
    with pytest.raises(GeometryError):
        load_scene(path)
