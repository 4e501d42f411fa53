from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from hemirad.geometry.mesh import PatchSpec, Scene, build_scene

logger = logging.getLogger(__name__)


@dataclass
class SceneParseError(Exception):
    message: str
    line_no: Optional[int] = None
    filename: Optional[str] = None

    def __str__(self) -> str:
        prefix = f"{self.filename}: " if self.filename else ""
        if self.line_no is None:
            return f"{prefix}{self.message}"
        return f"{prefix}Line {self.line_no}: {self.message}"


@dataclass(frozen=True)
class ParsedScene:
    vertices: List[Tuple[float, float, float]]
    patches: List[PatchSpec]


class _Tokens:
    """Whitespace-separated tokens with their line numbers; ``#`` starts a comment."""

    def __init__(self, text: str):
        self._items: List[Tuple[str, int]] = []
        for line_no, line in enumerate(text.splitlines(), start=1):
            for tok in line.split("#", 1)[0].split():
                self._items.append((tok, line_no))
        self._pos = 0

    def _next(self, what: str) -> Tuple[str, int]:
        if self._pos >= len(self._items):
            last = self._items[-1][1] if self._items else None
            raise SceneParseError(f"Unexpected end of file while reading {what}", last)
        item = self._items[self._pos]
        self._pos += 1
        return item

    def read_int(self, what: str) -> int:
        tok, line_no = self._next(what)
        try:
            return int(tok)
        except ValueError as e:
            raise SceneParseError(f"Expected integer {what}, got '{tok}'", line_no) from e

    def read_float(self, what: str) -> float:
        tok, line_no = self._next(what)
        try:
            value = float(tok)
        except ValueError as e:
            raise SceneParseError(f"Expected number for {what}, got '{tok}'", line_no) from e
        if not math.isfinite(value):
            raise SceneParseError(f"Non-finite value for {what}: '{tok}'", line_no)
        return value

    def read_floats(self, count: int, what: str) -> Tuple[float, ...]:
        return tuple(self.read_float(what) for _ in range(count))

    def remaining(self) -> Iterator[Tuple[str, int]]:
        return iter(self._items[self._pos:])


def parse_scene_text(text: str) -> ParsedScene:
    """
    Parse a scene description.

    Layout (whitespace separated, line breaks are not significant)::

        nverts
        x y z                 (nverts times)
        npatches
        i0 i1 i2 i3  er eg eb  rr rg rb  n     (npatches times)

    with vertex indices, emissivity, reflectance and subdivision count.
    """
    toks = _Tokens(text)
    nverts = toks.read_int("vertex count")
    if nverts < 0:
        raise SceneParseError(f"Vertex count must be >= 0, got {nverts}")
    vertices: List[Tuple[float, float, float]] = []
    for i in range(nverts):
        x, y, z = toks.read_floats(3, f"vertex {i}")
        vertices.append((x, y, z))

    npatches = toks.read_int("patch count")
    if npatches < 0:
        raise SceneParseError(f"Patch count must be >= 0, got {npatches}")
    patches: List[PatchSpec] = []
    for i in range(npatches):
        idx = tuple(toks.read_int(f"vertex index of patch {i}") for _ in range(4))
        emissivity = toks.read_floats(3, f"emissivity of patch {i}")
        reflectance = toks.read_floats(3, f"reflectance of patch {i}")
        n = toks.read_int(f"subdivision of patch {i}")
        patches.append(
            PatchSpec(
                vertices=(idx[0], idx[1], idx[2], idx[3]),
                emissivity=(emissivity[0], emissivity[1], emissivity[2]),
                reflectance=(reflectance[0], reflectance[1], reflectance[2]),
                subdivision=n,
            )
        )

    extra = next(toks.remaining(), None)
    if extra is not None:
        raise SceneParseError(f"Unexpected trailing token '{extra[0]}'", extra[1])
    return ParsedScene(vertices=vertices, patches=patches)


def format_scene_text(vertices: Sequence[Sequence[float]], patches: Sequence[PatchSpec]) -> str:
    lines = [str(len(vertices))]
    lines += [" ".join(repr(float(c)) for c in v) for v in vertices]
    lines.append(str(len(patches)))
    for p in patches:
        fields = [str(i) for i in p.vertices]
        fields += [repr(float(c)) for c in p.emissivity]
        fields += [repr(float(c)) for c in p.reflectance]
        fields.append(str(p.subdivision))
        lines.append(" ".join(fields))
    return "\n".join(lines) + "\n"


def load_scene(path: str | Path, *, weld: bool = False) -> Scene:
    """Read a scene file and build the mesh; geometry errors propagate from :func:`build_scene`."""
    p = Path(path).expanduser()
    if not p.exists() or not p.is_file():
        raise SceneParseError(f"Scene file not found: {p}")
    try:
        parsed = parse_scene_text(p.read_text(encoding="utf-8"))
    except SceneParseError as e:
        e.filename = str(p)
        raise
    logger.info("Loaded %s: %d vertices, %d patches", p, len(parsed.vertices), len(parsed.patches))
    return build_scene(parsed.vertices, parsed.patches, weld=weld)
