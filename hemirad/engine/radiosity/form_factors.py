from __future__ import annotations

import csv
import io
import logging
import math
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed

from hemirad.engine.radiosity.hemicube import HemicubeConfig, estimate_patch_row
from hemirad.geometry.mesh import Scene

logger = logging.getLogger(__name__)

HEADER_MARKER = "F/E"


class TableFormatError(ValueError):
    pass


class TableShapeMismatchError(TableFormatError):
    """Persisted table dimensions do not match the scene."""


class FormFactorCancelled(RuntimeError):
    """
    Raised when generation is cancelled.

    ``table`` holds only the rows of patches listed in ``completed``; every
    other row is zero.
    """

    def __init__(self, table: "FormFactorTable", completed: List[int]):
        super().__init__(
            f"Form factor generation cancelled after {len(completed)}/{table.num_patches} patches."
        )
        self.table = table
        self.completed = completed


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class FormFactorTable:
    """
    Dense patch -> element form factor table, ``values[patch, element]``.

    Built once per scene and read-only during refinement.
    """

    def __init__(self, num_patches: int, num_elements: int, values: Optional[np.ndarray] = None):
        if num_patches < 0 or num_elements < 0:
            raise ValueError("Table dimensions must be non-negative.")
        if values is None:
            values = np.zeros((num_patches, num_elements), dtype=np.float64)
        else:
            values = np.array(values, dtype=np.float64)
            if values.shape != (num_patches, num_elements):
                raise TableShapeMismatchError(
                    f"Values have shape {values.shape}, expected {(num_patches, num_elements)}."
                )
            if not np.all(np.isfinite(values)) or np.any(values < 0.0):
                raise ValueError("Form factors must be finite and non-negative.")
        self._values = values

    @classmethod
    def for_scene(cls, scene: Scene) -> "FormFactorTable":
        return cls(scene.num_patches, scene.num_elements)

    @property
    def values(self) -> np.ndarray:
        view = self._values.view()
        view.setflags(write=False)
        return view

    @property
    def shape(self) -> Tuple[int, int]:
        return (int(self._values.shape[0]), int(self._values.shape[1]))

    @property
    def num_patches(self) -> int:
        return self.shape[0]

    @property
    def num_elements(self) -> int:
        return self.shape[1]

    def get(self, patch_id: int, element_id: int) -> float:
        return float(self._values[patch_id, element_id])

    def set(self, patch_id: int, element_id: int, value: float) -> None:
        self._values[patch_id, element_id] = _coefficient(value)

    def accumulate(self, patch_id: int, element_id: int, value: float) -> None:
        self._values[patch_id, element_id] = _coefficient(self._values[patch_id, element_id] + value)

    def row(self, patch_id: int) -> np.ndarray:
        view = self._values[patch_id].view()
        view.setflags(write=False)
        return view

    def set_row(self, patch_id: int, row: np.ndarray) -> None:
        row = np.asarray(row, dtype=np.float64)
        if row.shape != (self.num_elements,):
            raise TableShapeMismatchError(f"Row has shape {row.shape}, expected ({self.num_elements},).")
        if not np.all(np.isfinite(row)) or np.any(row < 0.0):
            raise ValueError("Form factors must be finite and non-negative.")
        self._values[patch_id, :] = row

    def total(self) -> float:
        return float(np.sum(self._values))

    def copy(self) -> "FormFactorTable":
        return FormFactorTable(self.num_patches, self.num_elements, self._values.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormFactorTable):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._values, other._values))

    def __repr__(self) -> str:
        return f"FormFactorTable(num_patches={self.num_patches}, num_elements={self.num_elements})"

    def serialize(self) -> str:
        """
        CSV text: header ``F/E,0,1,...,E-1`` then ``patchId,coef_0,...`` per patch.

        Coefficients use the shortest repr that round-trips exactly.
        """
        buf = io.StringIO()
        w = csv.writer(buf, lineterminator="\n")
        w.writerow([HEADER_MARKER] + [str(e) for e in range(self.num_elements)])
        for p in range(self.num_patches):
            w.writerow([str(p)] + [repr(float(v)) for v in self._values[p]])
        return buf.getvalue()

    @classmethod
    def deserialize(
        cls,
        text: str,
        *,
        num_patches: Optional[int] = None,
        num_elements: Optional[int] = None,
    ) -> "FormFactorTable":
        """
        Parse :meth:`serialize` output.

        When ``num_patches``/``num_elements`` are given the table must match
        them exactly; a mismatch raises :class:`TableShapeMismatchError`
        instead of truncating or padding.
        """
        rows = [r for r in csv.reader(io.StringIO(text)) if r]
        if not rows:
            raise TableFormatError("Form factor table is empty.")

        header = rows[0]
        if header[0].strip() != HEADER_MARKER:
            raise TableFormatError(f"Header must start with {HEADER_MARKER!r}, got {header[0]!r}.")
        n_cols = len(header) - 1
        if num_elements is not None and n_cols != num_elements:
            raise TableShapeMismatchError(
                f"Table has {n_cols} element columns, scene has {num_elements} elements."
            )
        for k, cell in enumerate(header[1:]):
            if _parse_int(cell, line_no=1) != k:
                raise TableFormatError(f"Header column {k + 1} should be element id {k}, got {cell!r}.")

        body = rows[1:]
        if num_patches is not None and len(body) != num_patches:
            raise TableShapeMismatchError(
                f"Table has {len(body)} patch rows, scene has {num_patches} patches."
            )

        values = np.zeros((len(body), n_cols), dtype=np.float64)
        for p, row in enumerate(body):
            line_no = p + 2
            if len(row) != n_cols + 1:
                raise TableShapeMismatchError(
                    f"Line {line_no}: expected {n_cols} coefficients, got {len(row) - 1}."
                )
            if _parse_int(row[0], line_no=line_no) != p:
                raise TableFormatError(f"Line {line_no}: expected patch id {p}, got {row[0]!r}.")
            for e, cell in enumerate(row[1:]):
                try:
                    v = float(cell)
                except ValueError as exc:
                    raise TableFormatError(f"Line {line_no}: invalid coefficient {cell!r}.") from exc
                if not math.isfinite(v) or v < 0.0:
                    raise TableFormatError(f"Line {line_no}: coefficient {cell!r} must be finite and non-negative.")
                values[p, e] = v
        return cls(len(body), n_cols, values)

    def save(self, path: str | Path) -> Path:
        out = Path(path).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(self.serialize(), encoding="utf-8")
        logger.info("Form factor table written to %s", out)
        return out


def _coefficient(value: float) -> float:
    v = float(value)
    if not math.isfinite(v) or v < 0.0:
        raise ValueError(f"Form factor must be finite and non-negative, got {value!r}.")
    return v


def _parse_int(cell: str, *, line_no: int) -> int:
    try:
        return int(cell.strip())
    except ValueError as exc:
        raise TableFormatError(f"Line {line_no}: expected an integer id, got {cell!r}.") from exc


def check_table_shape(table: FormFactorTable, scene: Scene) -> None:
    expected = (scene.num_patches, scene.num_elements)
    if table.shape != expected:
        raise TableShapeMismatchError(f"Table shape {table.shape} does not match scene shape {expected}.")


def load_table(path: str | Path, scene: Scene) -> FormFactorTable:
    """Read a persisted table and validate it against the scene's dimensions."""
    p = Path(path).expanduser()
    logger.info("Reading form factor table %s", p)
    table = FormFactorTable.deserialize(
        p.read_text(encoding="utf-8"),
        num_patches=scene.num_patches,
        num_elements=scene.num_elements,
    )
    logger.info("Loaded table: total form factor %g", table.total())
    return table


def _patch_row(
    scene: Scene,
    patch_id: int,
    config: HemicubeConfig,
    cancel: Optional[CancellationToken],
) -> Tuple[int, Optional[np.ndarray]]:
    if cancel is not None and cancel.cancelled:
        return patch_id, None
    logger.debug("Computing form factors for patch %d/%d", patch_id + 1, scene.num_patches)
    return patch_id, estimate_patch_row(scene, patch_id, config)


def generate_form_factors(
    scene: Scene,
    config: Optional[HemicubeConfig] = None,
    *,
    n_jobs: int = 1,
    cancel: Optional[CancellationToken] = None,
) -> FormFactorTable:
    """
    Compute the patch -> element form factor table with one hemicube per patch.

    Patches are independent and are spread over ``n_jobs`` worker threads
    (the rasterization kernel releases the GIL). Each worker returns a full
    row; rows are written to the table only after the join.

    Raises:
        FormFactorCancelled: ``cancel`` was triggered; the exception carries
            the table of completed rows.
    """
    cfg = config or HemicubeConfig()
    table = FormFactorTable.for_scene(scene)
    if scene.num_patches == 0:
        return table

    # Materialize shared arrays before the workers start.
    _ = scene.element_quads

    logger.info(
        "Generating form factors: %d patches x %d elements, hemicube resolution %d",
        scene.num_patches,
        scene.num_elements,
        cfg.resolution,
    )
    t0 = time.perf_counter()
    results = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_patch_row)(scene, i, cfg, cancel) for i in range(scene.num_patches)
    )

    completed: List[int] = []
    for patch_id, row in results:
        if row is None:
            continue
        table.set_row(patch_id, row)
        completed.append(patch_id)
    completed.sort()

    if len(completed) != scene.num_patches:
        logger.warning("Form factor generation cancelled: %d/%d rows complete", len(completed), scene.num_patches)
        raise FormFactorCancelled(table, completed)

    logger.info(
        "Form factors done in %.2f s, total form factor %g",
        time.perf_counter() - t0,
        table.total(),
    )
    return table
