from __future__ import annotations

import math

import numba
import numpy as np


@numba.njit(cache=True, nogil=True)
def _clip_near(cam: np.ndarray, near: float, out: np.ndarray) -> int:
    """Clip a camera-space polygon against ``z >= near``; returns the vertex count written to ``out``."""
    n = cam.shape[0]
    m = 0
    for k in range(n):
        k1 = (k + 1) % n
        az = cam[k, 2]
        bz = cam[k1, 2]
        a_in = az >= near
        b_in = bz >= near
        if a_in:
            out[m, 0] = cam[k, 0]
            out[m, 1] = cam[k, 1]
            out[m, 2] = cam[k, 2]
            m += 1
        if a_in != b_in:
            t = (near - az) / (bz - az)
            out[m, 0] = cam[k, 0] + t * (cam[k1, 0] - cam[k, 0])
            out[m, 1] = cam[k, 1] + t * (cam[k1, 1] - cam[k, 1])
            out[m, 2] = near
            m += 1
    return m


@numba.njit(cache=True, nogil=True)
def rasterize_nearest(
    quads: np.ndarray,  # float64[E, 4, 3]
    origin: np.ndarray,  # float64[3]
    axes: np.ndarray,  # float64[3, 3]: screen x, screen y, view direction
    near: float,
    x_lo: float,
    x_hi: float,
    y_lo: float,
    y_hi: float,
    width: int,
    height: int,
) -> np.ndarray:
    """
    Software z-buffer for one hemicube face.

    Every quad is transformed into the face's camera frame, clipped against
    the near plane, projected onto the unit plane ``z = 1`` and scan-converted
    by pixel-center coverage. Depth is evaluated exactly from the quad's plane
    at each pixel center. Returns the id of the nearest quad per pixel, or -1.
    Equal depths keep the lower id.
    """
    ids = np.full((height, width), -1, dtype=np.int64)
    depth = np.full((height, width), np.inf)
    px = (x_hi - x_lo) / width
    py = (y_hi - y_lo) / height

    cam = np.empty((4, 3))
    clipped = np.empty((8, 3))
    sx = np.empty(8)
    sy = np.empty(8)

    for e in range(quads.shape[0]):
        scale = 0.0
        for k in range(4):
            dx = quads[e, k, 0] - origin[0]
            dy = quads[e, k, 1] - origin[1]
            dz = quads[e, k, 2] - origin[2]
            for a in range(3):
                cam[k, a] = dx * axes[a, 0] + dy * axes[a, 1] + dz * axes[a, 2]
                if abs(cam[k, a]) > scale:
                    scale = abs(cam[k, a])

        # Plane of the quad from its diagonals.
        d1x = cam[2, 0] - cam[0, 0]
        d1y = cam[2, 1] - cam[0, 1]
        d1z = cam[2, 2] - cam[0, 2]
        d2x = cam[3, 0] - cam[1, 0]
        d2y = cam[3, 1] - cam[1, 1]
        d2z = cam[3, 2] - cam[1, 2]
        nx = d1y * d2z - d1z * d2y
        ny = d1z * d2x - d1x * d2z
        nz = d1x * d2y - d1y * d2x
        nlen = math.sqrt(nx * nx + ny * ny + nz * nz)
        if nlen == 0.0:
            continue
        nx /= nlen
        ny /= nlen
        nz /= nlen
        plane_d = nx * cam[0, 0] + ny * cam[0, 1] + nz * cam[0, 2]
        # Eye in the quad's plane: seen edge-on, covers no solid angle.
        if abs(plane_d) <= 1e-10 * (1.0 + scale):
            continue

        m = _clip_near(cam, near, clipped)
        if m < 3:
            continue

        xmin = np.inf
        xmax = -np.inf
        ymin = np.inf
        ymax = -np.inf
        for k in range(m):
            inv = 1.0 / clipped[k, 2]
            sx[k] = clipped[k, 0] * inv
            sy[k] = clipped[k, 1] * inv
            if sx[k] < xmin:
                xmin = sx[k]
            if sx[k] > xmax:
                xmax = sx[k]
            if sy[k] < ymin:
                ymin = sy[k]
            if sy[k] > ymax:
                ymax = sy[k]
        if xmax < x_lo or xmin > x_hi or ymax < y_lo or ymin > y_hi:
            continue

        area2 = 0.0
        for k in range(m):
            k1 = (k + 1) % m
            area2 += sx[k] * sy[k1] - sx[k1] * sy[k]
        if area2 == 0.0:
            continue
        orient = 1.0 if area2 > 0.0 else -1.0

        fi0 = max(0.0, (xmin - x_lo) / px)
        fi1 = min(width - 1.0, (xmax - x_lo) / px)
        fj0 = max(0.0, (ymin - y_lo) / py)
        fj1 = min(height - 1.0, (ymax - y_lo) / py)
        i0 = int(math.floor(fi0))
        i1 = int(math.floor(fi1))
        j0 = int(math.floor(fj0))
        j1 = int(math.floor(fj1))

        for j in range(j0, j1 + 1):
            cy = y_lo + (j + 0.5) * py
            for i in range(i0, i1 + 1):
                cx = x_lo + (i + 0.5) * px
                inside = True
                for k in range(m):
                    k1 = (k + 1) % m
                    c = (sx[k1] - sx[k]) * (cy - sy[k]) - (sy[k1] - sy[k]) * (cx - sx[k])
                    if c * orient < 0.0:
                        inside = False
                        break
                if not inside:
                    continue
                denom = nx * cx + ny * cy + nz
                if denom == 0.0:
                    continue
                z = plane_d / denom
                if z <= 0.0:
                    continue
                if z < depth[j, i]:
                    depth[j, i] = z
                    ids[j, i] = e
    return ids
