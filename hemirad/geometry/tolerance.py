from __future__ import annotations

# Positional epsilon for near-zero distance/length checks.
EPS_POS = 1e-12

# Angular epsilon (dimensionless tolerance used for orthogonality/unit checks).
EPS_ANG = 1e-9

# Area epsilon for degenerate quad checks.
EPS_AREA = 1e-12

# Plane-distance epsilon for coplanarity checks, relative to the quad diagonal.
EPS_PLANE = 1e-6

# Vertex weld epsilon for merging coincident element grid vertices.
EPS_WELD = 1e-6
