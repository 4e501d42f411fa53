"""Radiosity engine: hemicube form factors, progressive refinement, vertex colors."""
