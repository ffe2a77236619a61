"""
Raster toolpath generation.

Converts bitmap raster regions into serpentine scan-line runs of
``Travel`` / ``Cut`` operations.
"""

from laser_control.raster.scanline import (
    Run,
    find_runs,
    plan_line,
    rasterize,
    scaled_power,
)

__all__ = ["Run", "find_runs", "plan_line", "rasterize", "scaled_power"]
