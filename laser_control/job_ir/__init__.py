"""
Job Intermediate Representation module.

Defines the job (vector commands, raster regions, laser properties) and
the toolpath operations the rasterizer produces, as immutable
dataclasses, and loads YAML job files (``job.v1``) into a ``Job``.

All coordinates are device pixels at the job's resolution (DPI).
"""

from laser_control.job_ir.operations import (
    Cut,
    Focus,
    Job,
    LaserProperty,
    LineTo,
    MoveTo,
    Operation,
    RasterRegion,
    SetFocus,
    SetFrequency,
    SetPower,
    SetSpeed,
    Travel,
    VectorCommand,
    vector_from_points,
)
from laser_control.job_ir.job_file import (
    JobFileV1,
    load_job_file,
)

__all__ = [
    "Cut",
    "Focus",
    "Job",
    "JobFileV1",
    "LaserProperty",
    "LineTo",
    "MoveTo",
    "Operation",
    "RasterRegion",
    "SetFocus",
    "SetFrequency",
    "SetPower",
    "SetSpeed",
    "Travel",
    "VectorCommand",
    "load_job_file",
    "vector_from_points",
]
