"""
Instruction encoding module.

Renders Job IR (vector commands and rasterized toolpaths) into one of
the controller's two dialects, with unit conversion, axis flip and
redundant-state suppression.
"""

from laser_control.encoding.dialects import (
    Dialect,
    GCodeDialect,
    SimpleDialect,
    make_dialect,
)
from laser_control.encoding.encoder import EncodingError, JobEncoder, Section
from laser_control.encoding.state import EncoderState
from laser_control.encoding.units import CoordinateTransform, mm2px, px2mm

__all__ = [
    "CoordinateTransform",
    "Dialect",
    "EncoderState",
    "EncodingError",
    "GCodeDialect",
    "JobEncoder",
    "Section",
    "SimpleDialect",
    "make_dialect",
    "mm2px",
    "px2mm",
]
