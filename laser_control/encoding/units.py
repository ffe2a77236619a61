"""Unit conversion between pixels, millimetres and motor steps.

Job coordinates are pixels at the job resolution (DPI).  The G-code
dialect speaks millimetres; the simple dialect speaks motor steps of
``mm_per_step`` millimetres each.

Axis flip:
    When the machine's X axis runs right to left, every commanded X is
    mirrored about the bed: ``x' = bed_width_px - x``.  Applying the
    flip twice returns the original coordinate.
"""

from __future__ import annotations

from dataclasses import dataclass

MM_PER_INCH = 25.4


def px2mm(px: float, dpi: float) -> float:
    """Pixels at *dpi* to millimetres."""
    return px * MM_PER_INCH / dpi


def mm2px(mm: float, dpi: float) -> float:
    """Millimetres to (fractional) pixels at *dpi*."""
    return mm * dpi / MM_PER_INCH


@dataclass(frozen=True)
class CoordinateTransform:
    """Pixel -> device coordinate mapping for one encoding pass.

    Parameters
    ----------
    dpi : int
        Job resolution.
    bed_width_mm : float
        Bed width, the mirror axis for ``flip_x``.
    flip_x : bool
        Mirror X about the bed width.
    mm_per_step : float
        Motor step size (simple dialect only).
    """

    dpi: int
    bed_width_mm: float
    flip_x: bool = False
    mm_per_step: float = 0.001

    @property
    def bed_width_px(self) -> float:
        return mm2px(self.bed_width_mm, self.dpi)

    def x(self, px: float) -> float:
        """Apply the axis flip to an X pixel coordinate."""
        return self.bed_width_px - px if self.flip_x else px

    def to_mm(self, px: float) -> float:
        return px2mm(px, self.dpi)

    def to_steps(self, px: float) -> int:
        """Pixels to whole motor steps (truncated toward zero)."""
        return int(px2mm(px, self.dpi) / self.mm_per_step)

    def mm_to_steps(self, mm: float) -> int:
        return int(mm / self.mm_per_step)
