"""Scan-line rasterizer -- raster regions to laser-on motion runs.

Each region is engraved top to bottom, one pixel row per scan line, in a
serpentine (boustrophedon) pattern: the head alternates between
left-to-right and right-to-left so it never makes an empty return
stroke.

Per line:
    1. Leading and trailing background (zero) pixels are trimmed.
    2. The remainder is split into maximal constant-intensity *runs*;
       interior background pixels always end a run.
    3. Every run becomes one ``Cut`` from its leading to its trailing
       pixel, with power ``prop.power * intensity // 255``.  Gaps between
       runs are crossed with ``Travel``.

Direction bookkeeping:
    The direction flips after **every** line of a raster part, including
    lines that are entirely background and so emit nothing.  The flag
    carries across region boundaries within one part.

Padding:
    For 1-bit parts the caller passes ``padding_px > 0``; each non-empty
    line then starts and ends with an extra ``Travel`` that lets the
    head reach speed before the first laser-on pixel.  The padded
    positions are clamped to ``[0, bed_width_px]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from laser_control.job_ir.operations import (
    Cut,
    Focus,
    LaserProperty,
    Operation,
    RasterRegion,
    Travel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Run:
    """A contiguous span of same-intensity pixels on one scan line.

    Parameters
    ----------
    start, end : int
        First and last pixel X (inclusive, absolute pixels).
    intensity : int
        Pixel value in [1, 255].
    """

    start: int
    end: int
    intensity: int


def scaled_power(prop: LaserProperty, intensity: int) -> int:
    """Power for a run of *intensity* under *prop* (integer scaling)."""
    return prop.power * intensity // 255


def find_runs(row: np.ndarray, x0: int = 0) -> list[Run]:
    """Split one pixel row into runs.

    Parameters
    ----------
    row : np.ndarray
        1-D intensities for a single scan line.
    x0 : int
        Absolute X of ``row[0]``.

    Returns
    -------
    list[Run]
        Runs ordered left to right; empty when the row is all background.
    """
    row = np.asarray(row)
    nonzero = np.flatnonzero(row)
    if nonzero.size == 0:
        return []

    first = int(nonzero[0])
    trimmed = row[first:int(nonzero[-1]) + 1].astype(np.int16)

    # Indices where the value differs from its left neighbour
    breaks = np.flatnonzero(np.diff(trimmed)) + 1
    starts = np.concatenate(([0], breaks))
    ends = np.concatenate((breaks - 1, [trimmed.size - 1]))

    return [
        Run(x0 + first + int(s), x0 + first + int(e), int(trimmed[s]))
        for s, e in zip(starts, ends)
        if trimmed[s] != 0
    ]


def plan_line(
    runs: list[Run],
    y: int,
    left_to_right: bool,
    prop: LaserProperty,
    *,
    bed_width_px: float,
    padding_px: float = 0.0,
) -> list[Operation]:
    """Turn the runs of one scan line into toolpath operations.

    Parameters
    ----------
    runs : list[Run]
        Runs ordered left to right (as returned by :func:`find_runs`).
    y : int
        Absolute Y of the line.
    left_to_right : bool
        Traversal direction.
    prop : LaserProperty
        Settings of the region the line belongs to.
    bed_width_px : float
        Bed width in pixels; the right padding clamp.
    padding_px : float
        Acceleration distance.  ``0`` disables padding moves.

    Returns
    -------
    list[Operation]
        ``Travel`` / ``Cut`` operations; empty when *runs* is empty.
    """
    if not runs:
        return []

    ops: list[Operation] = []
    pad_left = max(0, int(runs[0].start - padding_px))
    pad_right = min(int(bed_width_px), int(runs[-1].end + padding_px))

    def cut_to(x: int, run: Run) -> Cut:
        return Cut(
            x, y,
            scaled_power(prop, run.intensity), prop.speed, prop.frequency,
        )

    if left_to_right:
        if padding_px > 0:
            ops.append(Travel(pad_left, y))
        for run in runs:
            ops.append(Travel(run.start, y))
            ops.append(cut_to(run.end, run))
        if padding_px > 0:
            ops.append(Travel(pad_right, y))
    else:
        if padding_px > 0:
            ops.append(Travel(pad_right, y))
        for run in reversed(runs):
            ops.append(Travel(run.end, y))
            ops.append(cut_to(run.start, run))
        if padding_px > 0:
            ops.append(Travel(pad_left, y))

    return ops


def rasterize(
    regions: Iterable[RasterRegion],
    *,
    bed_width_px: float,
    padding_px: float = 0.0,
) -> list[Operation]:
    """Lower all regions of one raster part to toolpath operations.

    Parameters
    ----------
    regions : Iterable[RasterRegion]
        Regions in engraving order.
    bed_width_px : float
        Bed width in pixels (right padding clamp).
    padding_px : float
        Per-line acceleration distance; pass ``0`` for grayscale parts.

    Returns
    -------
    list[Operation]
        One ``Focus`` per region followed by the serpentine line moves.
    """
    ops: list[Operation] = []
    left_to_right = True

    for region in regions:
        ox, oy = region.origin
        ops.append(Focus(region.prop.focus))
        emitted_lines = 0

        for line, row in enumerate(region.image):
            runs = find_runs(row, ox)
            line_ops = plan_line(
                runs,
                oy + line,
                left_to_right,
                region.prop,
                bed_width_px=bed_width_px,
                padding_px=padding_px,
            )
            if line_ops:
                emitted_lines += 1
                ops.extend(line_ops)
            left_to_right = not left_to_right

        logger.debug(
            "Region at %s: %d/%d lines engraved",
            region.origin, emitted_lines, region.height,
        )

    return ops
