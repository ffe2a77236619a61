"""Job encoder -- Job IR to the controller's instruction stream.

A job is encoded in five sections, always in this order::

    INIT       dialect preamble
    RASTER3D   grayscale raster part
    RASTER     1-bit raster part (with per-line padding)
    VECTOR     vector part
    SHUTDOWN   dialect trailer

Sections for absent parts are empty but still produced, so callers can
report a progress milestone per section.

Each call to :meth:`JobEncoder.iter_sections` is one encoding pass with
its own ``EncoderState`` and dialect instance; nothing is shared between
passes, so one encoder can serve any number of sequential jobs.
"""

from __future__ import annotations

import logging
from enum import Enum
from io import StringIO
from typing import Iterable, Iterator

from laser_control.configs.loader import LaserConfig
from laser_control.encoding.dialects import Dialect, make_dialect
from laser_control.encoding.state import EncoderState
from laser_control.encoding.units import mm2px
from laser_control.job_ir.operations import (
    Cut,
    Focus,
    Job,
    LineTo,
    MoveTo,
    Operation,
    SetFocus,
    SetFrequency,
    SetPower,
    SetSpeed,
    Travel,
    VectorCommand,
)
from laser_control.raster.scanline import rasterize

logger = logging.getLogger(__name__)

# Vector settings in effect before the first Set* command
DEFAULT_POWER = 100
DEFAULT_SPEED = 50
DEFAULT_FREQUENCY = 500


class EncodingError(Exception):
    """Raised when the encoder is handed something it cannot render."""

    pass


class Section(Enum):
    """Encoded job sections, in stream order."""

    INIT = "init"
    RASTER3D = "raster3d"
    RASTER = "raster"
    VECTOR = "vector"
    SHUTDOWN = "shutdown"


class JobEncoder:
    """Encode jobs for the dialect selected in the device config.

    Parameters
    ----------
    config : LaserConfig
        Validated device configuration (read-only during a pass).
    """

    def __init__(self, config: LaserConfig) -> None:
        self._cfg = config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encode(self, job: Job) -> bytes:
        """Encode *job* into one ASCII byte string."""
        return b"".join(data for _, data in self.iter_sections(job))

    def iter_sections(self, job: Job) -> Iterator[tuple[Section, bytes]]:
        """Encode *job* lazily, one section at a time.

        Yields
        ------
        tuple[Section, bytes]
            Section tag and its ASCII bytes (possibly empty).
        """
        state = EncoderState()
        dialect = make_dialect(self._cfg, job.resolution, state)
        logger.debug(
            "Encoding job %r at %d DPI (%s dialect)",
            job.name, job.resolution, dialect.name,
        )

        yield Section.INIT, _ascii(dialect.preamble())

        bed_width_px = dialect.transform.bed_width_px

        ops3d = rasterize(job.raster3d, bed_width_px=bed_width_px)
        yield Section.RASTER3D, self._render_ops(ops3d, dialect)

        padding_px = self._padding_px(job.resolution)
        ops2d = rasterize(
            job.raster, bed_width_px=bed_width_px, padding_px=padding_px,
        )
        yield Section.RASTER, self._render_ops(ops2d, dialect)

        yield Section.VECTOR, self._render_vector(job.vector, dialect)

        yield Section.SHUTDOWN, _ascii(dialect.trailer())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _padding_px(self, dpi: int) -> float:
        return mm2px(self._cfg.raster.padding_mm, dpi)

    def _render_ops(
        self, ops: Iterable[Operation], dialect: Dialect,
    ) -> bytes:
        buf = StringIO()
        for op in ops:
            if isinstance(op, Travel):
                buf.write(dialect.move(op.x, op.y))
            elif isinstance(op, Cut):
                buf.write(
                    dialect.line(op.x, op.y, op.power, op.speed, op.frequency)
                )
            elif isinstance(op, Focus):
                buf.write(dialect.focus(op.focus))
            else:
                raise EncodingError(
                    f"Unsupported toolpath operation: {type(op).__name__}"
                )
        return _ascii(buf.getvalue())

    def _render_vector(
        self, commands: Iterable[VectorCommand], dialect: Dialect,
    ) -> bytes:
        buf = StringIO()
        power = DEFAULT_POWER
        speed = DEFAULT_SPEED
        frequency = DEFAULT_FREQUENCY

        for cmd in commands:
            if isinstance(cmd, MoveTo):
                buf.write(dialect.move(cmd.x, cmd.y))
            elif isinstance(cmd, LineTo):
                buf.write(dialect.line(cmd.x, cmd.y, power, speed, frequency))
            elif isinstance(cmd, SetPower):
                power = cmd.power
            elif isinstance(cmd, SetSpeed):
                speed = cmd.speed
            elif isinstance(cmd, SetFrequency):
                frequency = cmd.frequency
            elif isinstance(cmd, SetFocus):
                buf.write(dialect.focus(cmd.focus))
            else:
                raise EncodingError(
                    f"Unsupported vector command: {type(cmd).__name__}"
                )
        return _ascii(buf.getvalue())


def _ascii(text: str) -> bytes:
    return text.encode("ascii")
