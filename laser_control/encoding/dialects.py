"""Output dialects understood by the LAOS controller.

Both dialects implement the same narrow contract -- render one
instruction as a newline-terminated ASCII line -- and are selected by
``encoding.use_gcode`` in the device config.

Simple numeric protocol
    Opcode-prefixed integer lines, coordinates in motor steps::

        0 x y        travel (laser off)
        1 x y        cut (laser on)
        2 f          set focus (steps)
        7 100 s      set speed   (percent * 100)
        7 101 p      set power   (percent * 100)
        7 102 q      set frequency (Hz)

    Power, speed and frequency lines go through the ``EncoderState``
    minimizer and are only written when the value changes.

G-code subset
    ``G0 X.. Y..`` / ``G1 X.. Y.. E<power> F<speed>`` in millimetres
    with a fixed three-decimal format, plus a homing / ventilation
    preamble and a shutdown trailer.  Power and speed travel inline on
    every ``G1``.  The controller defines no G-code for frequency or
    focus; both are dropped with a one-time warning per pass.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from laser_control.configs.loader import LaserConfig
from laser_control.encoding.state import EncoderState
from laser_control.encoding.units import CoordinateTransform

logger = logging.getLogger(__name__)


class Dialect(ABC):
    """Render toolpath instructions for one encoding pass.

    Parameters
    ----------
    transform : CoordinateTransform
        Pixel -> device coordinate mapping for the job resolution.
    state : EncoderState
        Register cache owned by the current pass.
    """

    name: str = ""

    def __init__(
        self, transform: CoordinateTransform, state: EncoderState,
    ) -> None:
        self.transform = transform
        self.state = state

    @abstractmethod
    def preamble(self) -> str:
        """Lines sent once before any job content."""

    @abstractmethod
    def trailer(self) -> str:
        """Lines sent once after all job content."""

    @abstractmethod
    def move(self, x: float, y: float) -> str:
        """Laser-off travel to pixel ``(x, y)``."""

    @abstractmethod
    def line(
        self, x: float, y: float, power: int, speed: int, frequency: int,
    ) -> str:
        """Laser-on move to pixel ``(x, y)``."""

    @abstractmethod
    def focus(self, focus_mm: float) -> str:
        """Set the focal offset."""


class SimpleDialect(Dialect):
    """Fixed-format numeric protocol, coordinates in motor steps."""

    name = "simple"

    def preamble(self) -> str:
        return ""

    def trailer(self) -> str:
        return "2 0\n"

    def _xy(self, x: float, y: float) -> str:
        t = self.transform
        return f"{t.to_steps(t.x(x))} {t.to_steps(y)}"

    def move(self, x: float, y: float) -> str:
        return f"0 {self._xy(x, y)}\n"

    def line(
        self, x: float, y: float, power: int, speed: int, frequency: int,
    ) -> str:
        out = []
        if self.state.update("power", power):
            out.append(f"7 101 {power * 100}\n")
        if self.state.update("speed", speed):
            out.append(f"7 100 {speed * 100}\n")
        if self.state.update("frequency", frequency):
            out.append(f"7 102 {frequency}\n")
        out.append(f"1 {self._xy(x, y)}\n")
        return "".join(out)

    def focus(self, focus_mm: float) -> str:
        return f"2 {self.transform.mm_to_steps(focus_mm)}\n"


class GCodeDialect(Dialect):
    """G-code subset, coordinates in millimetres."""

    name = "gcode"

    def __init__(
        self, transform: CoordinateTransform, state: EncoderState,
    ) -> None:
        super().__init__(transform, state)
        self._warned: set[str] = set()

    def _unsupported(self, what: str) -> None:
        if what not in self._warned:
            self._warned.add(what)
            logger.warning(
                "G-code dialect has no %s instruction; value ignored", what,
            )

    def preamble(self) -> str:
        return (
            "G28\n"        # home
            "G21\n"        # units: mm
            "M106\n"       # ventilation on
            "M151 100\n"   # air assist on
        )

    def trailer(self) -> str:
        return (
            "G0 X0.000 Y0.000\n"
            "G28\n"
            "M107\n"       # ventilation off
            "M151 0\n"     # air assist off
            "M0\n"
        )

    def _xy(self, x: float, y: float) -> str:
        t = self.transform
        return f"X{t.to_mm(t.x(x)):.3f} Y{t.to_mm(y):.3f}"

    def move(self, x: float, y: float) -> str:
        return f"G0 {self._xy(x, y)}\n"

    def line(
        self, x: float, y: float, power: int, speed: int, frequency: int,
    ) -> str:
        self._unsupported("frequency")
        return f"G1 {self._xy(x, y)} E{power:d} F{speed:d}\n"

    def focus(self, focus_mm: float) -> str:
        self._unsupported("focus")
        return ""


def make_dialect(
    config: LaserConfig, dpi: int, state: EncoderState,
) -> Dialect:
    """Build the dialect selected by *config* for a job at *dpi*."""
    transform = CoordinateTransform(
        dpi=dpi,
        bed_width_mm=config.bed.width_mm,
        flip_x=config.bed.flip_x,
        mm_per_step=config.encoding.mm_per_step,
    )
    cls = GCodeDialect if config.encoding.use_gcode else SimpleDialect
    return cls(transform, state)
