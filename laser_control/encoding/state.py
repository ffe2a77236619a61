"""Command-state minimizer.

The simple protocol keeps power, speed and frequency as sticky
registers on the controller.  ``EncoderState`` remembers the value last
written for each register so the encoder only emits a set-register line
when the value actually changes.

A fresh ``EncoderState`` belongs to exactly one encoding pass; all three
registers start *unset*, so the first value of every job is always
written.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Literal

Register = Literal["power", "speed", "frequency"]


@dataclass
class EncoderState:
    """Last value written per register; ``None`` means unset."""

    power: int | None = None
    speed: int | None = None
    frequency: int | None = None

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, None)

    def update(self, register: Register, value: int) -> bool:
        """Record *value* for *register*.

        Returns
        -------
        bool
            ``True`` if *value* differs from the last written value and
            must be emitted; ``False`` if the line would be redundant.
        """
        if getattr(self, register) == value:
            return False
        setattr(self, register, value)
        return True
