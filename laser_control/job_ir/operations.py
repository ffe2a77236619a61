"""Job IR -- the vocabulary between job geometry and device instructions.

Every job element is an immutable, slotted dataclass.  All coordinates
are **device pixels** at the job's resolution (DPI); conversion to
millimetres or motor steps happens only in the encoder.

Vector commands
---------------
A vector part is an ordered tuple of ``MoveTo`` / ``LineTo`` and
``Set*`` commands.  A ``Set*`` command applies to every following
``LineTo`` until overridden.

Raster regions
--------------
A ``RasterRegion`` is an 8-bit intensity bitmap placed at an origin and
engraved with one constant ``LaserProperty``.  Zero is background.
1-bit bitmaps are stored as 0 / 255.

Toolpath operations
-------------------
The rasterizer lowers raster regions to ``Travel`` / ``Cut`` / ``Focus``
operations, which the encoder renders in the selected dialect.
"""

from __future__ import annotations

import unicodedata
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

# ---------------------------------------------------------------------------
# Laser settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LaserProperty:
    """Laser settings for one raster region.

    Parameters
    ----------
    power : int
        Power in percent.
    speed : int
        Speed in percent.
    frequency : int
        Pulse frequency in Hz.
    focus : float
        Focal offset in mm.
    """

    power: int = 100
    speed: int = 50
    frequency: int = 500
    focus: float = 0.0

    def __post_init__(self) -> None:
        if not 0 <= self.power <= 100:
            raise ValueError(f"power must be in [0, 100], got {self.power}")
        if not 0 <= self.speed <= 100:
            raise ValueError(f"speed must be in [0, 100], got {self.speed}")
        if self.frequency < 0:
            raise ValueError(
                f"frequency must be >= 0, got {self.frequency}"
            )


# ---------------------------------------------------------------------------
# Vector commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VectorCommand(ABC):
    """Base class for all vector-part commands."""

    pass


@dataclass(frozen=True, slots=True)
class MoveTo(VectorCommand):
    """Travel with the laser off to ``(x, y)`` pixels."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class LineTo(VectorCommand):
    """Cut a straight line to ``(x, y)`` pixels with the active settings."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class SetPower(VectorCommand):
    """Set power (percent) for subsequent ``LineTo`` commands."""

    power: int


@dataclass(frozen=True, slots=True)
class SetSpeed(VectorCommand):
    """Set speed (percent) for subsequent ``LineTo`` commands."""

    speed: int


@dataclass(frozen=True, slots=True)
class SetFrequency(VectorCommand):
    """Set pulse frequency (Hz) for subsequent ``LineTo`` commands."""

    frequency: int


@dataclass(frozen=True, slots=True)
class SetFocus(VectorCommand):
    """Set focal offset (mm)."""

    focus: float


# ---------------------------------------------------------------------------
# Raster regions
# ---------------------------------------------------------------------------


def _as_intensity_image(rows: Any) -> np.ndarray:
    """Coerce *rows* to a 2-D ``uint8`` array, rejecting ragged input."""
    if isinstance(rows, np.ndarray):
        image = rows
    else:
        rows = [list(r) for r in rows]
        widths = {len(r) for r in rows}
        if len(widths) > 1:
            raise ValueError(
                f"Raster rows must all have the same width, got {sorted(widths)}"
            )
        image = np.asarray(rows)
        if not rows:
            image = image.reshape(0, 0)

    if image.ndim != 2:
        raise ValueError(f"Raster image must be 2-D, got shape {image.shape}")
    if image.size and image.dtype.kind not in "biu":
        raise ValueError(
            f"Raster intensities must be integers in [0, 255], got dtype {image.dtype}"
        )
    if image.dtype != np.uint8 and image.size:
        if image.min() < 0 or image.max() > 255:
            raise ValueError("Raster intensities must be in [0, 255]")
    # Copy; region images are read-only.
    return image.astype(np.uint8, copy=True)


@dataclass(frozen=True, eq=False)
class RasterRegion:
    """A rectangular bitmap engraved with one laser property.

    Parameters
    ----------
    image : np.ndarray
        ``(height, width)`` intensities in [0, 255]; 0 is background.
        Nested sequences are accepted and converted.
    origin : tuple[int, int]
        Pixel position of the top-left corner.
    prop : LaserProperty
        Power/speed/frequency/focus for the whole region.
    """

    image: np.ndarray
    origin: tuple[int, int] = (0, 0)
    prop: LaserProperty = field(default_factory=LaserProperty)

    def __post_init__(self) -> None:
        image = _as_intensity_image(self.image)
        image.setflags(write=False)
        object.__setattr__(self, "image", image)
        object.__setattr__(
            self, "origin", (int(self.origin[0]), int(self.origin[1])),
        )

    @classmethod
    def from_bitmap(
        cls,
        bits: Any,
        origin: tuple[int, int] = (0, 0),
        prop: LaserProperty | None = None,
    ) -> RasterRegion:
        """Build a region from a 1-bit bitmap (truthy = black = 255)."""
        mask = np.asarray(_as_intensity_image(bits)) != 0
        image = np.where(mask, 255, 0).astype(np.uint8)
        return cls(image, origin, prop if prop is not None else LaserProperty())

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Job:
    """A complete laser job, immutable while it is encoded.

    Parameters
    ----------
    name : str
        Display name; the remote TFTP filename is derived from it.
    resolution : int
        Pixel resolution in DPI for every coordinate in the job.
    vector : tuple[VectorCommand, ...]
        Vector part; empty when the job has none.
    raster : tuple[RasterRegion, ...]
        1-bit raster part (images hold only 0 / 255).
    raster3d : tuple[RasterRegion, ...]
        Grayscale raster part.
    """

    name: str
    resolution: int
    vector: tuple[VectorCommand, ...] = ()
    raster: tuple[RasterRegion, ...] = ()
    raster3d: tuple[RasterRegion, ...] = ()

    def __post_init__(self) -> None:
        if self.resolution <= 0:
            raise ValueError(
                f"resolution must be positive, got {self.resolution}"
            )
        object.__setattr__(self, "vector", tuple(self.vector))
        object.__setattr__(self, "raster", tuple(self.raster))
        object.__setattr__(self, "raster3d", tuple(self.raster3d))

    def contains_vector(self) -> bool:
        return bool(self.vector)

    def contains_raster(self) -> bool:
        return bool(self.raster)

    def contains_raster3d(self) -> bool:
        return bool(self.raster3d)

    @property
    def remote_filename(self) -> str:
        """Filename used for block transfer: name without spaces + ``.lgc``.

        TFTP filenames are ASCII, so accented letters are folded to their
        base letter and other non-ASCII or control characters are dropped.
        A name with nothing left becomes ``job.lgc``.
        """
        folded = unicodedata.normalize("NFKD", self.name)
        ascii_name = folded.encode("ascii", "ignore").decode("ascii")
        stem = "".join(c for c in ascii_name if c.isprintable() and not c.isspace())
        return (stem or "job") + ".lgc"


# ---------------------------------------------------------------------------
# Toolpath operations  (produced by the rasterizer)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Operation(ABC):
    """Base class for toolpath operations."""

    pass


@dataclass(frozen=True, slots=True)
class Travel(Operation):
    """Move with the laser off to ``(x, y)`` pixels."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class Cut(Operation):
    """Move with the laser on to ``(x, y)`` pixels.

    ``power`` is already scaled by the pixel intensity.
    """

    x: int
    y: int
    power: int
    speed: int
    frequency: int


@dataclass(frozen=True, slots=True)
class Focus(Operation):
    """Set the focal offset (mm) before a raster region."""

    focus: float


def vector_from_points(
    points: Sequence[tuple[int, int]],
    prop: LaserProperty | None = None,
) -> tuple[VectorCommand, ...]:
    """Build a vector part that cuts one polyline.

    Parameters
    ----------
    points : Sequence[tuple[int, int]]
        Ordered vertices in pixels.  Must contain >= 2 points.
    prop : LaserProperty | None
        Settings emitted before the polyline.  ``None`` emits none, so
        the encoder defaults apply.

    Returns
    -------
    tuple[VectorCommand, ...]
        ``[Set*..., MoveTo, LineTo...]``
    """
    if len(points) < 2:
        raise ValueError("Polyline requires at least 2 points")

    cmds: list[VectorCommand] = []
    if prop is not None:
        cmds += [
            SetPower(prop.power),
            SetSpeed(prop.speed),
            SetFrequency(prop.frequency),
            SetFocus(prop.focus),
        ]
    cmds.append(MoveTo(*points[0]))
    cmds.extend(LineTo(x, y) for x, y in points[1:])
    return tuple(cmds)
