"""YAML job files (``job.v1`` schema).

A job file names the job, its resolution, an optional vector command
list and optional 1-bit / grayscale raster regions backed by image
files::

    schema: job.v1
    name: Name Badge
    resolution: 500
    vector:
      - power: 80
      - speed: 30
      - move: [100, 100]
      - line: [900, 100]
    raster:
      - image: logo.png          # relative to the job file
        origin: [50, 200]
        property: {power: 60, speed: 100}
    raster3d:
      - image: photo.png
        property: {power: 40, speed: 100, focus: 1.5}

Images are read with Pillow and reduced to luminance.  In ``raster``
regions a pixel darker than 128 is burnt at full intensity; in
``raster3d`` regions the intensity is ``255 - luminance`` so darker
pixels get more power.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from laser_control.job_ir.operations import (
    Job,
    LaserProperty,
    LineTo,
    MoveTo,
    RasterRegion,
    SetFocus,
    SetFrequency,
    SetPower,
    SetSpeed,
    VectorCommand,
)
from laser_control.utils.fs import load_yaml

BILEVEL_THRESHOLD = 128


# ============================================================================
# JOB SCHEMA V1
# ============================================================================

class PropertyV1(BaseModel):
    """Laser settings for one raster region."""
    power: int = Field(100, ge=0, le=100, description="Power in percent")
    speed: int = Field(50, ge=0, le=100, description="Speed in percent")
    frequency: int = Field(500, ge=0, description="Pulse frequency (Hz)")
    focus: float = Field(0.0, description="Focal offset (mm)")

    def to_property(self) -> LaserProperty:
        return LaserProperty(
            power=self.power, speed=self.speed,
            frequency=self.frequency, focus=self.focus,
        )


class VectorCommandV1(BaseModel):
    """One vector command; exactly one key may be set."""
    move: Optional[Tuple[float, float]] = None
    line: Optional[Tuple[float, float]] = None
    power: Optional[int] = Field(None, ge=0, le=100)
    speed: Optional[int] = Field(None, ge=0, le=100)
    frequency: Optional[int] = Field(None, ge=0)
    focus: Optional[float] = None

    @model_validator(mode='after')
    def validate_single_key(self) -> 'VectorCommandV1':
        present = [k for k, v in self.__dict__.items() if v is not None]
        if len(present) != 1:
            raise ValueError(
                f"Vector command needs exactly one of move/line/power/speed/"
                f"frequency/focus, got {present or 'none'}"
            )
        return self

    def to_command(self) -> VectorCommand:
        if self.move is not None:
            return MoveTo(*self.move)
        if self.line is not None:
            return LineTo(*self.line)
        if self.power is not None:
            return SetPower(self.power)
        if self.speed is not None:
            return SetSpeed(self.speed)
        if self.frequency is not None:
            return SetFrequency(self.frequency)
        return SetFocus(self.focus)


class RegionV1(BaseModel):
    """Raster region backed by an image file."""
    image: str = Field(..., description="Image path, relative to the job file")
    origin: Tuple[int, int] = Field((0, 0), description="Top-left corner (px)")
    property: PropertyV1 = Field(default_factory=PropertyV1)

    @field_validator('origin')
    @classmethod
    def validate_origin(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        if v[0] < 0 or v[1] < 0:
            raise ValueError(f"Region origin must be non-negative, got {v}")
        return v


class JobFileV1(BaseModel):
    """Complete job description (job.v1.yaml schema)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("job.v1", alias="schema")
    name: str = Field(..., min_length=1)
    resolution: int = Field(..., gt=0, description="Job resolution (DPI)")
    vector: List[VectorCommandV1] = Field(default_factory=list)
    raster: List[RegionV1] = Field(default_factory=list)
    raster3d: List[RegionV1] = Field(default_factory=list)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "job.v1":
            raise ValueError(f"Expected schema 'job.v1', got '{v}'")
        return v


# ============================================================================
# LOADING
# ============================================================================

def _luminance(path: Path) -> np.ndarray:
    if not path.exists():
        raise FileNotFoundError(f"Raster image not found: {path}")
    with Image.open(path) as img:
        return np.asarray(img.convert("L"), dtype=np.uint8)


def _bilevel_region(region: RegionV1, base: Path) -> RasterRegion:
    lum = _luminance(base / region.image)
    return RasterRegion.from_bitmap(
        lum < BILEVEL_THRESHOLD,
        origin=region.origin,
        prop=region.property.to_property(),
    )


def _grayscale_region(region: RegionV1, base: Path) -> RasterRegion:
    lum = _luminance(base / region.image)
    return RasterRegion(
        image=255 - lum,
        origin=region.origin,
        prop=region.property.to_property(),
    )


def load_job_file(path: Union[str, Path]) -> Job:
    """Load a job file into a :class:`Job`.

    Parameters
    ----------
    path : Union[str, Path]
        Path to a ``job.v1`` YAML file.

    Returns
    -------
    Job
        Job with all raster images decoded.

    Raises
    ------
    FileNotFoundError
        If the job file or a referenced image does not exist.
    ValueError
        If validation fails (with the offending field in the message).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Job file not found: {path}")

    data = load_yaml(path)
    try:
        parsed = JobFileV1(**(data or {}))
    except Exception as e:
        raise ValueError(f"Job file validation failed at {path}: {e}") from e

    base = path.parent
    return Job(
        name=parsed.name,
        resolution=parsed.resolution,
        vector=[cmd.to_command() for cmd in parsed.vector],
        raster=[_bilevel_region(r, base) for r in parsed.raster],
        raster3d=[_grayscale_region(r, base) for r in parsed.raster3d],
    )
