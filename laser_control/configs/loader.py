"""Configuration loader for the LAOS laser cutter driver.

Loads and validates ``laser.yaml`` into typed, frozen dataclasses.
Every device value (network endpoint, bed size, axis direction, step
size, dialect, transport, raster padding) comes from the config.

Lengths are in **millimetres**; resolutions are in **DPI**.

The host application also edits the device through a flat string
key/value view (see :func:`apply_settings`).  That view produces a new
``LaserConfig``; configs are never mutated in place, so a config being
read by an in-flight send cannot change underneath it.

Usage::

    from laser_control.configs.loader import load_config, apply_settings
    cfg = load_config()                        # default path
    cfg = load_config("/custom/laser.yaml")    # explicit path
    cfg = apply_settings(cfg, {"Port": "6000"})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from laser_control.utils.fs import load_yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionConfig:
    """Network endpoint and transport selection.

    ``use_tftp`` picks the block-transfer strategy; otherwise the job is
    streamed over a raw TCP connection.
    """

    hostname: str
    port: int
    use_tftp: bool
    connect_timeout_s: float = 3.0
    tftp_timeout_s: float = 5.0
    tftp_max_timeouts: int = 5


@dataclass(frozen=True)
class BedConfig:
    """Laser bed geometry in mm.

    ``flip_x`` is set on machines whose X axis runs right to left; every
    commanded X becomes ``bed_width_px - x``.
    """

    width_mm: float
    height_mm: float
    flip_x: bool = False


@dataclass(frozen=True)
class EncodingConfig:
    """Output dialect selection.

    ``mm_per_step`` is only used by the simple dialect, whose
    coordinates are motor steps.
    """

    use_gcode: bool
    mm_per_step: float


@dataclass(frozen=True)
class RasterConfig:
    """Raster engraving settings.

    ``padding_mm`` is extra travel before the first and after the last
    black pixel of each 1-bit raster line so the head is at speed when
    the laser fires.
    """

    padding_mm: float


@dataclass(frozen=True)
class LaserConfig:
    """Complete device configuration loaded from ``laser.yaml``."""

    connection: ConnectionConfig
    bed: BedConfig
    encoding: EncodingConfig
    raster: RasterConfig
    resolutions: tuple[int, ...] = (500,)
    model_name: str = "LAOS"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_config(cfg: LaserConfig) -> None:
    """Validate value ranges.

    Raises
    ------
    ConfigError
        On any invalid value.
    """
    c = cfg.connection
    if not c.hostname:
        raise ConfigError("connection.hostname must not be empty")
    if not 0 < c.port < 65536:
        raise ConfigError(f"connection.port must be in 1..65535, got {c.port}")
    if c.connect_timeout_s <= 0:
        raise ConfigError(
            f"connect_timeout_s must be > 0, got {c.connect_timeout_s}"
        )
    if c.tftp_timeout_s <= 0:
        raise ConfigError(f"tftp_timeout_s must be > 0, got {c.tftp_timeout_s}")
    if c.tftp_max_timeouts < 0:
        raise ConfigError(
            f"tftp_max_timeouts must be >= 0, got {c.tftp_max_timeouts}"
        )

    if cfg.bed.width_mm <= 0 or cfg.bed.height_mm <= 0:
        raise ConfigError(
            f"Bed size must be positive, got "
            f"{cfg.bed.width_mm} x {cfg.bed.height_mm} mm"
        )

    if cfg.encoding.mm_per_step <= 0:
        raise ConfigError(
            f"mm_per_step must be > 0, got {cfg.encoding.mm_per_step}"
        )

    if cfg.raster.padding_mm < 0:
        raise ConfigError(
            f"raster.padding_mm must be >= 0, got {cfg.raster.padding_mm}"
        )

    if not cfg.resolutions:
        raise ConfigError("At least one resolution must be configured")
    for dpi in cfg.resolutions:
        if dpi <= 0:
            raise ConfigError(f"Resolution must be positive, got {dpi}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> LaserConfig:
    """Load and validate device configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``laser.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    LaserConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "laser.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        # -- connection -----------------------------------------------------
        cd = data["connection"]
        connection = ConnectionConfig(
            hostname=str(cd["hostname"]),
            port=int(cd["port"]),
            use_tftp=bool(cd.get("use_tftp", True)),
            connect_timeout_s=float(cd.get("connect_timeout_s", 3.0)),
            tftp_timeout_s=float(cd.get("tftp_timeout_s", 5.0)),
            tftp_max_timeouts=int(cd.get("tftp_max_timeouts", 5)),
        )

        # -- bed ------------------------------------------------------------
        bd = data["bed"]
        bed = BedConfig(
            width_mm=float(bd["width_mm"]),
            height_mm=float(bd["height_mm"]),
            flip_x=bool(bd.get("flip_x", False)),
        )

        # -- encoding -------------------------------------------------------
        ed = data["encoding"]
        encoding = EncodingConfig(
            use_gcode=bool(ed.get("use_gcode", False)),
            mm_per_step=float(ed["mm_per_step"]),
        )

        # -- raster ---------------------------------------------------------
        rd = data.get("raster", {})
        raster = RasterConfig(padding_mm=float(rd.get("padding_mm", 5.0)))

        resolutions = tuple(int(r) for r in data.get("resolutions", [500]))

        config = LaserConfig(
            connection=connection,
            bed=bed,
            encoding=encoding,
            raster=raster,
            resolutions=resolutions,
            model_name=str(data.get("model_name", "LAOS")),
        )

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc

    _validate_config(config)
    logger.info("Configuration loaded successfully")
    return config


# ---------------------------------------------------------------------------
# String key/value settings surface
# ---------------------------------------------------------------------------

SETTING_HOSTNAME = "Hostname / IP"
SETTING_PORT = "Port"
SETTING_GCODE = "Use GCode (yes/no)"
SETTING_BEDWIDTH = "Laserbed width"
SETTING_BEDHEIGHT = "Laserbed height"
SETTING_FLIPX = "X axis goes right to left (yes/no)"
SETTING_MMPERSTEP = "mm per Step (for SimpleMode)"
SETTING_TFTP = "Use TFTP instead of TCP"
SETTING_RASTER_WHITESPACE = "Additional space per Raster line"

_SETTING_ATTRIBUTES = (
    SETTING_HOSTNAME,
    SETTING_PORT,
    SETTING_GCODE,
    SETTING_BEDWIDTH,
    SETTING_BEDHEIGHT,
    SETTING_FLIPX,
    SETTING_MMPERSTEP,
    SETTING_TFTP,
    SETTING_RASTER_WHITESPACE,
)


def setting_attributes() -> list[str]:
    """Keys understood by :func:`get_setting_value` / :func:`apply_settings`."""
    return list(_SETTING_ATTRIBUTES)


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def get_setting_value(cfg: LaserConfig, attribute: str) -> str | None:
    """Render one setting as a string, or ``None`` for unknown keys."""
    values = {
        SETTING_HOSTNAME: cfg.connection.hostname,
        SETTING_PORT: str(cfg.connection.port),
        SETTING_GCODE: _yes_no(cfg.encoding.use_gcode),
        SETTING_BEDWIDTH: str(cfg.bed.width_mm),
        SETTING_BEDHEIGHT: str(cfg.bed.height_mm),
        SETTING_FLIPX: _yes_no(cfg.bed.flip_x),
        SETTING_MMPERSTEP: str(cfg.encoding.mm_per_step),
        SETTING_TFTP: _yes_no(cfg.connection.use_tftp),
        SETTING_RASTER_WHITESPACE: str(cfg.raster.padding_mm),
    }
    return values.get(attribute)


def _parse_number(attribute: str, value: str, kind: type) -> Any:
    try:
        return kind(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ConfigError(
            f"Setting {attribute!r} expects {kind.__name__}, got {value!r}"
        ) from exc


def apply_settings(
    cfg: LaserConfig, settings: Mapping[str, str],
) -> LaserConfig:
    """Return a copy of *cfg* with string *settings* applied.

    Parameters
    ----------
    cfg : LaserConfig
        Current configuration (left untouched).
    settings : Mapping[str, str]
        Setting label -> string value.  Booleans use ``"yes"``; every
        other string is false.  Unknown labels are ignored.

    Returns
    -------
    LaserConfig
        New, validated configuration.

    Raises
    ------
    ConfigError
        If any numeric value fails to parse or the result is invalid.
        No partial update is ever returned.
    """
    connection = cfg.connection
    bed = cfg.bed
    encoding = cfg.encoding
    raster = cfg.raster

    for attribute, value in settings.items():
        if attribute == SETTING_HOSTNAME:
            connection = replace(connection, hostname=value)
        elif attribute == SETTING_PORT:
            connection = replace(
                connection, port=_parse_number(attribute, value, int),
            )
        elif attribute == SETTING_TFTP:
            connection = replace(connection, use_tftp=value == "yes")
        elif attribute == SETTING_GCODE:
            encoding = replace(encoding, use_gcode=value == "yes")
        elif attribute == SETTING_MMPERSTEP:
            encoding = replace(
                encoding, mm_per_step=_parse_number(attribute, value, float),
            )
        elif attribute == SETTING_FLIPX:
            bed = replace(bed, flip_x=value == "yes")
        elif attribute == SETTING_BEDWIDTH:
            bed = replace(bed, width_mm=_parse_number(attribute, value, float))
        elif attribute == SETTING_BEDHEIGHT:
            bed = replace(bed, height_mm=_parse_number(attribute, value, float))
        elif attribute == SETTING_RASTER_WHITESPACE:
            raster = replace(
                raster, padding_mm=_parse_number(attribute, value, float),
            )
        else:
            logger.debug("Ignoring unknown setting %r", attribute)

    updated = replace(
        cfg, connection=connection, bed=bed, encoding=encoding, raster=raster,
    )
    _validate_config(updated)
    return updated
