"""Cutter driver -- validate, encode and deliver one job.

``LaserCutter`` is the capability contract a host application programs
against (settings view, send, duration estimate, resolutions, clone).
``LaosDriver`` implements it for the LAOS controller board.

A send is synchronous and runs entirely on the caller's thread::

    checking job  ->  open transport  ->  INIT / RASTER3D / RASTER /
    VECTOR / SHUTDOWN (one write + one milestone each)  ->  finish

Progress is reported at fixed milestones only; see ``MILESTONES``.
Any failure aborts the transport and propagates unchanged; there is no
partial-success state.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Mapping

from laser_control.configs.loader import (
    LaserConfig,
    apply_settings,
    get_setting_value,
    load_config,
    setting_attributes,
)
from laser_control.encoding.encoder import JobEncoder, Section
from laser_control.hardware.transport import Transport, make_transport
from laser_control.job_ir.operations import Job
from laser_control.utils.logging_config import pop_context, push_context

logger = logging.getLogger(__name__)

# Percent reached once each section has been handed to the transport
MILESTONES: dict[Section, int] = {
    Section.INIT: 20,
    Section.RASTER3D: 40,
    Section.RASTER: 60,
    Section.VECTOR: 80,
    Section.SHUTDOWN: 90,
}

# No motion model exists for this controller
ESTIMATED_DURATION = 10000


# ---------------------------------------------------------------------------
# Exceptions / progress
# ---------------------------------------------------------------------------


class IllegalJobError(Exception):
    """The job violates a device constraint; nothing was sent."""

    pass


@dataclass
class SendProgress:
    """Send progress snapshot."""

    percent: int = 0
    task: str = ""


ProgressCallback = Callable[[SendProgress], None]
JobValidator = Callable[[Job], None]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class LaserCutter(ABC):
    """What a host application needs from a cutter driver."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Human-readable device model."""

    @property
    @abstractmethod
    def bed_width(self) -> float:
        """Bed width in mm."""

    @property
    @abstractmethod
    def bed_height(self) -> float:
        """Bed height in mm."""

    @abstractmethod
    def get_setting_attributes(self) -> list[str]:
        """Keys of the string settings view."""

    @abstractmethod
    def get_setting(self, attribute: str) -> str | None:
        """Current value of one setting, ``None`` for unknown keys."""

    @abstractmethod
    def set_settings(self, settings: Mapping[str, str]) -> None:
        """Apply string settings; all-or-nothing."""

    def set_setting(self, attribute: str, value: str) -> None:
        self.set_settings({attribute: value})

    @abstractmethod
    def get_resolutions(self) -> list[int]:
        """Supported job resolutions in DPI."""

    @abstractmethod
    def estimate_job_duration(self, job: Job) -> float:
        """Rough job duration estimate."""

    @abstractmethod
    def send_job(
        self, job: Job, progress: ProgressCallback | None = None,
    ) -> None:
        """Encode and deliver *job*, blocking until done."""

    @abstractmethod
    def clone(self) -> LaserCutter:
        """Independent driver with an equal configuration."""


# ---------------------------------------------------------------------------
# LAOS
# ---------------------------------------------------------------------------


class LaosDriver(LaserCutter):
    """Driver for the LAOS laser cutter controller.

    Parameters
    ----------
    config : LaserConfig, optional
        Device configuration.  ``None`` loads the shipped ``laser.yaml``.
    validator : callable, optional
        ``validator(job)`` raising :class:`IllegalJobError` for jobs the
        device must not run.  Defaults to :meth:`check_job`.
    transport_factory : callable, optional
        ``transport_factory(config) -> Transport``; replaced in tests.

    Notes
    -----
    The configuration is immutable; ``set_settings`` swaps in a new
    object.  A send captures the config once at its start, so a
    concurrent settings change never affects a job in flight.  Sends
    themselves must be serialized by the caller.
    """

    def __init__(
        self,
        config: LaserConfig | None = None,
        validator: JobValidator | None = None,
        transport_factory: Callable[[LaserConfig], Transport] = make_transport,
    ) -> None:
        self._cfg = config if config is not None else load_config()
        self._validator = validator
        self._transport_factory = transport_factory

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> LaserConfig:
        return self._cfg

    @property
    def model_name(self) -> str:
        return self._cfg.model_name

    @property
    def bed_width(self) -> float:
        return self._cfg.bed.width_mm

    @property
    def bed_height(self) -> float:
        return self._cfg.bed.height_mm

    def get_setting_attributes(self) -> list[str]:
        return setting_attributes()

    def get_setting(self, attribute: str) -> str | None:
        return get_setting_value(self._cfg, attribute)

    def set_settings(self, settings: Mapping[str, str]) -> None:
        self._cfg = apply_settings(self._cfg, settings)

    def get_resolutions(self) -> list[int]:
        return list(self._cfg.resolutions)

    def estimate_job_duration(self, job: Job) -> float:
        return ESTIMATED_DURATION

    def clone(self) -> LaosDriver:
        return LaosDriver(self._cfg, self._validator, self._transport_factory)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_job(self, job: Job) -> None:
        """Default validity check.

        Raises
        ------
        IllegalJobError
            If the resolution is not supported or the name is blank.
        """
        if job.resolution not in self._cfg.resolutions:
            raise IllegalJobError(
                f"Resolution {job.resolution} DPI not supported "
                f"(supported: {list(self._cfg.resolutions)})"
            )
        if not job.name.strip():
            raise IllegalJobError("Job name must not be empty")

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def send_job(
        self, job: Job, progress: ProgressCallback | None = None,
    ) -> None:
        """Validate, encode and deliver *job*.

        Parameters
        ----------
        job : Job
            Job to send.
        progress : callable, optional
            Called with a :class:`SendProgress` snapshot at each
            milestone and task change.  Exceptions it raises are logged
            and ignored.

        Raises
        ------
        IllegalJobError
            Before anything is encoded or sent.
        EncodingError
            On a toolpath or vector command the encoder cannot render.
        TransportError
            On any connection, timeout or remote rejection failure.
        """
        cfg = self._cfg
        snapshot = SendProgress()

        def notify(percent: int | None = None, task: str | None = None) -> None:
            if percent is not None:
                snapshot.percent = max(snapshot.percent, percent)
            if task is not None:
                snapshot.task = task
            if progress is not None:
                try:
                    progress(SendProgress(snapshot.percent, snapshot.task))
                except Exception as exc:  # noqa: BLE001
                    logger.error("Progress callback error: %s", exc)

        def task(label: str) -> None:
            notify(task=label)

        push_context(job=job.name)
        try:
            notify(0, "checking job")
            (self._validator or self.check_job)(job)

            transport = self._transport_factory(cfg)
            encoder = JobEncoder(cfg)
            logger.info(
                "Sending job %r via %s (%s dialect)", job.name,
                transport.name, "gcode" if cfg.encoding.use_gcode else "simple",
            )

            transport.open(job, task)
            try:
                for section, data in encoder.iter_sections(job):
                    transport.write(data)
                    logger.debug("%s: %d bytes", section.value, len(data))
                    notify(MILESTONES[section])
                sent = transport.finish(task)
            except Exception:
                transport.abort()
                raise

            notify(100)
            logger.info("Job %r sent (%d bytes)", job.name, sent)
        finally:
            pop_context(["job"])
