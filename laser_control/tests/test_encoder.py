"""Tests for the job encoder, dialects, minimizer and unit conversion.

Covers:
    - Simple dialect line syntax and the power/speed/frequency minimizer
    - G-code preamble, trailer, fixed three-decimal coordinates
    - G-code unsupported frequency / focus (warned once, nothing emitted)
    - Section order, empty sections, per-pass state isolation
    - Axis flip and 1-bit raster padding
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import pytest

from laser_control.configs.loader import (
    BedConfig,
    ConnectionConfig,
    EncodingConfig,
    LaserConfig,
    RasterConfig,
)
from laser_control.encoding.dialects import GCodeDialect, SimpleDialect, make_dialect
from laser_control.encoding.encoder import EncodingError, JobEncoder, Section
from laser_control.encoding.state import EncoderState
from laser_control.encoding.units import CoordinateTransform, mm2px, px2mm
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

DPI = 500


def _config(
    use_gcode: bool = False, flip_x: bool = False, padding_mm: float = 0.0,
) -> LaserConfig:
    return LaserConfig(
        connection=ConnectionConfig("127.0.0.1", 69, use_tftp=True),
        bed=BedConfig(width_mm=250.0, height_mm=280.0, flip_x=flip_x),
        encoding=EncodingConfig(use_gcode=use_gcode, mm_per_step=0.001),
        raster=RasterConfig(padding_mm=padding_mm),
    )


def _lines(data: bytes) -> list[str]:
    return data.decode("ascii").splitlines()


@pytest.fixture()
def simple() -> JobEncoder:
    return JobEncoder(_config())


@pytest.fixture()
def gcode() -> JobEncoder:
    return JobEncoder(_config(use_gcode=True))


@pytest.fixture()
def prop() -> LaserProperty:
    return LaserProperty(power=100, speed=40, frequency=1000)


# ---------------------------------------------------------------------------
# Units / minimizer
# ---------------------------------------------------------------------------


class TestUnits:
    def test_px_mm_roundtrip(self) -> None:
        assert px2mm(DPI, DPI) == pytest.approx(25.4)
        assert mm2px(25.4, DPI) == pytest.approx(DPI)

    def test_steps_truncate(self) -> None:
        t = CoordinateTransform(dpi=DPI, bed_width_mm=250.0)
        assert t.to_steps(1) == 50      # 50.8 steps
        assert t.to_steps(2) == 101     # 101.6 steps

    def test_flip_roundtrip(self) -> None:
        t = CoordinateTransform(dpi=DPI, bed_width_mm=250.0, flip_x=True)
        assert t.x(t.x(123.0)) == pytest.approx(123.0)
        assert t.x(0) == pytest.approx(t.bed_width_px)

    def test_no_flip_is_identity(self) -> None:
        t = CoordinateTransform(dpi=DPI, bed_width_mm=250.0)
        assert t.x(42) == 42


class TestEncoderState:
    def test_first_value_always_emitted(self) -> None:
        state = EncoderState()
        assert state.update("power", 0) is True

    def test_repeat_suppressed(self) -> None:
        state = EncoderState()
        state.update("speed", 50)
        assert state.update("speed", 50) is False
        assert state.update("speed", 60) is True

    def test_registers_independent(self) -> None:
        state = EncoderState()
        state.update("power", 50)
        assert state.update("frequency", 50) is True

    def test_reset(self) -> None:
        state = EncoderState(power=1, speed=2, frequency=3)
        state.reset()
        assert state == EncoderState()


# ---------------------------------------------------------------------------
# Simple dialect
# ---------------------------------------------------------------------------


class TestSimpleDialect:
    def test_reference_raster_example(
        self, simple: JobEncoder, prop: LaserProperty,
    ) -> None:
        job = Job(
            "ref", DPI,
            raster3d=[RasterRegion([[0, 128, 128, 0]], prop=prop)],
        )
        sections = dict(simple.iter_sections(job))
        assert _lines(sections[Section.RASTER3D]) == [
            "2 0",
            "0 50 0",
            f"7 101 {(100 * 128 // 255) * 100}",
            "7 100 4000",
            "7 102 1000",
            "1 101 0",
        ]

    def test_power_minimized(self, simple: JobEncoder) -> None:
        vector = [
            SetPower(50), MoveTo(0, 0), LineTo(1, 0),
            SetPower(50), LineTo(2, 0),
            SetPower(80), LineTo(3, 0),
        ]
        lines = _lines(simple.encode(Job("p", DPI, vector=vector)))
        assert [ln for ln in lines if ln.startswith("7 101")] == [
            "7 101 5000", "7 101 8000",
        ]
        assert sum(ln.startswith("7 100") for ln in lines) == 1
        assert sum(ln.startswith("7 102") for ln in lines) == 1

    def test_vector_defaults(self, simple: JobEncoder) -> None:
        lines = _lines(simple.encode(Job("d", DPI, vector=[LineTo(1, 0)])))
        assert lines[:4] == ["7 101 10000", "7 100 5000", "7 102 500", "1 50 0"]

    def test_frequency_and_speed_commands(self, simple: JobEncoder) -> None:
        vector = [SetSpeed(20), SetFrequency(2000), LineTo(1, 1)]
        lines = _lines(simple.encode(Job("f", DPI, vector=vector)))
        assert "7 100 2000" in lines
        assert "7 102 2000" in lines

    def test_focus_in_steps(self, simple: JobEncoder) -> None:
        sections = dict(simple.iter_sections(
            Job("f", DPI, vector=[SetFocus(1.2345)]),
        ))
        assert _lines(sections[Section.VECTOR]) == ["2 1234"]

    def test_trailer_resets_focus(self, simple: JobEncoder) -> None:
        sections = dict(simple.iter_sections(Job("t", DPI)))
        assert sections[Section.INIT] == b""
        assert sections[Section.SHUTDOWN] == b"2 0\n"

    def test_state_shared_between_raster_and_vector(
        self, simple: JobEncoder,
    ) -> None:
        region = RasterRegion.from_bitmap(
            [[1]], prop=LaserProperty(power=100, speed=50, frequency=500),
        )
        job = Job("s", DPI, vector=[LineTo(1, 0)], raster=[region])
        sections = dict(simple.iter_sections(job))
        # Vector defaults equal the raster settings already written
        assert _lines(sections[Section.VECTOR]) == ["1 50 0"]


# ---------------------------------------------------------------------------
# G-code dialect
# ---------------------------------------------------------------------------


class TestGCodeDialect:
    def test_preamble_and_trailer(self, gcode: JobEncoder) -> None:
        sections = dict(gcode.iter_sections(Job("g", DPI)))
        assert _lines(sections[Section.INIT]) == ["G28", "G21", "M106", "M151 100"]
        assert _lines(sections[Section.SHUTDOWN]) == [
            "G0 X0.000 Y0.000", "G28", "M107", "M151 0", "M0",
        ]

    def test_moves_in_mm(self, gcode: JobEncoder) -> None:
        job = Job("g", DPI, vector=[MoveTo(1, 0), LineTo(2, 0)])
        sections = dict(gcode.iter_sections(job))
        assert _lines(sections[Section.VECTOR]) == [
            "G0 X0.051 Y0.000",
            "G1 X0.102 Y0.000 E100 F50",
        ]

    def test_power_speed_inline_every_move(self, gcode: JobEncoder) -> None:
        job = Job("g", DPI, vector=[SetPower(30), LineTo(1, 0), LineTo(2, 0)])
        lines = _lines(dict(gcode.iter_sections(job))[Section.VECTOR])
        assert all(ln.endswith("E30 F50") for ln in lines)

    def test_frequency_unsupported_warns_once(
        self, gcode: JobEncoder, caplog: pytest.LogCaptureFixture,
    ) -> None:
        job = Job(
            "g", DPI,
            vector=[SetFrequency(800), LineTo(1, 0), LineTo(2, 0)],
        )
        with caplog.at_level(logging.WARNING):
            data = gcode.encode(job)
        assert b"800" not in data
        warnings = [r for r in caplog.records if "frequency" in r.getMessage()]
        assert len(warnings) == 1

    def test_focus_unsupported(
        self, gcode: JobEncoder, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            sections = dict(gcode.iter_sections(
                Job("g", DPI, vector=[SetFocus(2.0)]),
            ))
        assert sections[Section.VECTOR] == b""
        assert any("focus" in r.getMessage() for r in caplog.records)

    def test_warning_repeats_per_pass(
        self, gcode: JobEncoder, caplog: pytest.LogCaptureFixture,
    ) -> None:
        job = Job("g", DPI, vector=[LineTo(1, 0)])
        with caplog.at_level(logging.WARNING):
            gcode.encode(job)
            gcode.encode(job)
        warnings = [r for r in caplog.records if "frequency" in r.getMessage()]
        assert len(warnings) == 2

    def test_make_dialect_selects(self) -> None:
        state = EncoderState()
        assert isinstance(make_dialect(_config(), DPI, state), SimpleDialect)
        assert isinstance(
            make_dialect(_config(use_gcode=True), DPI, state), GCodeDialect,
        )


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------


class TestJobEncoder:
    def test_section_order(self, simple: JobEncoder) -> None:
        tags = [s for s, _ in simple.iter_sections(Job("o", DPI))]
        assert tags == [
            Section.INIT, Section.RASTER3D, Section.RASTER,
            Section.VECTOR, Section.SHUTDOWN,
        ]

    def test_output_is_ascii_lines(self, gcode: JobEncoder) -> None:
        job = Job(
            "a", DPI,
            vector=[MoveTo(3, 4), LineTo(5, 6)],
            raster=[RasterRegion.from_bitmap([[1, 0, 1]])],
        )
        data = gcode.encode(job)
        data.decode("ascii")
        assert data.endswith(b"\n")

    def test_state_reset_between_jobs(self, simple: JobEncoder) -> None:
        job = Job("r", DPI, vector=[SetPower(70), LineTo(1, 0)])
        first = simple.encode(job)
        second = simple.encode(job)
        assert first == second
        assert b"7 101 7000\n" in second

    def test_padding_only_for_bilevel(self) -> None:
        enc = JobEncoder(_config(padding_mm=5.0))
        region = RasterRegion.from_bitmap([[1]], origin=(200, 0))
        bilevel = dict(enc.iter_sections(Job("b", DPI, raster=[region])))
        gray = dict(enc.iter_sections(Job("g", DPI, raster3d=[region])))
        assert len(_lines(bilevel[Section.RASTER])) == (
            len(_lines(gray[Section.RASTER3D])) + 2
        )

    def test_unknown_vector_command(self, simple: JobEncoder) -> None:
        @dataclass(frozen=True)
        class Dwell(VectorCommand):
            ms: int

        with pytest.raises(EncodingError, match="Dwell"):
            simple.encode(Job("u", DPI, vector=[Dwell(10)]))


# ---------------------------------------------------------------------------
# Axis flip
# ---------------------------------------------------------------------------


def _motion(data: bytes) -> list[str]:
    return [line for line in _lines(data) if line[:2] in ("0 ", "1 ")]


class TestAxisFlip:
    @pytest.fixture()
    def t(self) -> CoordinateTransform:
        return CoordinateTransform(
            dpi=DPI, bed_width_mm=250.0, flip_x=True, mm_per_step=0.001,
        )

    def _sx(self, t: CoordinateTransform, x: float) -> int:
        return t.to_steps(t.bed_width_px - x)

    def test_vector_move_and_line(self, t: CoordinateTransform) -> None:
        enc = JobEncoder(_config(flip_x=True))
        job = Job("v", DPI, vector=[MoveTo(100, 10), LineTo(300, 10)])
        vector = dict(enc.iter_sections(job))[Section.VECTOR]
        y = t.to_steps(10)
        assert _motion(vector) == [
            f"0 {self._sx(t, 100)} {y}",
            f"1 {self._sx(t, 300)} {y}",
        ]

    def test_raster_cut(self, t: CoordinateTransform) -> None:
        enc = JobEncoder(_config(flip_x=True))
        region = RasterRegion.from_bitmap([[0, 1, 1, 0]], origin=(200, 0))
        raster = dict(enc.iter_sections(Job("r", DPI, raster=[region])))
        assert _motion(raster[Section.RASTER]) == [
            f"0 {self._sx(t, 201)} 0",
            f"1 {self._sx(t, 202)} 0",
        ]

    def test_padded_bilevel_line(self, t: CoordinateTransform) -> None:
        enc = JobEncoder(_config(flip_x=True, padding_mm=5.0))
        region = RasterRegion.from_bitmap([[0, 1, 1, 0]], origin=(200, 0))
        raster = dict(enc.iter_sections(Job("p", DPI, raster=[region])))
        pad = mm2px(5.0, DPI)
        assert _motion(raster[Section.RASTER]) == [
            f"0 {self._sx(t, int(201 - pad))} 0",
            f"0 {self._sx(t, 201)} 0",
            f"1 {self._sx(t, 202)} 0",
            f"0 {self._sx(t, int(202 + pad))} 0",
        ]

    def test_padding_clamped_at_bed_edge(self, t: CoordinateTransform) -> None:
        enc = JobEncoder(_config(flip_x=True, padding_mm=5.0))
        region = RasterRegion.from_bitmap([[1]], origin=(4900, 0))
        raster = dict(enc.iter_sections(Job("e", DPI, raster=[region])))
        motion = _motion(raster[Section.RASTER])
        assert motion[-1] == f"0 {self._sx(t, int(t.bed_width_px))} 0"
        assert all(int(line.split()[1]) >= 0 for line in motion)

    def test_gcode_moves(self, t: CoordinateTransform) -> None:
        enc = JobEncoder(_config(use_gcode=True, flip_x=True))
        region = RasterRegion.from_bitmap([[1, 1]], origin=(50, 20))
        job = Job(
            "g", DPI,
            vector=[MoveTo(100, 10), LineTo(300, 10)],
            raster=[region],
        )
        sections = dict(enc.iter_sections(job))

        def x_mm(px: float) -> str:
            return f"X{t.to_mm(t.bed_width_px - px):.3f}"

        y10, y20 = f"Y{t.to_mm(10):.3f}", f"Y{t.to_mm(20):.3f}"
        assert _lines(sections[Section.VECTOR]) == [
            f"G0 {x_mm(100)} {y10}",
            f"G1 {x_mm(300)} {y10} E100 F50",
        ]
        assert _lines(sections[Section.RASTER]) == [
            f"G0 {x_mm(50)} {y20}",
            f"G1 {x_mm(51)} {y20} E100 F50",
        ]

    def test_unflipped_reference(self) -> None:
        t = CoordinateTransform(dpi=DPI, bed_width_mm=250.0, mm_per_step=0.001)
        enc = JobEncoder(_config())
        job = Job("n", DPI, vector=[MoveTo(100, 10), LineTo(300, 10)])
        vector = dict(enc.iter_sections(job))[Section.VECTOR]
        assert _motion(vector) == [
            f"0 {t.to_steps(100)} {t.to_steps(10)}",
            f"1 {t.to_steps(300)} {t.to_steps(10)}",
        ]
