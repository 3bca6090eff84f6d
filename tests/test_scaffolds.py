"""Tests for the gcodesplit output side.

Covers:
  - resume_generator: begin / after-first-layer / end scaffolds, priming,
    ironing, height limits, z compression, temperatures
  - validator: Z homing, XY before Z, height limit, temperatures, clearance
  - assembler: part documents, banners, verbatim bodies, validation failures
  - profiles: JSON loading and defaults
  - controller + CLI: full pipeline, output naming, nothing written on error
"""

from __future__ import annotations

import io
import json
import re
from contextlib import contextmanager
from pathlib import Path

import pytest

from gcodesplit.app.controller import Controller, GCodeSplitController, SplitRequest
from gcodesplit.app.main import main
from gcodesplit.core.assembler import PartAssembler
from gcodesplit.core.errors import (
    HeightLimitError,
    LogicalCoordinateError,
    PrimeClearanceError,
    ScaffoldValidationError,
    SynthesisError,
)
from gcodesplit.core.gcode_parser import GCodeParser, MinXRecord
from gcodesplit.core.part_planner import PartPlanner
from gcodesplit.core.printer_state import OverridePolicy
from gcodesplit.core.profiles import PrinterProfile, ProfileLoader
from gcodesplit.core.resume_generator import PrimeMode, ResumeConfig, ResumeGenerator
from gcodesplit.core.validator import ScaffoldKind, Severity, Validator

from gcode_samples import layer_lines, make_gcode, write_gcode

_RE_MOVE_Z = re.compile(r"^G[01]\b[^;]*\bZ([-+]?[0-9.]+)")


def _parse(text: str | None = None):
    return GCodeParser().parse_string(text if text is not None else make_gcode(10))


def _begin(part_index: int = 1, layer: int = 5, text: str | None = None, **cfg) -> list[str]:
    parsed = _parse(text)
    return ResumeGenerator(ResumeConfig(**cfg)).begin_lines(
        parsed, parsed.layers[layer], part_index
    )


# ======================================================================
# 1. ResumeGenerator – begin scaffold
# ======================================================================

class TestBeginFirstPart:

    def setup_method(self):
        self.lines = _begin(part_index=0, layer=0)

    def test_full_homing(self):
        assert "G28 ; homing" in self.lines
        assert not any(line.startswith("G92 Z") for line in self.lines)
        assert "M211 S0 ; Deactivate software endstops" not in self.lines

    def test_bed_heating(self):
        assert "M140 S60 ; bed temp" in self.lines
        assert "M190 S60 ; wait bed temp" in self.lines

    def test_primes_on_bed_even_in_air_mode(self):
        assert "; Wiping on bed" in self.lines
        assert "M0 CLEANME ; pause, wait for user (may only pause octoprint)" not in self.lines

    def test_approach_from_above(self):
        i = self.lines.index("G0 Z10.3 F5000")
        assert self.lines[i + 1] == "G0 X40 Y40 Z10.3 F5000"
        assert "G0 X40 Y40 Z0.3 F5000" in self.lines[i + 2:]

    def test_restore_extruder(self):
        assert "G1 E0 F1500" in self.lines
        assert "G92 E0" in self.lines
        assert "G1 E0 F1800" in self.lines

    def test_no_continuation_overrides(self):
        assert not any("Slow Feedrate" in line for line in self.lines)
        assert not any("restore fan" in line for line in self.lines)

    def test_resets_overrides_and_power_loss(self):
        assert self.lines.count("M220 S100 ; Reset Feedrate") >= 1
        assert "M221 S100 ; Reset Flowrate" in self.lines
        assert "M413 S0 ; Power loss off" in self.lines


class TestBeginContinuation:

    def setup_method(self):
        self.lines = _begin(part_index=1, layer=5)

    def test_z_declared_without_homing(self):
        assert "G28 ; homing" not in self.lines
        i = self.lines.index("G92 Z11.1 ; set Z without homing")
        assert self.lines[i + 1] == "M211 S0 ; Deactivate software endstops"
        assert self.lines.index("G28 X0 Y0 ; homing") > i

    def test_no_bed_heating_by_default(self):
        assert not any(line.startswith("M140") for line in self.lines)
        assert not any(line.startswith("M190") for line in self.lines)

    def test_reheat_bed(self):
        lines = _begin(reheat_bed=True)
        assert "M190 S60 ; wait bed temp" in lines

    def test_air_prime(self):
        assert "; Wiping / extruding in air" in self.lines
        assert "M109 S210 ; wait nozzle temp" in self.lines

    def test_approach_and_start_position(self):
        assert "G0 Z11.3 F5000" in self.lines
        assert "G0 X40 Y40 Z11.3 F5000" in self.lines
        assert "G0 X40 Y40 Z1.3 F5000" in self.lines

    def test_retraction_restored(self):
        i = self.lines.index("G1 E-2 F1500")
        assert self.lines[i + 1:i + 3] == ["G92 E8", "G1 E8 F1800"]

    def test_fan_and_slow_first_layer(self):
        assert "M106 S255 ; restore fan" in self.lines
        assert self.lines[-1] == "M220 S35 ; Slow Feedrate for first layer"

    def test_header_comments(self):
        assert self.lines[0].startswith("; Rendering begin script for block #1 at layer #5")
        assert "Inherited Z: 11.1" in self.lines[0]
        assert self.lines[1] == "; Layer starts with Bed:60 Nozzle:210 Fan:255"
        assert self.lines[2] == "; Layer starts at X:40 Y:40 Z:1.3 E:8 Retract:-2"

    def test_continuation_flow_rate(self):
        lines = _begin(continuation_flow_rate=95)
        assert "M221 S95 ; continuation flow rate" in lines
        assert not any("continuation flow rate" in line for line in self.lines)

    def test_bed_prime(self):
        lines = _begin(prime_mode=PrimeMode.BED)
        assert "; Wiping on bed" in lines
        assert lines[lines.index("; Wiping on bed") + 1].startswith("G0 X0.2 Y10 Z10 ")

    def test_bed_prime_shift(self):
        lines = _begin(part_index=2, prime_mode=PrimeMode.BED, shift_bed_prime=True)
        assert lines[lines.index("; Wiping on bed") + 1].startswith("G0 X10.2 Y10 Z10 ")
        assert "G0 X10.5 Y60 Z0.28 F1000 ; more wipe" in lines

    def test_scenario_c_start_position_is_first_travel_endpoint(self):
        text = make_gcode(2).replace(
            "G0 F3600 X40 Y40 Z0.5", "G0 F3600 X70.5 Y80.25 Z0.5"
        )
        lines = _begin(part_index=1, layer=1, text=text)
        assert "G0 X70.5 Y80.25 Z10.5 F5000" in lines
        assert "G0 X70.5 Y80.25 Z0.5 F5000" in lines

    def test_park_never_lowers_head_below_inherited_z(self):
        parsed = _parse(make_gcode(300))
        lines = ResumeGenerator().begin_lines(parsed, parsed.layers[200], 1)
        start = lines.index("G92 Z50.1 ; set Z without homing")
        end = lines.index("; move to desired place from above")
        targets = [
            float(m.group(1))
            for line in lines[start + 1:end]
            if (m := _RE_MOVE_Z.match(line))
        ]
        assert targets
        assert min(targets) >= 50.1

    def test_park_above_inherited_z(self):
        assert "G0 Z11.1" in self.lines
        assert "G0 Z10" not in self.lines

    def test_first_part_parks_at_fixed_height(self):
        assert "G0 Z10" in _begin(part_index=0, layer=0)


class TestBeginTemperatures:

    TEXT = make_gcode(10, extra={1: ["M104 S200"]})

    def test_current_temperature_by_default(self):
        lines = _begin(text=self.TEXT)
        assert "M109 S200 ; wait nozzle temp" in lines

    def test_initial_temperature(self):
        lines = _begin(text=self.TEXT, use_initial_nozzle_temp=True)
        assert "M109 S210 ; wait nozzle temp" in lines

    def test_after_first_layer_restores_current(self):
        parsed = _parse(self.TEXT)
        gen = ResumeGenerator(ResumeConfig(use_initial_nozzle_temp=True))
        assert gen.after_first_layer_lines(parsed.layers[5]) == [
            "M220 S100 ; Reset Feedrate",
            "M221 S100 ; Reset Flowrate",
            "M104 S200 ; nozzle temp",
        ]

    def test_missing_nozzle_temp(self):
        text = make_gcode(10).replace("M104 S210\n", "").replace("M109 S210\n", "")
        with pytest.raises(SynthesisError, match="nozzle temp"):
            _begin(text=text)

    def test_missing_bed_temp(self):
        text = make_gcode(10).replace("M140 S60\n", "").replace("M190 S60\n", "")
        with pytest.raises(SynthesisError, match="bed temp"):
            _begin(text=text)


class TestBeginFailures:

    def test_unknown_start_position(self):
        text = make_gcode(3).replace("G0 F3600 X40 Y40 Z0.3", "G0 F3600 Z0.3")
        with pytest.raises(SynthesisError, match="No position known for X"):
            _begin(part_index=0, layer=0, text=text)

    def test_relative_entry_z(self):
        text = make_gcode(10, extra={4: ["G91", "G1 Z0.2", "G90"]})
        with pytest.raises(SynthesisError, match="Only relative"):
            _begin(text=text)

    def test_inherited_z_above_max(self):
        with pytest.raises(HeightLimitError, match="Inherited Z"):
            _begin(max_z=11.0)

    def test_approach_above_max(self):
        with pytest.raises(HeightLimitError, match="Z coord"):
            _begin(max_z=11.2)

    def test_z_compression(self):
        lines = _begin(z_compression=0.5)
        assert "G92 Z11.2 ; set Z without homing" in lines

    def test_z_compression_needs_layer_height(self):
        text = make_gcode(10).replace(";Layer height: 0.2\n", "")
        with pytest.raises(SynthesisError, match="layer height"):
            _begin(text=text, z_compression=0.5)


# ======================================================================
# 2. ResumeGenerator – ironing / end scaffold
# ======================================================================

class TestIroning:

    def test_ironing_before_plain_move(self):
        lines = _begin(iron=True)
        start = lines.index("; Ironing starts")
        end = lines.index("; Ironing ends")
        assert lines[start + 1] == "M107 ; fan off"
        assert "G0 X60 Y40 Z1.1 F600 ; ironing" in lines[start:end]
        assert lines.index("G0 X40 Y40 Z1.3 F5000") > end

    def test_ironing_trace_matches_previous_layer(self):
        parsed = _parse()
        lines = ResumeGenerator().ironing_lines(parsed.layers[4])
        moves = [line for line in lines if line.endswith("; ironing")]
        assert len(moves) == len(parsed.layers[4].ironing_path) == 5

    def test_non_ironable_layer_falls_back_to_plain_move(self):
        text = make_gcode(10, extra={4: ["G91", "G90"]})
        lines = _begin(text=text, iron=True)
        assert "; Ironing starts" not in lines
        assert "G0 X40 Y40 Z1.3 F5000" in lines

    def test_first_part_is_never_ironed(self):
        lines = _begin(part_index=0, layer=5, iron=True)
        assert "; Ironing starts" not in lines


class TestEndScaffold:

    def test_end_lines(self):
        parsed = _parse()
        lines = ResumeGenerator().end_lines(parsed.layers[4], 0, 2)
        assert lines[:2] == ["G91 ; relative XYZ", "M83 ; relative E"]
        assert "G1 E-3 F4500" in lines
        assert "G0 Z11.1 F4500" in lines
        assert "G0 X0 Y220" in lines
        assert lines[-1] == "M300 S440 P200 ; beep"

    def test_hop_beyond_max_fails_for_inner_part(self):
        parsed = _parse()
        gen = ResumeGenerator(ResumeConfig(max_z=11.0))
        with pytest.raises(HeightLimitError, match="Cannot achieve hop"):
            gen.end_lines(parsed.layers[4], 0, 2)

    def test_hop_capped_for_last_part(self):
        parsed = _parse()
        gen = ResumeGenerator(ResumeConfig(max_z=12.0))
        lines = gen.end_lines(parsed.layers[9], 1, 2)
        assert "G0 Z12 F4500" in lines

    def test_already_above_max(self):
        parsed = _parse()
        gen = ResumeGenerator(ResumeConfig(max_z=1.0))
        with pytest.raises(HeightLimitError, match="already higher"):
            gen.end_lines(parsed.layers[4], 1, 2)


# ======================================================================
# 3. Validator
# ======================================================================

class TestValidator:

    def setup_method(self):
        self.validator = Validator()

    def _codes(self, lines, part_index=1, scaffold=ScaffoldKind.BEGIN, max_z=250.0):
        result = self.validator.validate(lines, part_index, max_z, scaffold)
        return {i.code for i in result.errors}, {i.code for i in result.warnings}

    def test_generated_scaffolds_are_clean(self):
        parsed = _parse()
        gen = ResumeGenerator()
        for part_index, layer in ((0, 0), (1, 5)):
            lines = gen.begin_lines(parsed, parsed.layers[layer], part_index)
            result = self.validator.validate(lines, part_index, 250.0)
            assert result.issues == []
            assert result.summary() == "Validation passed with no issues."
        end = gen.end_lines(parsed.layers[9], 1, 2)
        assert self.validator.validate(end, 1, 250.0, ScaffoldKind.END).issues == []

    @pytest.mark.parametrize("line", ["G28", "G28 Z0", "G28 X0 Z0"])
    def test_z_homing_after_first_part(self, line):
        errors, _ = self._codes(["M104 S200", "G92 Z5", line])
        assert "Z_HOME" in errors

    def test_xy_homing_after_first_part_is_fine(self):
        errors, _ = self._codes(["M104 S200", "G92 Z5", "G28 X0 Y0"])
        assert errors == set()

    def test_z_homing_allowed_in_first_part(self):
        errors, _ = self._codes(["M140 S60", "M104 S200", "G28"], part_index=0)
        assert errors == set()

    def test_xy_before_z(self):
        errors, _ = self._codes(["M104 S200", "G0 X10 Y10", "G92 Z5"])
        assert "XY_BEFORE_Z" in errors

    def test_xy_before_z_only_checked_in_begin(self):
        errors, _ = self._codes(["G0 X0 Y220"], scaffold=ScaffoldKind.END)
        assert errors == set()

    def test_z_limit(self):
        errors, _ = self._codes(
            ["M140 S60", "M104 S200", "G0 Z300"], part_index=0
        )
        assert "Z_LIMIT" in errors

    def test_relative_z_not_checked(self):
        errors, _ = self._codes(
            ["M140 S60", "M104 S200", "G91", "G0 Z300", "G90"], part_index=0
        )
        assert errors == set()

    def test_missing_temperatures(self):
        errors, _ = self._codes([], part_index=0)
        assert errors == {"MISSING_BED_TEMP", "MISSING_NOZZLE_TEMP"}
        errors, _ = self._codes([], part_index=1)
        assert errors == {"MISSING_NOZZLE_TEMP"}

    def test_zero_temperature_does_not_count(self):
        errors, _ = self._codes(["M104 S0"], part_index=1)
        assert "MISSING_NOZZLE_TEMP" in errors

    def test_unusual_code_is_a_warning(self):
        result = self.validator.validate(["M600"], 1, 250.0, ScaffoldKind.END)
        assert result.ok
        assert [i.code for i in result.warnings] == ["UNUSUAL_M"]
        assert result.warnings[0].severity is Severity.WARNING

    def test_bed_prime_clearance(self):
        record = MinXRecord(x=25.0, layer=3, line="G1 X25 Y40 E1")
        with pytest.raises(PrimeClearanceError) as excinfo:
            Validator.check_bed_prime_clearance(record, 30.0)
        assert excinfo.value.layer == 3
        assert excinfo.value.line == "G1 X25 Y40 E1"

    def test_bed_prime_clearance_boundary(self):
        with pytest.raises(PrimeClearanceError):
            Validator.check_bed_prime_clearance(MinXRecord(30.0, 0, "G0 X30"), 30.0)
        Validator.check_bed_prime_clearance(MinXRecord(30.5, 0, "G0 X30.5"), 30.0)
        Validator.check_bed_prime_clearance(None, 30.0)


# ======================================================================
# 4. PartAssembler
# ======================================================================

def _capture():
    """Part opener writing into memory; returns (opener, {index: text})."""
    written: dict[int, str] = {}

    @contextmanager
    def opener(index: int):
        buf = io.StringIO()
        yield buf
        written[index] = buf.getvalue()

    return opener, written


class _HomingGenerator(ResumeGenerator):
    def begin_lines(self, parsed, layer, part_index):
        return ["G28"] + super().begin_lines(parsed, layer, part_index)


class _NoisyGenerator(ResumeGenerator):
    def end_lines(self, layer, part_index, total_parts):
        return super().end_lines(layer, part_index, total_parts) + ["M600"]


class TestPartAssembler:

    def setup_method(self):
        self.parsed = _parse()
        self.assembler = PartAssembler(ResumeGenerator())

    def test_render_parts(self):
        docs = self.assembler.render(self.parsed, PartPlanner(10, 2))
        assert [d.part.index for d in docs] == [0, 1]
        assert [[layer.number for layer in d.layers] for d in docs] == [
            [0, 1, 2, 3, 4], [5, 6, 7, 8, 9],
        ]
        for doc in docs:
            assert doc.begin and doc.after_first_layer and doc.end

    def test_bodies_are_verbatim(self):
        docs = self.assembler.render(self.parsed, PartPlanner(10, 3))
        body = [line for doc in docs for line in doc.body_lines]
        assert body == [line for k in range(10) for line in layer_lines(k)]

    def test_written_part(self):
        docs = self.assembler.render(self.parsed, PartPlanner(10, 2))
        opener, written = _capture()
        self.assembler.write(docs, opener, source_name="cube.gcode")
        assert sorted(written) == [0, 1]

        lines = written[1].splitlines()
        assert lines[0] == "; =========== begin cube.gcode part 1 ============="
        assert lines.count("; =========== start code ends ================") == 1
        assert lines.count("; =========== after 1st layer code ===========") == 1
        assert lines.count("; ========== end code ========") == 1
        assert lines[-1] == "M300 S440 P200 ; beep"

        i = lines.index("; LAYER 1 (in part) 6 (globally)")
        assert lines[i + 1:i + 7] == layer_lines(6)
        after = lines.index("; =========== after 1st layer code ===========")
        assert lines.index("; LAYER 0 (in part) 5 (globally)") < after < i

    def test_start_layer(self):
        docs = self.assembler.render(self.parsed, PartPlanner(10, 2, start_layer=2))
        assert [d.layers[0].number for d in docs] == [2, 6]
        assert "G28 ; homing" in docs[0].begin

    def test_scenario_d_cap(self):
        docs = self.assembler.render(
            self.parsed, PartPlanner(10, 2, max_layers_per_part=3)
        )
        assert len(docs) == 4
        assert all(len(d.layers) <= 3 for d in docs)
        assert sum(len(d.layers) for d in docs) == 10

    def test_synthesis_failure_writes_nothing(self):
        assembler = PartAssembler(ResumeGenerator(ResumeConfig(max_z=11.2)))
        opener, written = _capture()
        with pytest.raises(HeightLimitError):
            assembler.write(assembler.render(self.parsed, PartPlanner(10, 2)), opener)
        assert written == {}

    def test_validation_failure(self):
        assembler = PartAssembler(_HomingGenerator())
        with pytest.raises(ScaffoldValidationError, match="Z_HOME"):
            assembler.render(self.parsed, PartPlanner(10, 2))

    def test_validation_warnings_collected(self):
        assembler = PartAssembler(_NoisyGenerator())
        docs = assembler.render(self.parsed, PartPlanner(10, 2))
        assert all(any("UNUSUAL_M" in w for w in d.warnings) for d in docs)


# ======================================================================
# 5. Profiles
# ======================================================================

class TestProfiles:

    def test_bundled_profiles(self):
        loader = ProfileLoader()
        assert "default_cura.json" in loader.list_profiles()
        assert "bed_prime.json" in loader.list_profiles()
        assert loader.load().prime_mode is PrimeMode.AIR
        assert loader.load("bed_prime").prime_mode is PrimeMode.BED

    def test_missing_default_profile_uses_defaults(self, tmp_path):
        loader = ProfileLoader(tmp_path)
        assert loader.list_profiles() == []
        assert loader.load() == PrinterProfile()

    def test_missing_named_profile_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="nope.json"):
            ProfileLoader(tmp_path).load("nope")

    def test_load_path(self, tmp_path):
        path = tmp_path / "tall.json"
        path.write_text(json.dumps({
            "name": "tall",
            "max_z": 400,
            "override_policy": "ignore",
        }), encoding="utf-8")
        profile = ProfileLoader().load_path(path)
        assert profile.name == "tall"
        assert profile.max_z == 400.0
        assert profile.hop_mm == 10.0
        assert profile.override_policy is OverridePolicy.IGNORE

    def test_invalid_prime_mode(self):
        with pytest.raises(ValueError):
            PrinterProfile.from_dict({"prime_mode": "sideways"})


# ======================================================================
# 6. Controller & CLI
# ======================================================================

def _profile_dir(tmp_path: Path, **values) -> Path:
    d = tmp_path / "profiles"
    d.mkdir()
    (d / "custom.json").write_text(json.dumps(values), encoding="utf-8")
    return d


class TestController:

    def test_scenario_a_two_parts(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(10))
        result = Controller().run(SplitRequest(input_path=path, parts=2))

        assert result.output_paths == [tmp_path / "test.0.gcode", tmp_path / "test.1.gcode"]
        assert [(p.first_layer, p.last_layer) for p in result.parts] == [(0, 4), (5, 9)]
        assert result.layer_count == 10
        assert result.layer_height == 0.2
        assert result.bed_temp == 60
        assert result.nozzle_temp == 210
        assert result.warnings == []

        first = result.output_paths[0].read_text(encoding="utf-8").splitlines()
        second = result.output_paths[1].read_text(encoding="utf-8").splitlines()
        assert "G28 ; homing" in first
        assert "G28 ; homing" not in second
        assert "G92 Z11.1 ; set Z without homing" in second
        assert "M211 S0 ; Deactivate software endstops" in second
        assert "G28 X0 Y0 ; homing" in second

    def test_scenario_b_logical_coordinates_write_nothing(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4, extra={2: ["G92 X0"]}))
        with pytest.raises(LogicalCoordinateError):
            Controller().run(SplitRequest(input_path=path, parts=2))
        assert list(tmp_path.iterdir()) == [path]

    def test_output_dir_is_created(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4))
        out = tmp_path / "out" / "parts"
        result = Controller().run(SplitRequest(input_path=path, parts=2, output_dir=out))
        assert [p.parent for p in result.output_paths] == [out, out]
        assert all(p.is_file() for p in result.output_paths)

    def test_cap_warning(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(10))
        result = Controller().run(
            SplitRequest(input_path=path, parts=2, max_layers_per_part=3)
        )
        assert len(result.output_paths) == 4
        assert any("Split into 4 parts" in w for w in result.warnings)

    def test_bed_prime_clearance_writes_nothing(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4, extra={1: ["G0 X10 Y50"]}))
        with pytest.raises(PrimeClearanceError):
            Controller().run(
                SplitRequest(input_path=path, parts=2, prime_mode=PrimeMode.BED)
            )
        assert list(tmp_path.iterdir()) == [path]

    def test_air_prime_close_to_x0_warns(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4, extra={1: ["G0 X10 Y50"]}))
        result = Controller().run(SplitRequest(input_path=path, parts=2))
        assert any("X 10" in w for w in result.warnings)

    def test_height_limit_writes_nothing(self, tmp_path):
        profiles = _profile_dir(tmp_path, max_z=11.2)
        path = write_gcode(tmp_path, make_gcode(10))
        with pytest.raises(HeightLimitError):
            Controller(profiles).run(
                SplitRequest(input_path=path, parts=2, profile_name="custom")
            )
        assert not list(tmp_path.glob("test.*.gcode"))

    def test_profile_values_used(self, tmp_path):
        profiles = _profile_dir(tmp_path, hop_mm=5, prime_mode="bed")
        path = write_gcode(tmp_path, make_gcode(10))
        result = Controller(profiles).run(
            SplitRequest(input_path=path, parts=2, profile_name="custom")
        )
        second = result.output_paths[1].read_text(encoding="utf-8").splitlines()
        assert "G92 Z6.1 ; set Z without homing" in second
        assert "; Wiping on bed" in second

    def test_override_policy_from_request(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4, extra={1: ["M221 S90"]}))
        result = Controller().run(SplitRequest(
            input_path=path, parts=2, override_policy=OverridePolicy.IGNORE
        ))
        assert len(result.output_paths) == 2

    def test_non_utf8_bytes_pass_through(self, tmp_path):
        data = make_gcode(4, extra={1: [";note MARK"]}).encode("utf-8")
        path = tmp_path / "test.gcode"
        path.write_bytes(data.replace(b"MARK", b"caf\xe9"))
        result = Controller().run(SplitRequest(input_path=path, parts=2))
        assert b"\n;note caf\xe9\n" in result.output_paths[0].read_bytes()

    def test_shifted_bed_prime_widens_clearance(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(6))
        request = SplitRequest(
            input_path=path, parts=3, prime_mode=PrimeMode.BED, shift_bed_prime=True
        )
        with pytest.raises(PrimeClearanceError):
            Controller().run(request)
        assert list(tmp_path.iterdir()) == [path]

        request.parts = 2
        assert len(Controller().run(request).output_paths) == 2

    def test_bed_prime_clearance(self):
        config = ResumeConfig(print_head_x_clearance=30.0, bed_prime_shift_mm=5.0)
        assert Controller.bed_prime_clearance(config, 4) == 30.0
        config.shift_bed_prime = True
        assert Controller.bed_prime_clearance(config, 1) == 30.0
        assert Controller.bed_prime_clearance(config, 4) == 45.0


class TestGCodeSplitController:

    def test_process(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(10))
        result = GCodeSplitController().process(
            gcode_path=str(path), parts=2, prime_mode="bed", iron=True
        )
        assert result.total_parts == 2
        assert result.total_layers == 10
        assert result.layers_per_part == [5, 5]
        text = result.output_paths[1].read_text(encoding="utf-8")
        assert "; Ironing starts" in text

    def test_invalid_part_count(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4))
        with pytest.raises(ValueError):
            GCodeSplitController().process(gcode_path=str(path), parts=0)


class TestCli:

    def test_split(self, tmp_path, capsys):
        path = write_gcode(tmp_path, make_gcode(10))
        assert main([str(path), "--parts", "2", "--iron", "--flow-rate", "95"]) == 0
        out = capsys.readouterr().out
        assert "Split 10 layers into 2 parts" in out
        text = (tmp_path / "test.1.gcode").read_text(encoding="utf-8")
        assert "M221 S95 ; continuation flow rate" in text

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.gcode")]) == 1
        assert "file not found" in capsys.readouterr().err

    def test_error_reported(self, tmp_path, capsys):
        path = write_gcode(tmp_path, make_gcode(4, extra={2: ["M600"]}))
        assert main([str(path), "--parts", "2"]) == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: Unknown command [M600]")
        assert "layer 2" in err

    def test_allow_overrides(self, tmp_path):
        path = write_gcode(tmp_path, make_gcode(4, extra={1: ["M220 S80"]}))
        assert main([str(path), "--parts", "2"]) == 1
        assert main([str(path), "--parts", "2", "--allow-overrides"]) == 0

    def test_unknown_profile(self, tmp_path, capsys):
        path = write_gcode(tmp_path, make_gcode(4))
        assert main([str(path), "--parts", "2", "--profile", "no_such_printer"]) == 1
        assert "no_such_printer.json" in capsys.readouterr().err
        assert not list(tmp_path.glob("test.*.gcode"))
