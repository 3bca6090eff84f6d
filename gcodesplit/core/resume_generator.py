"""Resume/pause script generator for gcodesplit.

Every part of a split print is wrapped in synthesized scaffolding:

  begin   heat, home (XY only after the first part), prime the nozzle,
          approach the resume point from above, restore retraction,
          extrusion position and fan
  after   reset feed/flow overrides and nozzle temperature once the part's
          first layer is printed
  end     retract, lift, present the print, switch everything off

All three are pure functions of the captured layer snapshots and the
*ResumeConfig*.  Anything that cannot be derived safely (unknown or
relative-only positions, missing temperatures, heights beyond the build
volume) raises a *SynthesisError*.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import HeightLimitError, SynthesisError
from .gcode_parser import LayerInfo, ParsedGCode
from .printer_state import PrinterState, format_number as _n

log = logging.getLogger(__name__)


class PrimeMode(Enum):
    """How the nozzle is primed after heating."""

    AIR = "air"   # extrude in place, beep, wait for the user to remove it
    BED = "bed"   # draw and wipe a purge line near the front-left of the bed


# Bed prime line geometry (mm / mm per min).  Printer specific.
PRIME_Y_START = 20
PRIME_Y_END = 160.0
PRIME_Y_RETURN = 40
PRIME_Z = 0.28
PRIME_EXTRUDE_FIRST = 15
PRIME_EXTRUDE_SECOND = 30
AIR_PRIME_EXTRUDE = 30
PARK_Z = 10
APPROACH_FEED = 5000
IRONING_FEED = 600


@dataclass
class ResumeConfig:
    """Synthesis settings (printer profile merged with job options)."""

    retract_mm: float = 3.0
    hop_mm: float = 10.0
    present_y: float = 220.0
    max_z: float = 250.0
    print_head_x_clearance: float = 30.0
    prime_mode: PrimeMode = PrimeMode.AIR
    shift_bed_prime: bool = False
    bed_prime_shift_mm: float = 5.0
    prime_retract_mm: float = 1.0
    use_initial_nozzle_temp: bool = False
    reheat_bed: bool = False
    iron: bool = False
    z_compression: float = 0.0            # ratio of layer height, per part
    continuation_flow_rate: int = 100     # percent, first layer of parts > 0
    continuation_feed_rate: int = 35      # percent, first layer of parts > 0


class ResumeGenerator:
    """Renders the begin / after-first-layer / end scaffolds."""

    def __init__(self, config: Optional[ResumeConfig] = None) -> None:
        self._config = config or ResumeConfig()

    @property
    def config(self) -> ResumeConfig:
        return self._config

    # ------------------------------------------------------------------
    # Begin
    # ------------------------------------------------------------------

    def begin_lines(
        self,
        parsed: ParsedGCode,
        layer: LayerInfo,
        part_index: int,
    ) -> list[str]:
        """Scaffold that brings the printer from power-on to *layer*'s start."""
        cfg = self._config
        entry = layer.entry
        num = layer.number

        bed_temp = entry.bed_temp
        if bed_temp is None:
            raise SynthesisError(f"No bed temp found at layer {num}")
        nozzle_temp = self._nozzle_temp(entry, num)

        pe = entry.e.require(f"E at layer {num}")
        retraction = entry.retraction
        if retraction is None:
            raise SynthesisError(f"No retraction state found at layer {num}")
        cur_retract = 0.0 - retraction   # no "-0" when nothing is retracted

        start = layer.start_position
        px = start.x.require(f"X at layer {num}")
        py = start.y.require(f"Y at layer {num}")
        pz = start.z.require(f"Z at layer {num}")

        inherited_z: Optional[float] = None
        if part_index > 0:
            inherited_z = entry.z.require(f"Z at layer {num}") + cfg.hop_mm
            if cfg.z_compression:
                if parsed.layer_height is None:
                    raise SynthesisError("Could not find layer height")
                inherited_z += cfg.z_compression * parsed.layer_height * part_index
            if inherited_z > cfg.max_z:
                raise HeightLimitError(
                    f"Inherited Z ({_n(inherited_z)}) exceeds maximum ({_n(cfg.max_z)})"
                )

        approach_z = pz + cfg.hop_mm
        if approach_z >= cfg.max_z:
            raise HeightLimitError(
                f"Z coord ({_n(approach_z)}) exceeds maximum ({_n(cfg.max_z)})"
            )

        fan = entry.fan
        header = [
            f"; Rendering begin script for block #{part_index} at layer #{num} "
            f"Inherited Z: {_n(inherited_z) if inherited_z is not None else 'n/a'}",
            f"; Layer starts with Bed:{_n(bed_temp)} Nozzle:{_n(nozzle_temp)} "
            f"Fan:{fan if fan is not None else 'unknown'}",
            f"; Layer starts at X:{_n(px)} Y:{_n(py)} Z:{_n(pz)} E:{_n(pe)} "
            f"Retract:{_n(cur_retract)}",
        ]
        log.info("Rendering begin script for part %d at layer %d", part_index, num)

        lines = header + [
            "",
            "M413 S0 ; Power loss off",
            "M220 S100 ; Reset Feedrate",
            "M221 S100 ; Reset Flowrate",
            "",
        ]

        if part_index == 0 or cfg.reheat_bed:
            lines += [
                f"M140 S{_n(bed_temp)} ; bed temp",
                "M105 ; report temp",
                f"M190 S{_n(bed_temp)} ; wait bed temp",
                "",
            ]

        if part_index == 0:
            lines.append("G28 ; homing")
        else:
            # Homing Z would move the head to the middle of the bed, so tell
            # the firmware where Z is and home XY above the print.
            lines += [
                f"G92 Z{_n(inherited_z)} ; set Z without homing",  # type: ignore[arg-type]
                "M211 S0 ; Deactivate software endstops",
                "G90 ; absolute pos",
                "G28 X0 Y0 ; homing",
            ]

        # Never lower the head beside a standing print.
        park_z = PARK_Z if inherited_z is None else max(PARK_Z, inherited_z)

        lines += [
            "",
            "M420 S1 ; Enable mesh leveling",
            "",
            "G90 ; absolute pos",
            "M82 ; absolute E",
            f"G92 E-{_n(cfg.retract_mm)} ; Reset Extruder pos",
            "",
            "G0 X0 Y0 ; avoid bumping into the model (if homing didn't move us back)",
            f"G0 Z{_n(park_z)}",
            "",
        ]

        if part_index == 0 or cfg.prime_mode is PrimeMode.BED:
            lines += self._bed_prime_lines(part_index, nozzle_temp)
        else:
            lines += self._air_prime_lines(nozzle_temp)

        lines += [
            "",
            "; move to desired place from above",
            "M220 S100 ; Reset Feedrate",
            f"G0 Z{_n(approach_z)} F{APPROACH_FEED}",
            f"G0 X{_n(px)} Y{_n(py)} Z{_n(approach_z)} F{APPROACH_FEED}",
            "",
        ]

        if part_index > 0 and cfg.iron:
            lines += self._ironing_for(parsed, layer)
        lines.append(f"G0 X{_n(px)} Y{_n(py)} Z{_n(pz)} F{APPROACH_FEED}")

        lines += [
            "M220 S100 ; Reset Feedrate",
            "",
            "; Restore E and retraction",
            f"G1 E{_n(cur_retract)} F1500",
            f"G92 E{_n(pe)}",
            f"G1 E{_n(pe)} F1800",
            "",
        ]

        if fan is not None:
            lines.append(f"{fan.command()} ; restore fan")
        if part_index > 0:
            if cfg.continuation_flow_rate != 100:
                lines.append(
                    f"M221 S{cfg.continuation_flow_rate} ; continuation flow rate"
                )
            # Slower first layer bonds better to the cold top of the last part.
            lines.append(
                f"M220 S{cfg.continuation_feed_rate} ; Slow Feedrate for first layer"
            )
        return lines

    # ------------------------------------------------------------------
    # After first layer / end
    # ------------------------------------------------------------------

    def after_first_layer_lines(self, layer: LayerInfo) -> list[str]:
        """Undo continuation overrides and any raised priming temperature."""
        nozzle_temp = layer.exit_state.nozzle_temp
        if nozzle_temp is None:
            raise SynthesisError(f"No nozzle temp found at layer {layer.number}")
        return [
            "M220 S100 ; Reset Feedrate",
            "M221 S100 ; Reset Flowrate",
            f"M104 S{_n(nozzle_temp)} ; nozzle temp",
        ]

    def end_lines(
        self,
        layer: LayerInfo,
        part_index: int,
        total_parts: int,
    ) -> list[str]:
        """Scaffold that parks the printer after *layer*, the part's last."""
        cfg = self._config
        z = layer.exit_state.z.require(f"final Z at layer {layer.number}")
        log.info(
            "Rendering end script for part %d, layer %d, final Z %s",
            part_index, layer.number, _n(z),
        )
        if z > cfg.max_z:
            raise HeightLimitError(
                f"Z pos ({_n(z)}) already higher than maximum ({_n(cfg.max_z)})"
            )
        z += cfg.hop_mm
        if z > cfg.max_z:
            if part_index != total_parts - 1:
                raise HeightLimitError(
                    f"Cannot achieve hop for part {part_index}: "
                    f"Z {_n(z)} exceeds maximum ({_n(cfg.max_z)})"
                )
            log.info("Capping final hop at maximum Z %s", _n(cfg.max_z))
            z = cfg.max_z

        return [
            "G91 ; relative XYZ",
            "M83 ; relative E",
            "; retract filament, move Z slightly upwards",
            f"G1 E-{_n(cfg.retract_mm)} F4500",
            "M82 ; absolute E",
            "G90 ; absolute XYZ",
            f"G0 Z{_n(z)} F4500",
            "; move to a safe rest position",
            f"G0 X0 Y{_n(cfg.present_y)}",
            "M106 S0 ; Turn-off fan",
            "M104 S0 ; Turn-off hotend",
            "M140 S0 ; Turn-off bed",
            "M18 S60 ; disable all steppers after 1min",
            "M300 S440 P200 ; beep",
        ]

    # ------------------------------------------------------------------
    # Ironing
    # ------------------------------------------------------------------

    def ironing_lines(self, layer: LayerInfo) -> list[str]:
        """Re-trace *layer* without extruding.  Empty if it cannot be ironed."""
        if not layer.can_iron:
            return []
        nozzle_temp = self._nozzle_temp(layer.entry, layer.number)
        lines = [
            "; Ironing starts",
            "M107 ; fan off",
            f"M109 S{_n(nozzle_temp)} ; wait nozzle temp",
            "; Ironing layer starts",
        ]
        lines += [
            f"G0 X{pos.x} Y{pos.y} Z{pos.z} F{IRONING_FEED} ; ironing"
            for pos in layer.ironing_path
        ]
        lines.append("; Ironing ends")
        return lines

    def _ironing_for(self, parsed: ParsedGCode, layer: LayerInfo) -> list[str]:
        prev = parsed.layers[layer.number - 1]
        if prev.number != layer.number - 1:
            raise SynthesisError("layer num mismatch for ironing")
        lines = self.ironing_lines(prev)
        if not lines:
            log.warning("Cannot convert layer #%d to ironing", prev.number)
        return lines

    # ------------------------------------------------------------------
    # Priming
    # ------------------------------------------------------------------

    def _bed_prime_lines(self, part_index: int, nozzle_temp: float) -> list[str]:
        cfg = self._config
        # Separate the purge lines of different parts.
        wx = part_index * cfg.bed_prime_shift_mm if cfg.shift_bed_prime else 0.0
        noz = _n(nozzle_temp)
        return [
            "; Wiping on bed",
            f"G0 X{wx + 0.2:.1f} Y10 Z{PARK_Z} F5000.0 ; Move to start position allow space to extrude",
            "",
            f"M104 S{noz} ; nozzle temp",
            "M105 ; report temp",
            f"M109 S{noz} ; wait nozzle temp",
            "",
            f"G1 X{wx + 0.2:.1f} Y{PRIME_Y_START} Z{PRIME_Z} F1500 E0 ; diagonal down; undo end code retract",
            f"G1 X{wx + 0.2:.1f} Y{PRIME_Y_END} Z{PRIME_Z} F1500.0 E{PRIME_EXTRUDE_FIRST} ;Draw the first line",
            f"G1 X{wx + 0.4:.1f} Y{PRIME_Y_END} Z{PRIME_Z} F5000.0 ;Move to side a little",
            f"G1 X{wx + 0.4:.1f} Y{PRIME_Y_RETURN} Z{PRIME_Z} F1500.0 E{PRIME_EXTRUDE_SECOND} ;Draw the second line",
            "",
            "G92 E0 ; Reset Extruder pos",
            f"G1 E-{_n(cfg.prime_retract_mm)} F600 ; Retract a bit",
            f"G0 X{wx:.1f} Y40 Z{PRIME_Z} F1000 ; wipe across",
            f"G0 X{wx + 0.5:.1f} Y60 Z{PRIME_Z} F1000 ; more wipe",
            f"G0 X{wx:.1f} Y80 Z{PRIME_Z} F1000 ; more wipe",
        ]

    def _air_prime_lines(self, nozzle_temp: float) -> list[str]:
        # Stays off the bed so a wide print is never hit.
        noz = _n(nozzle_temp)
        return [
            "; Wiping / extruding in air",
            "G0 X0 Y0 F5000 ; Move to front corner",
            "",
            f"M104 S{noz} ; nozzle temp",
            "M105 ; report temp",
            f"M109 S{noz} ; wait nozzle temp",
            "",
            f"G1 E{AIR_PRIME_EXTRUDE} F500 ; undo end code retract and extrude more",
            "M106 ; full fan speed",
            "G4 S2 ; dwell 2s",
            "M300 S440 P200 ; beep",
            "M0 CLEANME ; pause, wait for user (may only pause octoprint)",
            "M107 ; fan off",
            "G92 E0 ; Reset Extruder pos",
            f"G1 E-{_n(self._config.prime_retract_mm)} F600 ; Retract a bit",
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _nozzle_temp(self, state: PrinterState, layer_number: int) -> float:
        if self._config.use_initial_nozzle_temp:
            temp = state.initial_nozzle_temp
        else:
            temp = state.nozzle_temp
        if temp is None:
            raise SynthesisError(f"No nozzle temp found at layer {layer_number}")
        return temp
