"""Scaffold validator for gcodesplit.

Statically checks every synthesized begin / end scaffold before any part
file is written:
  - Temperature commands are present in begin scaffolds
  - No Z homing after the first part (G28 Z re-centres the head mid-print)
  - Z is declared (G92 Z) before the first XY motion of a continuation
  - No Z target above the maximum build height

Also validates, once per input, that bed priming cannot hit the print.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import PrimeClearanceError
from .gcode_parser import MinXRecord


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


class ScaffoldKind(Enum):
    BEGIN = "begin"
    AFTER_FIRST_LAYER = "after"
    END = "end"


@dataclass
class ValidationIssue:
    """A single validation finding."""

    severity: Severity
    line_number: int      # 1-based within the scaffold, 0 for whole-scaffold findings
    message: str
    code: str             # machine-readable short code


@dataclass
class ValidationResult:
    """Aggregate validation result."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    def summary(self) -> str:
        if self.ok and not self.warnings:
            return "Validation passed with no issues."
        parts: list[str] = []
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warning(s)")
        return "Validation: " + ", ".join(parts) + "."


# Compiled patterns
_RE_G_COMMAND = re.compile(r"^G(\d+)\b", re.IGNORECASE)
_RE_M_COMMAND = re.compile(r"^M(\d+)\b", re.IGNORECASE)
_RE_Z_PARAM = re.compile(r"\bZ\s*([+-]?\d+\.?\d*)", re.IGNORECASE)
_RE_XY_PARAM = re.compile(r"\b[XY]\s*[+-]?\d", re.IGNORECASE)
_RE_S_PARAM = re.compile(r"\bS\s*(\d+\.?\d*)", re.IGNORECASE)

# Codes the scaffolds are expected to use
_KNOWN_G = {0, 1, 4, 28, 90, 91, 92}
_KNOWN_M = {
    0, 18, 82, 83, 104, 105, 106, 107, 109, 140, 190,
    211, 220, 221, 300, 413, 420,
}


class Validator:
    """Validate synthesized scaffold lines."""

    def validate(
        self,
        lines: list[str],
        part_index: int,
        max_z: float,
        scaffold: ScaffoldKind = ScaffoldKind.BEGIN,
    ) -> ValidationResult:
        result = ValidationResult()

        has_bed_temp = False
        has_nozzle_temp = False
        z_declared = part_index == 0 or scaffold is not ScaffoldKind.BEGIN
        relative = False

        for idx, raw_line in enumerate(lines):
            line_num = idx + 1
            cmd = raw_line.split(";", 1)[0].strip()
            if not cmd:
                continue
            cmd_upper = cmd.upper()

            # --- Known G/M codes ---
            g_code: Optional[int] = None
            gm = _RE_G_COMMAND.match(cmd_upper)
            if gm:
                g_code = int(gm.group(1))
                if g_code not in _KNOWN_G:
                    result.issues.append(ValidationIssue(
                        severity=Severity.WARNING,
                        line_number=line_num,
                        message=f"Unusual G-code: G{g_code}",
                        code="UNUSUAL_G",
                    ))

            mm = _RE_M_COMMAND.match(cmd_upper)
            if mm:
                code = int(mm.group(1))
                if code not in _KNOWN_M:
                    result.issues.append(ValidationIssue(
                        severity=Severity.WARNING,
                        line_number=line_num,
                        message=f"Unusual M-code: M{code}",
                        code="UNUSUAL_M",
                    ))
                s = _RE_S_PARAM.search(cmd_upper)
                if s and float(s.group(1)) > 0:
                    if code in (140, 190):
                        has_bed_temp = True
                    elif code in (104, 109):
                        has_nozzle_temp = True

            if g_code == 90:
                relative = False
            elif g_code == 91:
                relative = True

            z_match = _RE_Z_PARAM.search(cmd_upper)
            xy_motion = bool(_RE_XY_PARAM.search(cmd_upper)) and g_code in (0, 1, 28)

            # --- Z homing (forbidden after the first part) ---
            if g_code == 28 and part_index > 0:
                homes_all = not (_RE_XY_PARAM.search(cmd_upper) or z_match)
                if z_match or homes_all:
                    result.issues.append(ValidationIssue(
                        severity=Severity.ERROR,
                        line_number=line_num,
                        message="Homing Z is forbidden when continuing a print.",
                        code="Z_HOME",
                    ))

            # --- Z must be declared before XY motion on continuations ---
            if g_code == 92 and z_match:
                z_declared = True
            if xy_motion and not z_declared:
                result.issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line_number=line_num,
                    message="XY movement before Z is declared — risk of collision.",
                    code="XY_BEFORE_Z",
                ))
                z_declared = True  # report once

            # --- Height limit ---
            if z_match and not relative and g_code in (0, 1, 92):
                z = float(z_match.group(1))
                if z > max_z:
                    result.issues.append(ValidationIssue(
                        severity=Severity.ERROR,
                        line_number=line_num,
                        message=f"Z target {z:.3f} mm exceeds maximum {max_z:.3f} mm.",
                        code="Z_LIMIT",
                    ))

        # --- Post-scan checks ---
        if scaffold is ScaffoldKind.BEGIN:
            if part_index == 0 and not has_bed_temp:
                result.issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line_number=0,
                    message="No bed temperature command found.",
                    code="MISSING_BED_TEMP",
                ))
            if not has_nozzle_temp:
                result.issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line_number=0,
                    message="No nozzle temperature command found.",
                    code="MISSING_NOZZLE_TEMP",
                ))

        return result

    @staticmethod
    def check_bed_prime_clearance(
        min_x: Optional[MinXRecord],
        clearance: float,
    ) -> None:
        """Raise if the print reaches into the area used for bed priming."""
        if min_x is None:
            return
        if min_x.x <= clearance:
            raise PrimeClearanceError(
                f"The minimum X coordinate of the print ({min_x.x:g}) is too small "
                f"to let the print head prep the nozzle on the bed "
                f"(clearance {clearance:g})",
                line=min_x.line,
                layer=min_x.layer,
            )
