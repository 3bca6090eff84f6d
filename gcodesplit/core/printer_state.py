"""Printer state tracker for gcodesplit.

The printer's logical state is an explicit value threaded through
:func:`transition`, one command at a time.  Snapshots taken at layer
boundaries are plain copies of that value.

Axis positions are tagged values (see :class:`AxisValue`): absolute,
unknown, or relative-tainted.  Only absolute values can be turned back into
numbers, and only through :meth:`AxisValue.require`.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import NamedTuple, Optional

from .errors import (
    LogicalCoordinateError,
    OverrideCommandError,
    ParseError,
    SynthesisError,
    UnknownCommandError,
)
from .line_classifier import Command

log = logging.getLogger(__name__)


def format_number(value: float) -> str:
    """Render a number for gcode output (up to 15 significant digits)."""
    return f"{value:.15g}"


# ---------------------------------------------------------------------------
# Axis values
# ---------------------------------------------------------------------------


class AxisState(Enum):
    UNKNOWN = "unknown"
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


@dataclass(frozen=True)
class AxisValue:
    """A coordinate that is absolute, unknown, or tainted by a relative move."""

    state: AxisState
    number: Optional[float] = None

    @classmethod
    def absolute(cls, number: float) -> AxisValue:
        return cls(AxisState.ABSOLUTE, float(number))

    @property
    def is_absolute(self) -> bool:
        return self.state is AxisState.ABSOLUTE

    def require(self, what: str) -> float:
        """Return the number or raise *SynthesisError* naming *what*."""
        if self.state is AxisState.RELATIVE:
            raise SynthesisError(f"Only relative positions known for {what}")
        if self.state is AxisState.UNKNOWN or self.number is None:
            raise SynthesisError(f"No position known for {what}")
        return self.number

    def __str__(self) -> str:
        if self.is_absolute:
            return format_number(self.number)  # type: ignore[arg-type]
        return self.state.value


UNKNOWN = AxisValue(AxisState.UNKNOWN)
RELATIVE = AxisValue(AxisState.RELATIVE)


class Position(NamedTuple):
    x: AxisValue
    y: AxisValue
    z: AxisValue


# ---------------------------------------------------------------------------
# Modes, fan, commands
# ---------------------------------------------------------------------------


class PositioningMode(Enum):
    ABSOLUTE = "abs"
    RELATIVE = "rel"


class OverridePolicy(Enum):
    """What to do with M220/M221 inside a layer body."""

    REJECT = "reject"
    IGNORE = "ignore"


@dataclass(frozen=True)
class FanState:
    """Part-cooling fan; ``duty`` is None when the fan is off."""

    duty: Optional[float] = None

    @property
    def is_off(self) -> bool:
        return self.duty is None

    def command(self) -> str:
        if self.duty is None:
            return "M107"
        return f"M106 S{format_number(self.duty)}"

    def __str__(self) -> str:
        return "off" if self.duty is None else format_number(self.duty)


class CommandKind(Enum):
    """Closed set of mnemonics the tracker understands."""

    ABSOLUTE_POSITIONING = "G90"
    RELATIVE_POSITIONING = "G91"
    ABSOLUTE_EXTRUSION = "M82"
    RELATIVE_EXTRUSION = "M83"
    SET_BED_TEMP = "M140"
    WAIT_BED_TEMP = "M190"
    SET_NOZZLE_TEMP = "M104"
    WAIT_NOZZLE_TEMP = "M109"
    FAN_ON = "M106"
    FAN_OFF = "M107"
    RAPID_MOVE = "G0"
    LINEAR_MOVE = "G1"
    SET_POSITION = "G92"
    FEED_RATE = "M220"
    FLOW_RATE = "M221"
    # Known and ignored
    COMMENT = ""
    REPORT_TEMP = "M105"
    POWER_LOSS_RECOVERY = "M413"
    BED_LEVELING_STATE = "M420"
    HOME = "G28"
    DISABLE_STEPPERS = "M84"

    @classmethod
    def of(cls, command: Command) -> CommandKind:
        try:
            return cls(command.mnemonic)
        except ValueError:
            raise UnknownCommandError(f"Unknown command [{command.mnemonic}]") from None

    @property
    def is_move(self) -> bool:
        return self in (CommandKind.RAPID_MOVE, CommandKind.LINEAR_MOVE)


_IGNORED = frozenset({
    CommandKind.COMMENT,
    CommandKind.REPORT_TEMP,
    CommandKind.POWER_LOSS_RECOVERY,
    CommandKind.BED_LEVELING_STATE,
    CommandKind.HOME,
    CommandKind.DISABLE_STEPPERS,
})


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass
class PrinterState:
    """Logical printer state reconstructed from the command stream."""

    extruder_mode: PositioningMode = PositioningMode.ABSOLUTE
    xyz_mode: PositioningMode = PositioningMode.ABSOLUTE
    x: AxisValue = UNKNOWN
    y: AxisValue = UNKNOWN
    z: AxisValue = UNKNOWN
    e: AxisValue = UNKNOWN
    e_max: AxisValue = UNKNOWN   # max E reached in absolute extruder mode
    bed_temp: Optional[float] = None
    nozzle_temp: Optional[float] = None
    initial_bed_temp: Optional[float] = None
    initial_nozzle_temp: Optional[float] = None
    fan: Optional[FanState] = None

    @property
    def position(self) -> Position:
        return Position(self.x, self.y, self.z)

    @property
    def retraction(self) -> Optional[float]:
        """Current retraction depth ``E_max - E`` when both are absolute."""
        if self.e.is_absolute and self.e_max.is_absolute:
            return self.e_max.number - self.e.number  # type: ignore[operator]
        return None

    def snapshot(self) -> PrinterState:
        return copy.deepcopy(self)


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------


def _s_value(command: Command) -> float:
    f = command.field("S")
    if f is None:
        raise ParseError(f"{command.mnemonic} without S argument is not supported")
    return f.value


def transition(
    state: PrinterState,
    command: Command,
    *,
    in_layer: bool = False,
    override_policy: OverridePolicy = OverridePolicy.REJECT,
) -> PrinterState:
    """Return the state after *command*, or raise a *ParseError* subclass."""
    kind = CommandKind.of(command)

    if kind is CommandKind.ABSOLUTE_POSITIONING:
        log.debug("* absolute pos")
        return replace(
            state,
            extruder_mode=PositioningMode.ABSOLUTE,
            xyz_mode=PositioningMode.ABSOLUTE,
        )

    elif kind is CommandKind.RELATIVE_POSITIONING:
        log.debug("* relative pos")
        return replace(
            state,
            extruder_mode=PositioningMode.RELATIVE,
            xyz_mode=PositioningMode.RELATIVE,
        )

    elif kind is CommandKind.ABSOLUTE_EXTRUSION:
        log.debug("* absolute extr")
        return replace(state, extruder_mode=PositioningMode.ABSOLUTE)

    elif kind is CommandKind.RELATIVE_EXTRUSION:
        log.debug("* relative extr")
        return replace(state, extruder_mode=PositioningMode.RELATIVE)

    elif kind in (CommandKind.SET_BED_TEMP, CommandKind.WAIT_BED_TEMP):
        temp = _s_value(command)
        log.debug("* bed temp [%s]", format_number(temp))
        initial = state.initial_bed_temp
        if initial is None:
            initial = temp
            log.debug("* init bed temp [%s]", format_number(temp))
        return replace(state, bed_temp=temp, initial_bed_temp=initial)

    elif kind in (CommandKind.SET_NOZZLE_TEMP, CommandKind.WAIT_NOZZLE_TEMP):
        temp = _s_value(command)
        log.debug("* nozzle temp [%s]", format_number(temp))
        initial = state.initial_nozzle_temp
        if initial is None:
            initial = temp
            log.debug("* init nozzle temp [%s]", format_number(temp))
        return replace(state, nozzle_temp=temp, initial_nozzle_temp=initial)

    elif kind is CommandKind.FAN_OFF:
        log.debug("* fan off")
        return replace(state, fan=FanState())

    elif kind is CommandKind.FAN_ON:
        duty = _s_value(command)
        log.debug("* fan [%s]", format_number(duty))
        return replace(state, fan=FanState(duty))

    elif kind.is_move:
        return _apply_move(state, command)

    elif kind is CommandKind.SET_POSITION:
        return _apply_set_position(state, command)

    elif kind in (CommandKind.FEED_RATE, CommandKind.FLOW_RATE):
        if in_layer and override_policy is OverridePolicy.REJECT:
            what = "Feedrate" if kind is CommandKind.FEED_RATE else "Flowrate"
            raise OverrideCommandError(
                f"{what} ({command.mnemonic}) in main gcode - resume would be incorrect"
            )
        return state

    elif kind in _IGNORED:
        return state

    raise UnknownCommandError(f"Unhandled command [{command.mnemonic}]")


def _apply_move(state: PrinterState, command: Command) -> PrinterState:
    changes: dict = {}
    e, e_max = state.e, state.e_max
    xyz_relative = state.xyz_mode is PositioningMode.RELATIVE

    for f in command.fields:
        if f.letter == "E":
            if state.extruder_mode is PositioningMode.RELATIVE:
                e = e_max = RELATIVE
            else:
                e = AxisValue.absolute(f.value)
                if not e_max.is_absolute or e.number > e_max.number:  # type: ignore[operator]
                    e_max = e
        elif f.letter in ("X", "Y", "Z"):
            value = RELATIVE if xyz_relative else AxisValue.absolute(f.value)
            changes[f.letter.lower()] = value

    return replace(state, e=e, e_max=e_max, **changes)


def _apply_set_position(state: PrinterState, command: Command) -> PrinterState:
    if not command.fields:
        raise LogicalCoordinateError(
            "Logical coordinate systems are unsupported (bare G92 resets XYZ)"
        )

    e, e_max = state.e, state.e_max
    for f in command.fields:
        if f.letter in ("X", "Y", "Z"):
            raise LogicalCoordinateError(
                f"Logical coordinate systems are unsupported (G92 {f.letter})"
            )
        if f.letter == "E":
            retraction = state.retraction or 0.0
            e = AxisValue.absolute(f.value)
            e_max = AxisValue.absolute(f.value + retraction)
    return replace(state, e=e, e_max=e_max)
