"""G-code parser for gcodesplit.

Streams a Cura-style gcode file once and records, per layer:
  - the printer state on layer entry and exit
  - the raw body lines (passed through verbatim)
  - the endpoint of the layer's first move when it does not extrude
  - an ironing trace (one absolute X/Y/Z point per move)

Layer markers must run 0, 1, 2 ... and their number must match the
``;LAYER_COUNT:`` declaration.  Every unknown command is fatal.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

from .errors import (
    GCodeSplitError,
    LayerCountError,
    LayerSequenceError,
    MissingEndCodeError,
)
from .line_classifier import (
    Command,
    EndMarker,
    LayerCount,
    LayerHeight,
    LayerMarker,
    classify_line,
)
from .printer_state import (
    CommandKind,
    OverridePolicy,
    Position,
    PositioningMode,
    PrinterState,
    transition,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class MinXRecord:
    """Smallest absolute X reached inside any layer."""

    x: float
    layer: int
    line: str


@dataclass
class LayerInfo:
    """One recorded layer."""

    number: int                              # 0-based layer index
    entry: PrinterState                      # state before the layer's first command
    lines: list[str] = field(default_factory=list)   # body, no trailing newlines
    exit: Optional[PrinterState] = None      # state after the layer's last command
    first_move: Optional[Position] = None    # endpoint of a non-extruding first move
    has_first_move: bool = False             # first move already examined
    ironing_path: list[Position] = field(default_factory=list)
    can_iron: bool = True

    @property
    def start_position(self) -> Position:
        """Where the layer effectively starts printing."""
        if self.first_move is not None:
            return self.first_move
        return self.entry.position

    @property
    def exit_state(self) -> PrinterState:
        return self.exit if self.exit is not None else self.entry


@dataclass
class ParsedGCode:
    """Result of parsing a gcode file."""

    layers: list[LayerInfo] = field(default_factory=list)
    layer_height: Optional[float] = None
    layer_count: Optional[int] = None
    end_code_found: bool = False
    state: PrinterState = field(default_factory=PrinterState)   # final state
    min_x: Optional[MinXRecord] = None
    line_count: int = 0
    source_filename: str = "unknown"


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class GCodeParser:
    """Streaming gcode parser and layer recorder."""

    def __init__(self, override_policy: OverridePolicy = OverridePolicy.REJECT) -> None:
        self._override_policy = override_policy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_file(self, path: str | Path) -> ParsedGCode:
        """Parse a gcode file on disk and return *ParsedGCode*."""
        path = Path(path)
        with open(path, "r", encoding="utf-8", errors="surrogateescape") as fh:
            result = self._parse_stream(fh)
        result.source_filename = path.name
        return result

    def parse_string(self, text: str) -> ParsedGCode:
        """Parse gcode from a string (convenience for tests)."""
        return self._parse_stream(io.StringIO(text))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _parse_stream(self, stream: IO[str]) -> ParsedGCode:
        result = ParsedGCode()
        state = PrinterState()
        layer: Optional[LayerInfo] = None
        idx = 0

        for idx, raw in enumerate(stream, start=1):
            line = raw.rstrip("\n\r")
            try:
                token = classify_line(line)

                if isinstance(token, LayerHeight):
                    result.layer_height = token.value
                    log.info("Layer height [%s]", token.value)

                elif isinstance(token, LayerCount):
                    result.layer_count = token.count
                    log.info("Layer count [%d]", token.count)

                elif isinstance(token, LayerMarker):
                    expected = len(result.layers)
                    if token.index != expected:
                        raise LayerSequenceError(
                            f"Layer number not consecutive: expected {expected}, "
                            f"got {token.index}"
                        )
                    if layer is not None:
                        layer.exit = state.snapshot()
                    elif token.index == 0:
                        log.info("Layer 0 at line %d", idx)
                    layer = LayerInfo(number=token.index, entry=state.snapshot())
                    result.layers.append(layer)

                elif isinstance(token, EndMarker):
                    result.end_code_found = True
                    if layer is not None:
                        layer.exit = state.snapshot()
                    layer = None

                else:
                    state = transition(
                        state,
                        token,
                        in_layer=layer is not None,
                        override_policy=self._override_policy,
                    )
                    if layer is not None:
                        self._record(result, layer, token, state, line)
                        layer.lines.append(line)

            except GCodeSplitError as exc:
                exc.add_context(idx, line, layer.number if layer is not None else None)
                raise

        if layer is not None:
            layer.exit = state.snapshot()

        result.state = state
        result.line_count = idx
        self._check_complete(result)
        return result

    @staticmethod
    def _record(
        result: ParsedGCode,
        layer: LayerInfo,
        command: Command,
        state: PrinterState,
        line: str,
    ) -> None:
        """Collect the per-layer facts that depend on the command just applied."""
        kind = CommandKind(command.mnemonic)
        relative = state.xyz_mode is PositioningMode.RELATIVE

        if kind is CommandKind.RELATIVE_POSITIONING:
            layer.can_iron = False
        if not kind.is_move:
            return

        # A layer often opens with a travel move; its endpoint is where the
        # layer really starts.
        if not layer.has_first_move:
            layer.has_first_move = True
            if not command.has_field("E"):
                layer.first_move = state.position

        if relative:
            layer.can_iron = False
        elif layer.can_iron:
            pos = state.position
            if all(axis.is_absolute for axis in pos):
                layer.ironing_path.append(pos)
            else:
                layer.can_iron = False

        if not relative and command.has_field("X"):
            x = state.x.number
            if x is not None and (result.min_x is None or x < result.min_x.x):
                result.min_x = MinXRecord(x=x, layer=layer.number, line=line)

    @staticmethod
    def _check_complete(result: ParsedGCode) -> None:
        if result.layer_count is None:
            raise LayerCountError("Overall layer count not found")
        if len(result.layers) != result.layer_count:
            raise LayerCountError(
                f"Overall layer count mismatch: declared {result.layer_count}, "
                f"found {len(result.layers)}"
            )
        if not result.end_code_found:
            raise MissingEndCodeError("End gcode block has not been found")
