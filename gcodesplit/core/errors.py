"""Exceptions raised by the gcodesplit pipeline.

Every failure is fatal: the run stops before any part file is written.
Errors raised while reading the input carry the offending line, its
1-based line number and the layer being recorded so the operator can fix
the source program or the configuration.
"""

from __future__ import annotations


class GCodeSplitError(RuntimeError):
    """Base exception for all gcodesplit errors."""

    def __init__(
        self,
        message: str,
        *,
        line_number: int | None = None,
        line: str | None = None,
        layer: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line_number = line_number
        self.line = line
        self.layer = layer

    def add_context(
        self,
        line_number: int,
        line: str,
        layer: int | None,
    ) -> None:
        """Attach input position, keeping any context already present."""
        if self.line_number is None:
            self.line_number = line_number
            self.line = line
        if self.layer is None:
            self.layer = layer

    def __str__(self) -> str:
        parts = [self.message]
        if self.layer is not None:
            parts.append(f"layer {self.layer}")
        if self.line_number is not None:
            parts.append(f"line {self.line_number}: {self.line!r}")
        return " | ".join(parts)


# ============================================================================
# INPUT EXCEPTIONS
# ============================================================================

class ParseError(GCodeSplitError):
    """A command field could not be parsed."""


class UnknownCommandError(ParseError):
    """A mnemonic outside the recognized and ignored sets."""


class LogicalCoordinateError(ParseError):
    """G92 used on X, Y or Z (logical coordinate systems are unsupported)."""


class OverrideCommandError(ParseError):
    """Feed/flow rate override inside a layer body."""


class LayerSequenceError(GCodeSplitError):
    """Layer markers are not consecutive from 0."""


class LayerCountError(GCodeSplitError):
    """Declared layer count missing or not matching the observed count."""


class MissingEndCodeError(GCodeSplitError):
    """The end-of-print marker was never found."""


# ============================================================================
# PLANNING / SYNTHESIS EXCEPTIONS
# ============================================================================

class PlanError(GCodeSplitError):
    """Partition parameters are invalid."""


class SynthesisError(GCodeSplitError):
    """A scaffold cannot be synthesized from the captured state."""


class HeightLimitError(SynthesisError):
    """A synthesized Z target exceeds the maximum build height."""


class PrimeClearanceError(GCodeSplitError):
    """The print is too close to X0 for bed-based nozzle priming."""


class ScaffoldValidationError(GCodeSplitError):
    """A synthesized scaffold failed the static safety checks."""
