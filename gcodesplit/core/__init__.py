from .errors import GCodeSplitError
from .line_classifier import classify_line, Command, Field, LayerMarker, EndMarker
from .printer_state import PrinterState, AxisValue, CommandKind, OverridePolicy, transition
from .gcode_parser import GCodeParser, ParsedGCode, LayerInfo
from .part_planner import PartPlanner, PartRange
from .resume_generator import ResumeGenerator, ResumeConfig, PrimeMode
from .assembler import PartAssembler, PartDocument
from .validator import Validator, ValidationResult, ValidationIssue
from .profiles import ProfileLoader, PrinterProfile

__all__ = [
    "GCodeSplitError",
    "classify_line",
    "Command",
    "Field",
    "LayerMarker",
    "EndMarker",
    "PrinterState",
    "AxisValue",
    "CommandKind",
    "OverridePolicy",
    "transition",
    "GCodeParser",
    "ParsedGCode",
    "LayerInfo",
    "PartPlanner",
    "PartRange",
    "ResumeGenerator",
    "ResumeConfig",
    "PrimeMode",
    "PartAssembler",
    "PartDocument",
    "Validator",
    "ValidationResult",
    "ValidationIssue",
    "ProfileLoader",
    "PrinterProfile",
]
