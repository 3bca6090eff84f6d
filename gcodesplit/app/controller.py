"""Pipeline controller for gcodesplit.

Orchestrates: load profile → parse → plan parts → check clearance →
render + validate scaffolds → save.

Exposes two APIs:
  - Controller.run(SplitRequest) — low-level, used by CLI
  - GCodeSplitController.process(...) — high-level, used by UI
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..core.assembler import PartAssembler
from ..core.gcode_parser import GCodeParser
from ..core.part_planner import PartPlanner, PartRange
from ..core.printer_state import OverridePolicy
from ..core.profiles import PrinterProfile, ProfileLoader
from ..core.resume_generator import PrimeMode, ResumeConfig, ResumeGenerator
from ..core.validator import Validator


@dataclass
class SplitRequest:
    """Everything needed to split one file."""

    input_path: str | Path
    parts: int = 3
    max_layers_per_part: Optional[int] = None
    start_layer: int = 0
    output_dir: str | Path | None = None     # defaults to same dir as input
    profile_name: str | None = None          # profile filename or None for default
    prime_mode: Optional[PrimeMode] = None   # None = profile setting
    shift_bed_prime: bool = False
    use_initial_nozzle_temp: bool = False
    reheat_bed: bool = False
    iron: bool = False
    z_compression: float = 0.0
    continuation_flow_rate: int = 100
    override_policy: Optional[OverridePolicy] = None   # None = profile setting


@dataclass
class SplitResult:
    """What the pipeline returns."""

    output_paths: list[Path]
    parts: list[PartRange]
    layer_count: int
    layer_height: Optional[float] = None
    bed_temp: Optional[float] = None
    nozzle_temp: Optional[float] = None
    warnings: list[str] = field(default_factory=list)


class Controller:
    """High-level orchestrator for the split pipeline."""

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        self._validator = Validator()
        self._profile_loader = ProfileLoader(profiles_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, request: SplitRequest) -> SplitResult:
        """Execute the full pipeline and return a *SplitResult*."""
        warnings: list[str] = []

        # 1. Load profile
        profile = self._profile_loader.load(request.profile_name)
        policy = request.override_policy or profile.override_policy

        # 2. Parse
        input_path = Path(request.input_path)
        parsed = GCodeParser(override_policy=policy).parse_file(input_path)

        # 3. Build config
        config = self.build_config(profile, request)

        # 4. Plan
        planner = PartPlanner(
            layer_count=len(parsed.layers),
            parts=request.parts,
            max_layers_per_part=request.max_layers_per_part,
            start_layer=request.start_layer,
        )
        if planner.total_parts != request.parts:
            warnings.append(
                f"Split into {planner.total_parts} parts "
                f"({planner.chunk} layers each) instead of {request.parts}."
            )

        # 5. Bed priming must not hit the print
        if config.prime_mode is PrimeMode.BED:
            self._validator.check_bed_prime_clearance(
                parsed.min_x, self.bed_prime_clearance(config, planner.total_parts)
            )
        elif parsed.min_x is not None and parsed.min_x.x <= config.print_head_x_clearance:
            warnings.append(
                f"Print reaches X {parsed.min_x.x:g} (layer {parsed.min_x.layer}); "
                f"the first part still primes on the bed."
            )

        # 6. Render (synthesis + validation) before touching the disk
        assembler = PartAssembler(ResumeGenerator(config), self._validator)
        documents = assembler.render(parsed, planner)
        for doc in documents:
            warnings.extend(doc.warnings)

        # 7. Save
        output_paths = [
            self._build_output_path(input_path, doc.part.index, request.output_dir)
            for doc in documents
        ]
        if output_paths:
            output_paths[0].parent.mkdir(parents=True, exist_ok=True)

        def open_part(index: int):
            return open(
                output_paths[index], "w",
                encoding="utf-8", errors="surrogateescape", newline="\n",
            )

        assembler.write(documents, open_part, source_name=input_path.name)

        return SplitResult(
            output_paths=output_paths,
            parts=[doc.part for doc in documents],
            layer_count=len(parsed.layers),
            layer_height=parsed.layer_height,
            bed_temp=parsed.state.initial_bed_temp,
            nozzle_temp=parsed.state.initial_nozzle_temp,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_config(profile: PrinterProfile, request: SplitRequest) -> ResumeConfig:
        """Merge printer profile and job options."""
        return ResumeConfig(
            retract_mm=profile.retract_mm,
            hop_mm=profile.hop_mm,
            present_y=profile.present_y,
            max_z=profile.max_z,
            print_head_x_clearance=profile.print_head_x_clearance,
            prime_mode=request.prime_mode or profile.prime_mode,
            shift_bed_prime=request.shift_bed_prime,
            bed_prime_shift_mm=profile.bed_prime_shift_mm,
            use_initial_nozzle_temp=request.use_initial_nozzle_temp,
            reheat_bed=request.reheat_bed,
            iron=request.iron,
            z_compression=request.z_compression,
            continuation_flow_rate=request.continuation_flow_rate,
            continuation_feed_rate=profile.continuation_feed_rate,
        )

    @staticmethod
    def bed_prime_clearance(config: ResumeConfig, total_parts: int) -> float:
        """X the print must stay clear of when every part primes on the bed."""
        clearance = config.print_head_x_clearance
        if config.shift_bed_prime:
            # the last part's prime line is shifted furthest along X
            clearance += config.bed_prime_shift_mm * (total_parts - 1)
        return clearance

    @staticmethod
    def _build_output_path(
        input_path: Path,
        part_index: int,
        output_dir: str | Path | None,
    ) -> Path:
        suffix = input_path.suffix or ".gcode"
        name = f"{input_path.stem}.{part_index}{suffix}"
        if output_dir is not None:
            return Path(output_dir) / name
        return input_path.parent / name


# ======================================================================
# High-level UI-facing controller
# ======================================================================


@dataclass
class ProcessResult:
    """UI-friendly result from GCodeSplitController.process()."""

    output_paths: list[Path]
    total_parts: int
    total_layers: int
    layers_per_part: list[int]
    warnings: list[str]


class GCodeSplitController:
    """Convenience wrapper used by the PyQt6 UI.

    Translates the UI's keyword-argument style into the core
    Controller's SplitRequest/SplitResult API.
    """

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        self._core = Controller(profiles_dir)

    def process(
        self,
        gcode_path: str,
        parts: int = 3,
        max_layers_per_part: Optional[int] = None,
        start_layer: int = 0,
        prime_mode: str = "profile",
        profile: Optional[str] = "default_cura",
        output_dir: Optional[str] = None,
        **options,
    ) -> ProcessResult:
        """Run the full pipeline and return a *ProcessResult*.

        *options* are passed straight to *SplitRequest* (``iron``,
        ``reheat_bed``, ``z_compression`` ...).
        """
        if parts < 1:
            raise ValueError("At least one part is required.")

        request = SplitRequest(
            input_path=gcode_path,
            parts=int(parts),
            max_layers_per_part=max_layers_per_part or None,
            start_layer=int(start_layer),
            output_dir=output_dir,
            profile_name=profile,
            prime_mode=None if prime_mode == "profile" else PrimeMode(prime_mode),
            **options,
        )
        result = self._core.run(request)

        return ProcessResult(
            output_paths=result.output_paths,
            total_parts=len(result.parts),
            total_layers=result.layer_count,
            layers_per_part=[p.layer_count for p in result.parts],
            warnings=result.warnings,
        )
