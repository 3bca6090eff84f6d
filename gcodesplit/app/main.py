"""gcodesplit — CLI entry point.

Usage:
    python -m gcodesplit.app.main <gcode_file> --parts <N>

Options:
    --parts            Target number of parts (default: 3)
    --max-layers       Maximum layers per part (adds parts when needed)
    --start-layer      First layer to output (default: 0)
    --output           Output directory (default: same as input)
    --profile          Printer profile filename (default: default_cura.json)
    --prime            Nozzle priming for parts after the first: air | bed
    --shift-bed-prime  Shift each part's bed prime line along X
    --initial-temp     Resume with the first nozzle temperature of the print
    --reheat-bed       Reheat the bed for every part
    --iron             Re-trace the previous part's last layer before resuming
    --z-compression    Per-part Z compression, ratio of layer height
    --flow-rate        Flow rate (%) for the first layer of continued parts
    --allow-overrides  Pass M220/M221 inside layers through instead of failing
    -v, --verbose      Log parser and generator progress
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..core.errors import GCodeSplitError
from ..core.printer_state import OverridePolicy
from ..core.resume_generator import PrimeMode
from .controller import Controller, SplitRequest


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gcodesplit",
        description="gcodesplit — Split sliced G-code into resumable parts.",
    )
    p.add_argument(
        "gcode_file",
        type=str,
        help="Path to the Cura G-code file.",
    )
    p.add_argument(
        "--parts",
        type=int,
        default=3,
        help="Number of parts to split into (default: 3).",
    )
    p.add_argument(
        "--max-layers",
        type=int,
        default=None,
        help="Maximum layers per part; more parts are made if needed.",
    )
    p.add_argument(
        "--start-layer",
        type=int,
        default=0,
        help="First layer to output, 0-based (default: 0).",
    )
    p.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory (default: same as input file).",
    )
    p.add_argument(
        "--profile",
        type=str,
        default=None,
        help="Printer profile filename (default: default_cura.json).",
    )
    p.add_argument(
        "--prime",
        choices=[m.value for m in PrimeMode],
        default=None,
        help="Nozzle priming for parts after the first (default: from profile).",
    )
    p.add_argument(
        "--shift-bed-prime",
        action="store_true",
        help="Shift each part's bed prime line so they do not overlap.",
    )
    p.add_argument(
        "--initial-temp",
        action="store_true",
        help="Use the initial (higher) nozzle temperature when continuing.",
    )
    p.add_argument(
        "--reheat-bed",
        action="store_true",
        help="Reheat the bed on the second and later parts.",
    )
    p.add_argument(
        "--iron",
        action="store_true",
        help="Re-trace the previous part's last layer to improve adhesion.",
    )
    p.add_argument(
        "--z-compression",
        type=float,
        default=0.0,
        help="Lower Z by this ratio of layer height per continuation (default: 0).",
    )
    p.add_argument(
        "--flow-rate",
        type=int,
        default=100,
        help="Flow rate %% for the first layer of continued parts (default: 100).",
    )
    p.add_argument(
        "--allow-overrides",
        action="store_true",
        help="Pass feed/flow overrides inside layers through instead of failing.",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show progress logging.",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.gcode_file)
    if not input_path.is_file():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        return 1

    request = SplitRequest(
        input_path=input_path,
        parts=args.parts,
        max_layers_per_part=args.max_layers,
        start_layer=args.start_layer,
        output_dir=args.output,
        profile_name=args.profile,
        prime_mode=PrimeMode(args.prime) if args.prime else None,
        shift_bed_prime=args.shift_bed_prime,
        use_initial_nozzle_temp=args.initial_temp,
        reheat_bed=args.reheat_bed,
        iron=args.iron,
        z_compression=args.z_compression,
        continuation_flow_rate=args.flow_rate,
        override_policy=OverridePolicy.IGNORE if args.allow_overrides else None,
    )

    controller = Controller()

    try:
        result = controller.run(request)
    except (GCodeSplitError, KeyError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    # Report
    print(f"✓ Split {result.layer_count} layers into {len(result.parts)} parts")
    for part, path in zip(result.parts, result.output_paths):
        print(f"  Part {part.index}: layers {part.first_layer}–{part.last_layer} → {path}")

    if result.warnings:
        print("  Warnings:")
        for w in result.warnings:
            print(f"    ⚠ {w}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
