"""Printer profile loader for gcodesplit.

Loads printer profiles from JSON files. Falls back to built-in
defaults if no profile file is found.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path

from .printer_state import OverridePolicy
from .resume_generator import PrimeMode


@dataclass
class PrinterProfile:
    """Printer geometry and firmware habits that shape the scaffolds."""

    name: str = "default_cura"
    retract_mm: float = 3.0
    hop_mm: float = 10.0
    present_y: float = 220.0
    max_z: float = 250.0
    print_head_x_clearance: float = 30.0
    prime_mode: PrimeMode = PrimeMode.AIR
    bed_prime_shift_mm: float = 5.0
    continuation_feed_rate: int = 35
    override_policy: OverridePolicy = OverridePolicy.REJECT

    @classmethod
    def from_dict(cls, data: dict) -> PrinterProfile:
        return cls(
            name=str(data.get("name", "default_cura")),
            retract_mm=float(data.get("retract_mm", 3.0)),
            hop_mm=float(data.get("hop_mm", 10.0)),
            present_y=float(data.get("present_y", 220.0)),
            max_z=float(data.get("max_z", 250.0)),
            print_head_x_clearance=float(data.get("print_head_x_clearance", 30.0)),
            prime_mode=PrimeMode(str(data.get("prime_mode", "air"))),
            bed_prime_shift_mm=float(data.get("bed_prime_shift_mm", 5.0)),
            continuation_feed_rate=int(data.get("continuation_feed_rate", 35)),
            override_policy=OverridePolicy(str(data.get("override_policy", "reject"))),
        )


def _default_profiles_dir() -> Path:
    """Resolve profiles dir for source and PyInstaller runtimes."""
    candidates: list[Path] = []

    # PyInstaller onefile extraction root
    if hasattr(sys, "_MEIPASS"):
        root = Path(getattr(sys, "_MEIPASS"))
        candidates.extend([
            root / "profiles",
            root / "gcodesplit" / "profiles",
        ])

    # Package data
    candidates.append(Path(__file__).resolve().parent.parent / "profiles")

    for p in candidates:
        if p.is_dir():
            return p
    return candidates[0]


class ProfileLoader:
    """Loads *PrinterProfile* from JSON files."""

    _DEFAULT_PROFILE_NAME = "default_cura.json"

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        if profiles_dir is not None:
            self._dir = Path(profiles_dir)
        else:
            self._dir = _default_profiles_dir()

    @property
    def profiles_dir(self) -> Path:
        return self._dir

    def list_profiles(self) -> list[str]:
        """Return the names of available profile JSON files."""
        if not self._dir.is_dir():
            return []
        return sorted(p.name for p in self._dir.glob("*.json"))

    def load(self, name: str | None = None) -> PrinterProfile:
        """Load a profile by filename (within *profiles_dir*).

        The ``.json`` extension is optional.  Without a *name* the built-in
        default is returned when the default file doesn't exist; a named
        profile that doesn't exist raises *FileNotFoundError*.
        """
        target = name or self._DEFAULT_PROFILE_NAME
        if not target.endswith(".json"):
            target += ".json"
        path = self._dir / target

        if not path.is_file():
            if name:
                raise FileNotFoundError(
                    f"Printer profile {target!r} not found in {self._dir}"
                )
            return PrinterProfile()  # built-in defaults

        return self.load_path(path)

    def load_path(self, path: str | Path) -> PrinterProfile:
        """Load a profile from an arbitrary path."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return PrinterProfile.from_dict(data)
