"""Line classifier for gcodesplit.

Turns one raw gcode line into a token:
  - LayerHeight  ;Layer height: 0.2
  - LayerCount   ;LAYER_COUNT:120
  - LayerMarker  ;LAYER:7
  - EndMarker    ;---- end code begin
  - Command      everything else (mnemonic + fields, comment ignored)

Comment-only and blank lines become a Command with an empty mnemonic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import ParseError


# ---------------------------------------------------------------------------
# Compiled regexes (Cura comment conventions)
# ---------------------------------------------------------------------------

_RE_LAYER_HEIGHT = re.compile(r"^;Layer height:\s*([0-9.]+)\s*$")
_RE_LAYER_COUNT = re.compile(r"^;LAYER_COUNT:\s*([0-9]+)\s*$")
_RE_LAYER = re.compile(r"^;LAYER:\s*([0-9]+)\s*$")
_RE_END_CODE = re.compile(r"^;[ \-]+end code begin")


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LayerHeight:
    value: float


@dataclass(frozen=True)
class LayerCount:
    count: int


@dataclass(frozen=True)
class LayerMarker:
    index: int


@dataclass(frozen=True)
class EndMarker:
    pass


@dataclass(frozen=True)
class Field:
    """One ``<letter><number>`` argument, kept as written."""

    letter: str
    text: str

    @property
    def value(self) -> float:
        try:
            return float(self.text)
        except ValueError:
            raise ParseError(
                f"Malformed numeric field {self.letter}{self.text!r}"
            ) from None


@dataclass(frozen=True)
class Command:
    """A command line with its trailing comment split off."""

    mnemonic: str
    fields: tuple[Field, ...] = ()
    comment: str = ""

    def field(self, letter: str) -> Optional[Field]:
        """Return the first field with *letter*, or None."""
        for f in self.fields:
            if f.letter == letter:
                return f
        return None

    def has_field(self, letter: str) -> bool:
        return self.field(letter) is not None


Token = Union[LayerHeight, LayerCount, LayerMarker, EndMarker, Command]


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


def classify_line(line: str) -> Token:
    """Classify a single line (trailing newline optional)."""
    stripped = line.rstrip("\r\n")

    if stripped.startswith(";"):
        m = _RE_LAYER.match(stripped)
        if m:
            return LayerMarker(int(m.group(1)))
        m = _RE_LAYER_COUNT.match(stripped)
        if m:
            return LayerCount(int(m.group(1)))
        m = _RE_LAYER_HEIGHT.match(stripped)
        if m:
            try:
                return LayerHeight(float(m.group(1)))
            except ValueError:
                raise ParseError(f"Malformed layer height {m.group(1)!r}") from None
        if _RE_END_CODE.match(stripped):
            return EndMarker()

    code, _, comment = stripped.partition(";")
    tokens = code.split()
    if not tokens:
        return Command("", (), comment)

    mnemonic = tokens[0].upper()
    fields = tuple(Field(t[0].upper(), t[1:]) for t in tokens[1:])
    return Command(mnemonic, fields, comment)
