"""Part planner for gcodesplit.

Maps layer numbers to part (block) numbers.  Parts are contiguous runs of
layers of (nearly) equal size:

  - the target part count gives the nominal layers per part
  - an optional cap on layers per part raises the part count while keeping
    parts as equal as possible
  - layers below the start layer are excluded

The end of the print behaves as a virtual layer mapped to the part count
itself, which closes the last real part.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .errors import PlanError


@dataclass(frozen=True)
class PartRange:
    """One part: a contiguous, inclusive range of layer numbers."""

    index: int
    first_layer: int
    last_layer: int
    total_parts: int

    @property
    def layer_count(self) -> int:
        return self.last_layer - self.first_layer + 1

    @property
    def is_last(self) -> bool:
        return self.index == self.total_parts - 1


class PartPlanner:
    """Deterministic layer -> part mapping."""

    def __init__(
        self,
        layer_count: int,
        parts: int,
        max_layers_per_part: Optional[int] = None,
        start_layer: int = 0,
    ) -> None:
        if layer_count < 1:
            raise PlanError("Layer count is empty — nothing to split.")
        if parts < 1:
            raise PlanError(f"Part count must be at least 1, got {parts}.")
        if max_layers_per_part is not None and max_layers_per_part < 1:
            raise PlanError(
                f"Max layers per part must be at least 1, got {max_layers_per_part}."
            )
        if not 0 <= start_layer < layer_count:
            raise PlanError(
                f"Start layer {start_layer} outside valid range 0–{layer_count - 1}."
            )

        self._layer_count = layer_count
        self._start_layer = start_layer

        span = layer_count - start_layer
        layers_per_part = span / parts
        if max_layers_per_part is not None and layers_per_part > max_layers_per_part:
            layers_per_part = span / math.ceil(span / max_layers_per_part)
        self._layers_per_part = layers_per_part
        self._chunk = math.ceil(layers_per_part)
        # Part of the last layer, plus one.
        self._total_parts = (span - 1) // self._chunk + 1

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def layer_count(self) -> int:
        return self._layer_count

    @property
    def start_layer(self) -> int:
        return self._start_layer

    @property
    def layers_per_part(self) -> float:
        return self._layers_per_part

    @property
    def chunk(self) -> int:
        """Whole layers assigned to each part (the last may get fewer)."""
        return self._chunk

    @property
    def total_parts(self) -> int:
        return self._total_parts

    @property
    def end_of_print_part(self) -> int:
        """Part number of the virtual end-of-print layer."""
        return self._total_parts

    def part_for_layer(self, number: int) -> Optional[int]:
        """Part index for layer *number*, or None when it is excluded.

        Raises *KeyError* if the layer number doesn't exist.
        """
        if not 0 <= number < self._layer_count:
            raise KeyError(
                f"Layer {number} not found. "
                f"Valid range: 0–{self._layer_count - 1}"
            )
        if number < self._start_layer:
            return None
        part = (number - self._start_layer) // self._chunk
        return min(part, self._total_parts - 1)

    def parts(self) -> list[PartRange]:
        """Return all parts in order."""
        result: list[PartRange] = []
        for index in range(self._total_parts):
            first = self._start_layer + index * self._chunk
            last = min(first + self._chunk, self._layer_count) - 1
            result.append(PartRange(index, first, last, self._total_parts))
        return result
