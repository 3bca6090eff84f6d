"""Part assembler for gcodesplit.

Renders every part document (begin scaffold, verbatim layer bodies with the
after-first-layer scaffold behind the first one, end scaffold) and only then
streams them out, one part at a time.  Rendering first means a synthesis or
validation failure in any part aborts the run before a file is touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import IO, Callable, ContextManager, Iterator, Optional

from .errors import ScaffoldValidationError
from .gcode_parser import LayerInfo, ParsedGCode
from .part_planner import PartPlanner, PartRange
from .resume_generator import ResumeGenerator
from .validator import ScaffoldKind, Validator

log = logging.getLogger(__name__)

PartOpener = Callable[[int], ContextManager[IO[str]]]


@dataclass
class PartDocument:
    """Everything that goes into one part file."""

    part: PartRange
    begin: list[str]
    layers: list[LayerInfo] = field(default_factory=list)
    after_first_layer: list[str] = field(default_factory=list)
    end: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def body_lines(self) -> list[str]:
        """The recorded layer bodies, without any scaffolding."""
        return [line for layer in self.layers for line in layer.lines]


class PartAssembler:
    """Walks the layers, switching parts as the planner dictates."""

    def __init__(
        self,
        generator: ResumeGenerator,
        validator: Optional[Validator] = None,
    ) -> None:
        self._generator = generator
        self._validator = validator or Validator()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, parsed: ParsedGCode, planner: PartPlanner) -> list[PartDocument]:
        """Build all part documents in memory."""
        ranges = planner.parts()
        documents: list[PartDocument] = []
        current: Optional[PartDocument] = None
        prev_layer: Optional[LayerInfo] = None

        # The trailing None is the virtual end-of-print layer.
        for layer in [*parsed.layers, None]:
            if layer is None:
                part = planner.end_of_print_part
            else:
                part = planner.part_for_layer(layer.number)
                if part is None:
                    continue

            if current is None or part != current.part.index:
                if current is not None and prev_layer is not None:
                    log.info(
                        "Ending part #%d (%d layers)",
                        current.part.index, len(current.layers),
                    )
                    current.end = self._checked(
                        current,
                        self._generator.end_lines(
                            prev_layer, current.part.index, planner.total_parts
                        ),
                        ScaffoldKind.END,
                    )
                if layer is not None:
                    log.info(
                        "Starting part #%d (%d parts total)", part, planner.total_parts
                    )
                    current = PartDocument(part=ranges[part], begin=[])
                    current.begin = self._checked(
                        current,
                        self._generator.begin_lines(parsed, layer, part),
                        ScaffoldKind.BEGIN,
                    )
                    documents.append(current)

            if layer is not None and current is not None:
                current.layers.append(layer)
                if len(current.layers) == 1:
                    current.after_first_layer = self._checked(
                        current,
                        self._generator.after_first_layer_lines(layer),
                        ScaffoldKind.AFTER_FIRST_LAYER,
                    )
                prev_layer = layer

        return documents

    def write(
        self,
        documents: list[PartDocument],
        open_part: PartOpener,
        source_name: str = "input",
    ) -> None:
        """Stream each document to the handle returned by *open_part*."""
        for doc in documents:
            with open_part(doc.part.index) as fh:
                for line in self.iter_lines(doc, source_name):
                    fh.write(line)
                    fh.write("\n")

    @staticmethod
    def iter_lines(doc: PartDocument, source_name: str = "input") -> Iterator[str]:
        """Yield the lines of one part file, banners included."""
        yield f"; =========== begin {source_name} part {doc.part.index} ============="
        yield from doc.begin
        yield "; =========== start code ends ================"
        for position, layer in enumerate(doc.layers):
            yield f"; LAYER {position} (in part) {layer.number} (globally)"
            yield from layer.lines
            if position == 0:
                yield "; =========== after 1st layer code ==========="
                yield from doc.after_first_layer
                yield "; =========== after 1st layer code ends ==========="
        yield "; ========== end code ========"
        yield from doc.end

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _checked(
        self,
        doc: PartDocument,
        lines: list[str],
        kind: ScaffoldKind,
    ) -> list[str]:
        result = self._validator.validate(
            lines,
            part_index=doc.part.index,
            max_z=self._generator.config.max_z,
            scaffold=kind,
        )
        for issue in result.warnings:
            msg = f"part {doc.part.index} {kind.value} [{issue.code}] line {issue.line_number}: {issue.message}"
            log.warning(msg)
            doc.warnings.append(msg)
        if not result.ok:
            details = "; ".join(
                f"[{e.code}] line {e.line_number}: {e.message}" for e in result.errors
            )
            raise ScaffoldValidationError(
                f"Part {doc.part.index} {kind.value} scaffold failed validation: {details}"
            )
        return lines
