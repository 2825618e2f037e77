"""Text recognition collaborator interface and reading-order helpers.

Recognition itself is delegated to an external engine; this module only
defines the shape of its results and how to assemble them into text.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Protocol, runtime_checkable

from journalprep.services.raster import RasterBuffer

DEFAULT_LINE_TOLERANCE = 0.05


@dataclass(frozen=True)
class TextCandidate:
    text: str
    confidence: float


@dataclass(frozen=True)
class TextObservation:
    """One recognized text region.

    Attributes:
        candidates: Alternatives ranked best first
        bounding_box: Normalized (x, y, width, height), bottom-left origin
    """

    candidates: tuple[TextCandidate, ...]
    bounding_box: tuple[float, float, float, float]
    metadata: dict = field(default_factory=dict, compare=False)

    @property
    def best(self) -> TextCandidate | None:
        return self.candidates[0] if self.candidates else None

    @property
    def mid_y(self) -> float:
        _, y, _, h = self.bounding_box
        return y + h / 2.0

    @property
    def min_x(self) -> float:
        return self.bounding_box[0]


@runtime_checkable
class TextRecognizer(Protocol):
    """Anything that can turn a page image into text observations."""

    def recognize(self, image: RasterBuffer) -> list[TextObservation]: ...


def sort_reading_order(
    observations: Iterable[TextObservation], line_tolerance: float = DEFAULT_LINE_TOLERANCE
) -> list[TextObservation]:
    """Order observations top to bottom, then left to right within a line.

    Two observations whose vertical centers differ by less than
    *line_tolerance* are treated as being on the same line.
    """

    def compare(a: TextObservation, b: TextObservation) -> int:
        # Bottom-left origin: larger mid_y is higher on the page
        ya = 1.0 - a.mid_y
        yb = 1.0 - b.mid_y
        if abs(ya - yb) < line_tolerance:
            return (a.min_x > b.min_x) - (a.min_x < b.min_x)
        return -1 if ya < yb else 1

    return sorted(observations, key=cmp_to_key(compare))


def top_text(
    observations: Sequence[TextObservation], line_tolerance: float = DEFAULT_LINE_TOLERANCE
) -> str:
    """Best candidate of each observation in reading order, one per line."""
    lines = []
    for obs in sort_reading_order(observations, line_tolerance):
        best = obs.best
        if best is not None and best.text:
            lines.append(best.text)
    return "\n".join(lines)
