from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Tuple
import math

from .config import GRID_COLUMNS, GRID_ROWS


@dataclass(frozen=True)
class Candidate:
    id: int
    center_x: float
    center_y: float
    width: float = 0.0
    height: float = 0.0
    confidence: float = 1.0

    # grid labels stamped by the grid assigner (-1 = unassigned)
    grid_row: int = -1
    grid_column: int = -1
    removed: bool = False                    # soft delete, kept for undo

    @property
    def left(self) -> float:
        return self.center_x - self.width / 2

    @property
    def top(self) -> float:
        return self.center_y - self.height / 2

    @property
    def right(self) -> float:
        return self.center_x + self.width / 2

    @property
    def bottom(self) -> float:
        return self.center_y + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height > 0 else 0.0

    @property
    def rounded_center(self) -> Tuple[int, int]:
        return int(math.floor(self.center_x + 0.5)), int(math.floor(self.center_y + 0.5))

    def has_valid_grid_position(self, rows: int = GRID_ROWS, cols: int = GRID_COLUMNS) -> bool:
        return 0 <= self.grid_row < rows and 0 <= self.grid_column < cols

    def distance_to(self, other: "Candidate") -> float:
        dx = self.center_x - other.center_x
        dy = self.center_y - other.center_y
        return (dx * dx + dy * dy) ** 0.5

    def overlaps_with(self, other: "Candidate", tolerance: float = 10.0) -> bool:
        overlap_x = (self.right + tolerance) > other.left and (self.left - tolerance) < other.right
        overlap_y = (self.bottom + tolerance) > other.top and (self.top - tolerance) < other.bottom
        return overlap_x and overlap_y

    def is_within_bounds(self, image_width: int, image_height: int) -> bool:
        return 0 <= self.center_x <= image_width and 0 <= self.center_y <= image_height

    def with_grid_position(self, row: int, column: int) -> "Candidate":
        return replace(self, grid_row=row, grid_column=column)

    def with_confidence(self, confidence: float) -> "Candidate":
        return replace(self, confidence=min(1.0, max(0.0, confidence)))

    def as_removed(self) -> "Candidate":
        return replace(self, removed=True)

    def scaled(self, scale_x: float, scale_y: float) -> "Candidate":
        return replace(
            self,
            center_x=self.center_x * scale_x,
            center_y=self.center_y * scale_y,
            width=self.width * scale_x,
            height=self.height * scale_y,
        )

    def to_simple_coordinate(self) -> Dict[str, int]:
        cx, cy = self.rounded_center
        return {"id": self.id, "centerX": cx, "centerY": cy}

    @classmethod
    def from_center(
        cls,
        id: int,
        center_x: float,
        center_y: float,
        default_width: float = 50.0,
        default_height: float = 70.0,
    ) -> "Candidate":
        return cls(id=id, center_x=center_x, center_y=center_y, width=default_width, height=default_height)

    @classmethod
    def from_bounds(
        cls,
        id: int,
        left: float,
        top: float,
        right: float,
        bottom: float,
        confidence: float = 1.0,
    ) -> "Candidate":
        width = right - left
        height = bottom - top
        return cls(
            id=id,
            center_x=left + width / 2,
            center_y=top + height / 2,
            width=width,
            height=height,
            confidence=confidence,
        )


@dataclass(frozen=True)
class OrientedRect:
    center_x: float
    center_y: float
    size_a: float
    size_b: float
    angle: float                             # degrees


@dataclass(frozen=True)
class ThresholdParams:
    min_area: float
    max_area: float
    min_width: float
    min_height: float
    aspect_ratio_min: float
    aspect_ratio_max: float

    def relaxed(self) -> "ThresholdParams":
        """Looser copy used by the low-yield retry of the border pipeline."""
        return ThresholdParams(
            min_area=self.min_area * 0.5,
            max_area=self.max_area * 1.5,
            min_width=self.min_width * 0.6,
            min_height=self.min_height * 0.6,
            aspect_ratio_min=self.aspect_ratio_min * 0.8,
            aspect_ratio_max=self.aspect_ratio_max * 1.25,
        )


@dataclass(frozen=True)
class FilterStep:
    name: str
    cards_remaining: int
    cards_removed: int


@dataclass(frozen=True)
class FilterResult:
    filtered: List[Candidate]
    original_count: int
    steps: List[FilterStep] = field(default_factory=list)
    is_valid: bool = False

    @property
    def total_removed(self) -> int:
        return self.original_count - len(self.filtered)

    @property
    def removal_percentage(self) -> float:
        if self.original_count <= 0:
            return 0.0
        return self.total_removed / self.original_count * 100.0


@dataclass(frozen=True)
class GridAnalysis:
    total_cards: int
    valid_positions: int
    completeness: float
    row_coverage: float
    column_coverage: float
    duplicate_positions: FrozenSet[Tuple[int, int]]
    is_valid: bool
