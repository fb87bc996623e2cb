from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

GRID_ROWS = 4
GRID_COLUMNS = 6
TOTAL_CARDS = GRID_ROWS * GRID_COLUMNS
MIN_CARDS_FOR_VALID_GRID = 20

# Fixed size gates used when the adaptive size filter is off
CARD_THRESH = {
    "min_area": 1000,
    "max_area": 50000,
    "min_width": 30,
    "min_height": 40,
    "aspect_ratio_min": 0.6,
    "aspect_ratio_max": 1.8,
}

EDGE_PARAMS = {
    "canny_lower": 50.0,
    "canny_upper": 150.0,
    "canny_sigma": 0.33,
    "blur_size": 5,
    "close_kernel": 3,
    "poly_eps_ratio": 0.05,
    "min_vertices": 3,
    "max_vertices": 8,
}

OVERLAP_TOLERANCE = 20.0        # px, border pipeline suppression margin
LOW_YIELD_COUNT = 5             # below this the relaxed retry runs
CONNECTED_COMPONENT_CONFIDENCE = 0.8

FILTER_PARAMS = {
    "bounds_margin": 5.0,
    "outlier_min_cards": 10,
    "outlier_mad_threshold": 3.0,
    "min_confidence": 0.5,
    "duplicate_distance_ratio": 0.3,
}

GRID_PARAMS = {
    "gap_ratio": 2.5,
    "kmeans_max_iter": 50,
    "fallback_row_ratio": 0.7,
    "min_spacing": 20.0,
    "default_spacing": 100.0,
    "max_relocation_radius": 3,
}


class DetectionStrategy(str, Enum):
    EDGE = "edge"
    COLOR = "color"
    TEMPLATE = "template"


@dataclass(frozen=True)
class DetectionConfig:
    # edge detection
    canny_lower_threshold: float = EDGE_PARAMS["canny_lower"]
    canny_upper_threshold: float = EDGE_PARAMS["canny_upper"]
    use_adaptive_thresholds: bool = True

    # preprocessing
    gaussian_blur_size: int = EDGE_PARAMS["blur_size"]
    enhance_contrast: bool = True

    # size filtering
    min_card_area: int = CARD_THRESH["min_area"]
    max_card_area: int = CARD_THRESH["max_area"]
    use_adaptive_size_filter: bool = True

    # grid
    expected_rows: int = GRID_ROWS
    expected_columns: int = GRID_COLUMNS
    min_cards_for_valid_grid: int = MIN_CARDS_FOR_VALID_GRID

    strategy: DetectionStrategy = DetectionStrategy.EDGE

    # performance
    max_image_width: int = 2000
    max_image_height: int = 2000

    # quality; min_confidence_threshold is reported only, the filter stage uses a fixed 0.5
    min_confidence_threshold: float = 0.5
    remove_overlapping: bool = True
    refine_grid_positions: bool = True

    @classmethod
    def default(cls) -> "DetectionConfig":
        return cls()

    @classmethod
    def fast(cls) -> "DetectionConfig":
        return cls(
            gaussian_blur_size=3,
            enhance_contrast=False,
            max_image_width=1500,
            max_image_height=1500,
            refine_grid_positions=False,
        )

    @classmethod
    def accurate(cls) -> "DetectionConfig":
        return cls(
            enhance_contrast=True,
            use_adaptive_thresholds=True,
            use_adaptive_size_filter=True,
            min_confidence_threshold=0.7,
            refine_grid_positions=True,
            max_image_width=3000,
            max_image_height=3000,
        )

    @classmethod
    def preset(cls, name: str) -> "DetectionConfig":
        presets = {"default": cls.default, "fast": cls.fast, "accurate": cls.accurate}
        if name not in presets:
            raise ValueError(f"Unknown preset '{name}', expected one of {sorted(presets)}")
        return presets[name]()

    def validate(self) -> "DetectionConfig":
        errors: List[str] = []
        if self.canny_lower_threshold >= self.canny_upper_threshold:
            errors.append("Canny lower threshold must be less than upper threshold")
        if self.min_card_area >= self.max_card_area:
            errors.append("Minimum card area must be less than maximum card area")
        if self.expected_rows <= 0 or self.expected_columns <= 0:
            errors.append("Grid dimensions must be positive")
        if not 0.0 <= self.min_confidence_threshold <= 1.0:
            errors.append("Confidence threshold must be between 0 and 1")
        if self.gaussian_blur_size < 0 or (self.gaussian_blur_size > 0 and self.gaussian_blur_size % 2 == 0):
            errors.append("Gaussian blur size must be 0 or a positive odd number")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def parameters(self) -> Dict[str, str]:
        return {
            "cannyLowerThreshold": str(self.canny_lower_threshold),
            "cannyUpperThreshold": str(self.canny_upper_threshold),
            "useAdaptiveThresholds": str(self.use_adaptive_thresholds),
            "minCardArea": str(self.min_card_area),
            "maxCardArea": str(self.max_card_area),
            "minConfidence": str(self.min_confidence_threshold),
            "expectedGrid": f"{self.expected_rows}x{self.expected_columns}",
        }
