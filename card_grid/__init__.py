"""Top-level package interface for card_grid.

Expose the main API: detect_cards plus the individual pipeline stages.
"""
from .core import detect_cards, DetectionResult  # re-export
from .detect import detect_card_borders, detect_using_connected_components
from .filters import filter_results, adaptive_filter
from .grid import map_to_grid, refine_grid_positions, resolve_conflicts, analyze_grid
from .types import Candidate, ThresholdParams

__all__ = [
    "detect_cards",
    "DetectionResult",
    "detect_card_borders",
    "detect_using_connected_components",
    "filter_results",
    "adaptive_filter",
    "map_to_grid",
    "refine_grid_positions",
    "resolve_conflicts",
    "analyze_grid",
    "Candidate",
    "ThresholdParams",
]
