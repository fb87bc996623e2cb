from typing import List

from .config import FILTER_PARAMS, OVERLAP_TOLERANCE
from .types import Candidate


def by_confidence(cands: List[Candidate]) -> List[Candidate]:
    # stable: equal confidences keep their input order
    return sorted(cands, key=lambda c: c.confidence, reverse=True)


def suppress_overlaps(cands: List[Candidate], tolerance: float = OVERLAP_TOLERANCE) -> List[Candidate]:
    """Greedy suppression: keep a box only if it clears every kept box by `tolerance` px."""
    if not cands:
        return []
    keep: List[Candidate] = []
    for c in by_confidence(cands):
        if not any(c.overlaps_with(k, tolerance=tolerance) for k in keep):
            keep.append(c)
    return keep


def pair_average_size(a: Candidate, b: Candidate) -> float:
    return (a.width + a.height + b.width + b.height) / 4.0


def remove_duplicates(
    cands: List[Candidate],
    distance_ratio: float = FILTER_PARAMS["duplicate_distance_ratio"],
) -> List[Candidate]:
    """Drop centers closer than `distance_ratio` x the pair's average size."""
    if not cands:
        return []
    keep: List[Candidate] = []
    for c in by_confidence(cands):
        if all(c.distance_to(k) >= pair_average_size(c, k) * distance_ratio for k in keep):
            keep.append(c)
    return keep
