from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
import math

import numpy as np

from .config import GRID_COLUMNS, GRID_PARAMS, GRID_ROWS, MIN_CARDS_FOR_VALID_GRID
from .diagnostics import DiagnosticsSink, ensure_sink
from .filters import upper_median
from .types import Candidate, GridAnalysis

Cell = Tuple[int, int]
Key = Callable[[Candidate], float]


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


def adaptive_cluster(sorted_cards: List[Candidate], key: Key, target: int) -> List[List[Candidate]]:
    """Split a sorted run wherever a gap exceeds 2.5x the median gap."""
    gaps = [key(b) - key(a) for a, b in zip(sorted_cards, sorted_cards[1:])]
    threshold = upper_median(gaps) * GRID_PARAMS["gap_ratio"]

    clusters: List[List[Candidate]] = [[sorted_cards[0]]]
    for gap, card in zip(gaps, sorted_cards[1:]):
        if gap > threshold and len(clusters) < target:
            clusters.append([])
        clusters[-1].append(card)
    return clusters


def kmeans_cluster(cards: List[Candidate], key: Key, k: int) -> List[List[Candidate]]:
    """1-D k-means, centroids seeded at evenly spaced order statistics."""
    ordered = sorted(cards, key=key)
    if len(ordered) <= k:
        return [[c] for c in ordered]

    n = len(ordered)
    centroids = [key(ordered[i * n // k]) for i in range(k)]
    clusters: List[List[Candidate]] = []

    for _ in range(GRID_PARAMS["kmeans_max_iter"]):
        previous = list(centroids)
        clusters = [[] for _ in range(k)]
        for c in cards:
            v = key(c)
            nearest = min(range(k), key=lambda i: abs(v - centroids[i]))
            clusters[nearest].append(c)
        for i, members in enumerate(clusters):
            if members:
                centroids[i] = float(np.mean([key(c) for c in members]))
        if centroids == previous:
            break

    order = sorted(range(k), key=lambda i: centroids[i])
    return [clusters[i] for i in order]


def cluster_by_coordinate(cards: List[Candidate], key: Key, k: int) -> List[List[Candidate]]:
    if not cards:
        return []
    ordered = sorted(cards, key=key)
    if len(ordered) <= k:
        return [[c] for c in ordered]

    clusters = adaptive_cluster(ordered, key, k)
    if len(clusters) != k:
        return kmeans_cluster(cards, key, k)
    return clusters


def assign_fallback(cards: List[Candidate], rows: int = GRID_ROWS, cols: int = GRID_COLUMNS) -> List[Candidate]:
    """Reading-order labels for sparse detections."""
    if not cards:
        return []

    ordered = sorted(cards, key=lambda c: (c.center_y, c.center_x))
    row_step = float(np.mean([c.height for c in cards])) * GRID_PARAMS["fallback_row_ratio"]

    out: List[Candidate] = []
    row, col = 0, 0
    last_y = ordered[0].center_y
    for c in ordered:
        if c.center_y - last_y > row_step:
            row += 1
            col = 0
            last_y = c.center_y
        row = min(row, rows - 1)
        col = min(col, cols - 1)
        out.append(c.with_grid_position(row, col))
        col += 1
    return out


def map_to_grid(
    candidates: List[Candidate],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
    min_cards: int = MIN_CARDS_FOR_VALID_GRID,
    sink: Optional[DiagnosticsSink] = None,
) -> List[Candidate]:
    """Label each active candidate with (row, column); removed ones pass through untouched."""
    sink = ensure_sink(sink)
    active = [c for c in candidates if not c.removed]
    removed = [c for c in candidates if c.removed]

    if len(active) < min_cards:
        sink.warning(f"Insufficient cards for grid mapping: {len(active)}")
        return assign_fallback(active, rows, cols) + removed

    mapped: List[Candidate] = []
    for r, row_cards in enumerate(cluster_by_coordinate(active, lambda c: c.center_y, rows)):
        for col, cell_cards in enumerate(cluster_by_coordinate(row_cards, lambda c: c.center_x, cols)):
            mapped.extend(c.with_grid_position(r, col) for c in cell_cards)

    analysis = analyze_grid(mapped, rows, cols, min_cards)
    msg = f"Grid Analysis: Expected {rows * cols}, Found {len(mapped)}, Valid: {analysis.is_valid}"
    if analysis.is_valid:
        sink.info(msg)
    else:
        sink.warning(msg)
    return mapped + removed


def median_spacing(cards: List[Candidate], key: Key) -> float:
    values = sorted(key(c) for c in cards)
    spacings = [b - a for a, b in zip(values, values[1:]) if b - a > GRID_PARAMS["min_spacing"]]
    if not spacings:
        return GRID_PARAMS["default_spacing"]
    return upper_median(spacings)


def refine_grid_positions(
    candidates: List[Candidate],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
    sink: Optional[DiagnosticsSink] = None,
) -> List[Candidate]:
    """Relabel from the top-left anchor using median center spacing.

    Removed cards take no part in the spacing or the anchor and are
    appended unchanged.
    """
    sink = ensure_sink(sink)
    active = [c for c in candidates if not c.removed]
    removed = [c for c in candidates if c.removed]
    if len(active) < 2:
        return active + removed

    h_spacing = median_spacing(active, lambda c: c.center_x)
    v_spacing = median_spacing(active, lambda c: c.center_y)
    sink.debug(f"Median spacing - H: {h_spacing:.1f}, V: {v_spacing:.1f}")

    anchor = min(active, key=lambda c: c.center_x + c.center_y)

    out: List[Candidate] = []
    for c in active:
        r = _clamp(_round_half_up((c.center_y - anchor.center_y) / v_spacing), 0, rows - 1)
        col = _clamp(_round_half_up((c.center_x - anchor.center_x) / h_spacing), 0, cols - 1)
        if (r, col) != (c.grid_row, c.grid_column):
            sink.debug(f"Refined position for card {c.id}: ({c.grid_row},{c.grid_column}) -> ({r},{col})")
        out.append(c.with_grid_position(r, col))
    return out + removed


def map_to_grid_using_expected_positions(
    candidates: List[Candidate],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
) -> List[Candidate]:
    """Divide the detections' extent into equal cells and snap each center to the nearest one."""
    if not candidates:
        return []

    xs = [c.center_x for c in candidates]
    ys = [c.center_y for c in candidates]
    cell_w = (max(xs) - min(xs)) / (cols - 1) if cols > 1 else 0.0
    cell_h = (max(ys) - min(ys)) / (rows - 1) if rows > 1 else 0.0

    out = []
    for c in candidates:
        col = _round_half_up((c.center_x - min(xs)) / cell_w) if cell_w > 0 else 0
        r = _round_half_up((c.center_y - min(ys)) / cell_h) if cell_h > 0 else 0
        out.append(c.with_grid_position(_clamp(r, 0, rows - 1), _clamp(col, 0, cols - 1)))
    return out


def find_nearest_empty_cell(
    cell: Cell,
    occupied: Set[Cell],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
    max_radius: int = GRID_PARAMS["max_relocation_radius"],
) -> Optional[Cell]:
    row, col = cell
    for radius in range(1, max_radius + 1):
        for dr in range(-radius, radius + 1):
            for dc in range(-radius, radius + 1):
                if max(abs(dr), abs(dc)) != radius:
                    continue
                r, c = row + dr, col + dc
                if 0 <= r < rows and 0 <= c < cols and (r, c) not in occupied:
                    return r, c
    return None


def resolve_conflicts(
    candidates: List[Candidate],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
    sink: Optional[DiagnosticsSink] = None,
) -> List[Candidate]:
    """Keep the most confident card per cell and move the rest to the nearest free cell.

    Cards with no free cell within the search radius are dropped, as are
    active cards without a grid position. Removed cards pass through.
    """
    sink = ensure_sink(sink)
    groups: Dict[Cell, List[Candidate]] = defaultdict(list)
    for c in candidates:
        if c.removed:
            continue
        if c.has_valid_grid_position(rows, cols):
            groups[(c.grid_row, c.grid_column)].append(c)
        else:
            sink.debug(f"Card {c.id} has no grid position, dropped")

    occupied: Set[Cell] = set(groups)
    out: List[Candidate] = []
    for cell, members in groups.items():
        best = max(members, key=lambda c: c.confidence)
        out.append(best)
        for other in (m for m in members if m is not best):
            target = find_nearest_empty_cell(cell, occupied, rows, cols)
            if target is None:
                sink.debug(f"Card {other.id} dropped: no free cell near {cell}")
                continue
            occupied.add(target)
            out.append(other.with_grid_position(*target))

    return out + [c for c in candidates if c.removed]


def analyze_grid(
    candidates: Iterable[Candidate],
    rows: int = GRID_ROWS,
    cols: int = GRID_COLUMNS,
    min_cards: int = MIN_CARDS_FOR_VALID_GRID,
) -> GridAnalysis:
    occupancy = np.zeros((rows, cols), dtype=bool)
    valid = 0
    duplicates: Set[Cell] = set()
    total = 0

    for c in candidates:
        if c.removed:
            continue
        total += 1
        if not c.has_valid_grid_position(rows, cols):
            continue
        if occupancy[c.grid_row, c.grid_column]:
            duplicates.add((c.grid_row, c.grid_column))
        else:
            occupancy[c.grid_row, c.grid_column] = True
            valid += 1

    return GridAnalysis(
        total_cards=total,
        valid_positions=valid,
        completeness=valid / float(rows * cols),
        row_coverage=int(occupancy.any(axis=1).sum()) / float(rows),
        column_coverage=int(occupancy.any(axis=0).sum()) / float(cols),
        duplicate_positions=frozenset(duplicates),
        is_valid=valid >= min_cards and not duplicates,
    )
