"""
Unit tests for grid assignment in card_grid.grid.

- Clustering helpers (adaptive gaps, 1-D k-means)
- map_to_grid (clustered and fallback paths)
- refine_grid_positions / map_to_grid_using_expected_positions
- resolve_conflicts / find_nearest_empty_cell
- analyze_grid
"""

import pytest

from card_grid.diagnostics import DiagnosticsSink
from card_grid.grid import (
    adaptive_cluster,
    analyze_grid,
    assign_fallback,
    cluster_by_coordinate,
    find_nearest_empty_cell,
    kmeans_cluster,
    map_to_grid,
    map_to_grid_using_expected_positions,
    median_spacing,
    refine_grid_positions,
    resolve_conflicts,
)

ALL_CELLS = {(r, c) for r in range(4) for c in range(6)}


def cells(cards):
    return [(c.grid_row, c.grid_column) for c in cards]


def by_id(cards):
    return {c.id: c for c in cards}


@pytest.fixture
def jittered_grid(make_card):
    """24 cards on the 4x6 lattice with a few px of deterministic jitter."""
    out = []
    for r in range(4):
        for col in range(6):
            i = r * 6 + col
            dx = (i * 7) % 9 - 4
            dy = (i * 5) % 7 - 3
            out.append(make_card(i, 100 + col * 120 + dx, 100 + r * 140 + dy, conf=0.8 + 0.005 * i))
    return out


# =============================================================================
# Clustering
# =============================================================================

class TestClustering:

    def test_adaptive_splits_on_large_gaps(self, make_card):
        ys = [0, 1, 2, 50, 51, 52, 100, 101, 150, 151, 152, 153]
        cards = [make_card(i, 0, y) for i, y in enumerate(ys)]
        clusters = adaptive_cluster(cards, lambda c: c.center_y, 4)
        assert [len(g) for g in clusters] == [3, 3, 2, 4]

    def test_even_spacing_falls_back_to_kmeans(self, make_card):
        cards = [make_card(i, 0, i * 10) for i in range(12)]
        clusters = cluster_by_coordinate(cards, lambda c: c.center_y, 4)
        assert [len(g) for g in clusters] == [2, 3, 3, 4]

    def test_kmeans_clusters_ordered_by_centroid(self, make_card):
        cards = [make_card(i, 0, y) for i, y in enumerate([300, 10, 200, 15, 305, 205])]
        clusters = kmeans_cluster(cards, lambda c: c.center_y, 3)
        means = [sum(c.center_y for c in g) / len(g) for g in clusters]
        assert means == sorted(means)

    def test_few_values_become_singletons(self, make_card):
        cards = [make_card(i, x, 0) for i, x in enumerate([300, 100, 200])]
        clusters = cluster_by_coordinate(cards, lambda c: c.center_x, 6)
        assert [[c.center_x for c in g] for g in clusters] == [[100], [200], [300]]

    def test_empty(self):
        assert cluster_by_coordinate([], lambda c: c.center_x, 6) == []


# =============================================================================
# map_to_grid
# =============================================================================

class TestMapToGrid:

    def test_full_lattice(self, grid_cards):
        mapped = map_to_grid(grid_cards)
        assert len(mapped) == 24
        assert set(cells(mapped)) == ALL_CELLS
        for c in mapped:
            assert c.grid_row == c.id // 6
            assert c.grid_column == c.id % 6

    def test_jittered_lattice(self, jittered_grid):
        mapped = by_id(map_to_grid(jittered_grid))
        for i in range(24):
            assert (mapped[i].grid_row, mapped[i].grid_column) == (i // 6, i % 6)

    def test_idempotent(self, jittered_grid):
        once = map_to_grid(jittered_grid)
        twice = map_to_grid(once)
        assert sorted(zip([c.id for c in once], cells(once))) == sorted(zip([c.id for c in twice], cells(twice)))

    def test_single_card_at_origin(self, make_card):
        mapped = map_to_grid([make_card(0, 100, 100)])
        assert cells(mapped) == [(0, 0)]

    def test_sparse_uses_reading_order(self, make_card):
        cards = [
            make_card(0, 220, 250),
            make_card(1, 100, 100),
            make_card(2, 340, 100),
            make_card(3, 100, 250),
            make_card(4, 220, 100),
        ]
        sink = DiagnosticsSink()
        mapped = by_id(map_to_grid(cards, sink=sink))
        assert cells([mapped[i] for i in (1, 4, 2, 3, 0)]) == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1)]
        assert any("Insufficient" in m for m in sink.messages("WARN"))

    def test_fallback_clamps_columns(self, make_card):
        row = [make_card(i, 100 + i * 100, 100) for i in range(8)]
        assert cells(assign_fallback(row)) == [(0, 0), (0, 1), (0, 2), (0, 3), (0, 4), (0, 5), (0, 5), (0, 5)]

    def test_removed_pass_through(self, grid_cards):
        cards = [grid_cards[0].as_removed()] + grid_cards[1:]
        mapped = map_to_grid(cards, min_cards=20)
        assert len(mapped) == 24
        removed = [c for c in mapped if c.removed]
        assert removed == [grid_cards[0].as_removed()]

    def test_every_active_card_labelled(self, jittered_grid):
        for c in map_to_grid(jittered_grid[:7]):
            assert c.has_valid_grid_position()


# =============================================================================
# Refinement
# =============================================================================

class TestRefine:

    def test_median_spacing(self, grid_cards):
        assert median_spacing(grid_cards, lambda c: c.center_x) == 120
        assert median_spacing(grid_cards, lambda c: c.center_y) == 140

    def test_default_spacing_when_packed(self, make_card):
        cards = [make_card(i, 100 + i * 5, 100) for i in range(3)]
        assert median_spacing(cards, lambda c: c.center_x) == 100.0

    def test_fixes_bad_labels(self, grid_cards):
        scrambled = [c.with_grid_position(0, 0) for c in grid_cards]
        refined = refine_grid_positions(scrambled)
        for c in refined:
            assert (c.grid_row, c.grid_column) == (c.id // 6, c.id % 6)

    def test_removed_card_ignored(self, grid_cards, make_card):
        """A soft-deleted detection at the origin must not become the anchor."""
        labelled = [c.with_grid_position(c.id // 6, c.id % 6) for c in grid_cards]
        ghost = make_card(99, 30, 30, row=0, col=0).as_removed()
        refined = refine_grid_positions(labelled + [ghost])
        assert len(refined) == 25
        for c in refined[:24]:
            assert (c.grid_row, c.grid_column) == (c.id // 6, c.id % 6)
        assert refined[-1] == ghost

    def test_single_card_unchanged(self, make_card):
        card = make_card(0, 50, 50, row=2, col=3)
        assert refine_grid_positions([card]) == [card]

    def test_clamped_to_grid(self, make_card):
        cards = [make_card(0, 100, 100), make_card(1, 100 + 120 * 9, 100 + 140 * 9)]
        for c in refine_grid_positions(cards):
            assert c.has_valid_grid_position()

    def test_expected_positions(self, grid_cards):
        mapped = map_to_grid_using_expected_positions(grid_cards)
        for c in mapped:
            assert (c.grid_row, c.grid_column) == (c.id // 6, c.id % 6)

    def test_expected_positions_single(self, make_card):
        assert cells(map_to_grid_using_expected_positions([make_card(0, 300, 300)])) == [(0, 0)]


# =============================================================================
# Conflict resolution
# =============================================================================

class TestResolveConflicts:

    def test_lower_confidence_moves_to_free_neighbor(self, make_card):
        cards = [
            make_card(0, 100, 100, conf=0.9, row=0, col=0),
            make_card(1, 102, 101, conf=0.7, row=0, col=0),
            make_card(2, 220, 100, conf=0.8, row=0, col=1),
        ]
        out = by_id(resolve_conflicts(cards))
        assert cells([out[0], out[1], out[2]]) == [(0, 0), (1, 0), (0, 1)]

    def test_no_two_cards_share_a_cell(self, make_card):
        stacked = [make_card(i, 300, 300, conf=0.5 + i * 0.05, row=1, col=2) for i in range(6)]
        out = resolve_conflicts(stacked)
        assert len(set(cells(out))) == len(out)
        assert len(out) == 6
        best = max(stacked, key=lambda c: c.confidence)
        assert (by_id(out)[best.id].grid_row, by_id(out)[best.id].grid_column) == (1, 2)

    def test_drops_when_grid_full(self, grid_cards, make_card):
        """With every cell taken the loser has nowhere to go within radius 3."""
        labelled = [c.with_grid_position(c.id // 6, c.id % 6) for c in grid_cards]
        extra = make_card(99, 100, 100, conf=0.1, row=0, col=0)
        out = resolve_conflicts(labelled + [extra])
        assert len(out) == 24
        assert 99 not in by_id(out)
        assert sorted(cells(out)) == sorted(ALL_CELLS)
        assert by_id(out)[0].confidence == 0.95

    def test_unlabelled_cards_dropped(self, make_card):
        out = resolve_conflicts([make_card(0, 10, 10), make_card(1, 10, 10, row=0, col=0)])
        assert [c.id for c in out] == [1]

    def test_nearest_empty_cell_ring_order(self):
        assert find_nearest_empty_cell((1, 1), {(1, 1)}) == (0, 0)
        assert find_nearest_empty_cell((0, 0), {(0, 0), (0, 1)}) == (1, 0)

    def test_nearest_empty_cell_radius_limit(self):
        occupied = {(r, c) for r in range(4) for c in range(6)} - {(3, 5)}
        assert find_nearest_empty_cell((0, 0), occupied) is None
        assert find_nearest_empty_cell((0, 2), occupied) == (3, 5)


# =============================================================================
# Analysis
# =============================================================================

class TestAnalyzeGrid:

    def test_complete_grid(self, grid_cards):
        a = analyze_grid(map_to_grid(grid_cards))
        assert a.completeness == 1.0
        assert a.row_coverage == 1.0
        assert a.column_coverage == 1.0
        assert a.duplicate_positions == frozenset()
        assert a.is_valid

    def test_partial_grid(self, grid_cards):
        a = analyze_grid(map_to_grid(grid_cards)[:12])
        assert a.completeness == pytest.approx(0.5)
        assert a.row_coverage == pytest.approx(0.5)
        assert not a.is_valid

    def test_duplicates_invalidate(self, grid_cards):
        labelled = map_to_grid(grid_cards)
        dup = labelled[0].with_grid_position(1, 1)
        a = analyze_grid(labelled + [dup])
        assert a.duplicate_positions == frozenset({(1, 1)})
        assert a.valid_positions == 24
        assert not a.is_valid

    def test_removed_ignored(self, grid_cards):
        labelled = map_to_grid(grid_cards)
        a = analyze_grid([labelled[0].as_removed()] + labelled[1:])
        assert a.total_cards == 23
        assert a.valid_positions == 23
