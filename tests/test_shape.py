"""
Unit tests for the card rectangle validator and scorer in card_grid.shape,
plus the angle folding in card_grid.geometry.
"""

import pytest

from card_grid.geometry import normalize_angle
from card_grid.shape import is_valid_card_rect, normalized_size, score_rect
from card_grid.types import OrientedRect


def rect(a, b, angle=0.0):
    return OrientedRect(center_x=100.0, center_y=100.0, size_a=a, size_b=b, angle=angle)


# =============================================================================
# Validation
# =============================================================================

class TestIsValidCardRect:

    def test_upright_card_accepted(self, loose_thresholds):
        assert is_valid_card_rect(rect(60, 80), loose_thresholds)

    def test_side_order_does_not_matter(self, loose_thresholds):
        """A landscape-reported box is normalized to portrait before the checks."""
        assert is_valid_card_rect(rect(80, 60), loose_thresholds)
        assert normalized_size(rect(80, 60)) == (60, 80)

    def test_too_narrow_rejected(self, loose_thresholds):
        assert not is_valid_card_rect(rect(5, 80), loose_thresholds)

    def test_aspect_ratio_out_of_range(self, loose_thresholds):
        # 20 / 80 = 0.25
        assert not is_valid_card_rect(rect(20, 80), loose_thresholds)

    def test_square_within_range(self, loose_thresholds):
        assert is_valid_card_rect(rect(70, 70), loose_thresholds)

    @pytest.mark.parametrize("angle", [31.0, 45.0, -45.0, 59.0])
    def test_diagonal_rejected(self, loose_thresholds, angle):
        assert not is_valid_card_rect(rect(60, 80, angle), loose_thresholds)

    @pytest.mark.parametrize("angle", [0.0, 15.0, -30.0, 30.0, 60.0])
    def test_boundary_angles_accepted(self, loose_thresholds, angle):
        assert is_valid_card_rect(rect(60, 80, angle), loose_thresholds)

    def test_degenerate_height(self, loose_thresholds):
        assert not is_valid_card_rect(rect(0, 0), loose_thresholds)


# =============================================================================
# Scoring
# =============================================================================

class TestScoreRect:

    def test_ideal_card_scores_one(self):
        assert score_rect(rect(60, 80)) == 1.0

    def test_small_tilt_not_penalized(self):
        assert score_rect(rect(60, 80, 5.0)) == 1.0

    def test_tilt_penalty(self):
        assert score_rect(rect(60, 80, 15.0)) == pytest.approx(1 - 15 / 90)

    def test_unusual_ratio_penalty(self):
        # 72 / 80 = 0.9
        assert score_rect(rect(72, 80)) == pytest.approx(0.9)

    def test_penalties_compound(self):
        # (1 - 30/90) * 0.9
        assert score_rect(rect(32, 80, 30.0)) == pytest.approx(0.6)

    def test_floor_at_half(self):
        assert score_rect(rect(20, 80, 40.0)) == pytest.approx(0.5)
        assert score_rect(rect(20, 80, 44.0)) == 0.5

    def test_range(self):
        for angle in (0.0, 10.0, 25.0, 44.0):
            for a in (20.0, 50.0, 60.0, 79.0):
                assert 0.5 <= score_rect(rect(a, 80, angle)) <= 1.0


class TestNormalizeAngle:
    """OpenCV versions disagree on the minAreaRect angle range."""

    def test_upright_reported_as_90(self):
        a, b, angle = normalize_angle(80.0, 60.0, 90.0)
        assert angle == 0.0
        assert (a, b) == (60.0, 80.0)

    def test_negative_range(self):
        a, b, angle = normalize_angle(60.0, 80.0, -80.0)
        assert angle == pytest.approx(10.0)
        assert (a, b) == (80.0, 60.0)

    def test_in_range_untouched(self):
        assert normalize_angle(60.0, 80.0, 12.0) == (60.0, 80.0, 12.0)
