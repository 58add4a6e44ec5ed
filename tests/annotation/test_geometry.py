"""
Tests for the geometry helpers.

Hit-testing, topmost selection, resize handles and polygon derivation.
"""

import pytest

from labelkit.annotation import geometry
from labelkit.annotation.model import Annotation, LifecycleState, ShapeKind


def _box(ann_id, x, y, w, h, state=LifecycleState.MANUAL):
    return Annotation(ann_id, ShapeKind.BOX, x, y, w, h, state=state)


def _point(ann_id, x, y):
    return Annotation(ann_id, ShapeKind.POINT, x, y)


class TestHitTest:
    """Test single-annotation hit tests."""

    def test_point_within_radius(self):
        """A click 7 units away from a point hits it."""
        assert geometry.hit_test(12, 5, _point(1, 5, 5)) is True

    def test_point_outside_radius(self):
        """A click 15 units away misses."""
        assert geometry.hit_test(20, 5, _point(1, 5, 5)) is False

    def test_point_exactly_at_radius_misses(self):
        """The radius itself is exclusive."""
        assert geometry.hit_test(15, 5, _point(1, 5, 5)) is False

    def test_box_edges_are_inclusive(self):
        """Clicks on every edge and corner count as inside."""
        ann = _box(1, 10, 10, 20, 20)
        for px, py in [(10, 10), (30, 30), (10, 30), (30, 10), (20, 10)]:
            assert geometry.hit_test(px, py, ann)

    def test_box_outside(self):
        ann = _box(1, 10, 10, 20, 20)
        assert not geometry.hit_test(31, 20, ann)
        assert not geometry.hit_test(20, 9.5, ann)

    def test_rotated_box_uses_axis_aligned_bounds(self):
        """Rotation is ignored for hit-testing."""
        ann = Annotation(1, ShapeKind.ROTATED_BOX, 0, 0, 100, 10, rotation=45.0)
        assert geometry.hit_test(95, 5, ann)


class TestTopmostHit:
    """Test reverse-order topmost selection."""

    def test_last_overlapping_wins(self):
        anns = [_box(1, 0, 0, 50, 50), _box(2, 10, 10, 50, 50)]
        assert geometry.topmost_hit(anns, 20, 20) == 1

    def test_rejected_is_skipped(self):
        anns = [_box(1, 0, 0, 50, 50), _box(2, 10, 10, 50, 50, state=LifecycleState.REJECTED)]
        assert geometry.topmost_hit(anns, 20, 20) == 0

    def test_no_hit_returns_none(self):
        assert geometry.topmost_hit([_box(1, 0, 0, 5, 5)], 100, 100) is None

    def test_kind_filter(self):
        """A point on top of a box is skipped when only boxes are allowed."""
        anns = [_box(1, 0, 0, 50, 50), _point(2, 20, 20)]
        assert geometry.topmost_hit(anns, 20, 20) == 1
        assert geometry.topmost_hit(anns, 20, 20, kinds=[ShapeKind.BOX]) == 0


class TestResizeBox:
    """Test the eight resize handles."""

    ORIGINAL = (10.0, 10.0, 20.0, 20.0)

    def test_corner_br(self):
        assert geometry.resize_box("corner-br", self.ORIGINAL, 50, 40) == (10, 10, 40, 30)

    def test_corner_tl(self):
        assert geometry.resize_box("corner-tl", self.ORIGINAL, 0, 5) == (0, 5, 30, 25)

    def test_corner_tr(self):
        assert geometry.resize_box("corner-tr", self.ORIGINAL, 40, 0) == (10, 0, 30, 30)

    def test_corner_bl(self):
        assert geometry.resize_box("corner-bl", self.ORIGINAL, 0, 50) == (0, 10, 30, 40)

    def test_corner_dragged_past_anchor_flips(self):
        """Dragging the bottom-right corner past the top-left keeps sizes non-negative."""
        assert geometry.resize_box("corner-br", self.ORIGINAL, 0, 0) == (0, 0, 10, 10)

    def test_edges(self):
        assert geometry.resize_box("edge-r", self.ORIGINAL, 60, 999) == (10, 10, 50, 20)
        assert geometry.resize_box("edge-b", self.ORIGINAL, 999, 45) == (10, 10, 20, 35)
        assert geometry.resize_box("edge-t", self.ORIGINAL, 999, 0) == (10, 0, 20, 30)
        assert geometry.resize_box("edge-l", self.ORIGINAL, 5, 999) == (5, 10, 25, 20)

    def test_edge_floors_dimension_at_one(self):
        assert geometry.resize_box("edge-r", self.ORIGINAL, 5, 0)[2] == 1.0
        assert geometry.resize_box("edge-b", self.ORIGINAL, 0, 10)[3] == 1.0
        assert geometry.resize_box("edge-t", self.ORIGINAL, 0, 30)[3] == 1.0

    def test_idempotent(self):
        first = geometry.resize_box("corner-tl", self.ORIGINAL, 3, 4)
        second = geometry.resize_box("corner-tl", self.ORIGINAL, 3, 4)
        assert first == second

    def test_unknown_handle_keeps_bounds(self):
        assert geometry.resize_box("middle", self.ORIGINAL, 0, 0) == self.ORIGINAL


class TestPolygonHelpers:
    """Test polygon bounds, paths and area."""

    SQUARE = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]

    def test_normalize_rect(self):
        assert geometry.normalize_rect((30, 40), (10, 5)) == (10, 5, 20, 35)

    def test_bounds(self):
        assert geometry.polygon_bounds([(5, 1), (2, 8), (9, 4)]) == (2, 1, 7, 7)
        assert geometry.polygon_bounds([]) == (0.0, 0.0, 0.0, 0.0)

    def test_closed_path(self):
        path = geometry.polygon_path([(1, 2), (3, 4), (5.5, 6)])
        assert path == "M 1 2 L 3 4 L 5.5 6 Z"

    def test_preview_path_is_open(self):
        path = geometry.polygon_path([(1, 2), (3, 4)], closed=False)
        assert path == "M 1 2 L 3 4"

    def test_area(self):
        assert geometry.polygon_area(self.SQUARE) == pytest.approx(100.0)
        assert geometry.polygon_area(list(reversed(self.SQUARE))) == pytest.approx(100.0)
        assert geometry.polygon_area(self.SQUARE[:2]) == 0.0

    def test_vertices_text(self):
        text = geometry.format_vertices([(1.5, 2.0), (3.0, 4.25)])
        assert text == "1.5,2.0;3.0,4.25"
        assert geometry.parse_vertices(text) == [(1.5, 2.0), (3.0, 4.25)]

    def test_parse_skips_malformed_pairs(self):
        assert geometry.parse_vertices("1,2;bad;3,x;4,5;") == [(1.0, 2.0), (4.0, 5.0)]
        assert geometry.parse_vertices("") == []
