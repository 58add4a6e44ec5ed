"""
Tests for view and editor state.
"""

import pytest

from labelkit.annotation.model import ShapeKind, Annotation
from labelkit.annotation.state import EditorState, ViewState


class TestViewState:
    """Test zoom normalization and fitting."""

    @pytest.mark.parametrize("zoom", [0.0, -2.0, float("nan"), float("inf")])
    def test_invalid_zoom_becomes_one(self, zoom):
        view = ViewState(3.0, 4.0, zoom).normalized()
        assert view.zoom == 1.0
        assert (view.pan_x, view.pan_y) == (3.0, 4.0)

    def test_valid_zoom_kept(self):
        assert ViewState(0, 0, 2.5).normalized().zoom == 2.5

    def test_fit_centers_image(self):
        view = ViewState.fit((200, 100), (400, 400))
        assert view.zoom == pytest.approx(2.0)
        assert view.pan_x == pytest.approx(0.0)
        assert view.pan_y == pytest.approx(100.0)

    def test_fit_degenerate_sizes(self):
        assert ViewState.fit((0, 0), (100, 100)) == ViewState()


class TestEditorState:
    """Test gesture resets."""

    def test_defaults(self):
        state = EditorState()
        assert state.current_tool == ShapeKind.BOX
        assert state.current_class == 1
        assert state.status_text == "Ready"
        assert not state.resize.active

    def test_reset_gestures_keeps_clipboard(self):
        state = EditorState()
        state.drawing = True
        state.start_point = (1, 2)
        state.polygon_vertices = [(0, 0)]
        state.resize.index = 3
        state.clipboard = [Annotation(1, ShapeKind.POINT, 0, 0)]

        state.reset_gestures()

        assert not state.drawing
        assert state.start_point is None
        assert state.polygon_vertices == []
        assert not state.resize.active
        assert len(state.clipboard) == 1
