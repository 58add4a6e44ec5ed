"""
Tests for command dispatch, history discipline and gesture handling.
"""

import pytest

from labelkit.annotation.editor import (
    AddPolygonVertex,
    AnnotationEditor,
    AutoResizeAt,
    CancelPolygon,
    Command,
    CommandResult,
    CopySelected,
    CreateShape,
    DeleteAt,
    DeleteIndex,
    DeleteSelected,
    DeselectAll,
    FinishDrawing,
    FinishPolygon,
    FinishResize,
    Paste,
    ReclassifyAt,
    ReclassifySelected,
    Redo,
    Select,
    SelectAll,
    StartDrawing,
    StartResize,
    Undo,
    UpdateDrawing,
    UpdateResize,
)
from labelkit.annotation.model import Annotation, LifecycleState, ShapeKind


def _box(ann_id, x, y, w, h, state=LifecycleState.MANUAL):
    return Annotation(ann_id, ShapeKind.BOX, x, y, w, h, state=state)


@pytest.fixture
def editor():
    ed = AnnotationEditor()
    ed.load([_box(1, 0, 0, 10, 10), _box(2, 50, 50, 20, 20, state=LifecycleState.PENDING)])
    return ed


class TestDispatch:
    """Test history bookkeeping around commands."""

    def test_create_pushes_one_snapshot(self, editor):
        result = editor.dispatch(CreateShape(ShapeKind.BOX, (100, 100, 10, 10), class_id=3))

        assert result.changed
        assert result.payload == 3
        assert result.status == "Created bbox #3"
        assert len(editor.history) == 1
        assert editor.state.status_text == "Created bbox #3"

    def test_create_uses_current_class(self, editor):
        editor.state.current_class = 4
        editor.dispatch(CreateShape(ShapeKind.POINT, (5, 5)))
        assert editor.collection[-1].class_id == 4

    def test_no_op_pushes_nothing(self, editor):
        assert not editor.dispatch(DeleteAt(500, 500)).changed
        assert not editor.dispatch(ReclassifySelected(2)).changed
        assert not editor.dispatch(CreateShape(ShapeKind.POLYGON, [(0, 0), (1, 1)])).changed
        assert len(editor.history) == 0

    def test_selection_never_records(self, editor):
        editor.dispatch(Select(0))
        editor.dispatch(SelectAll())
        editor.dispatch(DeselectAll())
        editor.dispatch(CopySelected())
        assert len(editor.history) == 0

    def test_unknown_command(self, editor):
        class Unknown(Command):
            pass

        assert editor.dispatch(Unknown()) == CommandResult()

    def test_register_handler_overrides(self, editor):
        editor.register_handler(Undo, lambda cmd: CommandResult(False, "custom"))
        assert editor.dispatch(Undo()).status == "custom"


class TestUndoRedo:
    """Test restoring snapshots through the editor."""

    def test_delete_then_undo(self, editor):
        editor.dispatch(DeleteAt(5, 5))
        assert editor.collection[0].state == LifecycleState.REJECTED

        result = editor.dispatch(Undo())

        assert result.status == "Undo"
        assert editor.collection[0].state == LifecycleState.MANUAL
        assert editor.dispatch(Redo()).status == "Redo"
        assert editor.collection[0].state == LifecycleState.REJECTED

    def test_nothing_to_undo(self, editor):
        assert editor.dispatch(Undo()).status == "Nothing to undo"
        assert editor.dispatch(Redo()).status == "Nothing to redo"

    def test_new_edit_clears_redo(self, editor):
        editor.dispatch(DeleteIndex(0))
        editor.dispatch(Undo())
        editor.dispatch(DeleteIndex(1))
        assert editor.dispatch(Redo()).status == "Nothing to redo"

    def test_ids_stay_monotonic_after_undo(self, editor):
        editor.dispatch(CreateShape(ShapeKind.POINT, (1, 1)))
        editor.dispatch(Undo())
        editor.dispatch(CreateShape(ShapeKind.POINT, (2, 2)))
        assert editor.collection[-1].id == 4


class TestDrawing:
    """Test drag drawing."""

    def test_drag_creates_box(self, editor):
        editor.dispatch(Select(0))
        editor.dispatch(StartDrawing(120, 130))
        assert editor.collection.selected_indices() == []

        preview = editor.dispatch(UpdateDrawing(100, 100)).payload
        assert preview == (100, 100, 20, 30)

        result = editor.dispatch(FinishDrawing(100, 100))
        assert result.changed
        assert editor.collection[-1].bounds == (100, 100, 20, 30)
        assert not editor.state.drawing
        assert len(editor.history) == 1

    def test_small_drag_discarded(self, editor):
        editor.dispatch(StartDrawing(0, 0))
        assert not editor.dispatch(FinishDrawing(3, 40)).changed
        assert len(editor.collection) == 2

    def test_min_box_size_is_configurable(self):
        ed = AnnotationEditor(min_box_size=8)
        ed.dispatch(StartDrawing(0, 0))
        assert not ed.dispatch(FinishDrawing(7, 20)).changed

    def test_finish_without_start(self, editor):
        assert not editor.dispatch(FinishDrawing(10, 10)).changed


class TestPolygon:
    """Test the vertex-by-vertex polygon builder."""

    def test_build_polygon(self, editor):
        status = None
        for x, y in [(0, 0), (10, 0), (5, 8)]:
            status = editor.dispatch(AddPolygonVertex(x, y))
        assert status.status == "Polygon: 3 vertices"
        assert status.payload == "M 0 0 L 10 0 L 5 8"

        result = editor.dispatch(FinishPolygon())

        assert result.changed
        assert result.status == "Polygon created with 3 vertices"
        poly = editor.collection[-1]
        assert poly.kind == ShapeKind.POLYGON
        assert poly.bounds == (0.0, 0.0, 10.0, 8.0)
        assert editor.state.polygon_vertices == []

    def test_too_few_vertices(self, editor):
        editor.dispatch(AddPolygonVertex(0, 0))
        editor.dispatch(AddPolygonVertex(1, 1))
        assert not editor.dispatch(FinishPolygon()).changed
        assert len(editor.history) == 0

    def test_cancel(self, editor):
        editor.dispatch(AddPolygonVertex(0, 0))
        assert editor.dispatch(CancelPolygon()).status == "Polygon cancelled"
        assert editor.state.polygon_vertices == []


class TestEditing:
    """Test delete, reclassify and clipboard commands."""

    def test_delete_selected_status(self, editor):
        editor.dispatch(SelectAll())
        assert editor.dispatch(DeleteSelected()).status == "Deleted 2 annotation(s)"

    def test_reclassify_at(self, editor):
        result = editor.dispatch(ReclassifyAt(60, 60, 5))
        assert result.status == "Annotation reclassified to 5"
        assert editor.collection[1].state == LifecycleState.ACCEPTED

    def test_copy_paste(self, editor):
        assert editor.dispatch(Paste()).status == "No annotation to paste"
        assert editor.dispatch(CopySelected()).status == "No annotation selected to copy"

        editor.dispatch(Select(1))
        assert editor.dispatch(CopySelected()).status == "Copied 1 annotation(s)"
        result = editor.dispatch(Paste())

        assert result.payload == [3]
        assert result.status == "Pasted 1 annotation(s)"
        assert editor.collection[-1].x == pytest.approx(50.05)
        assert len(editor.history) == 1

    def test_clipboard_survives_load(self, editor):
        editor.dispatch(Select(0))
        editor.dispatch(CopySelected())
        editor.load([])
        assert editor.dispatch(Paste()).changed

    def test_delete_selected_ignores_rejected(self, editor):
        editor.dispatch(DeleteIndex(0))
        depth = len(editor.history)

        editor.dispatch(Select(0))
        editor.dispatch(Select(0, "toggle"))
        result = editor.dispatch(DeleteSelected())

        assert not result.changed
        assert result.status is None
        assert len(editor.history) == depth

    def test_copy_skips_rejected(self, editor):
        editor.dispatch(SelectAll())
        editor.dispatch(DeleteIndex(0))
        editor.collection[0].selected = True
        editor.dispatch(CopySelected())
        result = editor.dispatch(Paste())

        assert result.status == "Pasted 1 annotation(s)"
        assert [a.state for a in editor.collection[2:]] == [LifecycleState.PENDING]


class TestResize:
    """Test handle drags."""

    def test_drag_is_single_undo_step(self, editor):
        editor.dispatch(StartResize(1, "corner-br"))
        editor.dispatch(UpdateResize(80, 80))
        editor.dispatch(UpdateResize(90, 95))
        result = editor.dispatch(FinishResize())

        assert result.status == "Resize complete"
        assert editor.collection[1].bounds == (50, 50, 40, 45)
        assert editor.collection[1].state == LifecycleState.ACCEPTED
        assert len(editor.history) == 1

        editor.dispatch(Undo())
        assert editor.collection[1].bounds == (50, 50, 20, 20)
        assert editor.collection[1].state == LifecycleState.PENDING

    def test_resize_is_relative_to_grab(self, editor):
        editor.dispatch(StartResize(0, "edge-r"))
        editor.dispatch(UpdateResize(30, 0))
        editor.dispatch(UpdateResize(30, 0))
        assert editor.collection[0].width == 30

    def test_unchanged_drag_pushes_nothing(self, editor):
        editor.dispatch(StartResize(0, "corner-br"))
        editor.dispatch(UpdateResize(10, 10))
        editor.dispatch(FinishResize())
        assert len(editor.history) == 0

    def test_rejected_cannot_be_resized(self, editor):
        editor.dispatch(DeleteIndex(0))
        editor.dispatch(StartResize(0, "edge-r"))
        assert not editor.state.resize.active
        assert not editor.dispatch(UpdateResize(50, 0)).changed

    def test_point_cannot_be_resized(self, editor):
        editor.dispatch(CreateShape(ShapeKind.POINT, (50, 50), class_id=1))
        index = len(editor.collection) - 1
        depth = len(editor.history)

        editor.dispatch(StartResize(index, "edge-r"))
        assert not editor.state.resize.active
        assert not editor.dispatch(UpdateResize(80, 50)).changed

        point = editor.collection[index]
        assert (point.x, point.y, point.width, point.height) == (50, 50, 0, 0)
        assert len(editor.history) == depth

    def test_polygon_cannot_be_resized(self, editor):
        triangle = [(0, 0), (40, 0), (0, 40)]
        editor.dispatch(CreateShape(ShapeKind.POLYGON, triangle, class_id=1))
        index = len(editor.collection) - 1

        editor.dispatch(StartResize(index, "corner-br"))
        editor.dispatch(UpdateResize(200, 200))
        editor.dispatch(FinishResize())

        polygon = editor.collection[index]
        assert polygon.bounds == (0, 0, 40, 40)
        assert polygon.vertices == [(0.0, 0.0), (40.0, 0.0), (0.0, 40.0)]

    def test_update_without_start(self, editor):
        assert not editor.dispatch(UpdateResize(5, 5)).changed
        assert editor.dispatch(FinishResize()).status is None


class TestAutoResize:
    """Test auto-resize through the editor."""

    def test_no_annotation_under_cursor(self, editor):
        result = editor.dispatch(AutoResizeAt(150, 150))
        assert result.status == "Auto-resize: no annotation under cursor"

    def test_no_image_path(self, editor):
        result = editor.dispatch(AutoResizeAt(5, 5))
        assert result.status == "Auto-resize: image path not available"

    def test_missing_image(self, editor, tmp_path):
        editor.image_path = tmp_path / "missing.png"
        result = editor.dispatch(AutoResizeAt(5, 5))
        assert result.status == "Auto-resize: failed to process"
        assert len(editor.history) == 0

    def test_snaps_to_edges(self, edge_image_path):
        ed = AnnotationEditor()
        ed.load([_box(1, 55, 45, 90, 110, state=LifecycleState.PENDING)],
                image_path=edge_image_path, image_size=(200, 200))

        result = ed.dispatch(AutoResizeAt(100, 100))

        assert result.status == "Smart auto-resize applied"
        assert result.changed
        ann = ed.collection[0]
        assert ann.x == pytest.approx(60, abs=3)
        assert ann.state == LifecycleState.ACCEPTED
        assert len(ed.history) == 1


class TestLoad:
    def test_load_resets_editor(self, editor):
        editor.dispatch(DeleteIndex(0))
        editor.dispatch(AddPolygonVertex(1, 1))
        selected = _box(9, 0, 0, 5, 5)
        selected.selected = True

        editor.load([selected], next_id=20)

        assert len(editor.history) == 0
        assert editor.state.polygon_vertices == []
        assert not editor.collection[0].selected
        assert editor.collection.next_id == 20

    def test_annotations_is_a_copy(self, editor):
        view = editor.annotations()
        view[0].x = 999
        assert editor.collection[0].x == 0
