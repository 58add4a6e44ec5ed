"""
Tests for the session/editor coordinator.
"""

import random

import pytest

from labelkit.annotation.annotator import UnifiedAnnotator
from labelkit.annotation.editor import CreateShape, DeleteIndex, Select, SelectAll
from labelkit.annotation.model import LifecycleState, ShapeKind
from labelkit.annotation.session import DatasetSession
from labelkit.annotation.state import ViewState
from labelkit.annotation.store import read_state
from labelkit.config import ConfigManager
from labelkit.project_config import ClassCatalog, ClassConfigError, HierarchyNode


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def annotator(manifest_path, clock):
    ann = UnifiedAnnotator(DatasetSession.open(manifest_path), viewport_size=(400, 400), clock=clock)
    ann.open()
    return ann


class TestNavigation:
    """Test save-before-navigate and the navigation helpers."""

    def test_open_shows_first_image(self, annotator):
        assert annotator.current_index == 0
        assert len(annotator.annotations()) == 2
        assert annotator.status_text == "Image 1/3: a.png"

    def test_edits_survive_navigation(self, annotator):
        annotator.dispatch(DeleteIndex(0))
        annotator.next_image()
        assert annotator.annotations() == []

        annotator.prev_image()
        assert annotator.annotations()[0].state == LifecycleState.REJECTED

    def test_history_cleared_on_navigation(self, annotator):
        annotator.dispatch(DeleteIndex(0))
        annotator.next_image()
        annotator.prev_image()
        assert len(annotator.editor.history) == 0

    def test_bounds_are_clamped(self, annotator):
        annotator.prev_image()
        assert annotator.current_index == 0
        annotator.last_image()
        annotator.next_image()
        assert annotator.current_index == 2
        annotator.first_image()
        assert annotator.current_index == 0

    def test_out_of_range_is_noop(self, annotator):
        assert annotator.navigate_to(10) is None
        assert annotator.current_index == 0

    def test_random_image(self, annotator):
        loaded = annotator.random_image(random.Random(3))
        assert 0 <= loaded.index < 3

    def test_ids_unique_across_images(self, annotator):
        annotator.next_image()
        annotator.dispatch(CreateShape(ShapeKind.POINT, (1, 1)))
        created = annotator.annotations()[-1].id
        assert created not in (1, 2)

    def test_view_saved_per_image(self, annotator):
        annotator.set_view(ViewState(10, 20, 4.0))
        loaded = annotator.next_image()
        assert loaded.view == ViewState(10, 20, 4.0)

    def test_missing_image_status(self, tmp_path):
        manifest = tmp_path / "manifest.json"
        manifest.write_text('{"images": [{"image": "gone.png"}]}')
        ann = UnifiedAnnotator(DatasetSession.open(manifest))
        ann.open()
        assert ann.status_text.startswith("Image not found: ")


class TestClassKeys:
    """Test class selection from number keys."""

    def test_flat_key_sets_current_class(self, annotator):
        assert annotator.handle_class_key(3) == 3
        assert annotator.editor.state.current_class == 3
        assert annotator.status_text == "Class set to Class 3"

    def test_flat_key_reclassifies_selection(self, annotator):
        annotator.dispatch(Select(0))
        annotator.handle_class_key(4)

        ann = annotator.annotations()[0]
        assert ann.class_id == 4
        assert ann.state == LifecycleState.ACCEPTED
        assert annotator.status_text == "Selected annotation set to class 4"

    def test_unknown_flat_key(self, annotator):
        assert annotator.handle_class_key(0) is None
        assert annotator.handle_class_key(9) is None

    def test_hierarchy_keys(self, manifest_path, clock):
        catalog = ClassCatalog(hierarchy=[
            HierarchyNode(1, "Animal", children=[HierarchyNode(1, "cat", id=1), HierarchyNode(2, "dog", id=2)]),
        ])
        ann = UnifiedAnnotator(DatasetSession.open(manifest_path), catalog=catalog, clock=clock)
        ann.open()
        ann.dispatch(SelectAll())

        assert ann.handle_class_key(1) is None
        assert ann.status_text == "Animal: Select class (1-5)"
        assert ann.handle_class_key(2) == 2
        assert all(a.class_id == 2 for a in ann.annotations())

    def test_invalid_hierarchy_rejected(self, manifest_path):
        catalog = ClassCatalog(hierarchy=[HierarchyNode(7, "bad", id=1)])
        with pytest.raises(ClassConfigError):
            UnifiedAnnotator(DatasetSession.open(manifest_path), catalog=catalog)


class TestPersistence:
    """Test explicit save and the auto-save timer."""

    def test_save_writes_dataset(self, annotator, dataset_dir):
        annotator.dispatch(CreateShape(ShapeKind.POINT, (5, 5)))
        assert annotator.save()
        assert annotator.status_text == "Saved 3 images"
        assert len(read_state(dataset_dir / "a.state.json")) == 3

    def test_save_failure_reports_status(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        manifest = tmp_path / "manifest.json"
        manifest.write_text('{"images": [{"image": "a.png", "labels": "blocker/a.txt"}]}')
        ann = UnifiedAnnotator(DatasetSession.open(manifest))
        ann.open()

        assert not ann.save()
        assert ann.status_text.startswith("Save failed: ")

    def test_poll_waits_for_interval(self, annotator, clock, dataset_dir):
        clock.now = 4.9
        assert not annotator.poll()
        assert not (dataset_dir / "a.state.json").exists()

        clock.now = 5.0
        assert annotator.poll()
        assert (dataset_dir / "a.state.json").exists()
        assert not annotator.poll(7.0)
        assert annotator.poll(10.0)

    def test_toggle_frame_completion(self, annotator):
        assert annotator.toggle_frame_completion()
        assert annotator.status_text == "Frame marked as complete"
        assert not annotator.toggle_frame_completion()
        assert annotator.status_text == "Frame marked as incomplete"


class TestFromConfig:
    def test_project_values_applied(self, manifest_path, config_dir):
        config = ConfigManager(project_name="beta", config_dir=config_dir)
        ann = UnifiedAnnotator.from_config(manifest_path, config)

        assert ann.editor.history.max_depth == 10
        assert ann.catalog.name_for(2) == "dog"
        assert ann.auto_save_interval == 5.0

    def test_min_box_size_from_project(self, manifest_path, config_dir):
        config = ConfigManager(project_name="alpha", config_dir=config_dir)
        ann = UnifiedAnnotator.from_config(manifest_path, config)
        assert ann.editor.min_box_size == 8.0
