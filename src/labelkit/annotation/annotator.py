# src/labelkit/annotation/annotator.py

import logging
import random
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..config import get_config
from ..project_config import ClassCatalog, validate_hierarchy
from .auto_resize import AutoResizeSettings
from .editor import AnnotationEditor, AutoResizeAt, Command, CommandResult, ReclassifySelected
from .hierarchy import HierarchyNavigator
from .history import MAX_HISTORY, UndoHistory
from .model import Annotation, MIN_BOX_SIZE, PASTE_OFFSET
from .session import DatasetSession, LoadedImage, VIEW_SIZE_TOLERANCE
from .state import ViewState
from .store import PersistenceError, load_dataset
from . import geometry

logger = logging.getLogger(__name__)

AUTO_SAVE_INTERVAL_SECONDS = 5.0
DEFAULT_VIEWPORT = (1280.0, 720.0)


class UnifiedAnnotator:
    """
    Ties one dataset session to the editor of the image on screen.

    Keeps the save-before-navigate order, routes class keys through the
    hierarchy navigator and runs the periodic auto-save. A front-end
    calls `poll()` from its event loop.
    """

    def __init__(
        self,
        session: DatasetSession,
        editor: Optional[AnnotationEditor] = None,
        catalog: Optional[ClassCatalog] = None,
        viewport_size: Tuple[float, float] = DEFAULT_VIEWPORT,
        auto_save_interval: float = AUTO_SAVE_INTERVAL_SECONDS,
        clock=time.time,
    ):
        self.session = session
        self.editor = editor or AnnotationEditor()
        self.catalog = catalog or ClassCatalog()
        validate_hierarchy(self.catalog.hierarchy)
        self.navigator = HierarchyNavigator(self.catalog.hierarchy)
        self.viewport_size = viewport_size
        self.auto_save_interval = auto_save_interval
        self._clock = clock
        self._last_auto_save = clock()

        self.current: Optional[LoadedImage] = None
        self.view = ViewState()

    @classmethod
    def from_config(cls, manifest_path: Union[str, Path], config=None) -> "UnifiedAnnotator":
        """Builds the session, editor and catalog from configuration values."""
        if config is None:
            config = get_config()

        dataset = load_dataset(manifest_path)
        session = DatasetSession.from_dataset(
            dataset,
            view_size_tolerance=config.get_float("session.view_size_tolerance", VIEW_SIZE_TOLERANCE),
        )
        editor = AnnotationEditor(
            history=UndoHistory(config.get_int("history.max_depth", MAX_HISTORY)),
            hit_radius=config.get_float("annotation.hit_radius", geometry.HIT_RADIUS),
            min_box_size=config.get_float("annotation.min_box_size", MIN_BOX_SIZE),
            paste_offset=config.get_float("annotation.paste_offset", PASTE_OFFSET),
            auto_resize_settings=AutoResizeSettings.from_config(config),
        )
        catalog = ClassCatalog.from_dict(dataset.classes) if dataset.classes else ClassCatalog.from_config(config)
        viewport = (config.get_float("display.viewport_width", DEFAULT_VIEWPORT[0]),
                    config.get_float("display.viewport_height", DEFAULT_VIEWPORT[1]))
        return cls(
            session,
            editor=editor,
            catalog=catalog,
            viewport_size=viewport,
            auto_save_interval=config.get_float("session.auto_save_interval_seconds", AUTO_SAVE_INTERVAL_SECONDS),
        )

    # --- Status ---

    @property
    def status_text(self) -> str:
        return self.editor.state.status_text

    def _set_status(self, text: str) -> str:
        self.editor.state.status_text = text
        logger.info(text)
        return text

    @property
    def current_index(self) -> int:
        return self.session.current_index

    def annotations(self) -> List[Annotation]:
        return self.editor.annotations()

    # --- Navigation ---

    def open(self) -> Optional[LoadedImage]:
        """Shows the first image without saving anything first."""
        return self._show(self.session.navigate_to(0, self.viewport_size, self.editor.collection.next_id))

    def save_current(self) -> None:
        if self.current is None:
            return
        self.session.save_current(self.editor.snapshot(), self.view, self.current.image_size)

    def navigate_to(self, index: int) -> Optional[LoadedImage]:
        if not 0 <= index < len(self.session):
            return None
        self.save_current()
        loaded = self.session.navigate_to(index, self.viewport_size, self.editor.collection.next_id)
        return self._show(loaded)

    def _show(self, loaded: Optional[LoadedImage]) -> Optional[LoadedImage]:
        if loaded is None:
            return None
        self.current = loaded
        self.view = loaded.view
        self.navigator.reset()
        self.editor.load(loaded.annotations, image_path=loaded.entry.image_path,
                         image_size=loaded.image_size)
        if loaded.image_found:
            self._set_status(f"Image {loaded.index + 1}/{len(self.session)}: {loaded.entry.image_path.name}")
        else:
            self._set_status(f"Image not found: {loaded.entry.image_path}")
        return loaded

    def next_image(self) -> Optional[LoadedImage]:
        return self.navigate_to(min(self.current_index + 1, len(self.session) - 1))

    def prev_image(self) -> Optional[LoadedImage]:
        return self.navigate_to(max(self.current_index - 1, 0))

    def first_image(self) -> Optional[LoadedImage]:
        return self.navigate_to(0)

    def last_image(self) -> Optional[LoadedImage]:
        return self.navigate_to(len(self.session) - 1)

    def random_image(self, rng: Optional[random.Random] = None) -> Optional[LoadedImage]:
        rng = rng or random
        return self.navigate_to(rng.randrange(len(self.session)))

    # --- View ---

    def set_view(self, view: ViewState) -> None:
        """View-changed hook: pan or zoom on the current image."""
        self.view = view.normalized()
        if self.current is not None:
            self.session.update_global_view(self.view, self.current.image_size)

    # --- Editing ---

    def dispatch(self, command: Command) -> CommandResult:
        return self.editor.dispatch(command)

    def auto_resize_at(self, x: float, y: float) -> CommandResult:
        return self.dispatch(AutoResizeAt(x, y))

    def handle_class_key(self, key: int) -> Optional[int]:
        """
        Class key 0-5. With a hierarchy the key walks the tree; flat
        catalogs map the key straight to a class id.

        A resolved class is applied to the selection, or becomes the class
        for new shapes when nothing is selected.
        """
        if self.navigator.is_hierarchical:
            class_id = self.navigator.handle_key(key)
            if class_id is None:
                crumbs = " > ".join(self.navigator.breadcrumb())
                prompt = self.navigator.prompt()
                self._set_status(f"{crumbs}: {prompt}" if crumbs else prompt)
                return None
        else:
            if key < 1 or self.catalog.get(key) is None:
                return None
            class_id = key

        if self.editor.collection.selected_indices():
            result = self.dispatch(ReclassifySelected(class_id))
            if not result.changed:
                self._set_status(f"Class set to {self.catalog.name_for(class_id)}")
        else:
            self.editor.state.current_class = class_id
            self._set_status(f"Class set to {self.catalog.name_for(class_id)}")
        return class_id

    # --- Frame completion ---

    def toggle_frame_completion(self) -> bool:
        complete = self.session.toggle_frame_completion()
        self._set_status("Frame marked as complete" if complete else "Frame marked as incomplete")
        return complete

    # --- Persistence ---

    def save(self) -> bool:
        self.save_current()
        try:
            count = self.session.save_all()
        except PersistenceError as e:
            logger.error(f"Save failed: {e}")
            self._set_status(f"Save failed: {e}")
            return False
        self._set_status(f"Saved {count} images")
        return True

    def poll(self, now: Optional[float] = None) -> bool:
        """Runs the auto-save when its interval has elapsed; True if it ran."""
        now = self._clock() if now is None else now
        if now - self._last_auto_save < self.auto_save_interval:
            return False
        self._last_auto_save = now
        self.save_current()
        try:
            self.session.save_all()
        except PersistenceError as e:
            logger.error(f"Autosave failed: {e}")
            self._set_status(f"Autosave failed: {e}")
            return True
        logger.debug("Autosave complete")
        return True
