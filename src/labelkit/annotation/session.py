# src/labelkit/annotation/session.py

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from . import store
from .model import Annotation, snapshot
from .state import ViewState
from .store import Dataset, DatasetEntry

logger = logging.getLogger(__name__)

VIEW_SIZE_TOLERANCE = 2.0
PLACEHOLDER_SIZE = (640.0, 480.0)

Size = Tuple[float, float]


def sizes_close(a: Size, b: Size, tolerance: float = VIEW_SIZE_TOLERANCE) -> bool:
    return abs(a[0] - b[0]) <= tolerance and abs(a[1] - b[1]) <= tolerance


@dataclass
class LoadedImage:
    """What navigation hands to the editor and the display."""
    index: int
    entry: DatasetEntry
    image_size: Size
    annotations: List[Annotation]
    view: ViewState
    image_found: bool = True


@dataclass
class DatasetSession:
    """
    Per-image caches of one open dataset.

    `stored_annotations`, `view_states` and `completed_frames` run parallel
    to `entries`; a None slot means the image has not been visited.
    """
    entries: List[DatasetEntry]
    manifest_path: Optional[Path] = None
    current_index: int = 0
    stored_annotations: List[Optional[List[Annotation]]] = field(default_factory=list)
    view_states: List[Optional[ViewState]] = field(default_factory=list)
    completed_frames: List[bool] = field(default_factory=list)
    image_sizes: List[Optional[Size]] = field(default_factory=list)
    global_view: Optional[ViewState] = None
    last_view_image_size: Optional[Size] = None
    view_size_tolerance: float = VIEW_SIZE_TOLERANCE

    def __post_init__(self):
        self.ensure_cache_sizes()

    @classmethod
    def from_dataset(cls, dataset: Dataset, **kwargs) -> "DatasetSession":
        return cls(entries=list(dataset.entries), manifest_path=dataset.manifest_path, **kwargs)

    @classmethod
    def open(cls, manifest_path, **kwargs) -> "DatasetSession":
        return cls.from_dataset(store.load_dataset(manifest_path), **kwargs)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current_entry(self) -> Optional[DatasetEntry]:
        if 0 <= self.current_index < len(self.entries):
            return self.entries[self.current_index]
        return None

    def ensure_cache_sizes(self) -> None:
        """Pads or truncates the parallel caches to the entry count."""
        count = len(self.entries)
        for name, filler in (("stored_annotations", None), ("view_states", None),
                             ("completed_frames", False), ("image_sizes", None)):
            cache = getattr(self, name)
            if len(cache) != count:
                logger.debug(f"Repairing cache '{name}': {len(cache)} -> {count} slots")
                del cache[count:]
                cache.extend([filler] * (count - len(cache)))

    # --- Loading ---

    def image_size_for(self, index: int) -> Optional[Size]:
        """Decoded image size, cached per entry. None when the image is unreadable."""
        self.ensure_cache_sizes()
        size = self.image_sizes[index]
        if size is None:
            size = store.image_size(self.entries[index].image_path)
            self.image_sizes[index] = size
        return size

    def annotations_for(self, index: int, next_id_start: int = 1) -> List[Annotation]:
        """
        Independent copy of an entry's annotations.

        The first request populates the cache slot from disk; afterwards the
        cache is the only source until the session is saved.
        """
        self.ensure_cache_sizes()
        cached = self.stored_annotations[index]
        if cached is None:
            size = self.image_size_for(index) or PLACEHOLDER_SIZE
            cached = store.load_annotations_for_entry(self.entries[index], size, next_id_start)
            self.stored_annotations[index] = cached
        return snapshot(cached)

    def choose_view(self, index: int, image_size: Size, viewport_size: Size) -> ViewState:
        """Global view if sizes match, else the entry's own view, else a cached fit."""
        if (self.global_view is not None and self.last_view_image_size is not None
                and sizes_close(self.last_view_image_size, image_size, self.view_size_tolerance)):
            return self.global_view.normalized()
        cached = self.view_states[index]
        if cached is not None:
            return cached.normalized()
        view = ViewState.fit(image_size, viewport_size)
        self.view_states[index] = view
        return view

    def navigate_to(self, index: int, viewport_size: Size, next_id_start: int = 1) -> Optional[LoadedImage]:
        """
        Makes `index` current and returns its annotations and view.

        The caller saves the outgoing image first. Out of range indices
        return None and change nothing.
        """
        self.ensure_cache_sizes()
        if not 0 <= index < len(self.entries):
            logger.debug(f"Navigation to {index} ignored, dataset has {len(self.entries)} images")
            return None

        entry = self.entries[index]
        size = self.image_size_for(index)
        image_found = size is not None
        if not image_found:
            logger.warning(f"Image not found: {entry.image_path}")
            size = PLACEHOLDER_SIZE

        annotations = self.annotations_for(index, next_id_start)
        for ann in annotations:
            ann.selected = False

        self.current_index = index
        view = self.choose_view(index, size, viewport_size)
        logger.info(f"Image {index + 1}/{len(self.entries)}: {entry.image_path.name} "
                    f"({len(annotations)} annotations)")
        return LoadedImage(index, entry, size, annotations, view, image_found)

    # --- Saving ---

    def save_current(self, annotations: List[Annotation], view: ViewState,
                     image_size: Optional[Size] = None) -> None:
        """Writes the live collection and view back into the current slots."""
        self.ensure_cache_sizes()
        index = self.current_index
        if not 0 <= index < len(self.entries):
            return
        self.stored_annotations[index] = snapshot(annotations)
        self.view_states[index] = view.normalized()
        self.global_view = self.view_states[index]
        if image_size is not None:
            self.last_view_image_size = image_size

    def update_global_view(self, view: ViewState, image_size: Size) -> None:
        self.global_view = view.normalized()
        self.last_view_image_size = image_size

    def save_all(self) -> int:
        """
        Writes label and state files for every entry.

        Unvisited entries are written with an empty set. The first
        PersistenceError aborts the loop; earlier entries stay written.
        """
        self.ensure_cache_sizes()
        for index, entry in enumerate(self.entries):
            annotations = self.stored_annotations[index] or []
            store.save_entry(entry, annotations, self.image_sizes[index])
        logger.info(f"Saved {len(self.entries)} entries")
        return len(self.entries)

    # --- Frame completion ---

    def toggle_frame_completion(self, index: Optional[int] = None) -> bool:
        self.ensure_cache_sizes()
        index = self.current_index if index is None else index
        self.completed_frames[index] = not self.completed_frames[index]
        return self.completed_frames[index]

    def is_complete(self, index: Optional[int] = None) -> bool:
        index = self.current_index if index is None else index
        return 0 <= index < len(self.completed_frames) and self.completed_frames[index]

    def completed_count(self) -> int:
        return sum(1 for done in self.completed_frames if done)
