# src/labelkit/annotation/editor.py

"""
Command dispatch for every edit of the live annotation collection.

Front-ends translate gestures into the command objects below and hand
them to `AnnotationEditor.dispatch`. History bookkeeping lives in one
place: mutating commands are snapshotted before they run and the
snapshot is pushed only if the collection actually changed.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from . import geometry
from .auto_resize import AutoResizeSettings, DEFAULT_SETTINGS, auto_resize_from_path
from .history import MAX_HISTORY, UndoHistory
from .model import (
    BOX_KINDS,
    MIN_BOX_SIZE,
    PASTE_OFFSET,
    Annotation,
    AnnotationCollection,
    ShapeKind,
)
from .state import EditorState

logger = logging.getLogger(__name__)


# --- Commands ---

class Command:
    """Base for editor commands. `records_history` marks collection edits."""
    records_history = False


@dataclass
class CreateShape(Command):
    kind: ShapeKind
    geometry: Any
    class_id: Optional[int] = None
    rotation: float = 0.0
    records_history = True


@dataclass
class StartDrawing(Command):
    x: float
    y: float


@dataclass
class UpdateDrawing(Command):
    x: float
    y: float


@dataclass
class FinishDrawing(Command):
    x: float
    y: float
    records_history = True


@dataclass
class CancelDrawing(Command):
    pass


@dataclass
class AddPolygonVertex(Command):
    x: float
    y: float


@dataclass
class FinishPolygon(Command):
    records_history = True


@dataclass
class CancelPolygon(Command):
    pass


@dataclass
class DeleteAt(Command):
    x: float
    y: float
    records_history = True


@dataclass
class DeleteIndex(Command):
    index: int
    records_history = True


@dataclass
class DeleteSelected(Command):
    records_history = True


@dataclass
class ReclassifyAt(Command):
    x: float
    y: float
    class_id: int
    records_history = True


@dataclass
class ReclassifySelected(Command):
    class_id: int
    records_history = True


@dataclass
class Select(Command):
    index: int
    modifier: str = "plain"  # plain | toggle | range


@dataclass
class SelectAll(Command):
    pass


@dataclass
class DeselectAll(Command):
    pass


@dataclass
class CopySelected(Command):
    pass


@dataclass
class Paste(Command):
    records_history = True


@dataclass
class StartResize(Command):
    index: int
    handle: str


@dataclass
class UpdateResize(Command):
    x: float
    y: float


@dataclass
class FinishResize(Command):
    pass


@dataclass
class AutoResizeAt(Command):
    x: float
    y: float
    records_history = True


@dataclass
class Undo(Command):
    pass


@dataclass
class Redo(Command):
    pass


@dataclass
class CommandResult:
    """Outcome of one dispatch. `status` is display-only text."""
    changed: bool = False
    status: Optional[str] = None
    payload: Any = None


Handler = Callable[[Any], CommandResult]


class AnnotationEditor:
    """
    Owns the live collection of the current image, its undo history and
    the transient gesture state.
    """

    def __init__(
        self,
        collection: Optional[AnnotationCollection] = None,
        state: Optional[EditorState] = None,
        history: Optional[UndoHistory] = None,
        hit_radius: float = geometry.HIT_RADIUS,
        min_box_size: float = MIN_BOX_SIZE,
        paste_offset: float = PASTE_OFFSET,
        auto_resize_settings: AutoResizeSettings = DEFAULT_SETTINGS,
    ):
        self.collection = collection or AnnotationCollection()
        self.state = state or EditorState()
        self.history = history or UndoHistory(MAX_HISTORY)
        self.hit_radius = hit_radius
        self.min_box_size = min_box_size
        self.paste_offset = paste_offset
        self.auto_resize_settings = auto_resize_settings

        # Current image, used by auto-resize
        self.image_path: Optional[Path] = None
        self.image_size: Tuple[float, float] = (0.0, 0.0)

        self._resize_snapshot: Optional[List[Annotation]] = None
        self.handlers: Dict[Type[Command], Handler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self):
        self.register_handler(CreateShape, self._handle_create)
        self.register_handler(StartDrawing, self._handle_start_drawing)
        self.register_handler(UpdateDrawing, self._handle_update_drawing)
        self.register_handler(FinishDrawing, self._handle_finish_drawing)
        self.register_handler(CancelDrawing, self._handle_cancel_drawing)
        self.register_handler(AddPolygonVertex, self._handle_add_vertex)
        self.register_handler(FinishPolygon, self._handle_finish_polygon)
        self.register_handler(CancelPolygon, self._handle_cancel_polygon)
        self.register_handler(DeleteAt, self._handle_delete_at)
        self.register_handler(DeleteIndex, self._handle_delete_index)
        self.register_handler(DeleteSelected, self._handle_delete_selected)
        self.register_handler(ReclassifyAt, self._handle_reclassify_at)
        self.register_handler(ReclassifySelected, self._handle_reclassify_selected)
        self.register_handler(Select, self._handle_select)
        self.register_handler(SelectAll, self._handle_select_all)
        self.register_handler(DeselectAll, self._handle_deselect_all)
        self.register_handler(CopySelected, self._handle_copy)
        self.register_handler(Paste, self._handle_paste)
        self.register_handler(StartResize, self._handle_start_resize)
        self.register_handler(UpdateResize, self._handle_update_resize)
        self.register_handler(FinishResize, self._handle_finish_resize)
        self.register_handler(AutoResizeAt, self._handle_auto_resize)
        self.register_handler(Undo, self._handle_undo)
        self.register_handler(Redo, self._handle_redo)

    def register_handler(self, command_type: Type[Command], handler: Handler):
        self.handlers[command_type] = handler

    def dispatch(self, command: Command) -> CommandResult:
        """Run one command, pushing the pre-mutation snapshot if it changed anything."""
        handler = self.handlers.get(type(command))
        if handler is None:
            logger.warning(f"No handler registered for command {type(command).__name__}")
            return CommandResult()

        before = self.collection.snapshot() if command.records_history else None
        result = handler(command)
        if before is not None and result.changed:
            self.history.push(before)
        if result.status:
            self.state.status_text = result.status
            logger.info(result.status)
        return result

    # --- Loading ---

    def load(self, annotations: Sequence[Annotation], next_id: Optional[int] = None,
             image_path: Optional[Path] = None, image_size: Tuple[float, float] = (0.0, 0.0)):
        """
        Install the collection of a newly shown image.

        Selection is cleared, in-flight gestures and history are dropped,
        and the id counter is advanced above every id present.
        """
        for ann in annotations:
            ann.selected = False
        counter = self.collection.next_id if next_id is None else next_id
        self.collection = AnnotationCollection(annotations, counter)
        self.history.clear()
        self.state.reset_gestures()
        self._resize_snapshot = None
        self.image_path = Path(image_path) if image_path is not None else None
        self.image_size = image_size

    def snapshot(self) -> List[Annotation]:
        return self.collection.snapshot()

    def annotations(self) -> List[Annotation]:
        """Read-only view for renderers and exporters."""
        return self.collection.snapshot()

    # --- Creation handlers ---

    def _handle_create(self, cmd: CreateShape) -> CommandResult:
        class_id = self.state.current_class if cmd.class_id is None else cmd.class_id
        ann = self.collection.create(cmd.kind, cmd.geometry, class_id, cmd.rotation)
        if ann is None:
            return CommandResult()
        return CommandResult(True, f"Created {ann.kind.value} #{ann.id}", ann.id)

    def _handle_start_drawing(self, cmd: StartDrawing) -> CommandResult:
        self.state.drawing = True
        self.state.start_point = (cmd.x, cmd.y)
        self.collection.deselect_all()
        return CommandResult(payload=(cmd.x, cmd.y, 0.0, 0.0))

    def _handle_update_drawing(self, cmd: UpdateDrawing) -> CommandResult:
        if not self.state.drawing or self.state.start_point is None:
            return CommandResult()
        return CommandResult(payload=geometry.normalize_rect(self.state.start_point, (cmd.x, cmd.y)))

    def _handle_finish_drawing(self, cmd: FinishDrawing) -> CommandResult:
        if not self.state.drawing or self.state.start_point is None:
            self.state.reset_drawing()
            return CommandResult()
        anchor = self.state.start_point
        self.state.reset_drawing()
        tool = self.state.current_tool
        if tool == ShapeKind.POLYGON:
            return CommandResult()
        ann = self.collection.create_from_drag(tool, anchor, (cmd.x, cmd.y),
                                               self.state.current_class, self.min_box_size)
        if ann is None:
            return CommandResult()
        return CommandResult(True, None, ann.id)

    def _handle_cancel_drawing(self, cmd: CancelDrawing) -> CommandResult:
        self.state.reset_drawing()
        return CommandResult()

    def _handle_add_vertex(self, cmd: AddPolygonVertex) -> CommandResult:
        self.state.polygon_vertices.append((cmd.x, cmd.y))
        count = len(self.state.polygon_vertices)
        preview = geometry.polygon_path(self.state.polygon_vertices, closed=False)
        return CommandResult(False, f"Polygon: {count} vertices", preview)

    def _handle_finish_polygon(self, cmd: FinishPolygon) -> CommandResult:
        vertices = list(self.state.polygon_vertices)
        self.state.reset_polygon()
        ann = self.collection.create(ShapeKind.POLYGON, vertices, self.state.current_class)
        if ann is None:
            return CommandResult()
        return CommandResult(True, f"Polygon created with {len(vertices)} vertices", ann.id)

    def _handle_cancel_polygon(self, cmd: CancelPolygon) -> CommandResult:
        self.state.reset_polygon()
        return CommandResult(False, "Polygon cancelled")

    # --- Delete / classify handlers ---

    def _handle_delete_at(self, cmd: DeleteAt) -> CommandResult:
        index = self.collection.delete_at(cmd.x, cmd.y, self.hit_radius)
        if index is None:
            return CommandResult()
        return CommandResult(True, "Annotation deleted", index)

    def _handle_delete_index(self, cmd: DeleteIndex) -> CommandResult:
        if not self.collection.delete_index(cmd.index):
            return CommandResult()
        return CommandResult(True, "Annotation deleted", cmd.index)

    def _handle_delete_selected(self, cmd: DeleteSelected) -> CommandResult:
        count = self.collection.delete_selected()
        if not count:
            return CommandResult()
        return CommandResult(True, f"Deleted {count} annotation(s)", count)

    def _handle_reclassify_at(self, cmd: ReclassifyAt) -> CommandResult:
        index = self.collection.reclassify_at(cmd.x, cmd.y, cmd.class_id, self.hit_radius)
        if index is None:
            return CommandResult()
        return CommandResult(True, f"Annotation reclassified to {cmd.class_id}", index)

    def _handle_reclassify_selected(self, cmd: ReclassifySelected) -> CommandResult:
        count = self.collection.reclassify_selected(cmd.class_id)
        if not count:
            return CommandResult()
        return CommandResult(True, f"Selected annotation set to class {cmd.class_id}", count)

    # --- Selection handlers ---

    def _handle_select(self, cmd: Select) -> CommandResult:
        self.collection.select(cmd.index, cmd.modifier)
        return CommandResult(payload=self.collection.selected_indices())

    def _handle_select_all(self, cmd: SelectAll) -> CommandResult:
        self.collection.select_all()
        return CommandResult(payload=self.collection.selected_indices())

    def _handle_deselect_all(self, cmd: DeselectAll) -> CommandResult:
        self.collection.deselect_all()
        return CommandResult(payload=[])

    # --- Clipboard handlers ---

    def _handle_copy(self, cmd: CopySelected) -> CommandResult:
        copied = self.collection.copy_selected()
        if not copied:
            return CommandResult(False, "No annotation selected to copy")
        self.state.clipboard = copied
        return CommandResult(False, f"Copied {len(copied)} annotation(s)", len(copied))

    def _handle_paste(self, cmd: Paste) -> CommandResult:
        if not self.state.clipboard:
            return CommandResult(False, "No annotation to paste")
        pasted = self.collection.paste(self.state.clipboard, self.paste_offset)
        return CommandResult(True, f"Pasted {len(pasted)} annotation(s)", [a.id for a in pasted])

    # --- Resize handlers ---

    def _handle_start_resize(self, cmd: StartResize) -> CommandResult:
        ann = self.collection.get(cmd.index)
        if ann is None or ann.is_rejected or ann.kind not in BOX_KINDS:
            return CommandResult()
        self.state.resize.index = cmd.index
        self.state.resize.handle = cmd.handle
        self.state.resize.original = ann.bounds
        self._resize_snapshot = self.collection.snapshot()
        logger.debug(f"Start resize: index={cmd.index}, handle={cmd.handle}, bounds={ann.bounds}")
        return CommandResult()

    def _handle_update_resize(self, cmd: UpdateResize) -> CommandResult:
        resize = self.state.resize
        if not resize.active:
            return CommandResult()
        ann = self.collection.get(resize.index)
        if ann is None or ann.is_rejected:
            return CommandResult()
        before = (ann.bounds, ann.state)
        self.collection.apply_resize(resize.index, resize.handle, resize.original, cmd.x, cmd.y)
        changed = (ann.bounds, ann.state) != before
        if changed and self._resize_snapshot is not None:
            # One undo step per drag
            self.history.push(self._resize_snapshot)
            self._resize_snapshot = None
        return CommandResult(changed, None, ann.bounds)

    def _handle_finish_resize(self, cmd: FinishResize) -> CommandResult:
        was_active = self.state.resize.active
        self.state.reset_resize()
        self._resize_snapshot = None
        if not was_active:
            return CommandResult()
        return CommandResult(False, "Resize complete")

    # --- Auto-resize ---

    def _handle_auto_resize(self, cmd: AutoResizeAt) -> CommandResult:
        index = self.collection.topmost_at(cmd.x, cmd.y, self.hit_radius, kinds=BOX_KINDS)
        if index is None:
            return CommandResult(False, "Auto-resize: no annotation under cursor")
        if self.image_path is None:
            return CommandResult(False, "Auto-resize: image path not available")
        ann = self.collection[index]
        size = self.image_size if self.image_size[0] > 0 and self.image_size[1] > 0 else None
        refined = auto_resize_from_path(self.image_path, ann.bounds, size, self.auto_resize_settings)
        if refined is None:
            return CommandResult(False, "Auto-resize: failed to process")
        before = (ann.bounds, ann.state)
        ann.set_bounds(refined)
        ann.mark_edited()
        return CommandResult((ann.bounds, ann.state) != before, "Smart auto-resize applied", index)

    # --- History ---

    def _handle_undo(self, cmd: Undo) -> CommandResult:
        previous = self.history.undo(self.collection.items)
        if previous is None:
            return CommandResult(False, "Nothing to undo")
        self._install(previous)
        return CommandResult(True, "Undo")

    def _handle_redo(self, cmd: Redo) -> CommandResult:
        following = self.history.redo(self.collection.items)
        if following is None:
            return CommandResult(False, "Nothing to redo")
        self._install(following)
        return CommandResult(True, "Redo")

    def _install(self, annotations: List[Annotation]):
        self.collection.replace(annotations)
        self.state.reset_resize()
        self._resize_snapshot = None
