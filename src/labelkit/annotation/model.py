# src/labelkit/annotation/model.py

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import geometry

logger = logging.getLogger(__name__)

MIN_BOX_SIZE = 5.0
MIN_POLYGON_VERTICES = 3
PASTE_OFFSET = 0.05


class ShapeKind(str, Enum):
    POINT = "point"
    BOX = "bbox"
    ROTATED_BOX = "rbbox"
    POLYGON = "polygon"


class LifecycleState(str, Enum):
    PENDING = "Pending"
    MANUAL = "Manual"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


BOX_KINDS = (ShapeKind.BOX, ShapeKind.ROTATED_BOX)


@dataclass
class Annotation:
    """
    One labeled shape over an image.

    For polygons `vertices` is authoritative and x/y/width/height hold
    the derived bounding box.
    """
    id: int
    kind: ShapeKind
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    class_id: int = 1
    state: LifecycleState = LifecycleState.MANUAL
    rotation: float = 0.0
    vertices: List[Tuple[float, float]] = field(default_factory=list)
    selected: bool = False

    @property
    def bounds(self) -> geometry.Box:
        return (self.x, self.y, self.width, self.height)

    @property
    def is_point(self) -> bool:
        return self.kind == ShapeKind.POINT

    @property
    def is_box(self) -> bool:
        return self.kind in BOX_KINDS

    @property
    def is_rejected(self) -> bool:
        return self.state == LifecycleState.REJECTED

    def set_bounds(self, box: geometry.Box) -> None:
        self.x, self.y, self.width, self.height = box

    def mark_edited(self) -> None:
        """Implicit Pending -> Accepted transition on any mutating edit."""
        if self.state == LifecycleState.PENDING:
            self.state = LifecycleState.ACCEPTED

    def reject(self) -> None:
        self.state = LifecycleState.REJECTED
        self.selected = False

    def to_record(self) -> Dict[str, Any]:
        """Full-fidelity record; selection is transient and always stored as False."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
            "selected": False,
            "class": self.class_id,
            "state": self.state.value,
            "vertices": geometry.format_vertices(self.vertices),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Annotation":
        """Inverse of to_record. Raises KeyError/ValueError/TypeError on malformed input."""
        kind = ShapeKind(record["type"])
        vertices = geometry.parse_vertices(record.get("vertices") or "")
        ann = cls(
            id=int(record["id"]),
            kind=kind,
            x=float(record["x"]),
            y=float(record["y"]),
            width=float(record.get("width", 0.0)),
            height=float(record.get("height", 0.0)),
            class_id=int(record.get("class", 1)),
            state=LifecycleState(record.get("state", LifecycleState.MANUAL.value)),
            rotation=float(record.get("rotation", 0.0)),
            vertices=vertices,
            selected=False,
        )
        if kind == ShapeKind.POLYGON and vertices:
            ann.set_bounds(geometry.polygon_bounds(vertices))
        return ann


def snapshot(annotations: Sequence[Annotation]) -> List[Annotation]:
    """Independent deep copy of a collection."""
    return copy.deepcopy(list(annotations))


def next_id_from(annotations: Iterable[Annotation], default_start: int = 1) -> int:
    ids = [a.id for a in annotations]
    return max(ids) + 1 if ids else default_start


class AnnotationCollection:
    """
    The live, ordered annotation list of one image plus its id counter.

    Deleted shapes are kept as Rejected tombstones, so indices stay
    stable; index-based callers must filter on state.
    """

    def __init__(self, annotations: Optional[Iterable[Annotation]] = None, next_id: int = 1):
        self.items: List[Annotation] = list(annotations or [])
        self.next_id = max(next_id, next_id_from(self.items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __getitem__(self, index: int) -> Annotation:
        return self.items[index]

    def get(self, index: int) -> Optional[Annotation]:
        if 0 <= index < len(self.items):
            return self.items[index]
        return None

    def snapshot(self) -> List[Annotation]:
        return snapshot(self.items)

    def replace(self, annotations: Iterable[Annotation]) -> None:
        """Install a collection (undo/redo or navigation), keeping the id counter monotonic."""
        self.items = list(annotations)
        self.next_id = max(self.next_id, next_id_from(self.items))

    def live(self) -> List[Annotation]:
        return [a for a in self.items if not a.is_rejected]

    def selected_indices(self) -> List[int]:
        return [i for i, a in enumerate(self.items) if a.selected]

    def topmost_at(self, x: float, y: float, radius: float = geometry.HIT_RADIUS,
                   kinds: Optional[Iterable[ShapeKind]] = None) -> Optional[int]:
        return geometry.topmost_hit(self.items, x, y, radius, kinds)

    # --- Creation ---

    def _allocate_id(self) -> int:
        new_id = self.next_id
        self.next_id += 1
        return new_id

    def create(self, kind: ShapeKind, geometry_data, class_id: int,
               rotation: float = 0.0) -> Optional[Annotation]:
        """
        Create a Manual annotation and append it.

        `geometry_data` is (x, y) for points, (x, y, w, h) for boxes and a
        vertex list for polygons. Polygons with fewer than 3 vertices are
        not created.
        """
        kind = ShapeKind(kind)
        if kind == ShapeKind.POLYGON:
            vertices = [(float(vx), float(vy)) for vx, vy in geometry_data]
            if len(vertices) < MIN_POLYGON_VERTICES:
                logger.debug(f"Polygon with {len(vertices)} vertices not created.")
                return None
            x, y, w, h = geometry.polygon_bounds(vertices)
            ann = Annotation(self._allocate_id(), kind, x, y, w, h,
                             class_id=class_id, vertices=vertices)
        elif kind == ShapeKind.POINT:
            px, py = geometry_data[:2]
            ann = Annotation(self._allocate_id(), kind, float(px), float(py), class_id=class_id)
        else:
            x, y, w, h = (float(v) for v in geometry_data)
            ann = Annotation(self._allocate_id(), kind, x, y, w, h, class_id=class_id,
                             rotation=rotation if kind == ShapeKind.ROTATED_BOX else 0.0)
        self.items.append(ann)
        logger.debug(f"Created {kind.value} #{ann.id} class={class_id} at {ann.bounds}")
        return ann

    def create_from_drag(self, kind: ShapeKind, anchor, cursor, class_id: int,
                         min_size: float = MIN_BOX_SIZE) -> Optional[Annotation]:
        """
        Gesture-level creation: boxes below min_size in either dimension are
        dropped; points are placed at the release position.
        """
        kind = ShapeKind(kind)
        if kind == ShapeKind.POINT:
            return self.create(kind, cursor, class_id)
        box = geometry.normalize_rect(anchor, cursor)
        if box[2] < min_size or box[3] < min_size:
            logger.debug(f"Drag {box} below minimum size {min_size}, discarded.")
            return None
        return self.create(kind, box, class_id)

    # --- Deletion ---

    def delete_index(self, index: int) -> bool:
        ann = self.get(index)
        if ann is None or ann.is_rejected:
            return False
        ann.reject()
        return True

    def delete_at(self, x: float, y: float, radius: float = geometry.HIT_RADIUS) -> Optional[int]:
        index = self.topmost_at(x, y, radius)
        if index is not None:
            self.items[index].reject()
        return index

    def delete_selected(self) -> int:
        count = 0
        for ann in self.items:
            if ann.selected and not ann.is_rejected:
                ann.reject()
                count += 1
        return count

    # --- Classification ---

    def reclassify_at(self, x: float, y: float, class_id: int,
                      radius: float = geometry.HIT_RADIUS) -> Optional[int]:
        index = self.topmost_at(x, y, radius)
        if index is not None:
            ann = self.items[index]
            ann.class_id = class_id
            ann.mark_edited()
        return index

    def reclassify_selected(self, class_id: int) -> int:
        count = 0
        for ann in self.items:
            if ann.selected and not ann.is_rejected:
                ann.class_id = class_id
                ann.mark_edited()
                count += 1
        return count

    # --- Selection ---

    def select(self, index: int, modifier: str = "plain") -> None:
        """
        Apply a click selection.

        plain: select only `index`; toggle: flip `index`; range: select the
        contiguous span between the last selected shape and `index`
        (falls back to plain when nothing is selected).
        """
        target = self.get(index)
        if target is None or target.is_rejected:
            return
        if modifier == "toggle":
            self.items[index].selected = not self.items[index].selected
            return
        if modifier == "range":
            selected = self.selected_indices()
            if selected:
                anchor = selected[-1]
                start, end = min(anchor, index), max(anchor, index)
                for i in range(start, end + 1):
                    if not self.items[i].is_rejected:
                        self.items[i].selected = True
                return
        for i, ann in enumerate(self.items):
            ann.selected = i == index

    def select_all(self) -> None:
        for ann in self.items:
            ann.selected = not ann.is_rejected

    def deselect_all(self) -> bool:
        changed = False
        for ann in self.items:
            if ann.selected:
                ann.selected = False
                changed = True
        return changed

    # --- Clipboard ---

    def copy_selected(self) -> List[Annotation]:
        return snapshot(a for a in self.items if a.selected and not a.is_rejected)

    def paste(self, copied: Sequence[Annotation], offset: float = PASTE_OFFSET) -> List[Annotation]:
        """
        Append clones of `copied` with fresh ids starting at max-id + 1.

        Lifecycle state is copied as-is; selection is cleared.
        """
        new_id = next_id_from(self.items, 1)
        pasted = []
        for source in copied:
            clone = copy.deepcopy(source)
            clone.id = new_id
            clone.x += offset
            clone.y += offset
            if clone.vertices:
                clone.vertices = [(vx + offset, vy + offset) for vx, vy in clone.vertices]
            clone.selected = False
            self.items.append(clone)
            pasted.append(clone)
            new_id += 1
        self.next_id = max(self.next_id, new_id)
        return pasted

    # --- Resize ---

    def apply_resize(self, index: int, handle: str, original: geometry.Box,
                     cursor_x: float, cursor_y: float) -> bool:
        ann = self.get(index)
        if ann is None or ann.is_rejected or ann.kind not in BOX_KINDS:
            return False
        ann.set_bounds(geometry.resize_box(handle, original, cursor_x, cursor_y))
        ann.mark_edited()
        return True
