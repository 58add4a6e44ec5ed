# src/labelkit/annotation/state.py

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .model import Annotation, ShapeKind

Box = Tuple[float, float, float, float]


@dataclass
class ViewState:
    """Pan offset and zoom factor of the image display."""
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = 1.0

    def normalized(self) -> "ViewState":
        """Copy with a usable zoom; non-positive or non-finite zoom becomes 1.0."""
        zoom = self.zoom
        if not math.isfinite(zoom) or zoom <= 0:
            zoom = 1.0
        return ViewState(self.pan_x, self.pan_y, float(zoom))

    @classmethod
    def fit(cls, image_size: Tuple[float, float], viewport_size: Tuple[float, float]) -> "ViewState":
        """View that fits the whole image in the viewport, centered."""
        img_w, img_h = image_size
        view_w, view_h = viewport_size
        if img_w <= 0 or img_h <= 0 or view_w <= 0 or view_h <= 0:
            return cls()
        zoom = min(view_w / img_w, view_h / img_h)
        return cls((view_w - img_w * zoom) / 2.0, (view_h - img_h * zoom) / 2.0, zoom)


@dataclass
class ResizeState:
    """What was grabbed at the start of a resize drag."""
    index: int = -1
    handle: str = ""
    original: Box = (0.0, 0.0, 0.0, 0.0)

    @property
    def active(self) -> bool:
        return self.index >= 0


@dataclass
class EditorState:
    """
    Transient gesture and UI state of the editor.

    Nothing here is persisted; it is reset on every image change.
    """
    # Active tool and class for new shapes
    current_tool: ShapeKind = ShapeKind.BOX
    current_class: int = 1

    # Drag drawing (image coordinates)
    drawing: bool = False
    start_point: Optional[Tuple[float, float]] = None

    # Polygon being collected
    polygon_vertices: List[Tuple[float, float]] = field(default_factory=list)

    # Handle drag
    resize: ResizeState = field(default_factory=ResizeState)

    # Copy buffer, kept across image changes
    clipboard: List[Annotation] = field(default_factory=list)

    # Last human-readable notification
    status_text: str = "Ready"

    def reset_drawing(self):
        """Resets the drag-drawing state."""
        self.drawing = False
        self.start_point = None

    def reset_polygon(self):
        self.polygon_vertices = []

    def reset_resize(self):
        self.resize = ResizeState()

    def reset_gestures(self):
        """Drops every in-flight gesture; the clipboard survives."""
        self.reset_drawing()
        self.reset_polygon()
        self.reset_resize()
