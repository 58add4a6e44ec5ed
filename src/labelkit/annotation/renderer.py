# src/labelkit/annotation/renderer.py
# -*- coding: utf-8 -*-
import cv2
import numpy as np
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

from ..project_config import ClassCatalog
from .model import Annotation, LifecycleState, ShapeKind

logger = logging.getLogger(__name__)


def placeholder_image(size: Tuple[float, float] = (640.0, 480.0)) -> np.ndarray:
    """Dark frame shown in place of an image that cannot be decoded."""
    width, height = max(int(size[0]), 1), max(int(size[1]), 1)
    image = np.full((height, width, 3), 30, dtype=np.uint8)
    cv2.putText(image, "Image not found", (20, height // 2), cv2.FONT_HERSHEY_DUPLEX,
                0.8, (100, 100, 255), 1, cv2.LINE_AA)
    return image


class AnnotationRenderer:
    """
    Draws an annotation collection over a copy of an image.
    - Shape colour comes from the class catalog (BGR), grey when unknown.
    - Labels have a background matching the shape colour and
      black or white text chosen for contrast.
    - Selected shapes are drawn thicker with a drop shadow.
    - Rejected shapes are not drawn.
    """
    BASE_COLORS = {
        'default': (180, 180, 180),
        'label_text_bright_bg': (10, 10, 15),
        'label_text_dark_bg': (250, 250, 255),
        'shadow': (0, 0, 0),
        'status_bg': (25, 25, 30),
        'status_text': (250, 250, 255),
    }
    LUMINANCE_THRESHOLD = 140
    BOX_THICKNESS_DEFAULT = 1
    BOX_THICKNESS_ACTIVE = 3
    POINT_RADIUS = 4

    def __init__(self, catalog: Optional[ClassCatalog] = None):
        self.catalog = catalog or ClassCatalog()
        self.class_colors: Dict[int, Tuple[int, int, int]] = self.catalog.bgr_colors()
        self.font = cv2.FONT_HERSHEY_DUPLEX
        self.font_scale_small = 0.45
        self.line_type = cv2.LINE_AA

    def _calculate_luminance(self, color_bgr: Tuple[int, int, int]) -> float:
        """Perceived luminance of a BGR colour."""
        b, g, r = (max(0, min(255, c)) for c in color_bgr)
        return 0.114 * b + 0.587 * g + 0.299 * r

    def _get_contrasting_text_color(self, bg_color_bgr: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if self._calculate_luminance(bg_color_bgr) > self.LUMINANCE_THRESHOLD:
            return self.BASE_COLORS['label_text_bright_bg']
        return self.BASE_COLORS['label_text_dark_bg']

    def color_for(self, class_id: int) -> Tuple[int, int, int]:
        return self.class_colors.get(class_id, self.BASE_COLORS['default'])

    def label_for(self, ann: Annotation) -> str:
        label = self.catalog.name_for(ann.class_id)
        if ann.state == LifecycleState.PENDING:
            label += " ?"
        return label

    def draw_frame(self, image: np.ndarray, annotations: Sequence[Annotation],
                   status_text: Optional[str] = None) -> np.ndarray:
        """Returns an annotated BGR copy of `image`."""
        if image is None or image.size == 0:
            logger.error("Cannot draw on an empty image.")
            return placeholder_image()
        if image.ndim == 2:
            overlay = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        elif image.shape[2] == 4:
            overlay = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        else:
            overlay = image.copy()

        for ann in annotations:
            if ann.is_rejected:
                continue
            self._draw_annotation(overlay, ann)

        if status_text:
            self._draw_status(overlay, status_text)
        return overlay

    def _draw_annotation(self, overlay: np.ndarray, ann: Annotation):
        color = self.color_for(ann.class_id)
        thickness = self.BOX_THICKNESS_ACTIVE if ann.selected else self.BOX_THICKNESS_DEFAULT

        if ann.kind == ShapeKind.POINT:
            center = (int(round(ann.x)), int(round(ann.y)))
            if ann.selected:
                cv2.circle(overlay, center, self.POINT_RADIUS + 3, self.BASE_COLORS['shadow'], 1, self.line_type)
            cv2.circle(overlay, center, self.POINT_RADIUS, color, -1, self.line_type)
            anchor = (center[0] + self.POINT_RADIUS, center[1] - self.POINT_RADIUS)
        else:
            points = self._outline(ann)
            if points is None:
                return
            if ann.selected:
                # Drop shadow
                cv2.polylines(overlay, [points + 2], True, self.BASE_COLORS['shadow'], thickness, self.line_type)
            cv2.polylines(overlay, [points], True, color, thickness, self.line_type)
            anchor = (int(points[:, 0].min()), int(points[:, 1].min()))

        self._draw_label(overlay, self.label_for(ann), anchor, color)

    def _outline(self, ann: Annotation) -> Optional[np.ndarray]:
        """Closed outline in pixel coordinates as an int32 (N, 2) array."""
        if ann.kind == ShapeKind.POLYGON:
            if len(ann.vertices) < 3:
                return None
            return np.array(ann.vertices, dtype=np.float32).round().astype(np.int32)
        if ann.width <= 0 or ann.height <= 0:
            return None
        if ann.kind == ShapeKind.ROTATED_BOX and ann.rotation:
            center = (ann.x + ann.width / 2.0, ann.y + ann.height / 2.0)
            corners = cv2.boxPoints((center, (ann.width, ann.height), ann.rotation))
            return corners.round().astype(np.int32)
        x1, y1 = ann.x, ann.y
        x2, y2 = ann.x + ann.width, ann.y + ann.height
        return np.array([[x1, y1], [x2, y1], [x2, y2], [x1, y2]], dtype=np.float32).round().astype(np.int32)

    def _draw_label(self, overlay: np.ndarray, text: str, anchor: Tuple[int, int],
                    bg_color: Tuple[int, int, int]):
        (text_w, text_h), baseline = cv2.getTextSize(text, self.font, self.font_scale_small, 1)
        img_h, img_w = overlay.shape[:2]
        x = max(0, min(anchor[0], img_w - text_w - 4))
        y = anchor[1] - 4
        if y - text_h - baseline < 0:
            y = anchor[1] + text_h + baseline + 4
        cv2.rectangle(overlay, (x, y - text_h - baseline), (x + text_w + 4, y + 2), bg_color, -1)
        cv2.putText(overlay, text, (x + 2, y - baseline + 2), self.font, self.font_scale_small,
                    self._get_contrasting_text_color(bg_color), 1, self.line_type)

    def _draw_status(self, overlay: np.ndarray, text: str):
        img_h, img_w = overlay.shape[:2]
        (_, text_h), baseline = cv2.getTextSize(text, self.font, self.font_scale_small, 1)
        bar_h = text_h + baseline + 10
        cv2.rectangle(overlay, (0, img_h - bar_h), (img_w, img_h), self.BASE_COLORS['status_bg'], -1)
        cv2.putText(overlay, text, (8, img_h - baseline - 4), self.font, self.font_scale_small,
                    self.BASE_COLORS['status_text'], 1, self.line_type)

    def render_to_file(self, image_path: Union[str, Path], annotations: Sequence[Annotation],
                       out_path: Union[str, Path], status_text: Optional[str] = None) -> bool:
        """Decodes `image_path`, draws the overlay and writes it to `out_path`."""
        image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        if image is None:
            logger.warning(f"Image not found: {image_path}. Rendering on a placeholder.")
            image = placeholder_image()
        frame = self.draw_frame(image, annotations, status_text)
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        ok = cv2.imwrite(str(out_path), frame)
        if not ok:
            logger.error(f"Failed to write overlay {out_path}")
        return bool(ok)
