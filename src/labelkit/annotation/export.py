# src/labelkit/annotation/export.py

"""
Dataset export to COCO JSON and Pascal VOC XML.

Both adapters read annotations through the session cache, so unsaved
edits of the open session are exported as well. Rejected shapes are
never exported.
"""

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..project_config import ClassCatalog
from . import geometry
from .model import Annotation, BOX_KINDS, ShapeKind
from .session import DatasetSession
from .store import atomic_write

logger = logging.getLogger(__name__)

FALLBACK_IMAGE_SIZE = (640, 480)
COCO_FILENAME = "annotations.json"


@dataclass
class ExportResult:
    images_exported: int
    annotations_exported: int
    output: Path


def _export_size(session: DatasetSession, index: int) -> Tuple[int, int]:
    size = session.image_size_for(index)
    if size is None:
        logger.warning(f"Image {session.entries[index].image_path} unreadable, exporting as "
                       f"{FALLBACK_IMAGE_SIZE[0]}x{FALLBACK_IMAGE_SIZE[1]}")
        return FALLBACK_IMAGE_SIZE
    return int(size[0]), int(size[1])


def _live(annotations: List[Annotation]) -> List[Annotation]:
    return [a for a in annotations if not a.is_rejected]


# --- COCO ---

def coco_annotation(ann: Annotation, ann_id: int, image_id: int) -> Optional[Dict[str, Any]]:
    """COCO record for one shape; points become 1x1 boxes, polygons carry a segmentation."""
    record: Dict[str, Any] = {"id": ann_id, "image_id": image_id, "category_id": ann.class_id}
    if ann.kind in BOX_KINDS:
        record["bbox"] = [ann.x, ann.y, ann.width, ann.height]
        record["area"] = ann.width * ann.height
    elif ann.kind == ShapeKind.POINT:
        record["bbox"] = [ann.x, ann.y, 1.0, 1.0]
        record["area"] = 1.0
    elif ann.kind == ShapeKind.POLYGON:
        record["segmentation"] = [[c for vertex in ann.vertices for c in vertex]]
        record["bbox"] = list(geometry.polygon_bounds(ann.vertices))
        record["area"] = geometry.polygon_area(ann.vertices)
    else:
        return None
    record["iscrowd"] = 0
    return record


def build_coco(session: DatasetSession, catalog: ClassCatalog, category_start_id: int = 1) -> Dict[str, Any]:
    """
    COCO dictionary for the whole session. Image and annotation ids are
    1-based; `category_start_id` is the id of the first catalog class.
    """
    now = datetime.now()
    offset = category_start_id - 1
    coco: Dict[str, Any] = {
        "info": {
            "year": now.year,
            "version": "1.0",
            "description": "Dataset exported from labelkit",
            "contributor": "labelkit",
            "date_created": now.strftime("%Y-%m-%d"),
        },
        "images": [],
        "annotations": [],
        "categories": [
            {"id": c.id + offset, "name": c.name, "supercategory": "object"} for c in catalog.classes
        ],
    }

    ann_id = 1
    for index, entry in enumerate(session.entries):
        width, height = _export_size(session, index)
        image_id = index + 1
        coco["images"].append({
            "id": image_id,
            "width": width,
            "height": height,
            "file_name": entry.image_path.name,
        })
        for ann in _live(session.annotations_for(index)):
            record = coco_annotation(ann, ann_id, image_id)
            if record is None:
                continue
            record["category_id"] += offset
            coco["annotations"].append(record)
            ann_id += 1
    return coco


def export_coco(session: DatasetSession, catalog: ClassCatalog, out_dir: Path,
                category_start_id: int = 1) -> ExportResult:
    coco = build_coco(session, catalog, category_start_id)
    out_path = Path(out_dir) / COCO_FILENAME
    atomic_write(out_path, json.dumps(coco, indent=2, ensure_ascii=False))
    logger.info(f"Exported {len(coco['images'])} images with {len(coco['annotations'])} "
                f"annotations to COCO JSON {out_path}")
    return ExportResult(len(coco["images"]), len(coco["annotations"]), out_path)


# --- Pascal VOC ---

def build_voc(filename: str, size: Tuple[int, int], annotations: List[Annotation],
              catalog: ClassCatalog) -> ET.Element:
    """VOC <annotation> element; only box and rotated-box shapes become objects."""
    root = ET.Element("annotation")
    ET.SubElement(root, "folder").text = "images"
    ET.SubElement(root, "filename").text = filename
    ET.SubElement(root, "path").text = ""
    source = ET.SubElement(root, "source")
    ET.SubElement(source, "database").text = "Unknown"
    size_el = ET.SubElement(root, "size")
    ET.SubElement(size_el, "width").text = str(size[0])
    ET.SubElement(size_el, "height").text = str(size[1])
    ET.SubElement(size_el, "depth").text = "3"
    ET.SubElement(root, "segmented").text = "0"

    for ann in annotations:
        if ann.kind not in BOX_KINDS:
            continue
        obj = ET.SubElement(root, "object")
        ET.SubElement(obj, "name").text = catalog.name_for(ann.class_id)
        ET.SubElement(obj, "pose").text = "Unspecified"
        ET.SubElement(obj, "truncated").text = "0"
        ET.SubElement(obj, "difficult").text = "0"
        bndbox = ET.SubElement(obj, "bndbox")
        ET.SubElement(bndbox, "xmin").text = str(int(ann.x))
        ET.SubElement(bndbox, "ymin").text = str(int(ann.y))
        ET.SubElement(bndbox, "xmax").text = str(int(ann.x + ann.width))
        ET.SubElement(bndbox, "ymax").text = str(int(ann.y + ann.height))
    return root


def export_voc(session: DatasetSession, catalog: ClassCatalog, out_dir: Path) -> ExportResult:
    """One `<image stem>.xml` per entry, including entries without objects."""
    out_dir = Path(out_dir)
    total_annotations = 0
    for index, entry in enumerate(session.entries):
        annotations = _live(session.annotations_for(index))
        root = build_voc(entry.image_path.name, _export_size(session, index), annotations, catalog)
        total_annotations += len(root.findall("object"))
        ET.indent(root, space="  ")
        xml_text = ET.tostring(root, encoding="utf-8", xml_declaration=True).decode("utf-8")
        atomic_write(out_dir / entry.image_path.with_suffix(".xml").name, xml_text + "\n")
    logger.info(f"Exported {len(session.entries)} XML files with {total_annotations} "
                f"annotations to Pascal VOC {out_dir}")
    return ExportResult(len(session.entries), total_annotations, out_dir)
