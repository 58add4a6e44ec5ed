# src/labelkit/annotation/store.py

"""
On-disk formats of a dataset: the manifest, normalized label files and the
full-fidelity state files written next to them.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import cv2

from .model import Annotation, BOX_KINDS, LifecycleState, ShapeKind

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "bmp", "gif")
MANIFEST_NAME = "manifest.json"
STATE_SUFFIX = ".state.json"


class DatasetError(ValueError):
    """The dataset manifest or folder cannot be turned into a dataset."""


class PersistenceError(OSError):
    """A label or state artifact could not be written."""

    def __init__(self, path: Union[str, Path], message: str):
        super().__init__(f"{message}: {path}")
        self.path = Path(path)
        self.message = message


@dataclass(frozen=True)
class DatasetEntry:
    image_path: Path
    labels_path: Optional[Path] = None


@dataclass
class Dataset:
    manifest_path: Optional[Path]
    entries: List[DatasetEntry]
    classes: Optional[Dict[str, Any]] = None


# --- Paths ---

def label_path_for(entry: DatasetEntry) -> Path:
    return entry.labels_path if entry.labels_path is not None else entry.image_path.with_suffix(".txt")


def state_path_for(entry: DatasetEntry) -> Path:
    return label_path_for(entry).with_suffix(STATE_SUFFIX)


# --- Manifest ---

def load_dataset(manifest_path: Union[str, Path]) -> Dataset:
    """Reads a manifest; image and label paths are resolved against its folder."""
    manifest_path = Path(manifest_path)
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DatasetError(f"Failed to read dataset {manifest_path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("images"), list):
        raise DatasetError(f"Dataset {manifest_path} has no 'images' list")

    base_dir = manifest_path.parent
    entries = []
    for item in data["images"]:
        if not isinstance(item, dict) or not item.get("image"):
            logger.warning(f"Skipping malformed manifest entry in {manifest_path}: {item}")
            continue
        labels = item.get("labels")
        entries.append(DatasetEntry(
            image_path=base_dir / item["image"],
            labels_path=base_dir / labels if labels else None,
        ))

    if not entries:
        raise DatasetError("Dataset has no images")

    classes = data.get("classes") if isinstance(data.get("classes"), dict) else None
    logger.info(f"Loaded dataset {manifest_path} with {len(entries)} images")
    return Dataset(manifest_path, entries, classes)


def scan_images(folder: Path) -> List[str]:
    names = [
        p.name for p in folder.iterdir()
        if p.is_file() and p.suffix.lower().lstrip(".") in IMAGE_EXTENSIONS
    ]
    return sorted(names)


def create_dataset_from_folder(folder: Union[str, Path],
                               classes: Optional[Dict[str, Any]] = None) -> Path:
    """
    Writes `manifest.json` for every image in `folder`, each paired with a
    `<stem>.txt` label file. An existing manifest is kept as is.

    Returns the manifest path.
    """
    folder = Path(folder)
    manifest_path = folder / MANIFEST_NAME
    if manifest_path.exists():
        logger.info(f"Using existing manifest {manifest_path}")
        return manifest_path

    try:
        image_names = scan_images(folder)
    except OSError as e:
        raise DatasetError(f"Failed to read folder {folder}: {e}") from e
    if not image_names:
        raise DatasetError(f"No image files found in folder {folder}")

    manifest: Dict[str, Any] = {
        "images": [{"image": name, "labels": Path(name).with_suffix(".txt").name} for name in image_names]
    }
    if classes:
        manifest["classes"] = classes

    atomic_write(manifest_path, json.dumps(manifest, indent=2, ensure_ascii=False))
    logger.info(f"Created dataset manifest {manifest_path} with {len(image_names)} images")
    return manifest_path


# --- Images ---

def image_size(path: Union[str, Path]) -> Optional[Tuple[float, float]]:
    """(width, height) of a decodable image, else None."""
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        return None
    return float(image.shape[1]), float(image.shape[0])


# --- Reading annotations ---

def read_state(path: Path) -> Optional[List[Annotation]]:
    """Full-fidelity records, or None when the file is missing or malformed."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError("state file is not a list of records")
        annotations = [Annotation.from_record(r) for r in records]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring malformed state file {path}: {e}")
        return None
    return annotations


def parse_label_line(line: str, img_size: Tuple[float, float]) -> Optional[Tuple[int, float, float, float, float]]:
    """`class cx cy w h` (normalized, zero-based class) to (class+1, x, y, w, h) in pixels."""
    parts = line.split()
    if len(parts) != 5:
        return None
    try:
        class_id = int(parts[0]) + 1
        cx, cy, w, h = (float(v) for v in parts[1:])
    except ValueError:
        return None
    img_w, img_h = img_size
    abs_w = w * img_w
    abs_h = h * img_h
    return class_id, cx * img_w - abs_w / 2.0, cy * img_h - abs_h / 2.0, abs_w, abs_h


def read_labels(path: Path, img_size: Tuple[float, float], next_id_start: int = 1) -> List[Annotation]:
    """Boxes from a normalized label file, all Pending. Missing file gives []."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Failed to read label file {path}: {e}")
        return []

    annotations = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parsed = parse_label_line(line, img_size)
        if parsed is None:
            logger.warning(f"Skipping malformed label line {line_no} in {path}: {line!r}")
            continue
        class_id, x, y, w, h = parsed
        annotations.append(Annotation(
            id=next_id_start + len(annotations),
            kind=ShapeKind.BOX,
            x=x, y=y, width=w, height=h,
            class_id=class_id,
            state=LifecycleState.PENDING,
        ))
    return annotations


def load_annotations_for_entry(entry: DatasetEntry, img_size: Tuple[float, float],
                               next_id_start: int = 1) -> List[Annotation]:
    """Persisted state first, then the label file, then nothing."""
    state_path = state_path_for(entry)
    annotations = read_state(state_path)
    if annotations is not None:
        logger.debug(f"Loaded {len(annotations)} annotations from {state_path}")
        return annotations
    annotations = read_labels(label_path_for(entry), img_size, next_id_start)
    logger.debug(f"Loaded {len(annotations)} pending boxes for {entry.image_path}")
    return annotations


# --- Writing annotations ---

def format_label_lines(annotations: Iterable[Annotation], img_size: Tuple[float, float]) -> List[str]:
    """Label lines for live boxes; every value is normalized and clamped to [0, 1]."""
    img_w, img_h = img_size
    lines = []
    for ann in annotations:
        if ann.is_rejected or ann.kind not in BOX_KINDS:
            continue
        cx = _clamp01((ann.x + ann.width / 2.0) / img_w)
        cy = _clamp01((ann.y + ann.height / 2.0) / img_h)
        w = _clamp01(ann.width / img_w)
        h = _clamp01(ann.height / img_h)
        class_id = max(ann.class_id - 1, 0)
        lines.append(f"{class_id} {cx:.6f} {cy:.6f} {w:.6f} {h:.6f}")
    return lines


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def write_labels(path: Path, annotations: Sequence[Annotation], img_size: Tuple[float, float]) -> None:
    atomic_write(path, "\n".join(format_label_lines(annotations, img_size)))


def write_state(path: Path, annotations: Sequence[Annotation]) -> None:
    records = [a.to_record() for a in annotations]
    atomic_write(path, json.dumps(records, indent=2, ensure_ascii=False))


def save_entry(entry: DatasetEntry, annotations: Sequence[Annotation],
               img_size: Optional[Tuple[float, float]] = None) -> None:
    """
    Writes the label file and the state file of one entry.

    When the image cannot be decoded the label file is normalized
    against 1x1, which keeps the pixel values.
    """
    if img_size is None:
        img_size = image_size(entry.image_path)
    if img_size is None or img_size[0] <= 0 or img_size[1] <= 0:
        logger.warning(f"Image size unavailable for {entry.image_path}, labels not normalized")
        img_size = (1.0, 1.0)
    write_labels(label_path_for(entry), annotations, img_size)
    write_state(state_path_for(entry), annotations)


def atomic_write(path: Path, content: str) -> None:
    """Write through a temp file and os.replace; failures become PersistenceError."""
    temp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_path, path)
    except OSError as e:
        logger.error(f"Error writing {path}: {e}")
        if temp_path.exists():
            try:
                os.remove(temp_path)
            except OSError:
                logger.error(f"Failed to remove temporary file: {temp_path}")
        raise PersistenceError(path, f"Write failed ({e.strerror or e})") from e
