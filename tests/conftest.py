"""
Shared test fixtures.

Images are written with cv2 into tmp_path so every test works on real
files without touching the repository.
"""

import json
from pathlib import Path

import cv2
import numpy as np
import pytest


def write_image(path: Path, width: int = 200, height: int = 100, value: int = 0) -> Path:
    image = np.full((height, width, 3), value, dtype=np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def edge_image_path(tmp_path: Path) -> Path:
    """200x200 black image with a white rectangle spanning x 60-139, y 50-149."""
    image = np.zeros((200, 200), dtype=np.uint8)
    image[50:150, 60:140] = 255
    path = tmp_path / "edges.png"
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def dataset_dir(tmp_path: Path) -> Path:
    """Three 200x100 images and a manifest; only the first has a label file."""
    folder = tmp_path / "dataset"
    for name in ("a.png", "b.png", "c.png"):
        write_image(folder / name)
    (folder / "a.txt").write_text("0 0.5 0.5 0.5 0.5\n2 0.25 0.25 0.1 0.2\n", encoding="utf-8")
    manifest = {
        "images": [
            {"image": "a.png", "labels": "a.txt"},
            {"image": "b.png", "labels": "b.txt"},
            {"image": "c.png", "labels": None},
        ]
    }
    (folder / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    return folder


@pytest.fixture
def manifest_path(dataset_dir: Path) -> Path:
    return dataset_dir / "manifest.json"


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Minimal configs/ folder with two projects."""
    folder = tmp_path / "configs"
    folder.mkdir()
    (folder / "default.yaml").write_text(
        """
active_project: alpha
annotation:
  hit_radius: 10
  min_box_size: 5
history:
  max_depth: 50
session:
  auto_save_interval_seconds: 5
logging:
  level: INFO
  file: false
paths:
  data: "data/{project.name}"
  logs: "logs/{project.name}/labelkit.log"
projects:
  alpha:
    description: "Alpha project"
    annotation:
      min_box_size: 8
  beta:
    description: "Beta project"
    history:
      max_depth: 10
    classes:
      classes:
        - {id: 1, name: "cat", color: "#ff0000"}
        - {id: 2, name: "dog", color: "#00ff00"}
""",
        encoding="utf-8",
    )
    return folder
