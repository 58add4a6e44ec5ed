# src/labelkit/cli.py

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import List, Optional

from .annotation.auto_resize import AutoResizeSettings, auto_resize_from_path
from .annotation.export import export_coco, export_voc
from .annotation.renderer import AnnotationRenderer
from .annotation.session import DatasetSession
from .annotation.store import DatasetError, PersistenceError, create_dataset_from_folder, load_dataset
from .config import ConfigManager, get_config
from .project_config import ClassCatalog
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labelkit", description="Annotation dataset tools.")
    parser.add_argument("--project", type=str, default=None, help="Project name from the configuration")
    parser.add_argument("--config-dir", type=Path, default=None, help="Folder holding default.yaml / local.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Create (or reuse) manifest.json for a folder of images")
    new.add_argument("folder", type=Path)

    summary = sub.add_parser("summary", help="Per-state and per-class counts of a dataset")
    summary.add_argument("manifest", type=Path)

    export = sub.add_parser("export", help="Export a dataset to COCO JSON or Pascal VOC XML")
    export.add_argument("manifest", type=Path)
    export.add_argument("--format", choices=("coco", "voc"), default="coco")
    export.add_argument("--out", type=Path, required=True, help="Output folder")

    render = sub.add_parser("render", help="Draw one image's annotations to a PNG")
    render.add_argument("manifest", type=Path)
    render.add_argument("--index", type=int, default=0)
    render.add_argument("--out", type=Path, required=True)

    resize = sub.add_parser("auto-resize", help="Snap a box to the image edges")
    resize.add_argument("image", type=Path)
    resize.add_argument("x", type=float)
    resize.add_argument("y", type=float)
    resize.add_argument("w", type=float)
    resize.add_argument("h", type=float)
    return parser


def _catalog_for(manifest: Path, config) -> ClassCatalog:
    dataset = load_dataset(manifest)
    if dataset.classes:
        return ClassCatalog.from_dict(dataset.classes)
    return ClassCatalog.from_config(config)


def cmd_new(args, config) -> int:
    catalog = ClassCatalog.from_config(config)
    manifest = create_dataset_from_folder(args.folder, catalog.to_dict())
    print(manifest)
    return 0


def cmd_summary(args, config) -> int:
    session = DatasetSession.open(args.manifest)
    catalog = _catalog_for(args.manifest, config)
    states: Counter = Counter()
    classes: Counter = Counter()
    for index in range(len(session)):
        for ann in session.annotations_for(index):
            states[ann.state.value] += 1
            if not ann.is_rejected:
                classes[catalog.name_for(ann.class_id)] += 1

    print(f"Images: {len(session)}")
    for state, count in sorted(states.items()):
        print(f"  {state}: {count}")
    for name, count in sorted(classes.items()):
        print(f"  class {name}: {count}")
    return 0


def cmd_export(args, config) -> int:
    session = DatasetSession.open(args.manifest)
    catalog = _catalog_for(args.manifest, config)
    if args.format == "coco":
        result = export_coco(session, catalog, args.out,
                             config.get_int("export.coco_category_start_id", 1))
    else:
        result = export_voc(session, catalog, args.out)
    print(f"Exported {result.images_exported} images with {result.annotations_exported} annotations to {result.output}")
    return 0


def cmd_render(args, config) -> int:
    session = DatasetSession.open(args.manifest)
    if not 0 <= args.index < len(session):
        logger.error(f"Index {args.index} out of range (dataset has {len(session)} images)")
        return 1
    renderer = AnnotationRenderer(_catalog_for(args.manifest, config))
    entry = session.entries[args.index]
    ok = renderer.render_to_file(entry.image_path, session.annotations_for(args.index), args.out,
                                 f"{args.index + 1}/{len(session)} {entry.image_path.name}")
    return 0 if ok else 1


def cmd_auto_resize(args, config) -> int:
    box = auto_resize_from_path(args.image, (args.x, args.y, args.w, args.h),
                                settings=AutoResizeSettings.from_config(config))
    if box is None:
        print(f"Auto-resize: failed to process {args.image}", file=sys.stderr)
        return 1
    print(" ".join(f"{v:.1f}" for v in box))
    return 0


COMMANDS = {
    "new": cmd_new,
    "summary": cmd_summary,
    "export": cmd_export,
    "render": cmd_render,
    "auto-resize": cmd_auto_resize,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.project or args.config_dir:
        config = ConfigManager(project_name=args.project, config_dir=args.config_dir)
    else:
        config = get_config()
    setup_logging(config)

    try:
        return COMMANDS[args.command](args, config)
    except DatasetError as e:
        logger.error(f"Dataset error: {e}")
        return 1
    except PersistenceError as e:
        logger.error(f"Write failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
