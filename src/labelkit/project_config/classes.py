"""Class catalog management: class definitions and the key hierarchy."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

MAX_BRANCHING = 5
MAX_DEPTH = 3


class ClassConfigError(ValueError):
    """Raised when a class hierarchy violates its structural limits."""


@dataclass
class ClassDefinition:
    id: int
    name: str
    color: Optional[str] = None  # "#rrggbb"
    shortcut: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.color is not None:
            data["color"] = self.color
        if self.shortcut is not None:
            data["shortcut"] = self.shortcut
        return data


@dataclass
class HierarchyNode:
    """One key in the class picker tree. Leaves carry a class id."""
    key: int
    label: str
    id: Optional[int] = None
    children: List["HierarchyNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HierarchyNode":
        return cls(
            key=int(data["key"]),
            label=str(data.get("label", "")),
            id=int(data["id"]) if data.get("id") is not None else None,
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"key": self.key, "label": self.label}
        if self.id is not None:
            data["id"] = self.id
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


def default_classes() -> List[ClassDefinition]:
    colors = ["#ff0000", "#00ff00", "#0000ff", "#ffff00", "#ff00ff"]
    return [ClassDefinition(i + 1, f"Class {i + 1}", colors[i], str(i + 1)) for i in range(5)]


def hierarchy_depth(nodes: List[HierarchyNode]) -> int:
    """0 for an empty (flat) hierarchy, otherwise the number of levels."""
    if not nodes:
        return 0
    depth = 1
    for node in nodes:
        if node.children:
            depth = max(depth, hierarchy_depth(node.children) + 1)
    return depth


def validate_hierarchy(nodes: List[HierarchyNode]) -> None:
    """Raise ClassConfigError unless every level has <=5 nodes keyed 1-5 and depth <=3."""
    def _check(level_nodes: List[HierarchyNode], level: int) -> None:
        if len(level_nodes) > MAX_BRANCHING:
            raise ClassConfigError(f"Level {level} has {len(level_nodes)} nodes, max {MAX_BRANCHING} allowed")
        for node in level_nodes:
            if not 1 <= node.key <= MAX_BRANCHING:
                raise ClassConfigError(f"Invalid key {node.key} at level {level}, must be 1-{MAX_BRANCHING}")
            if node.children:
                _check(node.children, level + 1)

    _check(nodes, 1)
    depth = hierarchy_depth(nodes)
    if depth > MAX_DEPTH:
        raise ClassConfigError(f"Hierarchy depth is {depth}, max {MAX_DEPTH} allowed")


def required_hierarchy_depth(class_count: int) -> int:
    """Levels needed to reach `class_count` classes with 5 keys per level."""
    if class_count <= 0:
        raise ClassConfigError("No classes defined")
    for depth in range(1, MAX_DEPTH + 1):
        if class_count <= MAX_BRANCHING ** depth:
            return depth
    raise ClassConfigError(f"Too many classes ({class_count}), max {MAX_BRANCHING ** MAX_DEPTH} supported")


def _hex_to_bgr(hex_color: str) -> Optional[Tuple[int, int, int]]:
    value = hex_color.lstrip("#")
    if len(value) != 6:
        return None
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None
    return (b, g, r)


class ClassCatalog:
    """Class definitions plus the optional key hierarchy for one project."""

    def __init__(self, classes: Optional[List[ClassDefinition]] = None,
                 hierarchy: Optional[List[HierarchyNode]] = None):
        self.classes: List[ClassDefinition] = classes if classes is not None else default_classes()
        self.hierarchy: List[HierarchyNode] = hierarchy or []

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ClassCatalog":
        if not data:
            return cls()
        classes = [
            ClassDefinition(
                id=int(c["id"]),
                name=str(c.get("name", f"Class {c['id']}")),
                color=c.get("color"),
                shortcut=str(c["shortcut"]) if c.get("shortcut") is not None else None,
            )
            for c in data.get("classes") or []
        ]
        hierarchy = [HierarchyNode.from_dict(n) for n in data.get("hierarchy") or []]
        return cls(classes or None, hierarchy)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"classes": [c.to_dict() for c in self.classes]}
        if self.hierarchy:
            data["hierarchy"] = [n.to_dict() for n in self.hierarchy]
        return data

    @classmethod
    def load(cls, path: Optional[Union[str, Path]]) -> "ClassCatalog":
        """Load from a YAML file; missing or unparsable files yield the defaults."""
        if path is None:
            return cls()
        path = Path(path).expanduser()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            logger.warning(f"Class config file '{path}' not found. Using defaults.")
            return cls()
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to read class config '{path}': {e}. Using defaults.")
            return cls()
        try:
            return cls.from_dict(data if isinstance(data, dict) else None)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed class config '{path}': {e}. Using defaults.")
            return cls()

    @classmethod
    def from_config(cls, config) -> "ClassCatalog":
        """Catalog for the active project: `classes.config_file` wins over inline `classes`."""
        if config is None:
            return cls()
        config_file = config.get("classes.config_file")
        if config_file:
            return cls.load(config_file)
        project_name = config.get("project.name")
        inline = config.get(f"projects.{project_name}.classes") if project_name else None
        if isinstance(inline, dict):
            return cls.from_dict(inline)
        logger.debug(f"No class configuration for project '{project_name}', using defaults")
        return cls()

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False, allow_unicode=True)
        logger.info(f"Class configuration saved to {path}")

    def get(self, class_id: int) -> Optional[ClassDefinition]:
        for definition in self.classes:
            if definition.id == class_id:
                return definition
        return None

    def name_for(self, class_id: int) -> str:
        definition = self.get(class_id)
        return definition.name if definition else f"Class {class_id}"

    def color_for(self, class_id: int) -> Optional[str]:
        definition = self.get(class_id)
        return definition.color if definition else None

    def bgr_colors(self) -> Dict[int, Tuple[int, int, int]]:
        """Class colours in BGR order for OpenCV drawing."""
        colors = {}
        for definition in self.classes:
            if definition.color:
                bgr = _hex_to_bgr(definition.color)
                if bgr is not None:
                    colors[definition.id] = bgr
        return colors
