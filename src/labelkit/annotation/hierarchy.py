# src/labelkit/annotation/hierarchy.py

import logging
from typing import List, Optional

from ..project_config.classes import HierarchyNode, MAX_BRANCHING, hierarchy_depth

logger = logging.getLogger(__name__)


class HierarchyNavigator:
    """
    Walks the class picker tree one key press at a time.

    Keys 1-5 descend; reaching a leaf yields its class id and returns the
    cursor to the root. The tree itself is never modified.
    """

    def __init__(self, hierarchy: Optional[List[HierarchyNode]] = None):
        self._hierarchy: List[HierarchyNode] = list(hierarchy or [])
        self._max_depth = hierarchy_depth(self._hierarchy)
        self.path: List[int] = []

    @property
    def is_hierarchical(self) -> bool:
        return bool(self._hierarchy)

    @property
    def current_depth(self) -> int:
        return len(self.path)

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def is_at_root(self) -> bool:
        return not self.path

    def reset(self) -> None:
        self.path.clear()

    def current_level(self) -> List[HierarchyNode]:
        """Nodes visible at the cursor; empty if the path no longer resolves."""
        nodes = self._hierarchy
        for key in self.path:
            node = _find(nodes, key)
            if node is None:
                return []
            nodes = node.children
        return list(nodes)

    def navigate_down(self, key: int) -> Optional[int]:
        """Descend by `key`; returns a class id when a leaf is reached."""
        if not 1 <= key <= MAX_BRANCHING:
            return None
        node = _find(self.current_level(), key)
        if node is None:
            logger.debug(f"No hierarchy node for key {key} at path {self.path}")
            return None
        self.path.append(key)
        if node.is_leaf:
            self.reset()
            return node.id
        return None

    def navigate_up(self) -> None:
        if self.path:
            self.path.pop()

    def handle_key(self, key: int) -> Optional[int]:
        """0 goes up one level, 1-5 descend."""
        if key == 0:
            self.navigate_up()
            return None
        return self.navigate_down(key)

    def breadcrumb(self) -> List[str]:
        labels = []
        nodes = self._hierarchy
        for key in self.path:
            node = _find(nodes, key)
            if node is None:
                break
            labels.append(node.label)
            nodes = node.children
        return labels

    def prompt(self) -> str:
        if not self.path:
            return "Select category (1-5)"
        if self.current_depth < self._max_depth - 1:
            return "Select subcategory (1-5)"
        return "Select class (1-5)"


def _find(nodes: List[HierarchyNode], key: int) -> Optional[HierarchyNode]:
    for node in nodes:
        if node.key == key:
            return node
    return None
