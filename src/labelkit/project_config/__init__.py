"""Project class configuration."""

from .classes import (
    ClassCatalog,
    ClassConfigError,
    ClassDefinition,
    HierarchyNode,
    hierarchy_depth,
    required_hierarchy_depth,
    validate_hierarchy,
)

__all__ = [
    "ClassCatalog",
    "ClassConfigError",
    "ClassDefinition",
    "HierarchyNode",
    "hierarchy_depth",
    "required_hierarchy_depth",
    "validate_hierarchy",
]
