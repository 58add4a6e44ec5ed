# src/labelkit/annotation/__init__.py

from .annotator import UnifiedAnnotator
from .editor import AnnotationEditor, CommandResult
from .model import Annotation, AnnotationCollection, LifecycleState, ShapeKind
from .session import DatasetSession
from .store import DatasetEntry, DatasetError, PersistenceError

__all__ = [
    "Annotation",
    "AnnotationCollection",
    "AnnotationEditor",
    "CommandResult",
    "DatasetEntry",
    "DatasetError",
    "DatasetSession",
    "LifecycleState",
    "PersistenceError",
    "ShapeKind",
    "UnifiedAnnotator",
]
