"""Annotation editing and dataset session engine."""

__version__ = "0.1.0"
