"""Visualization of the candidate lineage."""

from .lineage import LineageVisualizer

__all__ = ["LineageVisualizer"]
