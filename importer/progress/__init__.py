"""Progress reporting."""
from .tracker import ProgressState, ProgressTracker

__all__ = ["ProgressState", "ProgressTracker"]
