"""
TATAME LMS: course catalog and lesson progress tracking.
"""

from .catalog import CourseCatalog
from .progress import ProgressStatus, ProgressTracker

__all__ = ["CourseCatalog", "ProgressStatus", "ProgressTracker"]
