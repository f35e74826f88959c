"""
Data Models Layer.

This package contains the models that define the core data structures
used throughout the application, such as configuration and download tasks.
"""

from .config import SailorConfig
from .task import SearchResult, Task, TaskState

__all__ = ["SailorConfig", "SearchResult", "Task", "TaskState"]
