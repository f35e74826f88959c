"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SailorError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(SailorError):
    """Raised for issues related to configuration loading or validation."""


class SearchError(SailorError):
    """Raised when the torrent index cannot be queried or returns garbage."""


class WorkerQueryError(SailorError):
    """Raised when a worker's control endpoint is unreachable or rejects a call."""


class PersistenceError(SailorError):
    """Raised when the state file cannot be written or read back."""


class DuplicateTaskError(SailorError):
    """Raised when a download is requested for content that is already tracked."""


class LaunchError(SailorError):
    """
    Base class for failures while starting a worker. The task is left pending
    so the launch can be retried.
    """


class PortAllocationError(LaunchError):
    """Raised when no free local port can be reserved for a worker."""


class DirectoryCreationError(LaunchError):
    """Raised when a task's output directory cannot be created."""


class WorkerSpawnError(LaunchError):
    """Raised when the downloader process cannot be started."""
