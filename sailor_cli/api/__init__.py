"""
Network API Layer.

This package handles communication with the torrent index and with the
control endpoints of running downloader workers.
"""

from .rpc import WorkerRpcClient, WorkerStatus
from .search import SearchClient

__all__ = ["SearchClient", "WorkerRpcClient", "WorkerStatus"]
