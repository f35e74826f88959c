"""
The download task record and its state machine.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from sailor_cli.utils.formatting import format_duration, format_size, format_speed


class TaskState(str, Enum):
    """Lifecycle states of a download task."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"
    FAILED = "failed"
    STORED = "stored"


# Every legal edge of the state machine; anything else is rejected by the store.
ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.DOWNLOADING}),
    TaskState.DOWNLOADING: frozenset({TaskState.COMPLETE, TaskState.FAILED}),
    TaskState.COMPLETE: frozenset({TaskState.STORED}),
    TaskState.FAILED: frozenset(),
    TaskState.STORED: frozenset(),
}


def can_transition(current: TaskState, new: TaskState) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class SearchResult:
    """A candidate item returned by the torrent index."""

    content_id: str
    name: str
    total_bytes: int
    seeders: int = 0
    leechers: int = 0
    file_count: int = 0

    @property
    def total_size(self) -> str:
        return format_size(self.total_bytes)


@dataclass
class Task:
    """One tracked download or library item, keyed by its info-hash."""

    content_id: str
    name: str
    total_bytes: int = 0
    completed_bytes: int = 0
    rate_bytes: int = 0
    state: TaskState = TaskState.PENDING
    worker_status: str = ""
    worker_port: int | None = None
    worker_group_id: int | None = None
    worker_secret: str | None = field(default=None, repr=False)
    seeders: int = 0
    leechers: int = 0
    file_count: int = 0
    poll_failures: int = field(default=0, repr=False, compare=False)

    # Fields that only make sense while this process is running.
    _VOLATILE = ("poll_failures",)

    @classmethod
    def from_search_result(cls, result: SearchResult) -> "Task":
        return cls(
            content_id=result.content_id,
            name=result.name,
            total_bytes=result.total_bytes,
            seeders=result.seeders,
            leechers=result.leechers,
            file_count=result.file_count,
        )

    @property
    def total_size(self) -> str:
        return format_size(self.total_bytes)

    @property
    def completed_size(self) -> str:
        return format_size(self.completed_bytes)

    @property
    def transfer_rate(self) -> str:
        return format_speed(self.rate_bytes)

    @property
    def progress(self) -> float:
        """Completed fraction in the range 0.0 - 1.0."""
        if self.total_bytes <= 0:
            return 0.0
        return min(self.completed_bytes / self.total_bytes, 1.0)

    @property
    def eta(self) -> str:
        remaining = self.total_bytes - self.completed_bytes
        if remaining <= 0:
            return "0s"
        if self.rate_bytes <= 0:
            return "N/A"
        return format_duration(remaining / self.rate_bytes)

    @property
    def is_transfer_complete(self) -> bool:
        return self.total_bytes > 0 and self.completed_bytes >= self.total_bytes

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in self._VOLATILE:
            data.pop(key, None)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """
        Rebuilds a task from a persisted record.

        Raises:
            KeyError: If the identity fields are missing.
            ValueError: If a field has an unusable value.
        """
        return cls(
            content_id=str(data["content_id"]),
            name=str(data["name"]),
            total_bytes=int(data.get("total_bytes", 0)),
            completed_bytes=int(data.get("completed_bytes", 0)),
            rate_bytes=int(data.get("rate_bytes", 0)),
            state=TaskState(data.get("state", TaskState.PENDING.value)),
            worker_status=str(data.get("worker_status", "")),
            worker_port=data.get("worker_port"),
            worker_group_id=data.get("worker_group_id"),
            worker_secret=data.get("worker_secret"),
            seeders=int(data.get("seeders", 0)),
            leechers=int(data.get("leechers", 0)),
            file_count=int(data.get("file_count", 0)),
        )
