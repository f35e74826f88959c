# tests/helpers.py

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from sailor_cli.core.task_store import TaskStore
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import Task, TaskState

# Workers in tests are plain Python processes; the aria2c flags appended by
# the supervisor end up in sys.argv and are ignored.
SLEEPING_WORKER = [sys.executable, "-c", "import time; time.sleep(30)"]
CLEAN_EXIT_WORKER = [sys.executable, "-c", "pass"]
CRASHING_WORKER = [sys.executable, "-c", "import sys; sys.exit(3)"]


def make_config(tmp_path: Path, **overrides) -> SailorConfig:
    values = dict(
        download_dir=tmp_path / "downloads",
        downloader_command=SLEEPING_WORKER,
        poll_interval=0.05,
        query_timeout=0.5,
        max_poll_failures=2,
    )
    values.update(overrides)
    return SailorConfig(**values)


def make_task(content_id: str = "abc", **fields) -> Task:
    values = dict(name=f"Item {content_id}", total_bytes=2048)
    values.update(fields)
    return Task(content_id=content_id, **values)


async def wait_for_state(
    store: TaskStore, content_id: str, state: TaskState, timeout: float = 10.0
) -> Task:
    """Polls the store until the task reaches ``state``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        task = store.get(content_id)
        if task is not None and task.state is state:
            return task
        if loop.time() > deadline:
            raise AssertionError(f"{content_id} never reached {state}: {task}")
        await asyncio.sleep(0.02)
