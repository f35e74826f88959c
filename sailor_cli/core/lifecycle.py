"""
State transitions that are driven by the user or by terminal task states.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Tuple

from rich.markup import escape

from sailor_cli.core.supervisor import ProcessSupervisor
from sailor_cli.core.task_store import Collection, TaskStore
from sailor_cli.exceptions import DuplicateTaskError, LaunchError
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import SearchResult, Task, TaskState
from sailor_cli.utils.path import task_output_dir

log = logging.getLogger(__name__)


def dedupe_on_load(tasks: Iterable[Task]) -> Tuple[List[Task], List[Task]]:
    """
    Keeps the first task per content id, then splits them into the active
    (downloading) and stored (everything else) collections.
    """
    seen = set()
    active: List[Task] = []
    stored: List[Task] = []
    for task in tasks:
        if task.content_id in seen:
            log.debug(f"Dropping duplicate record for {task.content_id}.")
            continue
        seen.add(task.content_id)
        if task.state is TaskState.DOWNLOADING:
            active.append(task)
        else:
            stored.append(task)
    return active, stored


class LifecycleController:
    """Enqueues, cancels, promotes and removes tasks."""

    def __init__(
        self, config: SailorConfig, store: TaskStore, supervisor: ProcessSupervisor
    ):
        self.config = config
        self.store = store
        self.supervisor = supervisor

    def output_dir(self, task: Task) -> Path:
        return task_output_dir(self.config.download_dir, task.name, task.content_id)

    async def enqueue(self, candidate: SearchResult) -> Task:
        """
        Tracks a search result as a pending task and launches its worker.

        Raises:
            DuplicateTaskError: The content is already tracked.
            LaunchError: The worker could not be started; the task stays pending.
        """
        task = Task.from_search_result(candidate)
        if not self.store.add(task, Collection.ACTIVE):
            raise DuplicateTaskError(f"'{candidate.name}' is already tracked.")
        log.info(f"Queued [bold]{escape(task.name)}[/bold] ({task.total_size})")
        await self.supervisor.launch(task)
        return self.store.get(task.content_id) or task

    async def retry(self, content_id: str) -> Task:
        """
        Launches a pending task. Pending records restored from the state file
        wait in the library and are moved back to the active collection first.

        Raises:
            LaunchError: The task is unknown, not pending, or failed to start.
        """
        task = self.store.get(content_id)
        if task is None or task.state is not TaskState.PENDING:
            raise LaunchError(f"No pending task with id {content_id}.")
        if self.store.collection_of(content_id) is Collection.STORED:
            self.store.move(content_id, Collection.STORED, Collection.ACTIVE)
            log.debug(f"Resuming restored task {content_id}.")
        await self.supervisor.launch(task)
        return self.store.get(content_id) or task

    async def launch_pending(self) -> int:
        """Retries every pending task in either collection; returns how many started."""
        active, stored = self.store.snapshot_all()
        started = 0
        for task in active + stored:
            if task.state is not TaskState.PENDING:
                continue
            try:
                await self.retry(task.content_id)
                started += 1
            except LaunchError as e:
                log.error(f"[red]✗ Couldn't start '{escape(task.name)}': {e}[/red]")
        return started

    async def cancel(self, content_id: str) -> bool:
        """
        Terminates the worker group, deletes the partial download and forgets
        the task. Safe to call for tasks that are already gone.
        """
        task = self.store.remove(content_id, Collection.ACTIVE)
        if task is None:
            return False

        # Removed first so the exit watcher finds nothing to mark as failed.
        self.supervisor.signal_group(task.worker_group_id)
        await self._remove_dir(self.output_dir(task))
        log.info(f"[yellow]✗ Cancelled[/yellow] {escape(task.name)}")
        return True

    async def remove_from_library(self, content_id: str) -> bool:
        """Deletes a stored item's files and drops it from the library."""
        task = self.store.remove(content_id, Collection.STORED)
        if task is None:
            return False

        await self._remove_dir(self.output_dir(task))
        log.info(f"Removed [bold]{escape(task.name)}[/bold] from the library.")
        return True

    async def sweep(self) -> List[Task]:
        """Moves every complete active task into the library, keeping its files."""
        promoted = []
        for task in self.store.active():
            if task.state is not TaskState.COMPLETE:
                continue
            if stored := self.store.promote(task.content_id):
                log.info(f"[green]📚 Added to library:[/] {escape(stored.name)}")
                promoted.append(stored)
        return promoted

    async def _remove_dir(self, directory: Path) -> None:
        if not directory.exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, directory)
        except OSError as e:
            log.warning(f"[yellow]Couldn't clean up '{directory}': {e}[/yellow]")
