"""
The session coordinator: restores state, runs the poller, executes user
commands and saves everything again on shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from rich.markup import escape

from sailor_cli.api.rpc import WorkerRpcClient
from sailor_cli.api.search import SearchClient
from sailor_cli.core.lifecycle import LifecycleController, dedupe_on_load
from sailor_cli.core.poller import ProgressPoller
from sailor_cli.core.supervisor import ProcessSupervisor
from sailor_cli.core.task_store import TaskStore
from sailor_cli.exceptions import PersistenceError, SailorError
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import SearchResult, Task
from sailor_cli.storage.state_file import StateFile

log = logging.getLogger(__name__)


@dataclass
class SessionView:
    """Point-in-time copy of both collections for rendering."""

    active: List[Task] = field(default_factory=list)
    stored: List[Task] = field(default_factory=list)


class DownloadManager:
    """Wires the store, supervisor, poller, lifecycle and state file together."""

    def __init__(
        self,
        config: SailorConfig,
        search_client: Optional[SearchClient] = None,
        rpc_client: Optional[WorkerRpcClient] = None,
        state_file: Optional[StateFile] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ):
        self.config = config
        self.store = TaskStore()
        self.search_client = search_client or SearchClient(
            config.search_url, config.search_timeout
        )
        self.rpc = rpc_client or WorkerRpcClient(config.query_timeout)
        self.state_file = state_file or StateFile(config.state_file)
        self.supervisor = supervisor or ProcessSupervisor(config, self.store)
        self.lifecycle = LifecycleController(config, self.store, self.supervisor)
        self.poller = ProgressPoller(
            config, self.store, self.rpc, after_round=self.lifecycle.sweep
        )
        self.last_results: Dict[str, SearchResult] = {}
        self._pending_commands: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "DownloadManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    async def start(self) -> None:
        """
        Restores the saved task set and starts polling. An unreadable state
        file is logged and the session starts empty.
        """
        try:
            tasks = await self.state_file.load()
        except PersistenceError as e:
            log.error(f"[red]Error loading download data: {e}[/red]")
            tasks = []

        active, stored = dedupe_on_load(tasks)
        self.store.reset(active, stored)
        log.info(
            f"Restored {len(active)} active downloads and {len(stored)} library items."
        )
        await self.poller.start()

    async def shutdown(self) -> None:
        """
        Stops background work and saves state.

        Raises:
            PersistenceError: If the state could not be written.
        """
        await self.poller.stop()
        if self._pending_commands:
            await asyncio.gather(*self._pending_commands, return_exceptions=True)
        await self.supervisor.shutdown()
        await self.search_client.close()
        await self.rpc.close()
        active, stored = self.store.snapshot_all()
        await self.state_file.save(active, stored)
        log.info("Download state saved successfully.")

    def view(self) -> SessionView:
        active, stored = self.store.snapshot_all()
        return SessionView(active=active, stored=stored)

    async def search(self, query: str) -> List[SearchResult]:
        """Searches the index and remembers the results for request_download."""
        results = await self.search_client.search(query)
        self.last_results = {r.content_id: r for r in results}
        return results

    def _spawn(self, coro, description: str) -> asyncio.Task:
        async def runner():
            try:
                return await coro
            except SailorError as e:
                log.error(f"[red]✗ {description} failed: {e}[/red]")
            except Exception as e:
                log.error(f"[red]✗ {description} failed: {e}[/red]", exc_info=True)

        task = asyncio.create_task(runner())
        self._pending_commands.add(task)
        task.add_done_callback(self._pending_commands.discard)
        return task

    def request_download(self, content_id: str) -> asyncio.Task:
        candidate = self.last_results.get(content_id)
        if candidate is None:
            raise SailorError(f"No search result with id {content_id}.")
        return self._spawn(
            self.lifecycle.enqueue(candidate), f"Download of '{escape(candidate.name)}'"
        )

    def request_retry(self, content_id: str) -> asyncio.Task:
        return self._spawn(self.lifecycle.retry(content_id), "Retry")

    def request_resume_all(self) -> asyncio.Task:
        """Relaunches every pending task, including ones restored from disk."""
        return self._spawn(self.lifecycle.launch_pending(), "Resume")

    def request_cancel(self, content_id: str) -> asyncio.Task:
        return self._spawn(self.lifecycle.cancel(content_id), "Cancel")

    def request_library_remove(self, content_id: str) -> asyncio.Task:
        return self._spawn(
            self.lifecycle.remove_from_library(content_id), "Library removal"
        )

    def resolve(self, prefix: str) -> Optional[Task]:
        """Finds a tracked task by a case-insensitive info-hash prefix."""
        prefix = prefix.lower()
        active, stored = self.store.snapshot_all()
        matches = [t for t in active + stored if t.content_id.lower().startswith(prefix)]
        return matches[0] if len(matches) == 1 else None
