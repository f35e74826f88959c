"""
Background loop that polls every running worker for progress.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from rich.markup import escape

from sailor_cli.api.rpc import WorkerRpcClient
from sailor_cli.core.task_store import TaskStore
from sailor_cli.exceptions import WorkerQueryError
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import Task, TaskState

log = logging.getLogger(__name__)


class ProgressPoller:
    """
    Runs one poll round every ``poll_interval`` seconds.

    Each round queries all downloading tasks concurrently. A unit that does
    not answer within ``query_timeout`` is abandoned for that round; errors
    are logged per task and never stop the loop.
    """

    def __init__(
        self,
        config: SailorConfig,
        store: TaskStore,
        rpc: WorkerRpcClient,
        after_round: Optional[Callable[[], Awaitable[object]]] = None,
    ):
        self.config = config
        self.store = store
        self.rpc = rpc
        self.after_round = after_round
        self.rounds = 0
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Starts the polling loop in the background."""
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self.run(), name="progress-poller")
            log.debug("Started progress poller.")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            log.debug("Progress poller stopped.")

    async def run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.poll_round()
                if self.after_round:
                    await self.after_round()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"Poll round failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self.config.poll_interval
                )
            except asyncio.TimeoutError:
                pass

    async def poll_round(self) -> None:
        """Queries every downloading task once."""
        targets = [t for t in self.store.active() if t.state is TaskState.DOWNLOADING]
        self.rounds += 1
        if not targets:
            return
        await asyncio.gather(
            *(self._poll_with_timeout(task) for task in targets),
            return_exceptions=True,
        )

    async def _poll_with_timeout(self, task: Task) -> None:
        try:
            await asyncio.wait_for(self.poll_task(task), timeout=self.config.query_timeout)
        except asyncio.TimeoutError:
            self._record_failure(task, "timed out")
        except Exception as e:
            log.error(f"Unexpected error polling '{task.name}': {e}", exc_info=True)

    async def poll_task(self, task: Task) -> None:
        """Fetches one worker's status and merges it into the store."""
        if task.worker_port is None:
            return
        try:
            statuses = await self.rpc.tell_active(
                task.worker_port, task.worker_secret or self.config.rpc_secret
            )
        except WorkerQueryError as e:
            self._record_failure(task, str(e))
            return

        if not statuses:
            log.debug(
                f"No download info received for {task.name} (Port: {task.worker_port})"
            )
            self.store.update(task.content_id, poll_failures=0)
            return

        status = statuses[0]
        updated = self.store.update(
            task.content_id,
            completed_bytes=status.completed_bytes,
            rate_bytes=status.rate_bytes,
            worker_status=status.status,
            poll_failures=0,
        )
        if updated is None or updated.state is not TaskState.DOWNLOADING:
            return

        log.debug(
            f"• {updated.name} size={updated.total_size} "
            f"downloaded={updated.completed_size} speed={updated.transfer_rate} "
            f"status={updated.worker_status} eta={updated.eta}"
        )
        if updated.is_transfer_complete and self.store.transition(
            task.content_id, TaskState.COMPLETE, expected=(TaskState.DOWNLOADING,)
        ):
            log.info(f"[green]✓ Download complete:[/] {escape(updated.name)}")

    def _record_failure(self, task: Task, reason: str) -> None:
        """
        Counts a failed query. Progress stays as it was; enough consecutive
        failures mark the worker as unreachable.
        """
        current = self.store.get(task.content_id)
        if current is None:
            return
        failures = current.poll_failures + 1
        log.warning(
            f"[yellow]Error fetching download info for {escape(task.name)} "
            f"(Port: {task.worker_port}): {reason}[/yellow]"
        )
        if failures >= self.config.max_poll_failures:
            if self.store.transition(
                task.content_id,
                TaskState.FAILED,
                expected=(TaskState.DOWNLOADING,),
                poll_failures=failures,
            ):
                log.error(
                    f"[red]✗ Worker for '{escape(task.name)}' unreachable after "
                    f"{failures} attempts.[/red]"
                )
            return
        self.store.update(task.content_id, poll_failures=failures)
