"""
Starts one downloader worker per task and watches it until it exits.
"""

import asyncio
import logging
import os
import shlex
import signal
from pathlib import Path
from typing import Callable, Dict, Optional

from rich.markup import escape

from sailor_cli.core.task_store import Collection, TaskStore
from sailor_cli.exceptions import (
    DirectoryCreationError,
    PortAllocationError,
    WorkerSpawnError,
)
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import Task, TaskState
from sailor_cli.utils.path import (
    build_magnet_link,
    create_dir,
    find_free_port,
    task_output_dir,
)

log = logging.getLogger(__name__)


class ProcessSupervisor:
    """
    Launches ``aria2c`` workers in their own process group and records the
    control port and group id on the task.

    Each worker gets an exit watcher that settles the task as complete or
    failed when the process ends, independently of polling.
    """

    def __init__(
        self,
        config: SailorConfig,
        store: TaskStore,
        port_allocator: Callable[[], int] = find_free_port,
    ):
        self.config = config
        self.store = store
        self._port_allocator = port_allocator
        self._watchers: Dict[str, asyncio.Task] = {}

    def build_command(self, task: Task, port: int, download_dir: str) -> list[str]:
        magnet = build_magnet_link(task.content_id, task.name, self.config.trackers)
        return [
            *self.config.downloader_command,
            "--enable-rpc=true",
            f"--rpc-listen-port={port}",
            f"--rpc-secret={self.config.rpc_secret}",
            "--dir",
            download_dir,
            magnet,
        ]

    async def launch(self, task: Task) -> tuple[int, int]:
        """
        Starts the worker for a pending task and flips it to downloading.

        Returns:
            The worker's control port and process-group id.

        Raises:
            PortAllocationError: No free local port.
            DirectoryCreationError: The output directory could not be created.
            WorkerSpawnError: The downloader could not be started.
        """
        current = self.store.get(task.content_id)
        if (
            current is None
            or current.state is not TaskState.PENDING
            or self.store.collection_of(task.content_id) is not Collection.ACTIVE
        ):
            raise WorkerSpawnError(
                f"Task {task.content_id} is not a pending download and cannot be launched."
            )

        try:
            port = self._port_allocator()
        except OSError as e:
            raise PortAllocationError(f"Couldn't find free port: {e}") from e

        download_dir = task_output_dir(
            self.config.download_dir, task.name, task.content_id
        )
        fresh_dir = not download_dir.exists()
        try:
            create_dir(download_dir)
        except OSError as e:
            raise DirectoryCreationError(
                f"Error creating download directory '{download_dir}': {e}"
            ) from e

        cmd = self.build_command(task, port, str(download_dir))
        log.debug(f"Running command: {shlex.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            if fresh_dir:
                self._discard_dir(download_dir)
            raise WorkerSpawnError(f"Failed to start {cmd[0]}: {e}") from e

        # A new session makes the worker the leader of its own group.
        try:
            group_id = os.getpgid(process.pid)
        except ProcessLookupError:
            group_id = process.pid

        launched = self.store.transition(
            task.content_id,
            TaskState.DOWNLOADING,
            expected=(TaskState.PENDING,),
            worker_port=port,
            worker_group_id=group_id,
            worker_secret=self.config.rpc_secret,
        )
        if not launched:
            # Cancelled while we were spawning; don't leave an orphan behind.
            log.debug(f"Task {task.content_id} vanished during launch.")
            self.signal_group(group_id)
            await process.wait()
            raise WorkerSpawnError(
                f"Task {task.content_id} was removed while launching."
            )

        self._watchers[task.content_id] = asyncio.create_task(
            self._watch(task.content_id, task.name, process),
            name=f"watch-{task.content_id[:8]}",
        )
        log.info(
            f"[cyan]▶ Started[/] {escape(task.name)} "
            f"[dim](port {port}, group {group_id})[/dim]"
        )
        return port, group_id

    @staticmethod
    def _discard_dir(directory: Path) -> None:
        try:
            directory.rmdir()
        except OSError as e:
            log.debug(f"Left '{directory}' in place: {e}")

    async def _watch(
        self, content_id: str, name: str, process: asyncio.subprocess.Process
    ) -> None:
        """Marks the task complete on a clean exit and failed otherwise."""
        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            log.debug(f"Exit watcher for {content_id} cancelled.")
            raise
        finally:
            self._watchers.pop(content_id, None)

        if returncode == 0:
            if self.store.transition(
                content_id, TaskState.COMPLETE, expected=(TaskState.DOWNLOADING,)
            ):
                log.info(f"[green]✓ Worker finished:[/] {escape(name)}")
        elif self.store.transition(
            content_id, TaskState.FAILED, expected=(TaskState.DOWNLOADING,)
        ):
            log.error(
                f"[red]✗ Worker for '{escape(name)}' exited with code {returncode}[/red]"
            )

    def signal_group(
        self, group_id: Optional[int], sig: signal.Signals = signal.SIGTERM
    ) -> bool:
        """
        Sends ``sig`` to a whole worker process group without waiting for it.
        Returns False when there was nothing to signal.
        """
        if not group_id or group_id <= 1:
            return False
        try:
            os.killpg(group_id, sig)
            return True
        except ProcessLookupError:
            log.debug(f"Process group {group_id} is already gone.")
        except PermissionError as e:
            log.warning(f"[yellow]Couldn't signal process group {group_id}: {e}[/yellow]")
        return False

    def is_watched(self, content_id: str) -> bool:
        return content_id in self._watchers

    async def shutdown(self) -> None:
        """
        Stops the exit watchers. Workers run in their own session and keep
        downloading; their progress is picked up again on the next start.
        """
        watchers = list(self._watchers.values())
        for watcher in watchers:
            watcher.cancel()
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)
        self._watchers.clear()
