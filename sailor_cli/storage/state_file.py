"""
Saves and restores the complete task set as a single JSON document.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Iterable, List

import aiofiles

from sailor_cli.exceptions import PersistenceError
from sailor_cli.models.task import Task
from sailor_cli.utils.state_schema import validate_state_records

log = logging.getLogger(__name__)


class StateFile:
    """
    JSON state file holding every active and stored task.

    Writes go to a sibling temporary file which is then renamed over the
    real one, so a crash mid-write leaves the previous state intact.
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()

    @property
    def _tmp_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.tmp")

    async def save(self, active: Iterable[Task], stored: Iterable[Task]) -> None:
        """
        Writes the union of both collections.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        records = [task.to_dict() for task in [*active, *stored]]
        async with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self._tmp_path, "w", encoding="utf-8") as f:
                    await f.write(json.dumps(records, indent=2))
                    await f.flush()
                os.replace(self._tmp_path, self.path)
            except OSError as e:
                raise PersistenceError(
                    f"Couldn't save download state to '{self.path}': {e}"
                ) from e
        log.debug(f"Download state saved successfully ({len(records)} tasks).")

    async def load(self) -> List[Task]:
        """
        Reads every task back. A missing file means a fresh start.

        Raises:
            PersistenceError: If the file is unreadable or malformed.
        """
        async with self._lock:
            if not self.path.is_file():
                log.debug("Download state file does not exist. Starting fresh.")
                return []
            try:
                async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                    raw = await f.read()
            except OSError as e:
                raise PersistenceError(
                    f"Couldn't read download state from '{self.path}': {e}"
                ) from e

        try:
            records = json.loads(raw) if raw.strip() else []
            is_valid, errors = validate_state_records(records)
            if not is_valid:
                raise ValueError("; ".join(errors[:3]))
            tasks = [Task.from_dict(record) for record in records]
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(
                f"Download state file '{self.path}' is corrupt: {e}"
            ) from e

        log.debug(f"Download state loaded successfully ({len(tasks)} tasks).")
        return tasks
