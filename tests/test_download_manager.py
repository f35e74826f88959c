# tests/test_download_manager.py

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from sailor_cli.core.download_manager import DownloadManager
from sailor_cli.exceptions import PersistenceError, SailorError
from sailor_cli.models.task import SearchResult, TaskState
from sailor_cli.storage.state_file import StateFile

from .fakes import FakeRpcClient, FakeSearchClient
from .helpers import make_config, make_task

RESULT = SearchResult(
    content_id="abc",
    name="Big Buck Bunny",
    total_bytes=2048,
    seeders=12,
    leechers=1,
    file_count=1,
)


def _manager(tmp_path: Path, rpc=None, search=None, **overrides) -> DownloadManager:
    config = make_config(tmp_path, max_poll_failures=100, **overrides)
    return DownloadManager(
        config,
        search_client=search or FakeSearchClient([RESULT]),
        rpc_client=rpc or FakeRpcClient(),
    )


@pytest.mark.asyncio
async def test_fresh_session_starts_and_saves_empty_state(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    async with manager:
        view = manager.view()
        assert view.active == [] and view.stored == []

    assert json.loads(manager.config.state_file.read_text(encoding="utf-8")) == []
    assert manager.search_client.closed
    assert manager.rpc.closed


@pytest.mark.asyncio
async def test_corrupt_state_file_starts_empty(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.config.state_file.parent.mkdir(parents=True)
    manager.config.state_file.write_text("{oops", encoding="utf-8")

    async with manager:
        assert manager.view().active == []


@pytest.mark.asyncio
async def test_restore_partitions_dedupes_and_saves_back(tmp_path: Path) -> None:
    rpc = FakeRpcClient()
    rpc.report(7001, completed=512, rate=64)
    manager = _manager(tmp_path, rpc=rpc)
    running = make_task(
        "a", state=TaskState.DOWNLOADING, worker_port=7001, worker_secret="old"
    )
    await StateFile(manager.config.state_file).save(
        [running, make_task("c")],
        [make_task("b", state=TaskState.STORED), make_task("a", name="dup")],
    )

    async with manager:
        view = manager.view()
        assert [t.content_id for t in view.active] == ["a"]
        assert sorted(t.content_id for t in view.stored) == ["b", "c"]
        for _ in range(250):
            if manager.poller.rounds >= 1:
                break
            await asyncio.sleep(0.02)

    # Restored workers are polled with the secret they were started with.
    assert (7001, "old") in rpc.calls
    saved = await StateFile(manager.config.state_file).load()
    assert sorted(t.content_id for t in saved) == ["a", "b", "c"]
    assert next(t for t in saved if t.content_id == "a").completed_bytes == 512


@pytest.mark.asyncio
async def test_download_from_search_results_then_cancel(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    async with manager:
        results = await manager.search("bunny")
        assert results == [RESULT]

        task = await manager.request_download("abc")
        assert task.state is TaskState.DOWNLOADING
        assert manager.store.get("abc").seeders == 12
        assert manager.resolve("AB").content_id == "abc"

        assert await manager.request_cancel("abc")
        assert manager.resolve("ab") is None

    assert await StateFile(manager.config.state_file).load() == []


@pytest.mark.asyncio
async def test_download_requires_a_search_result(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    async with manager:
        with pytest.raises(SailorError):
            manager.request_download("abc")


@pytest.mark.asyncio
async def test_failed_command_is_logged_not_raised(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    async with manager:
        assert await manager.request_retry("missing") is None


@pytest.mark.asyncio
async def test_resolve_needs_a_unique_prefix(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.store.reset([make_task("abc1"), make_task("abc2")], [])
    assert manager.resolve("abc") is None
    assert manager.resolve("ABC2").content_id == "abc2"
    assert manager.resolve("zzz") is None


@pytest.mark.asyncio
async def test_shutdown_reports_unwritable_state(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    manager = _manager(tmp_path, state_file=blocker / "state.json")

    await manager.start()
    with pytest.raises(PersistenceError):
        await manager.shutdown()


@pytest.mark.asyncio
async def test_resume_all_relaunches_restored_pending_tasks(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    await StateFile(manager.config.state_file).save([make_task("abc")], [])

    async with manager:
        assert [t.content_id for t in manager.view().stored] == ["abc"]

        assert await manager.request_resume_all() == 1
        view = manager.view()
        assert [t.content_id for t in view.active] == ["abc"]
        assert view.active[0].state is TaskState.DOWNLOADING
        assert view.stored == []

        assert await manager.request_cancel("abc")
