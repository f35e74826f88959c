# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from sailor_cli.core.lifecycle import LifecycleController
from sailor_cli.core.supervisor import ProcessSupervisor
from sailor_cli.core.task_store import TaskStore
from sailor_cli.models.config import SailorConfig

from .fakes import FakeRpcClient
from .helpers import make_config


@pytest.fixture()
def config(tmp_path: Path) -> SailorConfig:
    """
    Config pointing at a per-test download directory, with a fast poll
    cadence and a long-sleeping Python process as the worker.
    """
    return make_config(tmp_path)


@pytest.fixture()
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture()
def supervisor(config: SailorConfig, store: TaskStore) -> ProcessSupervisor:
    return ProcessSupervisor(config, store)


@pytest.fixture()
def lifecycle(
    config: SailorConfig, store: TaskStore, supervisor: ProcessSupervisor
) -> LifecycleController:
    return LifecycleController(config, store, supervisor)


@pytest.fixture()
def rpc() -> FakeRpcClient:
    return FakeRpcClient()
