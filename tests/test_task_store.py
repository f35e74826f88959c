# tests/test_task_store.py

from __future__ import annotations

import random
import threading

import pytest

from sailor_cli.core.task_store import Collection, TaskStore
from sailor_cli.models.task import ALLOWED_TRANSITIONS, TaskState

from .helpers import make_task


def test_add_rejects_ids_tracked_in_either_collection(store: TaskStore) -> None:
    assert store.add(make_task("a"))
    assert store.add(make_task("b"), Collection.STORED)

    assert not store.add(make_task("a"), Collection.STORED)
    assert not store.add(make_task("b"))
    assert len(store) == 2


def test_remove_absent_id_is_noop(store: TaskStore) -> None:
    assert store.remove("missing") is None
    assert store.remove("missing", Collection.STORED) is None


def test_move_leaves_nothing_behind(store: TaskStore) -> None:
    store.add(make_task("a"))
    assert store.move("a", Collection.ACTIVE, Collection.STORED)

    assert store.active() == []
    assert [t.content_id for t in store.stored()] == ["a"]
    assert not store.move("a", Collection.ACTIVE, Collection.STORED)


def test_callers_only_get_copies(store: TaskStore) -> None:
    store.add(make_task("a"))
    copy = store.get("a")
    copy.completed_bytes = 999

    store.for_each_active(lambda t: setattr(t, "name", "changed"))

    current = store.get("a")
    assert current.completed_bytes == 0
    assert current.name == "Item a"


def test_update_refuses_state_writes(store: TaskStore) -> None:
    store.add(make_task("a"))
    with pytest.raises(ValueError):
        store.update("a", state=TaskState.STORED)


def test_transitions_follow_state_machine(store: TaskStore) -> None:
    store.add(make_task("a"))

    assert not store.transition("a", TaskState.STORED)
    assert not store.transition("a", TaskState.COMPLETE)
    assert store.transition("a", TaskState.DOWNLOADING)
    assert store.transition("a", TaskState.COMPLETE)
    assert not store.transition("a", TaskState.FAILED)
    assert store.get("a").state is TaskState.COMPLETE


@pytest.mark.parametrize("start", list(TaskState))
def test_every_rejected_edge_leaves_state_alone(start: TaskState) -> None:
    for target in TaskState:
        store = TaskStore(active=[make_task("a", state=start)])
        changed = store.transition("a", target)
        assert changed == (target in ALLOWED_TRANSITIONS[start])
        assert store.get("a").state is (target if changed else start)


def test_transition_respects_expected_state(store: TaskStore) -> None:
    store.add(make_task("a", state=TaskState.DOWNLOADING))
    assert not store.transition(
        "a", TaskState.COMPLETE, expected=(TaskState.PENDING,)
    )
    assert store.transition(
        "a", TaskState.COMPLETE, expected=(TaskState.DOWNLOADING,)
    )


def test_promote_only_moves_complete_tasks_once(store: TaskStore) -> None:
    store.add(make_task("a", state=TaskState.DOWNLOADING))
    assert store.promote("a") is None

    store.transition("a", TaskState.COMPLETE)
    promoted = store.promote("a")
    assert promoted.state is TaskState.STORED
    assert store.collection_of("a") is Collection.STORED
    assert store.promote("a") is None
    assert len(store.stored()) == 1


def test_reset_replaces_contents(store: TaskStore) -> None:
    store.add(make_task("old"))
    store.reset(active=[make_task("a")], stored=[make_task("b")])

    assert "old" not in store
    assert store.collection_of("a") is Collection.ACTIVE
    assert store.collection_of("b") is Collection.STORED


def test_unknown_fields_are_rejected(store: TaskStore) -> None:
    store.add(make_task("a", state=TaskState.DOWNLOADING))

    with pytest.raises(ValueError, match="completed_byte"):
        store.update("a", completed_byte=10)
    with pytest.raises(ValueError, match="worker_pid"):
        store.transition("a", TaskState.COMPLETE, worker_pid=1)

    task = store.get("a")
    assert task.state is TaskState.DOWNLOADING
    assert not hasattr(task, "completed_byte")


def test_concurrent_updates_and_structural_edits_stay_consistent() -> None:
    polled = [f"poll-{i}" for i in range(16)]
    store = TaskStore(
        active=[make_task(cid, state=TaskState.DOWNLOADING) for cid in polled]
    )
    errors: list[BaseException] = []

    def poller(content_id: str) -> None:
        try:
            for value in range(1, 300):
                # Both fields carry the same value; a torn write would differ.
                store.update(content_id, completed_bytes=value, rate_bytes=value)
                if value % 50 == 0:
                    store.transition(
                        content_id,
                        TaskState.COMPLETE,
                        expected=(TaskState.DOWNLOADING,),
                        completed_bytes=value,
                        rate_bytes=value,
                    )
        except BaseException as e:  # pragma: no cover - surfaced below
            errors.append(e)

    def churner(seed: int) -> None:
        # Cancels, re-adds and promotes the very tasks the pollers write to.
        rng = random.Random(seed)
        try:
            for _ in range(300):
                cid = rng.choice(polled)
                roll = rng.random()
                if roll < 0.4:
                    store.remove(cid)
                elif roll < 0.8:
                    store.add(make_task(cid, state=TaskState.DOWNLOADING))
                else:
                    store.promote(cid)
        except BaseException as e:  # pragma: no cover - surfaced below
            errors.append(e)

    threads = [threading.Thread(target=poller, args=(cid,)) for cid in polled]
    threads += [threading.Thread(target=churner, args=(seed,)) for seed in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    active, stored = store.snapshot_all()
    ids = [t.content_id for t in active + stored]
    assert len(ids) == len(set(ids))
    for task in active:
        assert task.state in (TaskState.DOWNLOADING, TaskState.COMPLETE)
    for task in stored:
        assert task.state is TaskState.STORED
    assert not {t.content_id for t in active} & {t.content_id for t in stored}
    for task in active + stored:
        assert task.completed_bytes == task.rate_bytes
