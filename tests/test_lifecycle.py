import re

import pytest

from conftest import ScriptedLLM, make_manager
from navia.agent.lifecycle import new_run_id
from navia.browser.dummy import DummySession
from navia.core.errors import ConflictError, ValidationError
from navia.core.types import RunStatus
from navia.llm.dummy import DummyLLM
from navia.tools.chainlog import ChainLogger

WAIT = {"thought": "keep waiting", "action": "wait", "complete": False}
DONE = {"thought": "goal reached", "action": "complete", "complete": True}


def test_run_id_format():
    assert re.fullmatch(r"run_[0-9a-z]+_[0-9a-z]{5}", new_run_id())
    assert new_run_id() != new_run_id()


def test_idle_status(settings, store):
    manager = make_manager(settings, store, DummyLLM())
    assert manager.get_status() == {"status": "idle", "current_task": "No agent running", "run_id": None}
    with pytest.raises(ConflictError):
        manager.stop()


@pytest.mark.parametrize("goal", ["", "   ", None, 42, "x" * 1001])
def test_invalid_goal_rejected(settings, store, goal):
    manager = make_manager(settings, store, DummyLLM())
    with pytest.raises(ValidationError):
        manager.start(goal)
    assert store.count_runs() == 0
    assert manager.get_status()["status"] == "idle"


def test_dummy_run_completes(settings, store):
    manager = make_manager(settings, store, DummyLLM())
    run_id = manager.start("read inbox")
    assert manager.wait(5)

    st = manager.get_status()
    assert st == {"status": "completed", "current_task": "Execution completed", "run_id": run_id}

    run = store.get_run(run_id)
    assert run.status is RunStatus.COMPLETED
    assert run.end_time is not None and run.error_message is None

    memories = store.list_memories(run_id=run_id)
    assert memories[0].content == "Agent started with goal: read inbox"
    assert memories[-1].content == "Agent completed successfully"
    assert run.memory_count == len(memories)
    assert run.action_count == sum(m.type.value == "action" for m in memories)


def test_second_start_conflicts_while_running(settings, store):
    planner = ScriptedLLM([DONE], pause_on=1)
    manager = make_manager(settings, store, planner)
    first = manager.start("first goal")
    assert planner.reached.wait(5)
    with pytest.raises(ConflictError, match="already running"):
        manager.start("second goal")
    planner.release.set()
    assert manager.wait(5)
    assert store.count_runs() == 1

    # un nouveau run est possible une fois le précédent terminé
    second = manager.start("second goal")
    assert second != first
    assert manager.wait(5)
    assert manager.get_status()["status"] == "completed"


def test_stop_is_observed_at_iteration_boundary(settings, store):
    planner = ScriptedLLM([WAIT], pause_on=5)
    manager = make_manager(settings, store, planner)
    run_id = manager.start("watch the page")
    assert planner.reached.wait(5)

    manager.stop()
    st = manager.get_status()
    assert st["status"] == "running" and st["current_task"] == "Stop requested"
    manager.stop()  # idempotent tant que le run n'a pas observé l'arrêt

    planner.release.set()
    assert manager.wait(5)
    st = manager.get_status()
    assert st["status"] == "stopped" and st["current_task"] == "Agent stopped"

    memories = store.list_memories(run_id=run_id)
    assert sum(m.content.startswith("Current page:") for m in memories) == 5
    assert memories[-1].content == "Agent stopped by user"
    assert len(planner.prompts) == 5
    with pytest.raises(ConflictError):
        manager.stop()


def test_session_failure_marks_error(settings, store):
    def broken_factory():
        raise RuntimeError("no browser available")

    manager = make_manager(settings, store, DummyLLM(), session_factory=broken_factory)
    run_id = manager.start("anything")
    assert manager.wait(5)
    st = manager.get_status()
    assert st["status"] == "error" and st["current_task"] == "Agent encountered an error"
    run = store.get_run(run_id)
    assert run.error_message == "no browser available"
    assert store.list_memories(run_id=run_id)[-1].content == "Agent error: no browser available"


def test_interrupted_runs_are_failed_on_startup(settings, store):
    store.create_run("run_stale", "left over")
    make_manager(settings, store, DummyLLM())
    assert store.get_run("run_stale").status is RunStatus.ERROR


def test_memory_mirrored_to_chain(settings, store, tmp_path):
    settings.memory.audit_chain_path = str(tmp_path / "chain.jsonl")
    settings.security.chain_secret = "k"
    manager = make_manager(settings, store, DummyLLM())
    run_id = manager.start("read inbox")
    assert manager.wait(5)
    lines = (tmp_path / "chain.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == len(store.list_memories(run_id=run_id))
    assert ChainLogger.verify(tmp_path / "chain.jsonl", secret="k") is True


def test_run_events_logged(settings, store, tmp_path):
    manager = make_manager(settings, store, DummyLLM())
    run_id = manager.start("read inbox")
    assert manager.wait(5)
    text = (tmp_path / "logs" / "navia.log").read_text(encoding="utf-8")
    assert f"run {run_id} started: read inbox" in text
    assert f"run {run_id} finished: completed" in text


def test_stop_after_loop_end_keeps_outcome(settings, store, tmp_path):
    holder = {}

    class StopOnClose(DummySession):
        def close(self):
            # le loop a déjà rendu son issue : l'arrêt arrive trop tard
            holder["manager"].stop()
            super().close()

    manager = make_manager(settings, store, DummyLLM(), session_factory=StopOnClose)
    holder["manager"] = manager
    run_id = manager.start("read inbox")
    assert manager.wait(5)
    assert manager.get_status() == {"status": "completed", "current_task": "Execution completed", "run_id": run_id}
    text = (tmp_path / "logs" / "navia.log").read_text(encoding="utf-8")
    assert f"run {run_id} stop requested" in text
    assert "[stop requested after the loop finished]" in text


def test_cap_note_logged(settings, store, tmp_path):
    settings.agent.max_iterations = 1
    manager = make_manager(settings, store, ScriptedLLM([WAIT]))
    run_id = manager.start("watch the page")
    assert manager.wait(5)
    text = (tmp_path / "logs" / "navia.log").read_text(encoding="utf-8")
    assert f"run {run_id} finished: completed after 1 iteration(s) [iteration cap reached]" in text
