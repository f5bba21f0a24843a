import pytest
from navia.core.types import MemoryType
from navia.memory.log import MemoryLog, MemoryLogSealed
from navia.tools.chainlog import ChainLogger

def test_append_counts_and_recent(store):
    run = store.create_run("run_log", "goal")
    log = MemoryLog(store, run)
    for i in range(12):
        log.observation(f"obs {i}")
    log.action("Clicked on: #a")
    assert run.memory_count == 13
    assert run.action_count == 1
    recent = log.recent(10)
    assert len(recent) == 10
    assert recent[-1].content == "Clicked on: #a"
    assert recent[0].content == "obs 3"
    assert [e.id for e in store.list_memories(run_id="run_log")] == [e.id for e in log.entries()]

def test_sealed_log_refuses_entries(store):
    run = store.create_run("run_sealed", "goal")
    log = MemoryLog(store, run)
    log.thought("before")
    log.seal()
    with pytest.raises(MemoryLogSealed):
        log.append("after", MemoryType.THOUGHT)
    assert [m.content for m in store.list_memories(run_id="run_sealed")] == ["before"]

def test_chain_mirror(store, tmp_path):
    run = store.create_run("run_chain", "goal")
    path = tmp_path / "chain.jsonl"
    log = MemoryLog(store, run, chain=ChainLogger(path, secret="s3"))
    log.thought("a")
    log.action("b")
    assert len(path.read_text(encoding="utf-8").splitlines()) == 2
    assert ChainLogger.verify(path, secret="s3") is True
