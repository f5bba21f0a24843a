import json
from pathlib import Path
from navia.core.types import MemoryEntry, MemoryType
from navia.tools.chainlog import ChainLogger

def _entry(i: int, content: str) -> MemoryEntry:
    return MemoryEntry(i, "run_x", content, MemoryType.OBSERVATION, f"2026-01-01T00:00:0{i}Z")

def test_chainlog_hmac_verify(tmp_path: Path):
    p = tmp_path / "chain.jsonl"
    cl = ChainLogger(p, secret="testsecret")
    cl.append(_entry(1, "hello"))
    cl.append(_entry(2, "world"))
    assert ChainLogger.verify(p, secret="testsecret") is True
    # wrong secret fails
    assert ChainLogger.verify(p, secret="bad") is False

def test_chainlog_detects_tampering(tmp_path: Path):
    p = tmp_path / "chain.jsonl"
    cl = ChainLogger(p)
    cl.append(_entry(1, "hello"))
    cl.append(_entry(2, "world"))
    lines = p.read_text(encoding="utf-8").splitlines()
    obj = json.loads(lines[0])
    obj["content"] = "HELLO"
    lines[0] = json.dumps(obj)
    p.write_text("\n".join(lines) + "\n", encoding="utf-8")
    assert ChainLogger.verify(p) is False

def test_chainlog_resumes_existing_file(tmp_path: Path):
    p = tmp_path / "chain.jsonl"
    ChainLogger(p).append(_entry(1, "first process"))
    ChainLogger(p).append(_entry(2, "second process"))
    assert ChainLogger.verify(p) is True
