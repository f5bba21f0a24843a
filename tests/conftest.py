import json
import threading
from pathlib import Path

import pytest

from navia.config import default_settings
from navia.llm.base import LLM, LLMRequest
from navia.memory.db import MemoryDB


class ScriptedLLM(LLM):
    """Planner de test : renvoie les réponses dans l'ordre, puis répète la dernière."""
    def __init__(self, responses, *, pause_on=None):
        self.responses = [r if isinstance(r, str) else json.dumps(r) for r in responses]
        self.prompts = []
        self.pause_on = pause_on
        self.reached = threading.Event()
        self.release = threading.Event()

    def generate(self, req: LLMRequest) -> str:
        self.prompts.append(req.prompt)
        n = len(self.prompts)
        if self.pause_on is not None and n == self.pause_on:
            self.reached.set()
            self.release.wait(5)
        return self.responses[min(n, len(self.responses)) - 1]


def make_settings(tmp_path: Path):
    s = default_settings()
    s.general.log_dir = str(tmp_path / "logs")
    s.general.kill_switch_path = str(tmp_path / "kill.switch")
    s.memory.db_path = str(tmp_path / "mem.db")
    s.agent.iteration_delay_ms = 0
    s.agent.click_settle_ms = 0
    s.agent.navigate_settle_ms = 0
    s.agent.wait_ms = 0
    s.tools.timeout_sec = 2.0
    return s


@pytest.fixture
def settings(tmp_path: Path):
    return make_settings(tmp_path)


@pytest.fixture
def store(settings):
    db = MemoryDB(settings.memory.db_path)
    try:
        yield db
    finally:
        db.close()


def make_manager(settings, store, planner, session_factory=None):
    from navia.agent.lifecycle import RunLifecycleManager
    from navia.browser.dummy import DummySession
    return RunLifecycleManager(
        settings, store, session_factory or (lambda: DummySession()), lambda: planner,
    )
