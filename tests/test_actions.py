from navia.agent.actions import ActionExecutor
from navia.browser.dummy import DummySession
from navia.config import Agent
from navia.core.types import ActionKind, Decision, MemoryType
from navia.memory.log import MemoryLog


def _executor(store, **session_kw):
    run = store.create_run("run_act", "goal")
    log = MemoryLog(store, run)
    session = DummySession(**session_kw)
    return ActionExecutor(session, log, Agent()), log, session


def test_each_action_appends_one_entry(store):
    ex, log, session = _executor(store)
    decisions = [
        Decision("t", ActionKind.CLICK, target="#a"),
        Decision("t", ActionKind.TYPE, target="#q", value="abc"),
        Decision("t", ActionKind.NAVIGATE, target="https://example.com"),
        Decision("t", ActionKind.SCROLL),
        Decision("t", ActionKind.WAIT),
    ]
    for d in decisions:
        ex.execute(d)
    assert [e.content for e in log.entries()] == [
        "Clicked on: #a",
        'Typed "abc" into: #q',
        "Navigated to: https://example.com",
        "Scrolled down",
        "Waited 3 seconds",
    ]
    assert all(e.type is MemoryType.ACTION for e in log.entries())
    assert ("wait_fixed", 2000) in session.calls
    assert ("evaluate", "window.scrollBy(0, 500)") in session.calls


def test_failed_and_skipped_actions_are_observations(store):
    ex, log, _ = _executor(store, missing={"#nope"})
    ex.execute(Decision("t", ActionKind.CLICK, target="#nope"))
    ex.execute(Decision("t", ActionKind.CLICK))
    ex.execute(Decision("t", ActionKind.TYPE, target="#q"))
    ex.execute(Decision("t", ActionKind.NAVIGATE, target="ftp://files"))
    entries = log.entries()
    assert all(e.type is MemoryType.OBSERVATION for e in entries)
    assert entries[0].content == "Click failed on #nope: No element matches selector: #nope"
    assert entries[1].content == "Skipped click: no target selector given"
    assert entries[2].content == "Skipped type: target and value are both required"
    assert entries[3].content.startswith("Navigation to ftp://files failed")


def test_unknown_and_bare_complete(store):
    ex, log, _ = _executor(store)
    ex.execute(Decision("t", ActionKind.UNKNOWN, raw_action="hover"))
    ex.execute(Decision("t", ActionKind.COMPLETE))
    assert [e.content for e in log.entries()] == [
        "Unknown action: hover",
        'Action "complete" ignored: the complete flag is not set',
    ]
