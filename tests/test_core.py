import pytest

from navia.core.types import IllegalTransition, Run, RunStatus
from navia.core.waits import poll_until

def test_run_transitions():
    run = Run(id="run_x", goal="g")
    run.transition(RunStatus.STOPPED)
    assert run.status.terminal
    with pytest.raises(IllegalTransition):
        run.transition(RunStatus.RUNNING)
    assert run.to_dict()["run_id"] == "run_x"

def test_poll_until_observes_condition():
    answers = iter([False, False, True])
    sleeps = []
    assert poll_until(lambda: next(answers), timeout_ms=5000, interval_ms=100, sleep=sleeps.append) is True
    assert sleeps == [0.1, 0.1]

def test_poll_until_zero_timeout_checks_once():
    calls = []
    def pred():
        calls.append(1)
        return False
    assert poll_until(pred, timeout_ms=0, sleep=lambda s: None) is False
    assert calls == [1]
