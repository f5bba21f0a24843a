from navia.core.decision import build_prompt, parse_decision
from navia.core.types import ActionKind, Decision
from navia.llm.base import LLMRequest
from navia.llm.dummy import DummyLLM

def _ask(iteration: int) -> Decision:
    prompt = build_prompt("read inbox", iteration, 20, [], [])
    d = parse_decision(DummyLLM().generate(LLMRequest(prompt=prompt)))
    assert isinstance(d, Decision)
    return d

def test_dummy_waits_then_completes():
    first = _ask(1)
    assert first.action is ActionKind.WAIT and first.complete is False
    assert "read inbox" in first.thought
    second = _ask(2)
    assert second.complete is True
