from __future__ import annotations
import json, re
from .base import LLM, LLMRequest

class DummyLLM(LLM):
    """
    Planner déterministe pour tests/démo.
    Attend une itération (action "wait"), puis déclare l'objectif atteint.
    """
    def generate(self, req: LLMRequest) -> str:
        m = re.search(r'goal is: "(.*?)"', req.prompt)
        goal = (m.group(1) if m else req.prompt.strip().splitlines()[0])[:200]
        it = re.search(r"Iteration: (\d+)/", req.prompt)
        first = it is None or it.group(1) == "1"
        if first:
            decision = {"thought": f"Observe the page before working on: {goal}", "action": "wait", "complete": False}
        else:
            decision = {"thought": f"Nothing left to do for: {goal}", "action": "complete", "complete": True}
        return json.dumps(decision, ensure_ascii=False)
