from __future__ import annotations
from dataclasses import dataclass

@dataclass
class LLMRequest:
    prompt: str
    max_tokens: int = 1024
    temperature: float = 0.7

class LLM:
    """Planner : prend un prompt, renvoie le texte brut (censé contenir un objet JSON Decision)."""
    def generate(self, req: LLMRequest) -> str:  # pragma: no cover - interface
        raise NotImplementedError
