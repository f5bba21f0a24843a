from .base import LLM, LLMRequest
from .dummy import DummyLLM
from .ollama import OllamaCLI, has_ollama

__all__ = ["LLM", "LLMRequest", "DummyLLM", "OllamaCLI", "has_ollama", "make_planner"]


def make_planner(model: str, *, timeout_sec: float | None = None, kill_switch_path: str | None = None) -> LLM:
    """dummy | <tag Ollama>"""
    if model.lower() == "dummy":
        return DummyLLM()
    return OllamaCLI(model, timeout_sec=timeout_sec, kill_switch_path=kill_switch_path)
