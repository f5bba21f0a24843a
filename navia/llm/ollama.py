from __future__ import annotations
import shutil, subprocess
from .base import LLM, LLMRequest
from ..security.kill import check_kill

DEFAULT_KILL_SWITCH = "data/kill.switch"

def has_ollama() -> bool:
    return bool(shutil.which("ollama"))

class OllamaCLI(LLM):
    """
    Appelle 'ollama run <model>' en local (pas d'HTTP).
    Nécessite que le binaire 'ollama' soit sur le PATH.
    """
    def __init__(self, model: str, *, timeout_sec: float | None = None,
                 kill_switch_path: str | None = None, extra: list[str] | None = None):
        self.model = model
        self.timeout_sec = timeout_sec
        self.kill_switch_path = kill_switch_path or DEFAULT_KILL_SWITCH
        self.extra = list(extra or [])

    def generate(self, req: LLMRequest) -> str:
        # respecte le kill-switch global
        check_kill(self.kill_switch_path)
        if not has_ollama():
            raise RuntimeError("Ollama not available ('ollama' binary not found on PATH).")
        cmd = ["ollama", "run", *self.extra, "--format", "json", self.model, req.prompt]
        try:
            p = subprocess.run(
                cmd,
                text=True,
                encoding="utf-8",   # forcer le décodage UTF-8
                errors="replace",   # jamais d'exception si caractère illégal
                capture_output=True,
                timeout=self.timeout_sec,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"ollama run timed out after {self.timeout_sec}s") from e
        if p.returncode != 0:
            raise RuntimeError(f"ollama run failed: {p.stderr.strip() or p.stdout.strip()}")
        return p.stdout.strip()
