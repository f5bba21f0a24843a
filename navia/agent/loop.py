from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Callable, List, Optional

from PIL import Image, UnidentifiedImageError

from ..browser.base import BrowserSession
from ..config import Settings
from ..core.decision import build_prompt, parse_decision
from ..core.errors import ToolError
from ..core.types import Decision, LoopOutcome, RunStatus, Tool, Unparseable
from ..llm.base import LLM, LLMRequest
from ..memory.log import MemoryLog
from ..security.kill import check_kill
from ..tools.registry import ToolRegistry
from ..tools.sandbox import execute_tool
from .actions import ActionExecutor


def describe_screenshot(png: bytes) -> str:
    try:
        with Image.open(io.BytesIO(png)) as img:
            w, h = img.size
        return f"{w}x{h}"
    except (UnidentifiedImageError, OSError):
        return f"{len(png)} bytes, unreadable"


class DecisionLoop:
    """
    Boucle percevoir / décider / agir d'un run.

    Un seul thread, aucune itération concurrente. L'arrêt est coopératif :
    `cancel` n'est examiné qu'aux frontières d'itération, l'itération en
    cours se termine toujours.
    """

    def __init__(
        self,
        goal: str,
        session: BrowserSession,
        planner: LLM,
        registry: ToolRegistry,
        memory: MemoryLog,
        settings: Settings,
        *,
        cancel: Optional[threading.Event] = None,
        on_task: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.goal = goal
        self.session = session
        self.planner = planner
        self.registry = registry
        self.memory = memory
        self.settings = settings
        self.cfg = settings.agent
        self.cancel = cancel or threading.Event()
        self.on_task = on_task or (lambda text: None)
        self.executor = ActionExecutor(session, memory, self.cfg)
        self.iterations = 0

    # ------------------------------------------------------------------
    def run(self) -> LoopOutcome:
        cap = max(1, int(self.cfg.max_iterations))
        try:
            self.memory.thought(f"Agent started with goal: {self.goal}")
            tools = self._tools()
            self.memory.observation(f"Loaded {len(tools)} available tools")

            for i in range(1, cap + 1):
                if self.cancel.is_set():
                    return self._stopped()
                check_kill(self.settings.general.kill_switch_path)

                self.iterations = i
                if self._iterate(i, cap):
                    return LoopOutcome(RunStatus.COMPLETED, iterations=i)

                if self.cancel.is_set():
                    return self._stopped()
                if i < cap and self.cfg.iteration_delay_ms > 0:
                    self.session.wait_fixed(self.cfg.iteration_delay_ms)

            self.memory.thought("Agent reached maximum iterations limit")
            return LoopOutcome(RunStatus.COMPLETED, iterations=cap, notes=["iteration cap reached"])

        except Exception as e:
            message = str(e) or type(e).__name__
            self.memory.observation(f"Agent execution error: {message}")
            return LoopOutcome(RunStatus.ERROR, iterations=self.iterations, error_message=message)

    def _stopped(self) -> LoopOutcome:
        self.memory.observation("Agent stopped by user")
        return LoopOutcome(RunStatus.STOPPED, iterations=self.iterations)

    def _tools(self) -> List[Tool]:
        if not self.settings.tools.enabled:
            return []
        return self.registry.active_tools()

    # ------------------------------------------------------------------
    def _observe(self, i: int) -> tuple[str, str]:
        png = self.session.screenshot()
        title = self.session.title()
        url = self.session.current_url()
        if self.cfg.screenshot_dir:
            out = Path(self.cfg.screenshot_dir) / self.memory.run.id / f"step_{i:03d}.png"
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(png)
        self.memory.observation(f"Current page: {title} ({url}) [screenshot {describe_screenshot(png)}]")
        return title, url

    def _iterate(self, i: int, cap: int) -> bool:
        """Une itération complète ; renvoie True si l'objectif est déclaré atteint."""
        self.on_task(f"Iteration {i}/{cap}: observing page")
        title, url = self._observe(i)

        tools = self._tools()
        prompt = build_prompt(
            self.goal, i, cap, self.memory.recent(self.cfg.context_window), tools,
            page_title=title, page_url=url,
        )

        self.on_task(f"Iteration {i}/{cap}: waiting for planner")
        raw = self.planner.generate(
            LLMRequest(prompt=prompt, max_tokens=self.settings.llm.max_tokens,
                       temperature=self.settings.llm.temperature)
        )
        self.memory.thought(f"Planner response: {raw}")

        parsed = parse_decision(raw)
        if isinstance(parsed, Unparseable):
            self.memory.observation(f"Failed to parse planner response: {parsed.reason}")
            return False

        self.memory.thought(f"Decision: {parsed.thought}")
        if parsed.complete:
            self.memory.thought("Agent completed successfully")
            return True

        self.on_task(f"Iteration {i}/{cap}: {parsed.action.value}")
        self.executor.execute(parsed)
        if parsed.tool:
            self._run_tool(parsed, i)
        return False

    def _run_tool(self, d: Decision, i: int) -> None:
        name = d.tool or ""
        if not self.settings.tools.enabled:
            self.memory.observation(f"Tool execution disabled, skipped: {name}")
            return
        tool = self.registry.resolve(name)
        if tool is None:
            self.memory.observation(f"Tool not found or inactive: {name}")
            return
        self.on_task(f"Iteration {i}: running tool {name}")
        try:
            execute_tool(
                tool, self.session, self.memory,
                goal=self.goal, iteration=i, target=d.target, value=d.value,
                timeout_sec=self.settings.tools.timeout_sec, recent=self.cfg.context_window,
            )
        except ToolError as e:
            self.memory.observation(f"Tool execution error: {e}")
            return
        self.memory.action(f"Executed tool: {name}")
