from __future__ import annotations

from typing import Callable, Dict

from ..browser.base import BrowserSession
from ..config import Agent
from ..core.errors import ActionError
from ..core.types import ActionKind, Decision, MemoryEntry
from ..core.waits import poll_until
from ..memory.log import MemoryLog


class ActionExecutor:
    """
    Traduit une Decision en une opération navigateur.

    Chaque branche ajoute exactement une entrée (action ou observation) ;
    les échecs d'action sont consignés et n'interrompent pas le run.
    """

    def __init__(self, session: BrowserSession, memory: MemoryLog, cfg: Agent) -> None:
        self.session = session
        self.memory = memory
        self.cfg = cfg
        self._handlers: Dict[ActionKind, Callable[[Decision], MemoryEntry]] = {
            ActionKind.CLICK: self._click,
            ActionKind.TYPE: self._type,
            ActionKind.NAVIGATE: self._navigate,
            ActionKind.SCROLL: self._scroll,
            ActionKind.WAIT: self._wait,
            ActionKind.COMPLETE: self._complete,
            ActionKind.UNKNOWN: self._unknown,
        }

    def execute(self, decision: Decision) -> MemoryEntry:
        return self._handlers[decision.action](decision)

    # ------------------------------------------------------------------
    def _sleep(self, seconds: float) -> None:
        self.session.wait_fixed(int(seconds * 1000))

    def _page_ready(self) -> bool:
        try:
            return self.session.evaluate("document.readyState") == "complete"
        except ActionError:
            return False

    def _click(self, d: Decision) -> MemoryEntry:
        if not d.target:
            return self.memory.observation("Skipped click: no target selector given")
        try:
            self.session.click(d.target)
        except ActionError as e:
            return self.memory.observation(f"Click failed on {d.target}: {e}")
        entry = self.memory.action(f"Clicked on: {d.target}")
        # pas de signal de fin fiable après un clic : délai fixe
        if self.cfg.click_settle_ms > 0:
            self.session.wait_fixed(self.cfg.click_settle_ms)
        return entry

    def _type(self, d: Decision) -> MemoryEntry:
        if not d.target or d.value is None:
            return self.memory.observation("Skipped type: target and value are both required")
        try:
            self.session.type(d.target, d.value)
        except ActionError as e:
            return self.memory.observation(f"Typing into {d.target} failed: {e}")
        return self.memory.action(f'Typed "{d.value}" into: {d.target}')

    def _navigate(self, d: Decision) -> MemoryEntry:
        if not d.target:
            return self.memory.observation("Skipped navigate: no target URL given")
        try:
            self.session.navigate(d.target)
        except ActionError as e:
            return self.memory.observation(f"Navigation to {d.target} failed: {e}")
        entry = self.memory.action(f"Navigated to: {d.target}")
        poll_until(self._page_ready, timeout_ms=self.cfg.navigate_settle_ms,
                   interval_ms=self.cfg.ready_poll_ms, sleep=self._sleep)
        return entry

    def _scroll(self, d: Decision) -> MemoryEntry:
        try:
            self.session.evaluate(f"window.scrollBy(0, {int(self.cfg.scroll_offset)})")
        except ActionError as e:
            return self.memory.observation(f"Scroll failed: {e}")
        return self.memory.action("Scrolled down")

    def _wait(self, d: Decision) -> MemoryEntry:
        self.session.wait_fixed(self.cfg.wait_ms)
        return self.memory.action(f"Waited {self.cfg.wait_ms / 1000:g} seconds")

    def _complete(self, d: Decision) -> MemoryEntry:
        # "complete" sans le drapeau complete=true : rien à exécuter
        return self.memory.observation('Action "complete" ignored: the complete flag is not set')

    def _unknown(self, d: Decision) -> MemoryEntry:
        return self.memory.observation(f"Unknown action: {d.raw_action or 'none'}")
