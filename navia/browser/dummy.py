from __future__ import annotations

import io
from typing import Any, Iterable, Optional

from PIL import Image

from ..core.errors import ActionError, FatalError
from .base import BrowserSession


class DummySession(BrowserSession):
    """
    Session déterministe, sans navigateur réel (démo / tests).

    Enregistre chaque appel dans `calls`. Les sélecteurs de `missing`
    provoquent une ActionError ; `broken=True` rend toute observation fatale.
    """

    def __init__(
        self,
        *,
        url: str = "about:blank",
        title: str = "Blank",
        missing: Iterable[str] = (),
        viewport: tuple[int, int] = (1280, 720),
        broken: bool = False,
    ) -> None:
        self.url = url
        self.page_title = title
        self.missing = set(missing)
        self.viewport = viewport
        self.broken = broken
        self.closed = False
        self.calls: list[tuple] = []
        self.typed: dict[str, str] = {}

    def _check(self) -> None:
        if self.closed or self.broken:
            raise FatalError("Browser session is not usable")

    def screenshot(self, timeout_ms: Optional[int] = None) -> bytes:
        self._check()
        self.calls.append(("screenshot",))
        buf = io.BytesIO()
        Image.new("RGB", self.viewport, "white").save(buf, format="PNG")
        return buf.getvalue()

    def title(self) -> str:
        self._check()
        return self.page_title

    def current_url(self) -> str:
        self._check()
        return self.url

    def click(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        self._check()
        self.calls.append(("click", selector))
        if selector in self.missing:
            raise ActionError(f"No element matches selector: {selector}")

    def type(self, selector: str, text: str, timeout_ms: Optional[int] = None) -> None:
        self._check()
        self.calls.append(("type", selector, text))
        if selector in self.missing:
            raise ActionError(f"No element matches selector: {selector}")
        self.typed[selector] = self.typed.get(selector, "") + text

    def navigate(self, url: str) -> None:
        self._check()
        self.calls.append(("navigate", url))
        if not url.startswith(("http://", "https://", "about:")):
            raise ActionError(f"Cannot navigate to: {url}")
        self.url = url
        self.page_title = url.split("://", 1)[-1].split("/", 1)[0] or url

    def evaluate(self, script: str) -> Any:
        self._check()
        self.calls.append(("evaluate", script))
        if script.strip() == "document.readyState":
            return "complete"
        return None

    def wait_fixed(self, ms: int) -> None:
        self._check()
        self.calls.append(("wait_fixed", ms))

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        self._check()
        self.calls.append(("wait_for_selector", selector, timeout_ms))
        return selector not in self.missing

    def close(self) -> None:
        self.closed = True

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]
