from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config import Browser
from ..core.errors import ActionError, FatalError
from .base import BrowserSession

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class ChromiumSession(BrowserSession):
    """
    Session Chromium pilotée par l'API synchrone de Playwright.

    L'API synchrone est liée au thread qui l'a démarrée : la session doit être
    ouverte, utilisée et fermée dans le thread du run.
    """

    def __init__(self, cfg: Browser) -> None:
        self.cfg = cfg
        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(headless=cfg.headless, args=LAUNCH_ARGS)
            self._context = self._browser.new_context(
                viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
                user_agent=cfg.user_agent,
            )
            self._context.set_default_timeout(cfg.timeout_ms)
            self.page = self._context.new_page()
        except PlaywrightError as e:
            self._pw.stop()
            raise FatalError(f"Failed to launch browser: {e.message}") from e

    def _ensure_open(self) -> None:
        if self.page.is_closed():
            raise FatalError("Browser page is closed")

    @contextmanager
    def _observing(self, what: str) -> Iterator[None]:
        # toute erreur pendant l'observation rend la session inexploitable
        self._ensure_open()
        try:
            yield
        except PlaywrightError as e:
            raise FatalError(f"{what} failed: {e.message}") from e

    @contextmanager
    def _acting(self, what: str) -> Iterator[None]:
        self._ensure_open()
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise ActionError(f"{what} timed out") from e
        except PlaywrightError as e:
            if self.page.is_closed():
                raise FatalError(f"{what} failed: browser page closed") from e
            raise ActionError(f"{what} failed: {e.message}") from e

    def screenshot(self, timeout_ms: Optional[int] = None) -> bytes:
        with self._observing("screenshot"):
            return self.page.screenshot(type="png", timeout=timeout_ms)

    def title(self) -> str:
        with self._observing("title"):
            return self.page.title()

    def current_url(self) -> str:
        self._ensure_open()
        return self.page.url

    def click(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        with self._acting(f"click {selector}"):
            self.page.click(selector, timeout=timeout_ms)

    def type(self, selector: str, text: str, timeout_ms: Optional[int] = None) -> None:
        with self._acting(f"type into {selector}"):
            self.page.type(selector, text, timeout=timeout_ms)

    def navigate(self, url: str) -> None:
        with self._acting(f"navigate to {url}"):
            self.page.goto(url)

    def evaluate(self, script: str) -> Any:
        with self._acting("evaluate"):
            return self.page.evaluate(script)

    def wait_fixed(self, ms: int) -> None:
        self._ensure_open()
        self.page.wait_for_timeout(ms)

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        self._ensure_open()
        try:
            self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise ActionError(f"wait for {selector} failed: {e.message}") from e

    def close(self) -> None:
        try:
            self._context.close()
            self._browser.close()
        finally:
            self._pw.stop()
