from __future__ import annotations
from typing import Callable

from ..config import Browser
from .base import BrowserSession
from .dummy import DummySession

BROWSERS = ["dummy", "chromium"]

__all__ = ["BrowserSession", "DummySession", "BROWSERS", "make_session_factory"]


def make_session_factory(kind: str, cfg: Browser) -> Callable[[], BrowserSession]:
    """dummy | chromium ; la session est ouverte par le thread du run."""
    if kind == "dummy":
        return lambda: DummySession(viewport=(cfg.viewport_width, cfg.viewport_height))
    if kind == "chromium":
        # import tardif : Playwright n'est requis que pour un vrai navigateur
        from .chromium import ChromiumSession
        return lambda: ChromiumSession(cfg)
    raise ValueError(f"Unknown browser kind: {kind!r} (expected one of {BROWSERS})")
