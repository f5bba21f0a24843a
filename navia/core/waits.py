from __future__ import annotations
import time
from typing import Callable

def poll_until(predicate: Callable[[], bool], *, timeout_ms: int, interval_ms: int = 100,
               sleep: Callable[[float], None] = time.sleep) -> bool:
    """Interroge `predicate` jusqu'à ce qu'il soit vrai ou que le délai soit écoulé.

    Renvoie True si la condition a été observée, False sinon. Un délai nul
    évalue la condition une seule fois.
    """
    deadline = time.monotonic() + max(0, timeout_ms) / 1000.0
    step = max(1, interval_ms) / 1000.0
    while True:
        if predicate():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        sleep(min(step, remaining))
