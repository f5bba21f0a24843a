from __future__ import annotations
from typing import Any, Optional

class BrowserSession:
    """
    Contrat du contrôleur de session navigateur consommé par la boucle.

    Les implémentations lèvent ActionError pour un échec ponctuel
    (sélecteur absent, navigation ratée) et FatalError quand la session
    n'est plus utilisable. `timeout_ms` (None = délai par défaut de la
    session) borne les appels faits pour le compte d'un outil.
    """
    def screenshot(self, timeout_ms: Optional[int] = None) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    def title(self) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def current_url(self) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def click(self, selector: str, timeout_ms: Optional[int] = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def type(self, selector: str, text: str, timeout_ms: Optional[int] = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def navigate(self, url: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def evaluate(self, script: str) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def wait_fixed(self, ms: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:
        pass
