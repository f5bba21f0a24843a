from __future__ import annotations

import threading
from typing import List, Optional

from ..core.types import MemoryEntry, MemoryType, Run
from ..tools.chainlog import ChainLogger
from .db import MemoryDB


class MemoryLogSealed(RuntimeError):
    """Ajout refusé : le run est terminé."""


class MemoryLog:
    """
    Journal append-only des entrées d'un run.

    Chaque ajout est écrit dans le store (et, si configuré, dans le miroir
    chaîné) avant d'être visible ici ; les compteurs du Run suivent. Une fois
    scellé, plus aucune entrée n'est acceptée.
    """

    def __init__(self, store: MemoryDB, run: Run, *, chain: Optional[ChainLogger] = None) -> None:
        self.store = store
        self.run = run
        self.chain = chain
        self._entries: List[MemoryEntry] = []
        self._lock = threading.Lock()
        self._sealed = False

    def append(self, content: str, type: MemoryType | str) -> MemoryEntry:
        mtype = MemoryType(type)
        with self._lock:
            if self._sealed:
                raise MemoryLogSealed(f"run {self.run.id} is closed")
            entry = self.store.append_memory(self.run.id, content, mtype)
            self._entries.append(entry)
            self.run.memory_count += 1
            if mtype is MemoryType.ACTION:
                self.run.action_count += 1
        if self.chain is not None:
            self.chain.append(entry)
        return entry

    def observation(self, content: str) -> MemoryEntry:
        return self.append(content, MemoryType.OBSERVATION)

    def thought(self, content: str) -> MemoryEntry:
        return self.append(content, MemoryType.THOUGHT)

    def action(self, content: str) -> MemoryEntry:
        return self.append(content, MemoryType.ACTION)

    def recent(self, n: int = 10) -> List[MemoryEntry]:
        """Les n dernières entrées, de la plus ancienne à la plus récente."""
        with self._lock:
            return list(self._entries[-n:]) if n > 0 else []

    def entries(self) -> List[MemoryEntry]:
        with self._lock:
            return list(self._entries)

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __len__(self) -> int:
        return len(self._entries)
