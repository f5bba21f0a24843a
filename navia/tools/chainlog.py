from __future__ import annotations
from dataclasses import dataclass, asdict
from hashlib import sha256
import hmac, json, threading
from pathlib import Path
from typing import Optional

from ..core.types import MemoryEntry

GENESIS = "0" * 64
_FIELDS = ("ts", "run_id", "type", "content")

@dataclass
class ChainEntry:
    ts: str
    run_id: str
    type: str
    content: str
    prev_hash: str
    hash: str
    sig: Optional[str] = None  # HMAC hex

def _digest(base_obj: dict) -> str:
    base = json.dumps(base_obj, separators=(",", ":"), ensure_ascii=False)
    return sha256(base.encode("utf-8")).hexdigest()

class ChainLogger:
    """Miroir JSONL append-only et chaîné (sha256) des entrées mémoire, signature HMAC optionnelle."""
    def __init__(self, path: str | Path, *, secret: str = "") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.secret = secret or ""
        self._lock = threading.Lock()
        self._prev: Optional[str] = None

    def _last_hash(self) -> str:
        if self._prev is not None:
            return self._prev
        if not self.path.exists():
            return GENESIS
        last = None
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last = line
        if not last:
            return GENESIS
        try:
            return json.loads(last).get("hash", GENESIS)
        except json.JSONDecodeError:
            return GENESIS

    def append(self, entry: MemoryEntry) -> ChainEntry:
        with self._lock:
            prev = self._last_hash()
            base_obj = {"ts": entry.timestamp, "run_id": entry.run_id,
                        "type": entry.type.value, "content": entry.content, "prev_hash": prev}
            digest = _digest(base_obj)
            sig = None
            if self.secret:
                sig = hmac.new(self.secret.encode("utf-8"), digest.encode("utf-8"), sha256).hexdigest()
            chained = ChainEntry(entry.timestamp, entry.run_id, entry.type.value, entry.content, prev, digest, sig)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(chained), ensure_ascii=False) + "\n")
            self._prev = digest
            return chained

    @staticmethod
    def verify(path: str | Path, *, secret: str = "") -> bool:
        """Verify the chain and HMAC (if secret provided)."""
        prev = GENESIS
        for line in Path(path).read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
                base_obj = {k: obj[k] for k in _FIELDS}
            except (json.JSONDecodeError, KeyError, TypeError):
                return False
            base_obj["prev_hash"] = prev
            digest = _digest(base_obj)
            if digest != obj.get("hash"):
                return False
            if secret:
                sig = hmac.new(secret.encode("utf-8"), digest.encode("utf-8"), sha256).hexdigest()
                if sig != obj.get("sig"):
                    return False
            prev = digest
        return True
