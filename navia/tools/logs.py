from __future__ import annotations
import threading
from datetime import datetime, timezone
from pathlib import Path
from ..config import Settings

_write_lock = threading.Lock()

def log_event(settings: Settings, message: str) -> Path:
    """Ajoute une ligne horodatée (UTC) au journal d'exploitation `<log_dir>/navia.log`."""
    log_dir = Path(settings.general.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / "navia.log"
    ts = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    with _write_lock, path.open("a", encoding="utf-8") as f:
        f.write(f"{ts} | {message}\n")
    return path
