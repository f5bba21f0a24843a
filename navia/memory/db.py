from __future__ import annotations
import sqlite3, threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List

from ..core.types import MemoryEntry, MemoryType, Run, RunStatus, Tool

ISO = lambda: datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS runs (
        run_id TEXT PRIMARY KEY,
        goal TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('idle','running','completed','error','stopped')),
        current_task TEXT NOT NULL DEFAULT '',
        start_time TEXT NOT NULL,
        end_time TEXT,
        error_message TEXT,
        memory_count INTEGER NOT NULL DEFAULT 0,
        action_count INTEGER NOT NULL DEFAULT 0
    );""",
    """CREATE TABLE IF NOT EXISTS memories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id TEXT NOT NULL,
        content TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('observation','thought','action')),
        ts TEXT NOT NULL
    );""",
    "CREATE INDEX IF NOT EXISTS idx_memories_run_id ON memories (run_id);",
    """CREATE TABLE IF NOT EXISTS tools (
        name TEXT PRIMARY KEY,
        description TEXT NOT NULL,
        code TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'general',
        version TEXT NOT NULL DEFAULT '1.0.0',
        author TEXT NOT NULL DEFAULT 'system',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    );""",
]

RUN_PATCH_FIELDS = {"status", "current_task", "end_time", "error_message", "memory_count", "action_count"}

_RUN_COLS = "run_id, goal, status, current_task, start_time, end_time, error_message, memory_count, action_count"
_TOOL_COLS = "name, description, code, category, version, author, is_active"


def _row_to_run(r) -> Run:
    return Run(id=r[0], goal=r[1], status=RunStatus(r[2]), current_task=r[3], start_time=r[4],
               end_time=r[5], error_message=r[6], memory_count=r[7], action_count=r[8])


def _row_to_tool(r) -> Tool:
    return Tool(name=r[0], description=r[1], code=r[2], category=r[3], version=r[4],
                author=r[5], active=bool(r[6]))


class MemoryDB:
    """Stockage SQLite des runs, des entrées mémoire et du catalogue d'outils.

    Une seule connexion partagée entre le thread du run et les appelants
    (API, CLI) ; toutes les opérations passent par un verrou.
    """
    def __init__(self, path: str | Path):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self._lock = threading.RLock()
        self._last_ts = ""
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            for stmt in SCHEMA:
                cur.execute(stmt)
            self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _next_ts(self) -> str:
        # horodatage jamais décroissant, même si l'horloge recule
        ts = ISO()
        if ts < self._last_ts:
            ts = self._last_ts
        self._last_ts = ts
        return ts

    # ---------------- Runs ----------------
    def create_run(self, run_id: str, goal: str, current_task: str = "") -> Run:
        run = Run(id=run_id, goal=goal, status=RunStatus.RUNNING, current_task=current_task, start_time=ISO())
        with self._lock:
            self.conn.execute(
                "INSERT INTO runs(run_id, goal, status, current_task, start_time) VALUES (?, ?, ?, ?, ?)",
                (run.id, run.goal, run.status.value, run.current_task, run.start_time),
            )
            self.conn.commit()
        return run

    def update_run(self, run_id: str, **patch) -> None:
        unknown = set(patch) - RUN_PATCH_FIELDS
        if unknown:
            raise KeyError(f"Champs de run inconnus: {sorted(unknown)}")
        if not patch:
            return
        values = [v.value if isinstance(v, RunStatus) else v for v in patch.values()]
        assignments = ", ".join(f"{k}=?" for k in patch)
        with self._lock:
            self.conn.execute(f"UPDATE runs SET {assignments} WHERE run_id=?", (*values, run_id))
            self.conn.commit()

    def get_run(self, run_id: str) -> Optional[Run]:
        with self._lock:
            cur = self.conn.execute(f"SELECT {_RUN_COLS} FROM runs WHERE run_id=?", (run_id,))
            row = cur.fetchone()
        return _row_to_run(row) if row else None

    def list_runs(self, limit: int = 20, offset: int = 0, status: Optional[str] = None) -> List[Run]:
        sql = f"SELECT {_RUN_COLS} FROM runs"
        params: list = []
        if status:
            sql += " WHERE status=?"
            params.append(status)
        sql += " ORDER BY start_time DESC LIMIT ? OFFSET ?"
        params += [limit, offset]
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_run(r) for r in rows]

    def count_runs(self, status: Optional[str] = None) -> int:
        with self._lock:
            if status:
                return self.conn.execute("SELECT COUNT(*) FROM runs WHERE status=?", (status,)).fetchone()[0]
            return self.conn.execute("SELECT COUNT(*) FROM runs").fetchone()[0]

    def fail_interrupted_runs(self, message: str) -> int:
        """Passe en 'error' les runs restés 'running' (processus précédent interrompu)."""
        with self._lock:
            cur = self.conn.execute(
                "UPDATE runs SET status='error', error_message=?, end_time=? WHERE status='running'",
                (message, ISO()),
            )
            self.conn.commit()
            return cur.rowcount

    # ---------------- Memories ----------------
    def append_memory(self, run_id: str, content: str, type: MemoryType | str) -> MemoryEntry:
        mtype = MemoryType(type)
        with self._lock:
            ts = self._next_ts()
            cur = self.conn.cursor()
            cur.execute(
                "INSERT INTO memories(run_id, content, type, ts) VALUES (?, ?, ?, ?)",
                (run_id, content, mtype.value, ts),
            )
            cur.execute(
                "UPDATE runs SET memory_count = memory_count + 1, action_count = action_count + ? WHERE run_id=?",
                (1 if mtype is MemoryType.ACTION else 0, run_id),
            )
            self.conn.commit()
            return MemoryEntry(id=int(cur.lastrowid), run_id=run_id, content=content, type=mtype, timestamp=ts)

    def list_memories(self, run_id: Optional[str] = None, type: Optional[str] = None,
                      limit: int = 100, offset: int = 0) -> List[MemoryEntry]:
        """Entrées dans l'ordre d'insertion (donc d'horodatage)."""
        sql = "SELECT id, run_id, content, type, ts FROM memories WHERE 1=1"
        params: list = []
        if run_id:
            sql += " AND run_id=?"
            params.append(run_id)
        if type:
            sql += " AND type=?"
            params.append(type)
        sql += " ORDER BY id ASC LIMIT ? OFFSET ?"
        params += [limit, offset]
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [MemoryEntry(id=r[0], run_id=r[1], content=r[2], type=MemoryType(r[3]), timestamp=r[4]) for r in rows]

    def memories_after(self, last_id: int, limit: int = 100) -> List[MemoryEntry]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT id, run_id, content, type, ts FROM memories WHERE id>? ORDER BY id ASC LIMIT ?",
                (last_id, limit),
            ).fetchall()
        return [MemoryEntry(id=r[0], run_id=r[1], content=r[2], type=MemoryType(r[3]), timestamp=r[4]) for r in rows]

    # ---------------- Tools ----------------
    def add_tool(self, tool: Tool, *, replace: bool = False) -> bool:
        """Insère un outil ; renvoie False si le nom existe déjà (sauf replace=True)."""
        verb = "INSERT OR REPLACE" if replace else "INSERT OR IGNORE"
        with self._lock:
            cur = self.conn.execute(
                f"{verb} INTO tools({_TOOL_COLS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (tool.name, tool.description, tool.code, tool.category, tool.version,
                 tool.author, int(tool.active), ISO()),
            )
            self.conn.commit()
            return cur.rowcount > 0

    def get_tool(self, name: str) -> Optional[Tool]:
        with self._lock:
            row = self.conn.execute(f"SELECT {_TOOL_COLS} FROM tools WHERE name=?", (name,)).fetchone()
        return _row_to_tool(row) if row else None

    def list_tools(self, category: Optional[str] = None, active: Optional[bool] = True) -> List[Tool]:
        sql = f"SELECT {_TOOL_COLS} FROM tools WHERE 1=1"
        params: list = []
        if category:
            sql += " AND category=?"
            params.append(category)
        if active is not None:
            sql += " AND is_active=?"
            params.append(int(active))
        sql += " ORDER BY name"
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_tool(r) for r in rows]

    def list_active_tools(self) -> List[Tool]:
        return self.list_tools(active=True)

    def set_tool_active(self, name: str, active: bool) -> bool:
        with self._lock:
            cur = self.conn.execute("UPDATE tools SET is_active=? WHERE name=?", (int(active), name))
            self.conn.commit()
            return cur.rowcount > 0
