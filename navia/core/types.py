from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.STOPPED)

# Seules transitions autorisées ; un état terminal n'a aucune sortie.
TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.IDLE: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.STOPPED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.ERROR: frozenset(),
    RunStatus.STOPPED: frozenset(),
}

class MemoryType(str, Enum):
    OBSERVATION = "observation"
    THOUGHT = "thought"
    ACTION = "action"

class ActionKind(str, Enum):
    CLICK = "click"
    TYPE = "type"
    NAVIGATE = "navigate"
    SCROLL = "scroll"
    WAIT = "wait"
    COMPLETE = "complete"
    UNKNOWN = "unknown"

class IllegalTransition(RuntimeError):
    pass

@dataclass
class Run:
    id: str
    goal: str
    status: RunStatus = RunStatus.RUNNING
    current_task: str = ""
    start_time: str = ""
    end_time: Optional[str] = None
    error_message: Optional[str] = None
    memory_count: int = 0
    action_count: int = 0

    def transition(self, new: RunStatus) -> None:
        if new not in TRANSITIONS[self.status]:
            raise IllegalTransition(f"{self.id}: {self.status.value} -> {new.value}")
        self.status = new

    def to_dict(self) -> dict:
        return {
            "run_id": self.id,
            "goal": self.goal,
            "status": self.status.value,
            "current_task": self.current_task,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error_message": self.error_message,
            "memory_count": self.memory_count,
            "action_count": self.action_count,
        }

@dataclass(frozen=True)
class MemoryEntry:
    id: int
    run_id: str
    content: str
    type: MemoryType
    timestamp: str

    def to_dict(self) -> dict:
        return {"id": self.id, "run_id": self.run_id, "content": self.content,
                "type": self.type.value, "timestamp": self.timestamp}

@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    code: str
    category: str = "general"
    version: str = "1.0.0"
    author: str = "system"
    active: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "code": self.code,
                "category": self.category, "version": self.version, "author": self.author,
                "is_active": self.active}

@dataclass(frozen=True)
class Decision:
    """Décision structurée, extraite une fois par itération de la réponse du planner."""
    thought: str
    action: ActionKind
    target: Optional[str] = None
    value: Optional[str] = None
    tool: Optional[str] = None
    complete: bool = False
    # nom brut reçu quand action == UNKNOWN
    raw_action: Optional[str] = None

@dataclass(frozen=True)
class Unparseable:
    """Variante explicite « réponse inexploitable » de l'union Decision | Unparseable."""
    reason: str
    raw: str = ""

@dataclass
class LoopOutcome:
    status: RunStatus
    iterations: int = 0
    error_message: Optional[str] = None
    notes: list[str] = field(default_factory=list)
