from __future__ import annotations

import secrets
import string
import threading
import time
from typing import Callable, Optional

from ..browser.base import BrowserSession
from ..config import Settings
from ..core.errors import ConflictError, ValidationError
from ..core.types import LoopOutcome, Run, RunStatus
from ..llm.base import LLM
from ..memory.db import ISO, MemoryDB
from ..memory.log import MemoryLog
from ..tools.chainlog import ChainLogger
from ..tools.logs import log_event
from ..tools.registry import ToolRegistry
from .loop import DecisionLoop

MAX_GOAL_LENGTH = 1000
IDLE_TASK = "No agent running"

_ALPHABET = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _ALPHABET[r] + out
    return out or "0"


def new_run_id() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"run_{_base36(int(time.time() * 1000))}_{suffix}"


def validate_goal(goal: object) -> str:
    if not isinstance(goal, str) or not goal.strip():
        raise ValidationError("goal is required and must be a non-empty string")
    if len(goal) > MAX_GOAL_LENGTH:
        raise ValidationError(f"goal must be at most {MAX_GOAL_LENGTH} characters")
    return goal.strip()


class RunLifecycleManager:
    """
    Conteneur d'état explicite : au plus un run actif par instance.

    À instancier une fois et à injecter (API, CLI). La vérification « aucun
    run actif » et la création du run se font sous le même verrou ; les
    transitions de statut passent par Run.transition().
    """

    def __init__(
        self,
        settings: Settings,
        store: MemoryDB,
        session_factory: Callable[[], BrowserSession],
        planner_factory: Callable[[], LLM],
        *,
        registry: Optional[ToolRegistry] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.session_factory = session_factory
        self.planner_factory = planner_factory
        self.registry = registry or ToolRegistry(store, seed_defaults=settings.tools.seed_defaults)
        self.chain = (
            ChainLogger(settings.memory.audit_chain_path, secret=settings.security.chain_secret)
            if settings.memory.audit_chain_path else None
        )
        self._lock = threading.Lock()
        self._run: Optional[Run] = None
        self._cancel: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._memory: Optional[MemoryLog] = None

        stale = store.fail_interrupted_runs("Interrupted: process restarted")
        if stale:
            log_event(settings, f"marked {stale} interrupted run(s) as error")

    # ------------------------------------------------------------------
    def start(self, goal: object) -> str:
        goal = validate_goal(goal)
        with self._lock:
            if self._run is not None and self._run.status is RunStatus.RUNNING:
                raise ConflictError(
                    "An agent is already running. Stop the current agent before starting a new one."
                )
            run = self.store.create_run(new_run_id(), goal, current_task="Initializing agent...")
            self._run = run
            self._cancel = threading.Event()
            self._memory = MemoryLog(self.store, run, chain=self.chain)
            self._thread = threading.Thread(
                target=self._execute, args=(run, self._memory, self._cancel),
                name=f"navia-{run.id}", daemon=True,
            )
            self._thread.start()
        log_event(self.settings, f"run {run.id} started: {goal}")
        return run.id

    def stop(self) -> None:
        with self._lock:
            run = self._run
            if run is None or run.status is not RunStatus.RUNNING:
                raise ConflictError("No agent is currently running")
            cancel = self._cancel
            if cancel is None or cancel.is_set():
                return
            cancel.set()
            self._set_task_locked(run, "Stop requested")
        log_event(self.settings, f"run {run.id} stop requested")

    def get_status(self) -> dict:
        with self._lock:
            run = self._run
            if run is None:
                return {"status": RunStatus.IDLE.value, "current_task": IDLE_TASK, "run_id": None}
            return {"status": run.status.value, "current_task": run.current_task, "run_id": run.id}

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Attend la fin du run courant ; True si aucun run n'est plus actif."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    # ------------------------------------------------------------------
    def _set_task_locked(self, run: Run, text: str) -> None:
        run.current_task = text
        self.store.update_run(run.id, current_task=text)

    def _set_task(self, run: Run, text: str) -> None:
        with self._lock:
            # après une demande d'arrêt, le libellé reste "Stop requested"
            if self._cancel is not None and self._cancel.is_set() and run is self._run:
                return
            self._set_task_locked(run, text)

    def _execute(self, run: Run, memory: MemoryLog, cancel: threading.Event) -> None:
        outcome = LoopOutcome(RunStatus.ERROR, error_message="run did not finish")
        session: Optional[BrowserSession] = None
        try:
            self._set_task(run, "Launching browser...")
            session = self.session_factory()
            planner = self.planner_factory()
            self._set_task(run, "Starting agent execution...")
            loop = DecisionLoop(
                run.goal, session, planner, self.registry, memory, self.settings,
                cancel=cancel, on_task=lambda text: self._set_task(run, text),
            )
            outcome = loop.run()
        except Exception as e:
            message = str(e) or type(e).__name__
            outcome = LoopOutcome(RunStatus.ERROR, error_message=message)
            if not memory.sealed:
                try:
                    memory.observation(f"Agent error: {message}")
                except Exception as log_err:  # store inutilisable : on garde la trace fichier
                    log_event(self.settings, f"run {run.id}: could not record error: {log_err}")
        finally:
            if session is not None:
                try:
                    session.close()
                except Exception as e:
                    log_event(self.settings, f"run {run.id}: error closing browser: {e}")
            self._finish(run, memory, cancel, outcome)

    def _finish(self, run: Run, memory: MemoryLog, cancel: threading.Event, outcome: LoopOutcome) -> None:
        tasks = {
            RunStatus.COMPLETED: "Execution completed",
            RunStatus.STOPPED: "Agent stopped",
            RunStatus.ERROR: "Agent encountered an error",
        }
        with self._lock:
            if cancel.is_set() and outcome.status is not RunStatus.STOPPED:
                # arrêt arrivé après la dernière frontière d'itération : le run garde son issue
                outcome.notes.append("stop requested after the loop finished")
            memory.seal()
            run.transition(outcome.status)
            run.current_task = tasks[outcome.status]
            run.end_time = ISO()
            run.error_message = outcome.error_message
            try:
                self.store.update_run(
                    run.id, status=run.status, current_task=run.current_task, end_time=run.end_time,
                    error_message=run.error_message, memory_count=run.memory_count,
                    action_count=run.action_count,
                )
            except Exception as e:
                log_event(self.settings, f"run {run.id}: could not persist final state: {e}")
        log_event(
            self.settings,
            f"run {run.id} finished: {outcome.status.value} after {outcome.iterations} iteration(s)"
            + (f" ({outcome.error_message})" if outcome.error_message else "")
            + (f" [{'; '.join(outcome.notes)}]" if outcome.notes else ""),
        )
