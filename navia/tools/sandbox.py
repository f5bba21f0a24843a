"""
Exécution des outils dans une frontière de capacités.

Un outil est un extrait Python qui définit `run(session, context)` (ou une
fonction portant le nom de l'outil). Il reçoit exactement deux entrées :
une poignée de session restreinte et le contexte du run. Le code est validé
statiquement (pas d'import, pas d'accès dunder/privé, pas de primitives
d'évaluation ou de fichiers), exécuté avec des builtins réduits dans un
thread dédié, sous délai ; les appels de session sont bornés par le temps restant.

Les appels de l'outil vers la session et la mémoire sont rejoués dans le
thread du run (l'API synchrone de Playwright est liée à son thread) ; à
l'expiration du délai, les capacités sont révoquées et un traceur interrompt
le code de l'outil à sa ligne suivante.
"""
from __future__ import annotations

import ast
import builtins
import json
import queue
import re
import sys
import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

from ..browser.base import BrowserSession
from ..core.errors import ToolError
from ..core.types import MemoryType, Tool
from ..memory.log import MemoryLog

ENTRY_POINT = "run"

FORBIDDEN_NAMES = {
    "eval", "exec", "open", "compile", "globals", "locals", "getattr", "setattr",
    "delattr", "vars", "input", "breakpoint", "__import__", "memoryview", "type",
}

SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float", "int",
        "isinstance", "len", "list", "map", "max", "min", "range", "repr", "reversed",
        "round", "set", "sorted", "str", "sum", "tuple", "zip",
        "Exception", "ValueError", "RuntimeError", "KeyError", "TypeError",
    )
}


def entry_name(tool_name: str) -> str:
    return re.sub(r"\W", "_", tool_name.strip()) or ENTRY_POINT


def validate_code(code: str, tool_name: str | None = None) -> tuple[bool, Optional[str]]:
    """Contrôle statique d'un extrait d'outil. Renvoie (ok, raison)."""
    if not isinstance(code, str) or not code.strip():
        return False, "code is empty"
    try:
        tree = ast.parse(code)
    except SyntaxError as e:
        return False, f"syntax error line {e.lineno}: {e.msg}"

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            return False, "imports are not allowed"
        if isinstance(node, ast.ExceptHandler) and node.type is None:
            return False, "bare except is not allowed"
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            return False, "global/nonlocal are not allowed"
        if isinstance(node, ast.Name) and (node.id in FORBIDDEN_NAMES or node.id.startswith("__")):
            return False, f"forbidden name: {node.id}"
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            return False, f"private attribute access: .{node.attr}"

    defined = {n.name for n in tree.body if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))}
    async_defs = {n.name for n in tree.body if isinstance(n, ast.AsyncFunctionDef)}
    wanted = {ENTRY_POINT} | ({entry_name(tool_name)} if tool_name else set())
    found = defined & wanted
    if not found:
        return False, f"code must define a function named {' or '.join(sorted(wanted))}"
    if found <= async_defs:
        return False, "entry point must be a plain function"
    return True, None


class _Revoked(BaseException):
    """Levée dans le thread de l'outil une fois ses capacités révoquées (hors de portée d'un `except Exception`)."""


class _Dispatcher:
    """Rejoue dans le thread propriétaire les appels émis par le thread de l'outil, jusqu'à l'échéance."""

    def __init__(self, deadline: float) -> None:
        self.requests: "queue.Queue[tuple[Callable, tuple, Future]]" = queue.Queue()
        self.deadline = deadline
        self.revoked = False
        self.owner = threading.current_thread()

    def remaining_ms(self) -> int:
        return int((self.deadline - time.monotonic()) * 1000)

    def _refuse(self) -> Optional[ToolError]:
        if self.revoked:
            return ToolError("tool capabilities revoked")
        if self.remaining_ms() <= 0:
            return ToolError("tool deadline exceeded")
        return None

    def call(self, fn: Callable, *args: Any) -> Any:
        err = self._refuse()
        if err is not None:
            raise err
        if threading.current_thread() is self.owner:
            return fn(*args)
        fut: Future = Future()
        self.requests.put((fn, args, fut))
        while True:
            try:
                return fut.result(timeout=0.1)
            except FutureTimeout:
                # révoqué pendant l'attente : la requête ne sera plus servie
                if self.revoked:
                    raise ToolError("tool capabilities revoked")

    def pump(self, timeout: float) -> None:
        try:
            fn, args, fut = self.requests.get(timeout=timeout)
        except queue.Empty:
            return
        err = self._refuse()
        if err is not None:
            fut.set_exception(err)
            return
        try:
            fut.set_result(fn(*args))
        except Exception as e:
            fut.set_exception(e)

    def revoke(self) -> None:
        self.revoked = True
        while True:
            try:
                _, _, fut = self.requests.get_nowait()
            except queue.Empty:
                break
            fut.set_exception(ToolError("tool capabilities revoked"))


def bounded_script(script: str, timeout_ms: int) -> str:
    """Enveloppe un script `evaluate` dans une course contre l'échéance de l'outil."""
    return (
        "Promise.race(["
        f"(async () => {{ const v = ({script}); return typeof v === 'function' ? await v() : await v; }})(), "
        f"new Promise((_, reject) => setTimeout(() => reject(new Error('tool deadline exceeded')), {int(timeout_ms)}))"
        "])"
    )


class ToolSession:
    """Sous-ensemble de la session navigateur exposé aux outils (ni navigation ni fermeture).

    Chaque appel bloquant est borné par le temps restant à l'outil.
    """

    def __init__(self, session: BrowserSession, dispatcher: _Dispatcher) -> None:
        self._session = session
        self._dispatch = dispatcher

    def _left(self, wanted_ms: Optional[int] = None) -> int:
        left = max(1, self._dispatch.remaining_ms())
        # 0 vaut "sans limite" pour Playwright
        return left if wanted_ms is None else max(1, min(int(wanted_ms), left))

    def screenshot(self) -> bytes:
        return self._dispatch.call(lambda: self._session.screenshot(timeout_ms=self._left()))

    def title(self) -> str:
        return self._dispatch.call(self._session.title)

    def current_url(self) -> str:
        return self._dispatch.call(self._session.current_url)

    def evaluate(self, script: str) -> Any:
        return self._dispatch.call(lambda: self._session.evaluate(bounded_script(script, self._left())))

    def click(self, selector: str) -> None:
        return self._dispatch.call(lambda: self._session.click(selector, timeout_ms=self._left()))

    def type(self, selector: str, text: str) -> None:
        return self._dispatch.call(lambda: self._session.type(selector, text, timeout_ms=self._left()))

    def wait_for_selector(self, selector: str, timeout_ms: int = 5000) -> bool:
        return self._dispatch.call(lambda: self._session.wait_for_selector(selector, self._left(timeout_ms)))


class ToolContext:
    """Contexte du run visible par l'outil, avec le rappel d'ajout en mémoire."""

    def __init__(self, run_id: str, goal: str, iteration: int, *,
                 target: Optional[str] = None, value: Optional[str] = None,
                 append: Callable[[str, str], Any], recent: Callable[[], list]) -> None:
        self.run_id = run_id
        self.goal = goal
        self.iteration = iteration
        self.target = target
        self.value = value
        self._append = append
        self._recent = recent

    def add_memory(self, content: str, type: str = "observation") -> None:
        self._append(str(content), MemoryType(type).value)

    def recent_memories(self) -> list[dict]:
        return self._recent()


def execute_tool(
    tool: Tool,
    session: BrowserSession,
    memory: MemoryLog,
    *,
    goal: str,
    iteration: int,
    target: Optional[str] = None,
    value: Optional[str] = None,
    timeout_sec: float = 30.0,
    recent: int = 10,
) -> Any:
    """Exécute l'outil et renvoie sa valeur de retour ; toute défaillance devient ToolError."""
    ok, reason = validate_code(tool.code, tool.name)
    if not ok:
        raise ToolError(f"tool {tool.name} rejected: {reason}")

    deadline = time.monotonic() + timeout_sec
    dispatcher = _Dispatcher(deadline)
    handle = ToolSession(session, dispatcher)
    ctx = ToolContext(
        run_id=memory.run.id,
        goal=goal,
        iteration=iteration,
        target=target,
        value=value,
        append=lambda content, mtype: dispatcher.call(memory.append, content, mtype),
        recent=lambda: dispatcher.call(lambda: [e.to_dict() for e in memory.recent(recent)]),
    )
    filename = f"<tool:{tool.name}>"
    done: Future = Future()

    def _trace_line(frame, event, arg):
        if dispatcher.revoked:
            raise _Revoked()
        return _trace_line

    def _trace_call(frame, event, arg):
        if dispatcher.revoked:
            raise _Revoked()
        # seules les frames du code de l'outil sont suivies ligne à ligne
        return _trace_line if frame.f_code.co_filename == filename else None

    def _worker() -> None:
        sys.settrace(_trace_call)
        try:
            namespace: dict[str, Any] = {"__builtins__": SAFE_BUILTINS, "json": json}
            exec(compile(tool.code, filename, "exec"), namespace)
            entry = namespace.get(ENTRY_POINT) or namespace.get(entry_name(tool.name))
            if not callable(entry):
                raise ToolError(f"tool {tool.name} has no callable entry point")
            done.set_result(entry(handle, ctx))
        except _Revoked:
            pass
        except Exception as e:
            done.set_exception(e)
        finally:
            sys.settrace(None)

    worker = threading.Thread(target=_worker, name=f"tool-{tool.name}", daemon=True)
    worker.start()

    while not done.done():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            # le traceur interrompt l'outil à sa prochaine ligne
            dispatcher.revoke()
            worker.join(0.5)
            raise ToolError(f"tool {tool.name} timed out after {timeout_sec:g}s")
        dispatcher.pump(min(remaining, 0.05))

    try:
        return done.result()
    except ToolError as e:
        # appel refusé faute de temps : même issue qu'une expiration
        if dispatcher.remaining_ms() <= 0:
            raise ToolError(f"tool {tool.name} timed out after {timeout_sec:g}s") from e
        raise
    except Exception as e:
        raise ToolError(f"{type(e).__name__}: {e}") from e
