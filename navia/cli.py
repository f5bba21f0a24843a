from __future__ import annotations
import argparse
from contextlib import suppress
from . import __version__
from .agent.lifecycle import RunLifecycleManager
from .browser import BROWSERS, make_session_factory
from .config import PROFILES, Settings, load_settings
from .core.errors import ConflictError, ValidationError
from .llm import make_planner, has_ollama
from .memory.db import MemoryDB

# === Affichage ================================================================
def _print_banner() -> None:
    print(f"Navia v{__version__} — agent web autonome")

def _print_settings(goal: str, browser: str, model: str, s: Settings) -> None:
    print(f"goal    = {goal!r}")
    print(f"profile = {s.general.profile}")
    print(f"browser = {browser} (headless={s.browser.headless})")
    print(f"llm     = {model}")
    print(f"max_iterations = {s.agent.max_iterations}")
    print(f"tools = {{enabled={s.tools.enabled}, timeout={s.tools.timeout_sec}s}}")
    print(f"memory.db = {s.memory.db_path}")

# === Arguments ================================================================
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser("navia", description="Navia — agent web autonome (percevoir, décider, agir)")
    ap.add_argument("--goal", help="Objectif en langage naturel (1000 caractères max).")
    ap.add_argument("--config", default="config", help="Chemin vers le dossier de configuration.")
    ap.add_argument("--profile", choices=PROFILES, default="safe", help="Profil de configuration.")
    ap.add_argument("--browser", choices=BROWSERS, default="dummy", help="Session navigateur.")
    ap.add_argument("--llm-model", default=None, help="dummy | tag Ollama (défaut: config.llm.model).")
    ap.add_argument("--max-iterations", type=int, default=None, help="Plafond d'itérations de la boucle.")
    ap.add_argument("--iteration-delay-ms", type=int, default=None, help="Délai fixe entre deux itérations.")
    ap.add_argument("--memory-db", default=None, help="Chemin DB SQLite (défaut: config.memory.db_path).")
    ap.add_argument("--timeout", type=float, default=None, help="Attente maximale du run, en secondes.")
    ap.add_argument("--version", action="store_true", help="Afficher la version et quitter.")
    return ap

# === Main ====================================================================
def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(__version__)
        return 0
    if not args.goal:
        print("ERR: --goal est requis.")
        return 2

    s = load_settings(
        config=args.config,
        profile=args.profile,
        overrides={"max_iterations": args.max_iterations, "iteration_delay_ms": args.iteration_delay_ms},
    )
    if args.memory_db:
        s.memory.db_path = args.memory_db
    model = args.llm_model or s.llm.model
    if model.lower() != "dummy" and not has_ollama():
        print("ERR: Ollama non disponible. Installez-le ou utilisez --llm-model dummy.")
        return 2

    _print_banner()
    _print_settings(args.goal, args.browser, model, s)

    store = MemoryDB(s.memory.db_path)
    try:
        manager = RunLifecycleManager(
            s,
            store,
            make_session_factory(args.browser, s.browser),
            lambda: make_planner(model, timeout_sec=s.llm.timeout_sec,
                                 kill_switch_path=s.general.kill_switch_path),
        )
        try:
            run_id = manager.start(args.goal)
        except ValidationError as e:
            print(f"ERR: {e}")
            return 2

        try:
            finished = manager.wait(args.timeout)
        except KeyboardInterrupt:
            finished = False
        if not finished:
            # arrêt coopératif : l'itération en cours se termine
            with suppress(ConflictError):
                manager.stop()
            manager.wait()

        print(f"\n=== MÉMOIRE ({run_id}) ===")
        for m in store.list_memories(run_id=run_id, limit=10000):
            print(f"[{m.type.value.upper()}] {m.content}")

        status = manager.get_status()
        print(f"\nSTATUS: {status['status']} — {status['current_task']}")
        return 0 if status["status"] == "completed" else 1
    finally:
        store.close()

if __name__ == "__main__":
    raise SystemExit(main())
