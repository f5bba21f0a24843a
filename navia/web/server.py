from __future__ import annotations
import argparse
import uvicorn
from ..agent.lifecycle import RunLifecycleManager
from ..browser import BROWSERS, make_session_factory
from ..config import PROFILES, load_settings
from ..llm import make_planner
from ..memory.db import MemoryDB
from .app import create_app

def main() -> None:
    parser = argparse.ArgumentParser(description="Navia Agent API (FastAPI)")
    parser.add_argument("--config", type=str, default="config", help="Dossier ou fichier config (par défaut: ./config)")
    parser.add_argument("--profile", type=str, choices=PROFILES, default="safe", help="Profil config (safe|balanced|danger)")
    parser.add_argument("--db", type=str, default=None, help="Chemin base SQLite (défaut: config.memory.db_path)")
    parser.add_argument("--browser", choices=BROWSERS, default="chromium", help="Session navigateur (défaut: chromium)")
    parser.add_argument("--llm-model", default=None, help="dummy | tag Ollama (défaut: config.llm.model)")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Hôte (par défaut: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8765, help="Port (défaut: 8765)")
    args = parser.parse_args()

    settings = load_settings(args.config, args.profile)
    store = MemoryDB(args.db or settings.memory.db_path)
    model = args.llm_model or settings.llm.model
    manager = RunLifecycleManager(
        settings,
        store,
        make_session_factory(args.browser, settings.browser),
        lambda: make_planner(model, timeout_sec=settings.llm.timeout_sec,
                             kill_switch_path=settings.general.kill_switch_path),
    )
    app = create_app(manager)

    uvicorn.run(app, host=args.host, port=int(args.port), log_level="info")

if __name__ == "__main__":
    main()
