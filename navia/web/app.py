from __future__ import annotations
import json, asyncio
from typing import Any, Optional
from fastapi import FastAPI, Query, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from ..agent.lifecycle import RunLifecycleManager
from ..core.errors import ConflictError, ValidationError
from ..core.types import MemoryType, RunStatus
from ..security.kill import engage_kill


class StartRequest(BaseModel):
    # type volontairement lâche : la validation métier est faite par le manager
    goal: Any = None


class ToolRequest(BaseModel):
    name: Any = None
    description: Any = None
    code: Any = None
    category: str = "general"
    version: str = "1.0.0"
    author: str = "user"
    is_active: bool = True


def create_app(manager: RunLifecycleManager) -> FastAPI:
    app = FastAPI(title="Navia Agent API", docs_url=None, redoc_url=None)
    app.state.manager = manager
    store = manager.store

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok"}

    # -------- AGENT --------
    @app.post("/api/agent/start", status_code=201)
    def start(body: StartRequest) -> dict:
        try:
            run_id = manager.start(body.goal)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ConflictError as e:
            raise HTTPException(status_code=409, detail={"error": str(e), "current_run": manager.get_status()})
        run = store.get_run(run_id)
        return {"run_id": run_id, "goal": run.goal if run else body.goal, "status": RunStatus.RUNNING.value,
                "start_time": run.start_time if run else None}

    @app.post("/api/agent/stop")
    def stop() -> dict:
        try:
            manager.stop()
        except ConflictError as e:
            raise HTTPException(status_code=409, detail={"error": str(e), "current_status": manager.get_status()})
        return {"message": "Stop requested", **manager.get_status()}

    @app.get("/api/agent/status")
    def status() -> dict:
        st = manager.get_status()
        details = None
        if st["run_id"]:
            run = store.get_run(st["run_id"])
            details = run.to_dict() if run else None
        return {**st, "run_details": details}

    @app.get("/api/agent/runs")
    def list_runs(limit: int = 20, offset: int = 0, status: Optional[str] = None) -> dict:
        limit = max(1, min(200, limit))
        offset = max(0, offset)
        runs = store.list_runs(limit=limit, offset=offset, status=status)
        total = store.count_runs(status=status)
        return {
            "items": [r.to_dict() for r in runs],
            "pagination": {"total": total, "limit": limit, "offset": offset,
                           "has_more": total > offset + len(runs)},
        }

    @app.get("/api/agent/runs/{run_id}")
    def get_run(run_id: str) -> dict:
        run = store.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="Agent run not found")
        memories = store.list_memories(run_id=run_id, limit=1000)
        return {**run.to_dict(), "memories": [m.to_dict() for m in memories]}

    # -------- MÉMOIRE --------
    @app.get("/api/memory")
    def list_memories(run_id: Optional[str] = None, type: Optional[str] = None,
                      limit: int = 100, offset: int = 0) -> list[dict]:
        if type is not None and type not in {t.value for t in MemoryType}:
            raise HTTPException(status_code=400, detail="type must be one of: observation, thought, action")
        rows = store.list_memories(run_id=run_id, type=type, limit=max(1, min(1000, limit)), offset=max(0, offset))
        return [m.to_dict() for m in rows]

    async def _sse_generator(last_id: int | None, once: bool = False):
        poll_interval = 1.0
        _last = last_id or 0
        while True:
            rows = store.memories_after(_last, limit=100)
            if rows:
                for m in rows:
                    _last = m.id
                    chunk = f"id: {_last}\ndata: {json.dumps(m.to_dict(), ensure_ascii=False)}\n\n".encode("utf-8")
                    yield chunk
                if once:
                    break
            else:
                if once:
                    break
                await asyncio.sleep(poll_interval)

    @app.get("/api/memory/stream")
    async def memory_stream(last_id: int | None = Query(default=None), once: bool = Query(default=False)) -> StreamingResponse:
        gen = _sse_generator(last_id=last_id, once=once)
        return StreamingResponse(gen, media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})

    # -------- OUTILS --------
    @app.get("/api/tools")
    def list_tools(category: Optional[str] = None, active: str = "true") -> list[dict]:
        flag = None if active == "all" else active.lower() == "true"
        return [t.to_dict() for t in store.list_tools(category=category, active=flag)]

    @app.post("/api/tools", status_code=201)
    def create_tool(body: ToolRequest) -> dict:
        try:
            tool = manager.registry.register(
                body.name, body.description, body.code, category=body.category,
                version=body.version, author=body.author, active=body.is_active,
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return tool.to_dict()

    # -------- SÉCURITÉ --------
    @app.post("/api/kill")
    def kill() -> dict:
        p = engage_kill(manager.settings.general.kill_switch_path)
        return {"status": "engaged", "path": str(p)}

    return app
