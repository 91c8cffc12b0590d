"""IDE server: workspace file API, AI gateway and the sync WebSocket."""

import asyncio
import json
import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.websockets import WebSocketDisconnect

from src.assistant import AssistantAuthError, AssistantError, GeminiClient
from src.hub import EventPump, FanoutHub
from src.watcher import ChangeWatcher, WatcherError
from src.workspace import (
    AccessDeniedError,
    EntryNotFoundError,
    EntryType,
    InvalidPathError,
    NotAFileError,
    WorkspaceError,
    WorkspaceStore,
)

from .config import ServerConfig

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _workspace_error(e: WorkspaceError, action: str) -> JSONResponse:
    if isinstance(e, AccessDeniedError):
        return JSONResponse({"error": "Access denied"}, status_code=403)
    if isinstance(e, EntryNotFoundError):
        return JSONResponse({"error": str(e)}, status_code=404)
    if isinstance(e, (InvalidPathError, NotAFileError)):
        return JSONResponse({"error": str(e)}, status_code=400)
    logger.error(f"Error {action}: {e}")
    return JSONResponse({"error": str(e)}, status_code=500)


async def _json_body(request: Request) -> Optional[dict]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def create_app(cfg: ServerConfig, assistant: Optional[GeminiClient] = None) -> FastAPI:
    store = WorkspaceStore(cfg.workspace_dir)
    hub = FanoutHub(max_queue=cfg.max_session_queue)
    assistant = assistant or GeminiClient(cfg.assistant)

    def on_watcher_error(error: Exception) -> None:
        app.state.watcher_error = str(error)

    pump = EventPump(hub, on_error=on_watcher_error)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pump.start()
        watcher = None
        if cfg.watch:
            watcher = ChangeWatcher(
                store.root,
                cfg.watcher,
                on_event=pump.submit,
                on_error=pump.report_error,
            )
            try:
                await asyncio.to_thread(watcher.start)
            except WatcherError as e:
                logger.error(f"Change watcher not started: {e}")
                app.state.watcher_error = str(e)
                watcher = None
        app.state.watcher = watcher

        try:
            yield
        finally:
            if watcher is not None:
                await asyncio.to_thread(watcher.stop)
            await pump.stop()
            hub.close_all()
            app.state.watcher = None

    app = FastAPI(title="Web IDE Server", docs_url=None, redoc_url=None, lifespan=lifespan)

    # Store references on app state
    app.state.cfg = cfg
    app.state.store = store
    app.state.hub = hub
    app.state.pump = pump
    app.state.assistant = assistant
    app.state.watcher = None
    app.state.watcher_error = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/api/health")
    def health():
        watcher = app.state.watcher
        if app.state.watcher_error:
            watcher_status = "failed"
        elif watcher is not None and watcher.is_running:
            watcher_status = "running"
        else:
            watcher_status = "stopped"
        return {
            "status": "ok",
            "model": assistant.model,
            "timestamp": _now_iso(),
            "watcher": watcher_status,
            "clients": hub.session_count,
            "features": {
                "deepThinking": cfg.assistant.deep_thinking_enabled(),
                "tdd": cfg.assistant.tdd_enabled(),
            },
        }

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @app.get("/api/files/tree")
    def files_tree():
        try:
            tree = store.list_tree()
        except WorkspaceError as e:
            return _workspace_error(e, "building file tree")
        return {"tree": [entry.to_dict() for entry in tree]}

    @app.get("/api/files/read")
    def files_read(path: str = ""):
        if not path:
            return JSONResponse({"error": "File path is required"}, status_code=400)
        try:
            file = store.read(path)
        except WorkspaceError as e:
            return _workspace_error(e, "reading file")
        return file.to_dict()

    @app.post("/api/files/write")
    async def files_write(request: Request):
        payload = await _json_body(request) or {}
        path = payload.get("path")
        content = payload.get("content")
        if not path or not isinstance(content, str):
            return JSONResponse({"error": "File path and content are required"}, status_code=400)
        try:
            store.write(path, content)
        except WorkspaceError as e:
            return _workspace_error(e, "writing file")
        return {"success": True, "path": path, "message": "File saved successfully"}

    @app.post("/api/files/create")
    async def files_create(request: Request):
        payload = await _json_body(request) or {}
        path = payload.get("path")
        entry_type = payload.get("type")
        content = payload.get("content") or ""
        if not path or not entry_type:
            return JSONResponse({"error": "File path and type are required"}, status_code=400)
        try:
            created = store.create(path, entry_type, content)
        except WorkspaceError as e:
            return _workspace_error(e, "creating file/directory")
        label = "Directory" if created == EntryType.DIRECTORY else "File"
        return {
            "success": True,
            "path": path,
            "type": created.value,
            "message": f"{label} created successfully",
        }

    @app.delete("/api/files/delete")
    def files_delete(path: str = ""):
        if not path:
            return JSONResponse({"error": "File path is required"}, status_code=400)
        try:
            store.delete(path)
        except WorkspaceError as e:
            return _workspace_error(e, "deleting file/directory")
        return {"success": True, "path": path, "message": "Deleted successfully"}

    @app.post("/api/files/rename")
    async def files_rename(request: Request):
        payload = await _json_body(request) or {}
        old_path = payload.get("oldPath")
        new_path = payload.get("newPath")
        if not old_path or not new_path:
            return JSONResponse({"error": "Old path and new path are required"}, status_code=400)
        try:
            store.rename(old_path, new_path)
        except WorkspaceError as e:
            return _workspace_error(e, "renaming file/directory")
        return {
            "success": True,
            "oldPath": old_path,
            "newPath": new_path,
            "message": "Renamed successfully",
        }

    # ------------------------------------------------------------------
    # AI gateway
    # ------------------------------------------------------------------

    def _assistant_error(e: AssistantError, mode: str) -> JSONResponse:
        logger.error(f"{mode} error: {e}")
        status = 503 if isinstance(e, AssistantAuthError) else 500
        return JSONResponse({"error": str(e)}, status_code=status)

    def _not_configured() -> Optional[JSONResponse]:
        if assistant.is_configured:
            return None
        return JSONResponse(
            {"error": f"{cfg.assistant.api_key_env} is not set in environment variables"},
            status_code=503,
        )

    @app.post("/api/ai/chat")
    async def ai_chat(request: Request):
        payload = await _json_body(request) or {}
        messages = payload.get("messages")
        if not isinstance(messages, list):
            return JSONResponse({"error": "Messages array is required"}, status_code=400)
        unavailable = _not_configured()
        if unavailable:
            return unavailable
        try:
            response = await assistant.chat(messages, payload.get("systemPrompt") or "")
        except AssistantError as e:
            return _assistant_error(e, "Chat")
        return {"response": response, "model": assistant.model, "timestamp": _now_iso()}

    async def _prompt_mode(request: Request, mode: str, call):
        payload = await _json_body(request) or {}
        prompt = payload.get("prompt")
        if not prompt:
            return JSONResponse({"error": "Prompt is required"}, status_code=400)
        unavailable = _not_configured()
        if unavailable:
            return unavailable
        try:
            response = await call(prompt, payload.get("context") or {})
        except AssistantError as e:
            return _assistant_error(e, mode)
        return {"response": response, "mode": mode, "timestamp": _now_iso()}

    @app.post("/api/ai/deep-think")
    async def ai_deep_think(request: Request):
        return await _prompt_mode(request, "deep-thinking", assistant.deep_think)

    @app.post("/api/ai/tdd")
    async def ai_tdd(request: Request):
        return await _prompt_mode(request, "tdd", assistant.generate_with_tests)

    @app.post("/api/ai/agent")
    async def ai_agent(request: Request):
        payload = await _json_body(request) or {}
        task = payload.get("task")
        if not task:
            return JSONResponse({"error": "Task is required"}, status_code=400)
        unavailable = _not_configured()
        if unavailable:
            return unavailable
        try:
            response = await assistant.agentic_workflow(task, payload.get("fileSystem") or {})
        except AssistantError as e:
            return _assistant_error(e, "Agent")
        return {"response": response, "mode": "agentic", "timestamp": _now_iso()}

    @app.post("/api/ai/review")
    async def ai_review(request: Request):
        payload = await _json_body(request) or {}
        code = payload.get("code")
        language = payload.get("language")
        if not code or not language:
            return JSONResponse({"error": "Code and language are required"}, status_code=400)
        unavailable = _not_configured()
        if unavailable:
            return unavailable
        try:
            response = await assistant.review_code(code, language, payload.get("context") or {})
        except AssistantError as e:
            return _assistant_error(e, "Review")
        return {"response": response, "mode": "review", "timestamp": _now_iso()}

    @app.post("/api/ai/stream")
    async def ai_stream(request: Request):
        payload = await _json_body(request) or {}
        prompt = payload.get("prompt")
        if not prompt:
            return JSONResponse({"error": "Prompt is required"}, status_code=400)
        unavailable = _not_configured()
        if unavailable:
            return unavailable
        context = payload.get("context") or {}

        async def stream():
            try:
                async for chunk in assistant.stream_chat(prompt, context):
                    yield f"data: {json.dumps({'chunk': chunk})}\n\n"
            except AssistantError as e:
                logger.error(f"Stream error: {e}")
                yield f"data: {json.dumps({'error': str(e)})}\n\n"
            yield "data: [DONE]\n\n"

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    # ------------------------------------------------------------------
    # Sync WebSocket
    # ------------------------------------------------------------------

    @app.websocket("/ws")
    async def sync_socket(websocket: WebSocket):
        await websocket.accept()
        session = hub.create_session(websocket)
        hub.register(session)

        try:
            while session.is_open:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    data = message.get("bytes")
                if data is not None:
                    hub.handle_inbound(session, data)
        except WebSocketDisconnect:
            pass
        except RuntimeError as e:
            logger.debug(f"Session {session.id} receive ended: {e}")
        finally:
            hub.unregister(session, "disconnected")

    return app


class IDEServerService:
    """Wrapper to run the FastAPI server via uvicorn in a background thread."""

    def __init__(self, cfg: ServerConfig, assistant: Optional[GeminiClient] = None):
        self.cfg = cfg
        self.assistant = assistant
        self._thread: Optional[threading.Thread] = None
        self._server: Any = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        import uvicorn

        app = create_app(self.cfg, self.assistant)

        config = uvicorn.Config(
            app,
            host=self.cfg.host,
            port=self.cfg.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        self._thread = threading.Thread(target=self._server.run, daemon=True)
        self._thread.start()
        logger.info(f"IDE server started on http://{self.cfg.host}:{self.cfg.port}")

    def stop(self) -> None:
        if self._server:
            self._server.should_exit = True
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
