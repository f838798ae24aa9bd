"""FastAPI routes for the chat service REST API and WebSocket."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from editagent import __version__
from editagent.events import PendingChangesEvent
from editagent.logging import get_logger
from editagent.server.websocket import ConnectionManager
from editagent.session import ProjectSession, SessionManager

log = get_logger("server")


class ChatRequest(BaseModel):
    """Body of submit-message."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[dict[str, Any]] = Field(min_length=1)
    conversation_id: str | None = Field(default=None, alias="conversationId")


class ChangeAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    DISMISS = "dismiss"


def create_app(manager: SessionManager | None = None) -> FastAPI:
    """Create the FastAPI application serving ``manager``."""
    manager = manager or SessionManager()
    connections = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await connections.close_all()
        await manager.close()

    app = FastAPI(
        title="EditAgent",
        description="Streaming code-editing assistant with reviewable file changes",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.connections = connections
    app.state.started = time.time()

    _register_routes(app)
    return app


def _session(manager: SessionManager, project: str) -> ProjectSession:
    try:
        return manager.get_session(project)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


def _register_routes(app: FastAPI) -> None:
    """Register all API routes."""
    manager: SessionManager = app.state.manager
    connections: ConnectionManager = app.state.connections

    @app.get("/api/status")
    async def api_status() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "uptime": time.time() - app.state.started,
            "connections": connections.get_connection_count(),
            "sessions": [session.status() for session in manager.list_sessions()],
        }

    @app.get("/api/models")
    async def api_models() -> list[dict[str, Any]]:
        return manager.gateway.list_models()

    @app.post("/api/chat")
    async def api_chat(request: ChatRequest, project: str = Query(...)) -> dict[str, Any]:
        """Run one turn and wait for it; chunks go to WebSocket subscribers."""
        _session(manager, project)
        result = await manager.submit_message(project, request.messages, request.conversation_id)
        return result.to_dict()

    @app.post("/api/chat/abort")
    async def api_abort(project: str | None = Query(default=None)) -> dict[str, Any]:
        return {"success": True, "aborted": manager.abort_session(project)}

    @app.get("/api/changes")
    async def api_changes(project: str = Query(...)) -> list[dict[str, Any]]:
        session = _session(manager, project)
        return [change.to_dict() for change in session.tracker.get_pending()]

    @app.post("/api/changes/{action}")
    async def api_resolve_changes(
        action: ChangeAction,
        project: str = Query(...),
        target: str | None = Query(default=None),
    ) -> dict[str, Any]:
        """Accept, reject or dismiss one change (``target`` id or path) or all."""
        _session(manager, project)
        if action is ChangeAction.ACCEPT:
            result = await manager.accept_pending_changes(project, target)
        elif action is ChangeAction.REJECT:
            result = await manager.reject_pending_changes(project, target)
        else:
            result = await manager.dismiss_pending_changes(project, target)
        return result.to_dict()

    @app.get("/api/conversations")
    async def api_conversations(project: str = Query(...)) -> list[dict[str, Any]]:
        session = _session(manager, project)
        return [conversation.summary() for conversation in session.history.list_conversations()]

    @app.get("/api/conversations/{conversation_id}")
    async def api_conversation(conversation_id: str, project: str = Query(...)) -> dict[str, Any]:
        session = _session(manager, project)
        try:
            conversation = session.history.get_conversation(conversation_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if conversation is None:
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        return conversation.to_record()

    @app.delete("/api/conversations/{conversation_id}")
    async def api_delete_conversation(conversation_id: str, project: str = Query(...)) -> dict[str, Any]:
        session = _session(manager, project)
        try:
            deleted = await session.history.delete_conversation(conversation_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return {"success": deleted}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Stream project events and accept chat commands."""
        project = websocket.query_params.get("project", "")
        try:
            session = manager.get_session(project)
        except ValueError as e:
            await websocket.accept()
            await websocket.send_json({"type": "error", "content": str(e)})
            await websocket.close(code=1008)
            return

        await connections.connect(websocket, session.key)
        subscription = session.channel.subscribe()
        forwarder: asyncio.Task[None] | None = None
        try:
            # Current ledger first; events published meanwhile wait in the subscription
            pending = [c.to_dict() for c in session.tracker.get_pending()]
            await websocket.send_json(PendingChangesEvent(changes=pending).to_wire())
            forwarder = asyncio.create_task(connections.forward(websocket, subscription))
            while True:
                try:
                    data = await websocket.receive_text()
                except WebSocketDisconnect:
                    break
                if data == "ping":
                    await websocket.send_text("pong")
                    continue
                await _handle_command(websocket, manager, connections, project, data)
        finally:
            subscription.close()
            if forwarder is not None:
                forwarder.cancel()
            await connections.disconnect(websocket, session.key)


async def _handle_command(
    websocket: WebSocket,
    manager: SessionManager,
    connections: ConnectionManager,
    project: str,
    data: str,
) -> None:
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        await websocket.send_json({"type": "error", "content": "Invalid JSON"})
        return

    command = message.get("command") if isinstance(message, dict) else None
    if command == "submit-message":
        try:
            request = ChatRequest.model_validate(message)
        except ValidationError as e:
            await websocket.send_json({"type": "error", "content": str(e)})
            return

        async def run() -> None:
            result = await manager.submit_message(project, request.messages, request.conversation_id)
            log.debug("Turn over WebSocket finished: %s", result)

        # Runs in the background so abort-session can arrive meanwhile
        connections.spawn(run())
    elif command == "abort-session":
        manager.abort_session(project)
    else:
        await websocket.send_json({"type": "error", "content": f"Unknown command: {command!r}"})
