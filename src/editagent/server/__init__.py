"""HTTP and WebSocket surface of the chat service."""

from editagent.server.routes import create_app
from editagent.server.runner import run_server
from editagent.server.websocket import ConnectionManager

__all__ = ["ConnectionManager", "create_app", "run_server"]
