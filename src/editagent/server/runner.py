"""Server lifecycle: run the FastAPI app under uvicorn."""

from __future__ import annotations

from typing import TYPE_CHECKING

from editagent.logging import get_logger

if TYPE_CHECKING:
    from editagent.config import ServerConfig
    from editagent.session import SessionManager

log = get_logger("server")


async def run_server(
    config: ServerConfig,
    manager: SessionManager | None = None,
    *,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Serve until the process is interrupted.

    Args:
        config: Default host and port.
        manager: Session manager to serve; a fresh one when omitted.
        host: Overrides ``config.host``.
        port: Overrides ``config.port``.
    """
    # Import here to keep CLI startup light
    import uvicorn

    from editagent.server.routes import create_app

    app = create_app(manager)
    host = host or config.host
    port = port or config.port
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
    )
    log.info("Serving on http://%s:%d", host, port)
    await server.serve()
