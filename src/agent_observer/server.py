"""FastAPI server exposing the status REST API and the observer WebSocket."""

import asyncio
import contextlib
import json
import logging
import os
import socket
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings
from .exceptions import AgentNotFoundError, ValidationError
from .lockfile import read_lock_file, remove_lock_file, write_lock_file
from .service import StatusService

logger = logging.getLogger(__name__)


async def _read_json_body(request: Request) -> Any:
    """Read and parse the JSON body, returning None when it is missing or invalid."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized integers
        logger.warning(f"Invalid JSON in request: {e}")
        return None


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Server settings (defaults loaded from the environment)

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings()
    service = StatusService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup and shutdown events."""
        logger.info(f"Starting agent observer v{__version__}...")
        service.start()

        yield

        logger.info("Shutting down agent observer...")
        await service.shutdown()
        if settings.write_lock_file:
            lock = read_lock_file(settings.lock_file)
            # Another server may have taken over the lock file
            if lock is None or lock.pid == os.getpid():
                remove_lock_file(settings.lock_file)
        logger.info("Agent observer shutdown complete")

    app = FastAPI(
        title="Agent Observer",
        description="Aggregates coding agent status reports and fans them out to observers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(AgentNotFoundError)
    async def not_found_handler(request: Request, exc: AgentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Agent not found"})

    @app.get("/api/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__, "uptime": service.uptime_seconds}

    @app.post("/api/status")
    async def post_status(request: Request) -> dict[str, Any]:
        """Accept a status report from an agent."""
        service.report(await _read_json_body(request))
        return {"ok": True}

    @app.get("/api/status")
    async def list_status() -> list[dict[str, Any]]:
        """List every current agent record."""
        return [record.to_dict() for record in service.list_records()]

    @app.delete("/api/status/{agent_id}")
    async def delete_status(agent_id: str) -> dict[str, Any]:
        """Remove an agent."""
        service.remove(agent_id)
        return {"ok": True}

    @app.patch("/api/status/{agent_id}/label")
    async def patch_label(agent_id: str, request: Request) -> dict[str, Any]:
        """Set or clear (empty string) an agent's label."""
        body = await _read_json_body(request)
        label = body.get("label") if isinstance(body, dict) else None
        service.patch_label(agent_id, label)
        return {"ok": True}

    @app.websocket("/ws")
    async def observer_endpoint(websocket: WebSocket) -> None:
        """
        Observer channel.

        The first frame is always a snapshot; later frames are incremental
        events. Observers may send focus requests, which are rebroadcast.
        """
        if service.hub.closed:
            await websocket.close(code=status.WS_1001_GOING_AWAY)
            return

        await websocket.accept()
        connection = service.hub.register(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text") or message.get("bytes")
                if raw:
                    service.hub.handle_inbound(raw)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            if service.hub.closed:
                logger.debug(f"Observer loop ended during shutdown: {e}")
            else:
                logger.error(f"Error in observer connection: {e}", exc_info=True)
        finally:
            service.hub.unregister(connection)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Any, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening TCP socket; port 0 picks an ephemeral port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    return sock


async def write_lock_when_listening(server: uvicorn.Server, serving: asyncio.Task[None], lock_file: Path, port: int, poll_interval: float = 0.05) -> bool:
    """
    Write the lock file once uvicorn is accepting connections.

    Args:
        server: The uvicorn server being started
        serving: Task running ``server.serve``
        lock_file: Path of the lock file
        port: Port the server socket is bound to
        poll_interval: Seconds between checks of ``server.started``

    Returns:
        False if the server stopped before it started listening
    """
    while not server.started:
        if serving.done():
            return False
        await asyncio.sleep(poll_interval)
    write_lock_file(lock_file, port)
    return True


async def _serve(server: uvicorn.Server, sock: socket.socket, settings: Settings, port: int) -> None:
    serving = asyncio.create_task(server.serve(sockets=[sock]))
    lock_writer: asyncio.Task[bool] | None = None
    if settings.write_lock_file:
        lock_writer = asyncio.create_task(write_lock_when_listening(server, serving, settings.lock_file, port))
    try:
        await serving
    finally:
        if lock_writer is not None and not lock_writer.done():
            lock_writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await lock_writer


def run_server(settings: Settings | None = None) -> int:
    """
    Run the server until interrupted.

    Args:
        settings: Server settings (defaults loaded from the environment)

    Returns:
        Exit code (0 for success)
    """
    settings = settings or Settings()
    try:
        sock = bind_socket(settings.host, settings.port)
    except OSError as e:
        logger.error(f"Failed to bind {settings.host}:{settings.port}: {e}")
        return 1

    port = sock.getsockname()[1]
    app = create_app(settings)
    logger.info(f"Agent observer listening on {settings.host}:{port}")
    print(f"Agent Observer server running on port {port}")

    config = uvicorn.Config(
        app,
        log_level=settings.log_level.lower(),
        access_log=False,
    )
    server = uvicorn.Server(config)
    asyncio.run(_serve(server, sock, settings, port))
    return 0
