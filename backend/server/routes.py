"""
Route registration for the transcription relay.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire one ConnectionCoordinator to each WebSocket lifecycle
- Pull dependencies from app.state
- Optionally serve the built frontend
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse

from observability.logger import log_event
from session.coordinator import ConnectionCoordinator


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        async def send_json(msg: dict[str, Any]) -> None:
            await ws.send_text(json.dumps(msg))

        coordinator = ConnectionCoordinator(
            send_json=send_json,
            relay_factory=app.state.relay_factory,
            batch_transcriber=app.state.batch_transcriber,
            batch_interval_s=app.state.config.batch_interval_s,
        )

        try:
            await coordinator.start()

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    await coordinator.on_json_message(msg["text"])

                elif msg.get("bytes") is not None:
                    # Some clients send the JSON envelope as a binary frame
                    await coordinator.on_json_message(
                        msg["bytes"].decode("utf-8", errors="replace")
                    )

        except WebSocketDisconnect:
            await coordinator.close(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "ERROR",
                "event_type": "WS_FATAL_ERROR",
                "connection_id": coordinator.connection_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await coordinator.close(reason="server_error")

        finally:
            # No-op when already closed above; covers cancellation on shutdown
            await coordinator.close(reason="server_shutdown")


def register_frontend(app: FastAPI, dist_dir: str) -> None:
    """
    Serve a built single-page frontend.

    Existing files are served as-is; every other path falls back to
    index.html so client-side routing works. Must be registered last.
    """
    root = Path(dist_dir).resolve()
    index = root / "index.html"
    if not index.is_file():
        log_event({
            "level": "WARNING",
            "event_type": "FRONTEND_DIST_MISSING",
            "dist_dir": str(root),
        })
        return

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa(full_path: str) -> FileResponse: # pyright: ignore[reportUnusedFunction]
        candidate = (root / full_path).resolve()
        if not candidate.is_relative_to(root):
            raise HTTPException(status_code=404)
        if full_path and candidate.is_file():
            return FileResponse(candidate)
        return FileResponse(index)
