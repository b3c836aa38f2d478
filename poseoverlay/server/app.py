from __future__ import annotations

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from poseoverlay.media.video_source import CameraAccessError
from poseoverlay.server.logging_utils import configure_logging
from poseoverlay.server.models.schemas import (
    SessionStatusResponse,
    SessionStopResponse,
    SportChangeRequest,
    SportsResponse,
    StartSessionRequest,
    TransportRequest,
)
from poseoverlay.server.session import (
    SessionAlreadyRunningError,
    SessionConfig,
    SessionNotRunningError,
    session_manager,
)
from poseoverlay.utils.config import ConfigError

app = FastAPI(title="Pose Overlay", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging(str(session_manager.runtime_config().logging.get("level", "INFO")))


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if session_manager.is_running():
        await session_manager.stop()


@app.get("/api/sports", response_model=SportsResponse)
async def list_sports() -> SportsResponse:
    return SportsResponse(sports=session_manager.list_sports())


@app.post("/api/session/start", response_model=SessionStatusResponse)
async def start_session(request: StartSessionRequest) -> SessionStatusResponse:
    config = SessionConfig(
        source=request.source,
        camera_index=request.camera_index,
        sport=request.sport,
        autoplay=request.autoplay,
    )
    try:
        payload = await session_manager.start(config)
    except SessionAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except CameraAccessError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except (ConfigError, FileNotFoundError) as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return SessionStatusResponse(**payload)


@app.post("/api/session/stop", response_model=SessionStopResponse)
async def stop_session() -> SessionStopResponse:
    try:
        await session_manager.stop()
    except SessionNotRunningError:
        return SessionStopResponse(status="idle")
    return SessionStopResponse(status="stopped")


@app.get("/api/session/status", response_model=SessionStatusResponse)
async def session_status() -> SessionStatusResponse:
    return SessionStatusResponse(**session_manager.get_status())


@app.post("/api/session/transport", response_model=SessionStatusResponse)
async def transport(request: TransportRequest) -> SessionStatusResponse:
    try:
        payload = session_manager.transport(request.action, frames=request.frames, seconds=request.seconds)
    except SessionNotRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SessionStatusResponse(**payload)


@app.post("/api/session/sport", response_model=SessionStatusResponse)
async def change_sport(request: SportChangeRequest) -> SessionStatusResponse:
    try:
        payload = session_manager.set_sport(request.sport)
    except SessionNotRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SessionStatusResponse(**payload)


@app.websocket("/ws/stream")
async def stream(websocket: WebSocket) -> None:
    await websocket.accept()
    try:
        async for frame_payload in session_manager.frame_generator():
            await websocket.send_json(frame_payload)
    except SessionNotRunningError:
        await websocket.send_json({"running": False})
    except WebSocketDisconnect:  # pragma: no cover - client initiated
        return
