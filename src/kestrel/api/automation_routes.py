from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from kestrel.api.schemas import AutomationStatusResponse
from kestrel.config import get_settings
from kestrel.core.automation import AutomationManager
from kestrel.core.profile import load_profile
from kestrel.core.runtime import get_automation_manager, get_event_bus

router = APIRouter(prefix="/api/automation", tags=["automation"])


@router.post("/start", response_model=AutomationStatusResponse)
async def start_automation(
    manager: AutomationManager = Depends(get_automation_manager),
) -> AutomationStatusResponse:
    profile = load_profile(get_settings().profile_path)
    if profile is None or not profile.has_profile:
        raise HTTPException(status_code=400, detail="Please upload your resume first!")
    try:
        status = await manager.start()
    except RuntimeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AutomationStatusResponse(**status)


@router.post("/pause", response_model=AutomationStatusResponse)
def pause_automation(manager: AutomationManager = Depends(get_automation_manager)) -> AutomationStatusResponse:
    return _signal(manager.pause)


@router.post("/resume", response_model=AutomationStatusResponse)
def resume_automation(manager: AutomationManager = Depends(get_automation_manager)) -> AutomationStatusResponse:
    return _signal(manager.resume)


@router.post("/stop", response_model=AutomationStatusResponse)
def stop_automation(manager: AutomationManager = Depends(get_automation_manager)) -> AutomationStatusResponse:
    return _signal(manager.stop)


@router.get("/status", response_model=AutomationStatusResponse)
def automation_status(manager: AutomationManager = Depends(get_automation_manager)) -> AutomationStatusResponse:
    return AutomationStatusResponse(**manager.status())


@router.websocket("/{run_id}/stream")
async def stream_activity(websocket: WebSocket, run_id: int) -> None:
    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(run_id):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


def _signal(action) -> AutomationStatusResponse:
    try:
        status = action()
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return AutomationStatusResponse(**status)
