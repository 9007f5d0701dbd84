from fastapi import APIRouter, Depends, HTTPException, Request

from proctor.api.auth import require_api_key
from proctor.api.schemas import (
    AnswersSnapshot,
    FullscreenResult,
    HostEvent,
    StartSessionRequest,
    SubmitRequest,
)
from proctor.core.entry_gate import DeviceProfile
from proctor.core.orchestrator import Orchestrator
from proctor.utils.time import parse_timestamp

router = APIRouter(prefix="/api/proctor", dependencies=[Depends(require_api_key)])


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


@router.post("/sessions")
async def start_session(req: StartSessionRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """Entry gate, then start the deadline tracker and violation monitor."""
    try:
        started_at = parse_timestamp(req.startedAt)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"invalid startedAt: {e}")

    device = None
    if req.device is not None:
        device = DeviceProfile(
            max_touch_points=req.device.maxTouchPoints,
            screen_width=req.device.screenWidth,
            user_agent=req.device.userAgent,
        )
    return orch.start_session(
        req.sessionId,
        submission_id=req.submissionId,
        started_at=started_at,
        duration_minutes=req.timeLimitMinutes,
        device=device,
    )


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    return orch.view(session_id)


@router.post("/sessions/{session_id}/events")
async def post_event(session_id: str, event: HostEvent, orch: Orchestrator = Depends(get_orchestrator)):
    """Unknown event types are accepted and ignored, never rejected."""
    return orch.handle_event(session_id, event.type, event.data)


@router.post("/sessions/{session_id}/fullscreen")
async def post_fullscreen_result(session_id: str, body: FullscreenResult, orch: Orchestrator = Depends(get_orchestrator)):
    return orch.fullscreen_result(session_id, body.granted)


@router.put("/sessions/{session_id}/answers")
async def put_answers(session_id: str, body: AnswersSnapshot, orch: Orchestrator = Depends(get_orchestrator)):
    orch.save_answers(
        session_id,
        [a.model_dump() for a in body.answers],
        [o.model_dump() for o in body.outline_responses],
    )
    return {"status": "saved"}


@router.post("/sessions/{session_id}/submit")
async def submit(session_id: str, body: SubmitRequest, orch: Orchestrator = Depends(get_orchestrator)):
    answers = [a.model_dump() for a in body.answers] if body.answers is not None else None
    outline = [o.model_dump() for o in body.outline_responses] if body.outline_responses is not None else None
    return orch.submit(session_id, answers, outline)


@router.delete("/sessions/{session_id}")
async def unmount(session_id: str, orch: Orchestrator = Depends(get_orchestrator)):
    orch.unmount(session_id)
    return {"status": "ok"}
