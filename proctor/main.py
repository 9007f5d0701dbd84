import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from proctor.api.routes import router
from proctor.api.schemas import BlockedResponse
from proctor.api.admin_routes import router as admin_router
from proctor.core.entry_gate import BLOCKED_MESSAGE
from proctor.core.orchestrator import Orchestrator
from proctor.observability.logging import log
from proctor.settings import settings
from proctor.utils.exceptions import SessionBlocked, SessionClosed, SessionNotFound


def _run_dispatch(session_id: str) -> None:
    from proctor.submission.dispatch import dispatch_submission

    try:
        dispatch_submission(session_id)
    except Exception as e:
        log(event="submission_dispatch_failed", sessionId=session_id, error=str(e)[:300])


def dispatch_in_background(session_id: str) -> None:
    """
    Terminal signals fire on the event loop (inside a handler or a timer);
    delivery is blocking I/O, so it runs in the default executor.
    """
    loop = asyncio.get_running_loop()
    loop.run_in_executor(None, _run_dispatch, session_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    orch = app.state.orchestrator
    try:
        orch.resume_all()
    except Exception as e:
        # Sessions are still rehydrated lazily on their next request
        log(event="sessions_resume_failed", error=str(e)[:300])
    yield
    orch.shutdown()


app = FastAPI(title="Lockdown Proctor API", lifespan=lifespan)
app.state.orchestrator = Orchestrator(dispatcher=dispatch_in_background)

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content={"detail": "Session not found"})


@app.exception_handler(SessionClosed)
async def session_closed_handler(request: Request, exc: SessionClosed):
    return JSONResponse(status_code=409, content={"detail": "Session already submitted"})


@app.exception_handler(SessionBlocked)
async def session_blocked_handler(request: Request, exc: SessionBlocked):
    # The page swaps the quiz for this explanatory screen
    return JSONResponse(status_code=403, content=BlockedResponse(message=BLOCKED_MESSAGE).model_dump())
