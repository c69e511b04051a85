"""
HTTP surface for the agent runtime and the approval UI.

The agent runtime opens a session per chat, keeps its context in sync and
executes actions. Approval UIs list presented approvals and post decisions,
which resumes the suspended execute call.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from util.logging import logger

from .schemas import (
    ActionListResponse,
    ApprovalDecisionRequest,
    ApprovalListResponse,
    ApprovalModel,
    ContextUpdateRequest,
    ErrorResponse,
    ExecuteRequest,
    HealthResponse,
    OutcomeResponse,
    PinChangeRequest,
    PinChangeResponse,
    SessionCreateRequest,
    SessionResponse,
    UserModel,
    ViewListResponse,
)
from ..agents.session import ChatSession, SessionManager
from ..core.approval import ApprovalState
from ..core.config import CORS_ALLOW_ORIGINS, SEED_DATA_ENABLED, VERSION, debug_enabled
from ..core.errors import CardPilotError, PermissionDenied
from ..core.schema import TransactionStatus, User
from ..core.store import InMemoryCardStore, seed_store

# Process-wide store and sessions
store = seed_store() if SEED_DATA_ENABLED else InMemoryCardStore()
sessions = SessionManager(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    closed = sessions.close_all()
    logger.info(f"Shutdown closed {closed} session(s)")


app = FastAPI(
    title="CardPilot Action API",
    version=VERSION,
    description="Role-gated card and transaction actions for a conversational agent",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CardPilotError)
async def cardpilot_error_handler(request: Request, exc: CardPilotError):
    status_code = 403 if isinstance(exc, PermissionDenied) else 400
    body = ErrorResponse(error_type=exc.error_type, message=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _get_session(session_id: str) -> ChatSession:
    session = sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _session_response(session: ChatSession) -> SessionResponse:
    user = session.user
    return SessionResponse(
        session_id=session.id,
        user=UserModel(id=user.id, name=user.name, email=user.email, role=user.role, team=user.team),
        properties=session.context.properties,
        actions=list(session.list_actions().values()),
    )


def _approval_model(request_id: str) -> ApprovalModel:
    request = sessions.approvals.get_request(request_id)
    transactions = [t.to_dict() for t in sessions.approvals.presented_transactions(request_id)]
    return ApprovalModel(**request.to_dict(), transactions=transactions)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        active_sessions=len(sessions.sessions),
        pending_approvals=len(sessions.approvals.list_pending_requests()),
    )


@app.post("/sessions", response_model=SessionResponse, status_code=201)
def create_session_endpoint(req: SessionCreateRequest):
    user = User(**req.user.model_dump())
    session = sessions.create_session(user, properties=req.properties)
    return _session_response(session)


@app.put("/sessions/{session_id}/context", response_model=SessionResponse)
def update_context_endpoint(session_id: str, req: ContextUpdateRequest):
    session = _get_session(session_id)
    current = session.user
    user = User(
        id=current.id,
        name=current.name,
        email=current.email,
        role=req.role or current.role,
        team=req.team or current.team,
    )
    session.update_context(user=user, properties=req.properties)
    return _session_response(session)


@app.delete("/sessions/{session_id}")
def close_session_endpoint(session_id: str):
    _get_session(session_id)
    sessions.close_session(session_id)
    return {"success": True, "session_id": session_id}


@app.get("/sessions/{session_id}/actions", response_model=ActionListResponse)
def list_actions_endpoint(session_id: str, include_disabled: bool = True):
    session = _get_session(session_id)
    return ActionListResponse(actions=list(session.list_actions(include_disabled).values()))


@app.get("/sessions/{session_id}/context")
def readable_context_endpoint(session_id: str):
    """Readable context for the agent's prompt."""
    return _get_session(session_id).readable_context()


@app.post("/sessions/{session_id}/actions/{action_name}", response_model=OutcomeResponse)
async def execute_action_endpoint(session_id: str, action_name: str, req: ExecuteRequest):
    """Execute an action. Approval actions hold the request open until a human decides."""
    session = _get_session(session_id)
    outcome = await session.execute(action_name, req.arguments)
    return OutcomeResponse(**outcome.to_dict())


@app.get("/sessions/{session_id}/views", response_model=ViewListResponse)
def list_views_endpoint(session_id: str, limit: int = 20):
    session = _get_session(session_id)
    return ViewListResponse(views=[v.to_dict() for v in session.views[-limit:]])


@app.post("/sessions/{session_id}/pin", response_model=PinChangeResponse)
def submit_pin_endpoint(session_id: str, req: PinChangeRequest):
    session = _get_session(session_id)
    card = session.submit_pin_change(req.pin, req.card_id)
    return PinChangeResponse(success=True, card_id=card.id)


@app.get("/approvals", response_model=ApprovalListResponse)
def list_approvals_endpoint(session_id: str = None):
    pending = sessions.approvals.list_pending_requests(session_id)
    return ApprovalListResponse(approvals=[_approval_model(r.id) for r in pending])


def _decide(request_id: str, transaction_id: str, status: TransactionStatus) -> ApprovalModel:
    request = sessions.approvals.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Approval request not found")
    if request.state != ApprovalState.PRESENTED:
        raise HTTPException(status_code=409, detail=f"Approval request is already {request.state.value}")

    interface = sessions.approvals.approval_interface(request_id)
    if status == TransactionStatus.APPROVED:
        interface.on_approve(transaction_id)
    else:
        interface.on_deny(transaction_id)
    return _approval_model(request_id)


@app.post("/approvals/{request_id}/approve", response_model=ApprovalModel)
async def approve_endpoint(request_id: str, req: ApprovalDecisionRequest):
    return _decide(request_id, req.transaction_id, TransactionStatus.APPROVED)


@app.post("/approvals/{request_id}/deny", response_model=ApprovalModel)
async def deny_endpoint(request_id: str, req: ApprovalDecisionRequest):
    return _decide(request_id, req.transaction_id, TransactionStatus.DENIED)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
