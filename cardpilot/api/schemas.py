"""
Request and response models for the HTTP surface.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.schema import MemberRole, Team


class UserModel(BaseModel):
    id: str
    name: str
    email: str
    role: MemberRole
    team: Team

    @field_validator('id', 'name')
    @classmethod
    def must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('value cannot be empty')
        return v


class SessionCreateRequest(BaseModel):
    user: UserModel
    properties: Dict[str, Any] = {}


class ContextUpdateRequest(BaseModel):
    role: Optional[MemberRole] = None
    team: Optional[Team] = None
    properties: Optional[Dict[str, Any]] = None


class ActionParameterModel(BaseModel):
    name: str
    type: str
    description: str
    required: bool


class ActionModel(BaseModel):
    name: str
    description: str
    mode: str
    disabled: bool
    follow_up: bool
    parameters: List[ActionParameterModel]


class ActionListResponse(BaseModel):
    actions: List[ActionModel]


class SessionResponse(BaseModel):
    session_id: str
    user: UserModel
    properties: Dict[str, Any]
    actions: List[ActionModel]


class ExecuteRequest(BaseModel):
    arguments: Dict[str, Any] = {}


class OutcomeResponse(BaseModel):
    action: str
    success: bool
    message: str
    error_type: Optional[str] = None
    data: Any = None
    execution_time: float
    completed_at: datetime


class ApprovalDecisionRequest(BaseModel):
    transaction_id: str

    @field_validator('transaction_id')
    @classmethod
    def transaction_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('transaction_id cannot be empty')
        return v


class ApprovalModel(BaseModel):
    id: str
    session_id: Optional[str] = None
    approver: str
    transaction_argument: str
    state: str
    created_at: datetime
    transaction_ids: List[str]
    decision: Optional[str] = None
    decided_transaction_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    outcome: Optional[str] = None
    transactions: List[Dict[str, Any]] = []


class ApprovalListResponse(BaseModel):
    approvals: List[ApprovalModel]


class PinChangeRequest(BaseModel):
    pin: str
    card_id: Optional[str] = None


class PinChangeResponse(BaseModel):
    success: bool
    card_id: str


class ViewListResponse(BaseModel):
    views: List[Dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    version: str
    active_sessions: int
    pending_approvals: int


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)
