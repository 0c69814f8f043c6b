from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


# --- Auth Schemas ---
# Left untyped so malformed values still count against the login rate limit;
# AuthService.login validates role, user id and PIN format.
class LoginRequest(BaseModel):
    role: Any = None
    user_id: Any = None
    pin: Any = None


class ChildSummary(BaseModel):
    id: int
    name: str
    active: bool


class LoginUser(BaseModel):
    id: int
    role: str
    locale: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None


class LoginResponse(BaseModel):
    session_token: str
    user: LoginUser
    children: List[ChildSummary] = []


class WhoAmIResponse(BaseModel):
    user_id: int
    role: str
    locale: Optional[str] = None
    child_id: Optional[int] = None


class RosterEntry(BaseModel):
    user_id: int
    name: str
    role: str


class RosterResponse(BaseModel):
    children: List[RosterEntry]
    guardians: List[RosterEntry]


class ChangePinRequest(BaseModel):
    current_pin: str
    new_pin: str


class SetPinRequest(BaseModel):
    new_pin: str


class UnlockRequest(BaseModel):
    user_id: int
    pin: str
    unlock_code: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# --- Guest Token Schemas ---
class GuestTokenCreate(BaseModel):
    child_id: int
    expires_in: int


class GuestTokenCreated(BaseModel):
    token: str
    expires_at: datetime


class GuestTokenInfo(BaseModel):
    token: str
    child_id: int
    child_name: str
    expires_at: datetime
    created_at: datetime
    is_revoked: bool


class GuestAccessResponse(BaseModel):
    child_id: int
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Maintenance Schemas ---
class CleanupResponse(BaseModel):
    expired_sessions: int
    old_rate_limits: int
    expired_guest_sessions: int
    stale_failed_attempts: int
