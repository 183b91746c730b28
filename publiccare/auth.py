# Token auth, role checks and the action permission table

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_HOURS, API_PREFIX
from .database import executor, get_db
from .errors import NotAuthenticated, Forbidden, InvalidQuery
from .models import UserRole, UserResponse

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_PREFIX}/auth/login", auto_error=False)

# ---------------------------------------------------------------------------
# Passwords & tokens
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    # Request models enforce the byte limit; this guards direct callers
    if len(password.encode("utf-8")) > 72:
        raise InvalidQuery("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

_token_blacklist: set = set()

def revoke_token(token: str):
    _token_blacklist.add(token)
    # Expired tokens fail decoding anyway, so the set can be reset when large
    if len(_token_blacklist) > 10000:
        _token_blacklist.clear()

# ---------------------------------------------------------------------------
# Current-user dependencies
# ---------------------------------------------------------------------------
async def _user_from_token(token: str, db) -> dict:
    if token in _token_blacklist:
        raise NotAuthenticated("Token has been revoked")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise NotAuthenticated()
    username = payload.get("sub")
    if username is None:
        raise NotAuthenticated()
    loop = asyncio.get_event_loop()
    user = await loop.run_in_executor(executor, db.users.find_one, {"username": username})
    if user is None:
        raise NotAuthenticated("User not found")
    if not user.get("is_active", True):
        raise NotAuthenticated("User account is deactivated")
    return user

async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)):
    if token is None:
        raise NotAuthenticated()
    return await _user_from_token(token, db)

# ---------------------------------------------------------------------------
# Permission table
# ---------------------------------------------------------------------------
class Action(str, Enum):
    COMPLAINT_CREATE = "complaint.create"
    COMPLAINT_VIEW_ASSIGNED = "complaint.view_assigned"
    COMPLAINT_ASSIGN = "complaint.assign"
    COMPLAINT_ADD_UPDATE = "complaint.add_update"
    DEPARTMENT_MANAGE = "department.manage"
    DEPARTMENT_READ_STATS = "department.read_stats"
    USER_MANAGE = "user.manage"

PERMISSIONS = {
    Action.COMPLAINT_CREATE: {UserRole.CITIZEN, UserRole.PROVIDER, UserRole.ADMIN},
    Action.COMPLAINT_VIEW_ASSIGNED: {UserRole.PROVIDER, UserRole.ADMIN},
    Action.COMPLAINT_ASSIGN: {UserRole.PROVIDER, UserRole.ADMIN},
    Action.COMPLAINT_ADD_UPDATE: {UserRole.PROVIDER, UserRole.ADMIN},
    Action.DEPARTMENT_MANAGE: {UserRole.ADMIN},
    Action.DEPARTMENT_READ_STATS: {UserRole.PROVIDER, UserRole.ADMIN},
    Action.USER_MANAGE: {UserRole.ADMIN},
}

def is_allowed(role: str, action: Action) -> bool:
    try:
        return UserRole(role) in PERMISSIONS[action]
    except ValueError:
        return False

def require_permission(action: Action):
    async def permission_checker(user=Depends(get_current_user)):
        if not is_allowed(user["role"], action):
            raise Forbidden(f"User role {user['role']} is not authorized to access this route")
        return user
    return permission_checker

def ensure_owner_or_admin(user: dict, resource: dict, owner_field: str = "submitted_by"):
    if user["role"] == UserRole.ADMIN.value:
        return
    owner = resource.get(owner_field)
    if owner and owner != str(user["_id"]):
        raise Forbidden()

def ensure_assigned_provider(user: dict, complaint: dict):
    """Admins always pass; providers pass when unassigned or assigned to them."""
    if user["role"] == UserRole.ADMIN.value:
        return
    if user["role"] != UserRole.PROVIDER.value:
        raise Forbidden("Only providers can access this resource")
    assignee = complaint.get("assigned_to")
    if assignee and assignee != str(user["_id"]):
        raise Forbidden("Not authorized to access this complaint")

def user_to_response(user: dict) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]), username=user["username"], full_name=user["full_name"],
        email=user["email"], phone=user.get("phone"), role=user["role"],
        is_active=user.get("is_active", True),
        department=user.get("department"), created_at=user["created_at"])
