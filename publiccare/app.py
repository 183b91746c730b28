# PublicCare: Municipal Complaint Tracking API
# FastAPI + MongoDB + WebSocket fan-out

import json
import uuid
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

import uvicorn
from fastapi import (
    FastAPI, APIRouter, BackgroundTasks, Depends, Query, WebSocket, WebSocketDisconnect,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from . import complaints as store
from . import departments as registry
from .auth import (
    Action, create_access_token, ensure_assigned_provider, ensure_owner_or_admin,
    get_current_user, hash_password, oauth2_scheme, require_permission, revoke_token,
    user_to_response, verify_password,
)
from .config import API_PREFIX, DEFAULT_LOCATION_RADIUS_KM, FRONTEND_URL, PORT
from .database import executor, get_db, startup_db, shutdown_db
from .errors import PublicCareError, InvalidQuery, NotFound, Forbidden, NotAuthenticated
from .models import (
    Category, ComplaintAssignment, ComplaintCreate, ComplaintRating, ComplaintStatus,
    ComplaintUpdate, ComplaintUpdateEntry, AttachmentCreate, DepartmentCreate,
    DepartmentUpdate, Priority, StaffCreate, TokenResponse, UserCreate, UserLogin, UserRole,
    UserUpdate,
)
from .notifications import hub

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_db()
    logger.info("PublicCare API ready at %s", API_PREFIX)
    yield
    shutdown_db()

app = FastAPI(title="PublicCare: Municipal Complaint Tracking API", lifespan=lifespan)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
api = APIRouter(prefix=API_PREFIX)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware, allow_origins=[FRONTEND_URL], allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"], allow_headers=["*"])

# ---------------------------------------------------------------------------
# Envelope & error handlers
# ---------------------------------------------------------------------------
def ok(data: Any, **extra) -> Dict[str, Any]:
    return {"success": True, **extra, "data": data}

def fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})

@app.exception_handler(PublicCareError)
async def domain_error_handler(request: Request, exc: PublicCareError):
    return fail(exc.status_code, exc.message)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return fail(exc.status_code, str(exc.detail))

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    else:
        message = "Invalid request"
    return fail(400, message)

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return fail(429, f"Too many requests, please try again later ({exc.detail})")

@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail(500, "Server Error")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def validate_uuid(value: str, param_name: str = "id") -> str:
    """Validate that a path parameter is a UUID string."""
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        raise InvalidQuery(f"Invalid {param_name} format")
    return value

def complaint_payload(doc: dict, role: Optional[str] = UserRole.ADMIN.value) -> dict:
    return store.convert_db_complaint(doc, role).model_dump()

def complaint_list(docs, role: Optional[str]) -> list:
    return [store.convert_db_complaint(c, role) for c in docs]

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
def new_user_doc(user_data: UserCreate) -> dict:
    return {
        "_id": str(uuid.uuid4()), "username": user_data.username,
        "hashed_password": hash_password(user_data.password),
        "full_name": user_data.full_name, "email": user_data.email,
        "phone": user_data.phone, "role": user_data.role.value, "is_active": True,
        "department": user_data.department, "created_at": datetime.now(timezone.utc),
    }

@api.post("/auth/register", status_code=201)
@limiter.limit("5/minute")
async def register(request: Request, user_data: UserCreate, db=Depends(get_db)):
    # Providers and admins are created through the admin panel
    if user_data.role != UserRole.CITIZEN:
        raise Forbidden("Public registration is for citizens only")
    loop = asyncio.get_event_loop()
    existing = await loop.run_in_executor(executor, db.users.find_one, {"username": user_data.username})
    if existing:
        raise InvalidQuery("Username already exists")
    user_doc = new_user_doc(user_data)
    await loop.run_in_executor(executor, db.users.insert_one, user_doc)
    token = create_access_token({"sub": user_data.username, "role": user_doc["role"]})
    return ok(TokenResponse(access_token=token, user=user_to_response(user_doc)))

@api.post("/auth/login")
@limiter.limit("10/minute")
async def login(request: Request, form: UserLogin, db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    user = await loop.run_in_executor(executor, db.users.find_one, {"username": form.username})
    if not user or not verify_password(form.password, user["hashed_password"]):
        raise NotAuthenticated("Invalid credentials")
    if not user.get("is_active", True):
        raise NotAuthenticated("User account is deactivated")
    token = create_access_token({"sub": user["username"], "role": user["role"]})
    return ok(TokenResponse(access_token=token, user=user_to_response(user)))

@api.get("/auth/me")
async def get_me(user=Depends(get_current_user)):
    return ok(user_to_response(user))

@api.post("/auth/logout")
async def logout(token: Optional[str] = Depends(oauth2_scheme)):
    if token:
        revoke_token(token)
    return ok({})

# ---------------------------------------------------------------------------
# ADMIN USER MANAGEMENT ENDPOINTS
# ---------------------------------------------------------------------------
@api.get("/admin/users")
async def admin_list_users(role: Optional[UserRole] = None, active: Optional[bool] = None,
                           user=Depends(require_permission(Action.USER_MANAGE)),
                           db=Depends(get_db)):
    query = {}
    if role: query["role"] = role.value
    if active is not None: query["is_active"] = active
    loop = asyncio.get_event_loop()
    users = await loop.run_in_executor(executor, lambda: list(db.users.find(query).sort("created_at", -1)))
    return ok([user_to_response(u) for u in users], count=len(users))

@api.post("/admin/users", status_code=201)
async def admin_create_user(user_data: UserCreate,
                            user=Depends(require_permission(Action.USER_MANAGE)),
                            db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    existing = await loop.run_in_executor(executor, db.users.find_one, {"username": user_data.username})
    if existing:
        raise InvalidQuery("Username already exists")
    user_doc = new_user_doc(user_data)
    await loop.run_in_executor(executor, db.users.insert_one, user_doc)
    logger.info("Admin %s created user %s (%s)", user["username"], user_data.username, user_data.role.value)
    return ok(user_to_response(user_doc))

@api.put("/admin/users/{user_id}")
async def admin_update_user(user_id: str, update: UserUpdate,
                            user=Depends(require_permission(Action.USER_MANAGE)),
                            db=Depends(get_db)):
    user_id = validate_uuid(user_id, "user_id")
    loop = asyncio.get_event_loop()
    target = await loop.run_in_executor(executor, db.users.find_one, {"_id": user_id})
    if not target:
        raise NotFound("User not found")
    set_fields = update.model_dump(exclude_unset=True, exclude_none=True)
    if str(user["_id"]) == user_id and set_fields.get("is_active") is False:
        raise InvalidQuery("Cannot deactivate your own account")
    if "role" in set_fields:
        set_fields["role"] = update.role.value
    if "password" in set_fields:
        set_fields["hashed_password"] = hash_password(set_fields.pop("password"))
    if not set_fields:
        raise InvalidQuery("No fields to update")
    await loop.run_in_executor(
        executor, lambda: db.users.update_one({"_id": user_id}, {"$set": set_fields}))
    updated = await loop.run_in_executor(executor, db.users.find_one, {"_id": user_id})
    logger.info("Admin %s updated user %s", user["username"], target["username"])
    return ok(user_to_response(updated))

@api.delete("/admin/users/{user_id}")
async def admin_deactivate_user(user_id: str,
                                user=Depends(require_permission(Action.USER_MANAGE)),
                                db=Depends(get_db)):
    user_id = validate_uuid(user_id, "user_id")
    if str(user["_id"]) == user_id:
        raise InvalidQuery("Cannot deactivate your own account")
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(
        executor, lambda: db.users.update_one({"_id": user_id}, {"$set": {"is_active": False}}))
    if result.matched_count == 0:
        raise NotFound("User not found")
    logger.info("Admin %s deactivated user %s", user["username"], user_id)
    return ok({})

# ---------------------------------------------------------------------------
# COMPLAINT ENDPOINTS
# ---------------------------------------------------------------------------
@api.get("/complaints")
async def get_complaints(
    status: Optional[ComplaintStatus] = None, category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    is_emergency: Optional[bool] = Query(None, alias="isEmergency"),
    department: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    lat: Optional[float] = None, lng: Optional[float] = None, radius: Optional[float] = None,
    page: int = Query(1, ge=1), limit: int = Query(25, ge=1, le=100),
    sort: str = Query("-createdAt", max_length=200),
    db=Depends(get_db)):
    query = store.build_complaint_filter(
        status=status.value if status else None, category=category.value if category else None,
        priority=priority.value if priority else None, is_emergency=is_emergency,
        department=department, start_date=start_date, end_date=end_date,
        lat=lat, lng=lng, radius=radius)
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(executor, store.find_page, db, query, page, limit, sort)
    return ok(complaint_list(result["docs"], None), count=len(result["docs"]),
              total=result["total"], pagination=result["pagination"])

@api.get("/complaints/location")
async def get_complaints_by_location(lat: Optional[float] = None, lng: Optional[float] = None,
                                     radius: float = Query(DEFAULT_LOCATION_RADIUS_KM, gt=0, le=500),
                                     db=Depends(get_db)):
    if lat is None or lng is None:
        raise InvalidQuery("Latitude and longitude are required")
    loop = asyncio.get_event_loop()
    docs = await loop.run_in_executor(executor, store.find_near, db, lat, lng, radius)
    return ok(complaint_list(docs, None), count=len(docs))

@api.get("/complaints/analytics")
async def get_complaint_analytics(db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    data = await loop.run_in_executor(executor, store.complaint_analytics, db)
    return ok(data)

@api.get("/complaints/my")
async def get_my_complaints(status: Optional[ComplaintStatus] = None,
                            category: Optional[Category] = None,
                            page: int = Query(1, ge=1), limit: int = Query(25, ge=1, le=100),
                            user=Depends(get_current_user), db=Depends(get_db)):
    query = store.build_complaint_filter(
        status=status.value if status else None, category=category.value if category else None)
    query["submitted_by"] = str(user["_id"])
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(executor, store.find_page, db, query, page, limit)
    return ok(complaint_list(result["docs"], user["role"]), count=len(result["docs"]),
              total=result["total"], pagination=result["pagination"])

@api.get("/complaints/assigned")
async def get_assigned_complaints(status: Optional[ComplaintStatus] = None,
                                  category: Optional[Category] = None,
                                  priority: Optional[Priority] = None,
                                  page: int = Query(1, ge=1), limit: int = Query(25, ge=1, le=100),
                                  user=Depends(require_permission(Action.COMPLAINT_VIEW_ASSIGNED)),
                                  db=Depends(get_db)):
    query = store.build_complaint_filter(
        status=status.value if status else None, category=category.value if category else None,
        priority=priority.value if priority else None)
    query["assigned_to"] = str(user["_id"])
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(executor, store.find_page, db, query, page, limit)
    return ok(complaint_list(result["docs"], user["role"]), count=len(result["docs"]),
              total=result["total"], pagination=result["pagination"])

@api.post("/complaints", status_code=201)
async def create_complaint(data: ComplaintCreate, background_tasks: BackgroundTasks,
                           user=Depends(require_permission(Action.COMPLAINT_CREATE)),
                           db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    doc = await loop.run_in_executor(executor, store.create_complaint, db, data, user)
    background_tasks.add_task(hub.complaint_created, complaint_payload(doc))
    return ok(store.convert_db_complaint(doc, user["role"]))

@api.get("/complaints/{complaint_id}")
async def get_complaint(complaint_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    doc = await loop.run_in_executor(executor, store.view_complaint, db, complaint_id)
    return ok(store.convert_db_complaint(doc, user["role"]))

@api.put("/complaints/{complaint_id}")
async def update_complaint(complaint_id: str, changes: ComplaintUpdate,
                           background_tasks: BackgroundTasks,
                           user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    current = await loop.run_in_executor(executor, store.load_complaint, db, complaint_id)
    ensure_owner_or_admin(user, current)
    old, updated = await loop.run_in_executor(executor, store.update_complaint, db, complaint_id, changes)
    if changes.status is not None and old["status"] != updated["status"]:
        background_tasks.add_task(hub.status_changed, complaint_payload(updated),
                                  old["status"], updated["status"])
    return ok(store.convert_db_complaint(updated, user["role"]))

@api.delete("/complaints/{complaint_id}")
async def delete_complaint(complaint_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    current = await loop.run_in_executor(executor, store.load_complaint, db, complaint_id)
    ensure_owner_or_admin(user, current)
    await loop.run_in_executor(executor, store.delete_complaint, db, complaint_id)
    logger.info("Complaint %s deleted by %s", complaint_id, user["username"])
    return ok({})

@api.post("/complaints/{complaint_id}/updates")
async def add_complaint_update(complaint_id: str, entry: ComplaintUpdateEntry,
                               background_tasks: BackgroundTasks,
                               user=Depends(require_permission(Action.COMPLAINT_ADD_UPDATE)),
                               db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    current = await loop.run_in_executor(executor, store.load_complaint, db, complaint_id)
    ensure_assigned_provider(user, current)
    doc, update = await loop.run_in_executor(executor, store.add_update, db, complaint_id, entry, user)
    background_tasks.add_task(hub.update_added, complaint_id, update)
    return ok(store.convert_db_complaint(doc, user["role"]))

@api.post("/complaints/{complaint_id}/rate")
async def rate_complaint(complaint_id: str, rating: ComplaintRating,
                         user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    current = await loop.run_in_executor(executor, store.load_complaint, db, complaint_id)
    ensure_owner_or_admin(user, current)
    doc = await loop.run_in_executor(executor, store.rate_complaint, db, complaint_id, rating)
    return ok(store.convert_db_complaint(doc, user["role"]))

@api.put("/complaints/{complaint_id}/assign")
async def assign_complaint(complaint_id: str, assignment: ComplaintAssignment,
                           background_tasks: BackgroundTasks,
                           user=Depends(require_permission(Action.COMPLAINT_ASSIGN)),
                           db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    doc = await loop.run_in_executor(
        executor, store.assign_complaint, db, complaint_id, assignment.assigned_to)
    background_tasks.add_task(hub.complaint_assigned, complaint_payload(doc))
    return ok(store.convert_db_complaint(doc, user["role"]))

@api.post("/complaints/{complaint_id}/attachments")
async def upload_complaint_attachment(complaint_id: str, attachment: AttachmentCreate,
                                      user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    current = await loop.run_in_executor(executor, store.load_complaint, db, complaint_id)
    ensure_owner_or_admin(user, current)
    doc = await loop.run_in_executor(executor, store.add_attachment, db, complaint_id, attachment)
    return ok(store.convert_db_complaint(doc, user["role"]))

# ---------------------------------------------------------------------------
# DEPARTMENT ENDPOINTS
# ---------------------------------------------------------------------------
@api.get("/departments")
async def get_departments(category: Optional[Category] = None, active: Optional[bool] = None,
                          page: int = Query(1, ge=1), limit: int = Query(25, ge=1, le=100),
                          db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(
        executor, registry.list_departments, db, page, limit,
        category.value if category else None, active)
    return ok([registry.convert_db_department(d) for d in result["docs"]],
              count=len(result["docs"]), total=result["total"], pagination=result["pagination"])

@api.get("/departments/{department_id}")
async def get_department(department_id: str, db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.load_department, db, department_id)
    return ok(registry.convert_db_department(d))

@api.post("/departments", status_code=201)
async def create_department(data: DepartmentCreate,
                            user=Depends(require_permission(Action.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.create_department, db, data)
    logger.info("Admin %s created department %s", user["username"], d["name"])
    return ok(registry.convert_db_department(d))

@api.put("/departments/{department_id}")
async def update_department(department_id: str, changes: DepartmentUpdate,
                            user=Depends(require_permission(Action.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.update_department, db, department_id, changes)
    return ok(registry.convert_db_department(d))

@api.delete("/departments/{department_id}")
async def delete_department(department_id: str,
                            user=Depends(require_permission(Action.DEPARTMENT_MANAGE)),
                            db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.deactivate_department, db, department_id)
    logger.info("Admin %s deactivated department %s", user["username"], d["name"])
    return ok(registry.convert_db_department(d))

@api.post("/departments/{department_id}/staff")
async def add_staff_to_department(department_id: str, member: StaffCreate,
                                  user=Depends(require_permission(Action.DEPARTMENT_MANAGE)),
                                  db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.add_staff, db, department_id, member)
    return ok(registry.convert_db_department(d))

@api.delete("/departments/{department_id}/staff/{user_id}")
async def remove_staff_from_department(department_id: str, user_id: str,
                                       user=Depends(require_permission(Action.DEPARTMENT_MANAGE)),
                                       db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    d = await loop.run_in_executor(executor, registry.remove_staff, db, department_id, user_id)
    return ok(registry.convert_db_department(d))

@api.get("/departments/{department_id}/stats")
async def get_department_stats(department_id: str,
                               user=Depends(require_permission(Action.DEPARTMENT_READ_STATS)),
                               db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    return ok(await loop.run_in_executor(executor, registry.department_stats, db, department_id))

@api.get("/departments/{department_id}/complaints")
async def get_department_complaints(department_id: str, status: Optional[ComplaintStatus] = None,
                                    page: int = Query(1, ge=1), limit: int = Query(25, ge=1, le=100),
                                    sort: str = Query("-createdAt", max_length=200),
                                    user=Depends(require_permission(Action.DEPARTMENT_READ_STATS)),
                                    db=Depends(get_db)):
    department_id = validate_uuid(department_id, "department_id")
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, registry.load_department, db, department_id)
    query = store.build_complaint_filter(status=status.value if status else None,
                                         department=department_id)
    result = await loop.run_in_executor(executor, store.find_page, db, query, page, limit, sort)
    return ok(complaint_list(result["docs"], user["role"]), count=len(result["docs"]),
              total=result["total"], pagination=result["pagination"])

app.include_router(api)

# ---------------------------------------------------------------------------
# REAL-TIME CHANNEL
# ---------------------------------------------------------------------------
@app.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                continue
            await websocket.send_json(await hub.handle_message(websocket, message))
    except WebSocketDisconnect:
        logger.info("Subscriber %s disconnected", id(websocket))
    finally:
        hub.disconnect(websocket)

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"success": True, "status": "healthy", "system": "PublicCare API",
            "timestamp": datetime.now(timezone.utc)}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
