# Enums and request/response models for the PublicCare API

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(str, Enum):
    CITIZEN = "citizen"
    PROVIDER = "provider"
    ADMIN = "admin"

class Category(str, Enum):
    ELECTRICITY = "electricity"
    WATER = "water"
    ROADS = "roads"
    SANITATION = "sanitation"
    STREET_LIGHTS = "street_lights"
    DRAINAGE = "drainage"
    PUBLIC_TRANSPORT = "public_transport"
    OTHER = "other"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class ComplaintStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"

OPEN_STATUSES = [ComplaintStatus.SUBMITTED.value, ComplaintStatus.UNDER_REVIEW.value,
                 ComplaintStatus.IN_PROGRESS.value]

class UpdateType(str, Enum):
    PROGRESS_UPDATE = "progress_update"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    RESOLUTION = "resolution"
    COMMENT = "comment"

class AttachmentType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"

# ---------------------------------------------------------------------------
# Validation patterns
# ---------------------------------------------------------------------------
EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

def _check_phone(v: Optional[str]) -> Optional[str]:
    if v is not None and not PHONE_RE.match(v):
        raise ValueError("Please provide a valid phone number")
    return v

def _check_password_bytes(v: Optional[str]) -> Optional[str]:
    # bcrypt only reads the first 72 bytes
    if v is not None and len(v.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    return v

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., max_length=200)
    email: str = Field(..., max_length=320)
    phone: Optional[str] = Field(None, max_length=20)
    role: UserRole = UserRole.CITIZEN
    department: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if not EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email")
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _check_password_bytes(v)

class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=320)
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRole] = None
    department: Optional[str] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _check_password_bytes(v)

class UserLogin(BaseModel):
    username: str
    password: str

class UserResponse(BaseModel):
    id: str
    username: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool = True
    department: Optional[str] = None
    created_at: datetime

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------
class ComplaintLocation(BaseModel):
    """A complaint's position, accepted either as lat/lng or GeoJSON coordinates."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., max_length=300)
    city: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="before")
    @classmethod
    def check_location_format(cls, values):
        if isinstance(values, dict) and values.get("coordinates") is not None:
            coords = values["coordinates"]
            if not isinstance(coords, (list, tuple)) or len(coords) != 2:
                raise ValueError("Coordinates must be [longitude, latitude]")
            values = dict(values)
            values["longitude"], values["latitude"] = coords[0], coords[1]
        return values

    def to_document(self) -> dict:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude],
                "address": self.address, "city": self.city, "region": self.region}

class AttachmentCreate(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., max_length=2000)
    type: AttachmentType = AttachmentType.DOCUMENT
    size: int = Field(0, ge=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("Attachment url must be http(s)")
        return v

class ComplaintCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    category: Category
    priority: Priority = Priority.MEDIUM
    is_emergency: bool = Field(False, alias="isEmergency")
    location: ComplaintLocation
    attachments: List[AttachmentCreate] = Field(default_factory=list)

class ComplaintUpdate(BaseModel):
    # department, rating, updates and assignment have dedicated routes
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    priority: Optional[Priority] = None
    status: Optional[ComplaintStatus] = None
    is_emergency: Optional[bool] = Field(None, alias="isEmergency")
    location: Optional[ComplaintLocation] = None

class ComplaintUpdateEntry(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    type: UpdateType = UpdateType.PROGRESS_UPDATE
    is_internal: bool = False
    attachments: List[AttachmentCreate] = Field(default_factory=list)

class ComplaintRating(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=500)

class ComplaintAssignment(BaseModel):
    assigned_to: str

class ComplaintResponse(BaseModel):
    id: str
    title: str
    description: str
    category: Category
    priority: Priority
    status: ComplaintStatus
    is_emergency: bool = False
    location: Optional[Dict[str, Any]] = None
    submitted_by: str
    assigned_to: Optional[str] = None
    department: str
    updates: List[Dict[str, Any]] = Field(default_factory=list)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    view_count: int = 0
    rating: Optional[int] = None
    feedback: Optional[str] = None
    response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------
class ContactInfo(BaseModel):
    email: str
    phone: str
    address: str = Field(..., min_length=1, max_length=300)
    website: Optional[str] = None
    emergency_contact: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if not EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email")
        return v

    @field_validator("phone", "emergency_contact")
    @classmethod
    def validate_phone(cls, v):
        return _check_phone(v)

class WorkingDay(BaseModel):
    start: str = ""
    end: str = ""
    is_closed: bool = False

    @model_validator(mode="after")
    def check_times(self):
        if not self.is_closed:
            for t in (self.start, self.end):
                if not TIME_RE.match(t):
                    raise ValueError("Working hours must use HH:MM")
        return self

def _open_day() -> WorkingDay:
    return WorkingDay(start="09:00", end="17:00")

def _closed_day() -> WorkingDay:
    return WorkingDay(is_closed=True)

class WorkingHours(BaseModel):
    monday: WorkingDay = Field(default_factory=_open_day)
    tuesday: WorkingDay = Field(default_factory=_open_day)
    wednesday: WorkingDay = Field(default_factory=_open_day)
    thursday: WorkingDay = Field(default_factory=_open_day)
    friday: WorkingDay = Field(default_factory=_open_day)
    saturday: WorkingDay = Field(default_factory=_closed_day)
    sunday: WorkingDay = Field(default_factory=_closed_day)

class SLAEntry(BaseModel):
    category: Category
    response_time: float = Field(..., gt=0)
    resolution_time: float = Field(..., gt=0)
    emergency_response_time: float = Field(..., gt=0)

class ServiceArea(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    boundaries: Dict[str, Any]

    @field_validator("boundaries")
    @classmethod
    def validate_polygon(cls, v):
        if v.get("type", "Polygon") != "Polygon":
            raise ValueError("Service area boundaries must be a Polygon")
        rings = v.get("coordinates")
        if not isinstance(rings, list) or not rings:
            raise ValueError("Polygon needs at least one linear ring")
        for ring in rings:
            if len(ring) < 4 or ring[0] != ring[-1]:
                raise ValueError("Polygon rings must be closed and have at least 4 positions")
            for pos in ring:
                if len(pos) != 2:
                    raise ValueError("Polygon positions must be [longitude, latitude]")
        return {"type": "Polygon", "coordinates": rings}

class Budget(BaseModel):
    annual: float = Field(0, ge=0)
    allocated: float = Field(0, ge=0)
    spent: float = Field(0, ge=0)

class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    categories: List[Category] = Field(..., min_length=1)
    contact_info: ContactInfo
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    sla: List[SLAEntry] = Field(default_factory=list)
    head: Optional[str] = None
    service_areas: List[ServiceArea] = Field(default_factory=list)
    budget: Budget = Field(default_factory=Budget)
    tags: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        return [t.strip().lower() for t in v if t.strip()]

class DepartmentUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    categories: Optional[List[Category]] = Field(None, min_length=1)
    contact_info: Optional[ContactInfo] = None
    working_hours: Optional[WorkingHours] = None
    sla: Optional[List[SLAEntry]] = None
    head: Optional[str] = None
    service_areas: Optional[List[ServiceArea]] = None
    budget: Optional[Budget] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None

class StaffCreate(BaseModel):
    user: str
    position: str = Field(..., min_length=1, max_length=100)

class DepartmentResponse(BaseModel):
    id: str
    name: str
    description: str
    categories: List[Category]
    contact_info: Dict[str, Any]
    working_hours: Dict[str, Any]
    sla: List[Dict[str, Any]] = Field(default_factory=list)
    head: Optional[str] = None
    staff: List[Dict[str, Any]] = Field(default_factory=list)
    service_areas: List[Dict[str, Any]] = Field(default_factory=list)
    budget: Dict[str, Any] = Field(default_factory=dict)
    performance: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    tags: List[str] = Field(default_factory=list)
    total_staff: int = 0
    resolution_rate: float = 0.0
    created_at: datetime
    updated_at: datetime
