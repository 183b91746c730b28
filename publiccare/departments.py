# Department registry: CRUD, staff roster and per-department statistics

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument, ASCENDING
from pymongo.errors import DuplicateKeyError

from .complaints import paginate
from .errors import NotFound, DuplicateRecord, InvalidQuery
from .models import (
    DepartmentCreate, DepartmentUpdate, DepartmentResponse, StaffCreate,
    ComplaintStatus, OPEN_STATUSES,
)

logger = logging.getLogger(__name__)

EMPTY_PERFORMANCE = {
    "average_response_time": 0.0, "average_resolution_time": 0.0,
    "satisfaction_rating": 0.0, "total_complaints_handled": 0, "resolved_complaints": 0,
}


def convert_db_department(d: dict) -> DepartmentResponse:
    performance = dict(EMPTY_PERFORMANCE, **(d.get("performance") or {}))
    handled = performance["total_complaints_handled"]
    rate = (performance["resolved_complaints"] / handled * 100) if handled else 0.0
    return DepartmentResponse(
        **dict(d, performance=performance), id=d["_id"],
        total_staff=sum(1 for s in d.get("staff", []) if s.get("is_active")),
        resolution_rate=round(rate, 2))


def load_department(db, department_id: str) -> dict:
    d = db.departments.find_one({"_id": department_id})
    if not d:
        raise NotFound("Department not found")
    return d


def _check_user(db, user_id: Optional[str], label: str):
    if user_id and not db.users.find_one({"_id": user_id}):
        raise InvalidQuery(f"{label} user not found")


def _check_unique_name(db, name: str, exclude_id: Optional[str] = None):
    existing = db.departments.find_one({"name": name})
    if existing and existing["_id"] != exclude_id:
        raise DuplicateRecord("Department name already exists")


def create_department(db, data: DepartmentCreate) -> dict:
    _check_unique_name(db, data.name)
    _check_user(db, data.head, "Head")
    now = datetime.now(timezone.utc)
    doc = data.model_dump(mode="json")
    doc.update({
        "_id": str(uuid.uuid4()), "staff": [], "performance": dict(EMPTY_PERFORMANCE),
        "is_active": True, "created_at": now, "updated_at": now,
    })
    try:
        db.departments.insert_one(doc)
    except DuplicateKeyError:
        raise DuplicateRecord("Department name already exists")
    return doc


def list_departments(db, page: int, limit: int, category: Optional[str] = None,
                     active: Optional[bool] = None) -> dict:
    query = {}
    if category: query["categories"] = category
    if active is not None: query["is_active"] = active
    return paginate(db.departments, query, page, limit, [("name", ASCENDING), ("_id", ASCENDING)])


def update_department(db, department_id: str, changes: DepartmentUpdate) -> dict:
    load_department(db, department_id)
    set_fields = changes.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if not set_fields:
        raise InvalidQuery("No fields to update")
    if "name" in set_fields:
        set_fields["name"] = set_fields["name"].strip()
        _check_unique_name(db, set_fields["name"], exclude_id=department_id)
    if "tags" in set_fields:
        set_fields["tags"] = [t.strip().lower() for t in set_fields["tags"] if t.strip()]
    _check_user(db, set_fields.get("head"), "Head")
    set_fields["updated_at"] = datetime.now(timezone.utc)
    try:
        return db.departments.find_one_and_update(
            {"_id": department_id}, {"$set": set_fields}, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        raise DuplicateRecord("Department name already exists")


def deactivate_department(db, department_id: str) -> dict:
    load_department(db, department_id)
    return db.departments.find_one_and_update(
        {"_id": department_id},
        {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER)


def add_staff(db, department_id: str, data: StaffCreate) -> dict:
    d = load_department(db, department_id)
    user = db.users.find_one({"_id": data.user})
    if not user:
        raise NotFound("User not found")
    if any(s["user"] == data.user and s.get("is_active") for s in d.get("staff", [])):
        raise DuplicateRecord("User is already an active staff member")
    member = {"user": data.user, "position": data.position,
              "joined_at": datetime.now(timezone.utc), "is_active": True}
    updated = db.departments.find_one_and_update(
        {"_id": department_id},
        {"$push": {"staff": member}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER)
    db.users.update_one({"_id": data.user}, {"$set": {"department": department_id}})
    logger.info("Added %s to department %s as %s", user["username"], d["name"], data.position)
    return updated


def remove_staff(db, department_id: str, user_id: str) -> dict:
    """Flag the user's active staff entry inactive; the roster keeps the history."""
    d = load_department(db, department_id)
    staff = d.get("staff", [])
    found = False
    for member in staff:
        if member["user"] == user_id and member.get("is_active"):
            member["is_active"] = False
            found = True
    if not found:
        raise NotFound("Staff member not found")
    updated = db.departments.find_one_and_update(
        {"_id": department_id},
        {"$set": {"staff": staff, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER)
    db.users.update_one({"_id": user_id, "department": department_id},
                        {"$set": {"department": None}})
    return updated


def department_stats(db, department_id: str) -> dict:
    d = load_department(db, department_id)
    rows = db.complaints.aggregate([
        {"$match": {"department": department_id}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    by_status = {s.value: 0 for s in ComplaintStatus}
    for r in rows:
        by_status[r["_id"]] = r["count"]
    emergency_open = db.complaints.count_documents({
        "department": department_id, "is_emergency": True,
        "status": {"$in": OPEN_STATUSES}})
    dept = convert_db_department(d)
    return {
        "department": {"id": dept.id, "name": dept.name},
        "total": sum(by_status.values()),
        "by_status": by_status,
        "open_emergencies": emergency_open,
        "performance": dept.performance,
        "resolution_rate": dept.resolution_rate,
        "total_staff": dept.total_staff,
    }
