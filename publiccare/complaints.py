# Complaint store operations: queries, lifecycle mutations and analytics
#
# Every function here is synchronous and takes the pymongo database handle;
# the API layer runs them on the shared executor.

import uuid
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pymongo import ReturnDocument, ASCENDING, DESCENDING

from .config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, EARTH_RADIUS_KM
from .errors import NotFound, InvalidQuery, InvalidAssignee, ComplaintNotResolved
from .models import (
    ComplaintCreate, ComplaintUpdate, ComplaintUpdateEntry, ComplaintRating,
    AttachmentCreate, ComplaintResponse, ComplaintStatus, Priority, UserRole,
)
from .routing import route_complaint, sla_deadlines

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "created_at": "created_at", "createdAt": "created_at",
    "updated_at": "updated_at", "updatedAt": "updated_at",
    "priority": "priority", "status": "status", "category": "category",
    "title": "title", "view_count": "view_count", "viewCount": "view_count",
    "rating": "rating",
}

# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------
def parse_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    """Parse ``-createdAt,priority`` style sort strings into pymongo sort specs."""
    order = []
    for part in (sort or "-createdAt").split(","):
        part = part.strip()
        if not part:
            continue
        direction = DESCENDING if part.startswith("-") else ASCENDING
        name = part.lstrip("+-")
        if name not in SORT_FIELDS:
            raise InvalidQuery(f"Cannot sort by '{name}'")
        order.append((SORT_FIELDS[name], direction))
    if not order:
        raise InvalidQuery("Empty sort expression")
    # _id as a final tiebreaker keeps pages stable when timestamps collide
    order.append(("_id", ASCENDING))
    return order

def parse_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = page or 1
    limit = limit or DEFAULT_PAGE_SIZE
    if page < 1:
        raise InvalidQuery("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidQuery(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return page, limit

def radius_filter(lat: float, lng: float, radius_km: float) -> dict:
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidQuery("Latitude or longitude out of range")
    if radius_km <= 0:
        raise InvalidQuery("radius must be positive")
    return {"$geoWithin": {"$centerSphere": [[lng, lat], radius_km / EARTH_RADIUS_KM]}}

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC, the form MongoDB stores and returns dates in."""
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def build_complaint_filter(status: Optional[str] = None, category: Optional[str] = None,
                           priority: Optional[str] = None, is_emergency: Optional[bool] = None,
                           department: Optional[str] = None,
                           start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                           lat: Optional[float] = None, lng: Optional[float] = None,
                           radius: Optional[float] = None) -> dict:
    query = {}
    if status: query["status"] = status
    if category: query["category"] = category
    if priority: query["priority"] = priority
    if is_emergency is not None: query["is_emergency"] = is_emergency
    if department: query["department"] = department
    if start_date or end_date:
        start_date, end_date = _as_utc(start_date), _as_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise InvalidQuery("startDate must not be after endDate")
        query["created_at"] = {}
        if start_date: query["created_at"]["$gte"] = start_date
        if end_date: query["created_at"]["$lte"] = end_date
    if lat is not None and lng is not None and radius is not None:
        query["location"] = radius_filter(lat, lng, radius)
    return query

def paginate(collection, query: dict, page: Optional[int], limit: Optional[int],
             sort_spec: List[Tuple[str, int]]) -> dict:
    page, limit = parse_page(page, limit)
    start = (page - 1) * limit
    docs = list(collection.find(query).sort(sort_spec).skip(start).limit(limit))
    total = collection.count_documents(query)
    pagination = {}
    if start + limit < total:
        pagination["next"] = {"page": page + 1, "limit": limit}
    if start > 0:
        pagination["prev"] = {"page": page - 1, "limit": limit}
    return {"docs": docs, "total": total, "pagination": pagination}

def find_page(db, query: dict, page: Optional[int], limit: Optional[int],
              sort: Optional[str] = None) -> dict:
    return paginate(db.complaints, query, page, limit, parse_sort(sort))

def find_near(db, lat: float, lng: float, radius_km: float) -> List[dict]:
    return list(db.complaints.find({"location": radius_filter(lat, lng, radius_km)}))

# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------
def convert_db_complaint(c: dict, viewer_role: Optional[str] = None) -> ComplaintResponse:
    updates = c.get("updates", [])
    if viewer_role in (None, UserRole.CITIZEN.value):
        updates = [u for u in updates if not u.get("is_internal")]
    doc = dict(c, updates=updates)
    return ComplaintResponse(**doc, id=c["_id"])

# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(timezone.utc)

def _attachment_doc(a: AttachmentCreate, now: datetime) -> dict:
    return {"filename": a.filename, "url": a.url, "type": a.type.value,
            "size": a.size, "uploaded_at": now}

def load_complaint(db, complaint_id: str) -> dict:
    c = db.complaints.find_one({"_id": complaint_id})
    if not c:
        raise NotFound("Complaint not found")
    return c

def create_complaint(db, data: ComplaintCreate, user: dict) -> dict:
    department = route_complaint(db, data.category.value)
    now = _now()
    priority = Priority.CRITICAL if data.is_emergency else data.priority
    response_due, resolution_due = sla_deadlines(
        department, data.category.value, data.is_emergency, now)
    doc = {
        "_id": str(uuid.uuid4()),
        "title": data.title, "description": data.description,
        "category": data.category.value, "priority": priority.value,
        "status": ComplaintStatus.SUBMITTED.value, "is_emergency": data.is_emergency,
        "location": data.location.to_document(),
        "submitted_by": str(user["_id"]), "assigned_to": None,
        "department": department["_id"],
        "updates": [], "attachments": [_attachment_doc(a, now) for a in data.attachments],
        "view_count": 0, "rating": None, "feedback": None,
        "response_due_at": response_due, "resolution_due_at": resolution_due,
        "resolved_at": None, "created_at": now, "updated_at": now,
    }
    db.complaints.insert_one(doc)
    # Separate write; a failure here leaves the complaint stored but uncounted
    db.departments.update_one({"_id": department["_id"]},
                              {"$inc": {"performance.total_complaints_handled": 1}})
    logger.info("Complaint %s (%s) routed to department %s", doc["_id"], doc["category"],
                department["name"])
    return doc

def view_complaint(db, complaint_id: str) -> dict:
    c = db.complaints.find_one_and_update(
        {"_id": complaint_id}, {"$inc": {"view_count": 1}},
        return_document=ReturnDocument.AFTER)
    if not c:
        raise NotFound("Complaint not found")
    return c

def update_complaint(db, complaint_id: str, changes: ComplaintUpdate) -> Tuple[dict, dict]:
    """Apply a generic field update; returns (previous, updated) documents."""
    old = load_complaint(db, complaint_id)
    fields = changes.model_dump(exclude_unset=True, exclude_none=True)
    set_fields = {}
    for key in ("title", "description"):
        if key in fields:
            set_fields[key] = fields[key]
    if "priority" in fields:
        set_fields["priority"] = changes.priority.value
    if "is_emergency" in fields:
        set_fields["is_emergency"] = changes.is_emergency
    if changes.location is not None:
        set_fields["location"] = changes.location.to_document()
    if set_fields.get("is_emergency", old.get("is_emergency")):
        set_fields["priority"] = Priority.CRITICAL.value
    if changes.status is not None:
        set_fields["status"] = changes.status.value
        if changes.status == ComplaintStatus.RESOLVED and not old.get("resolved_at"):
            set_fields["resolved_at"] = _now()
    if not set_fields:
        raise InvalidQuery("No fields to update")
    set_fields["updated_at"] = _now()
    updated = db.complaints.find_one_and_update(
        {"_id": complaint_id}, {"$set": set_fields}, return_document=ReturnDocument.AFTER)
    if not updated:
        raise NotFound("Complaint not found")
    if "resolved_at" in set_fields:
        db.departments.update_one({"_id": updated["department"]},
                                  {"$inc": {"performance.resolved_complaints": 1}})
        refresh_department_performance(db, updated["department"])
    return old, updated

def delete_complaint(db, complaint_id: str):
    result = db.complaints.delete_one({"_id": complaint_id})
    if result.deleted_count == 0:
        raise NotFound("Complaint not found")

def add_update(db, complaint_id: str, entry: ComplaintUpdateEntry, user: dict) -> Tuple[dict, dict]:
    now = _now()
    update = {
        "id": str(uuid.uuid4()), "message": entry.message, "created_by": str(user["_id"]),
        "type": entry.type.value, "is_internal": entry.is_internal,
        "attachments": [_attachment_doc(a, now) for a in entry.attachments],
        "created_at": now,
    }
    c = db.complaints.find_one_and_update(
        {"_id": complaint_id},
        {"$push": {"updates": update}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER)
    if not c:
        raise NotFound("Complaint not found")
    return c, update

def rate_complaint(db, complaint_id: str, rating: ComplaintRating) -> dict:
    load_complaint(db, complaint_id)
    c = db.complaints.find_one_and_update(
        {"_id": complaint_id, "status": ComplaintStatus.RESOLVED.value},
        {"$set": {"rating": rating.rating, "feedback": rating.feedback, "updated_at": _now()}},
        return_document=ReturnDocument.AFTER)
    if not c:
        raise ComplaintNotResolved()
    refresh_department_performance(db, c["department"])
    return c

def assign_complaint(db, complaint_id: str, assignee_id: str) -> dict:
    load_complaint(db, complaint_id)
    provider = db.users.find_one({"_id": assignee_id})
    if (not provider or provider.get("role") != UserRole.PROVIDER.value
            or not provider.get("is_active", True)):
        raise InvalidAssignee()
    c = db.complaints.find_one_and_update(
        {"_id": complaint_id},
        {"$set": {"assigned_to": assignee_id, "status": ComplaintStatus.UNDER_REVIEW.value,
                  "updated_at": _now()}},
        return_document=ReturnDocument.AFTER)
    if not c:
        raise NotFound("Complaint not found")
    logger.info("Complaint %s assigned to provider %s", complaint_id, provider["username"])
    return c

def add_attachment(db, complaint_id: str, attachment: AttachmentCreate) -> dict:
    now = _now()
    c = db.complaints.find_one_and_update(
        {"_id": complaint_id},
        {"$push": {"attachments": _attachment_doc(attachment, now)}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER)
    if not c:
        raise NotFound("Complaint not found")
    return c

# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
def _hours_between(start: datetime, end: datetime) -> float:
    # Documents read back from the driver may be naive UTC
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
    return (end - start).total_seconds() / 3600

def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0

def resolution_hours(db, query: dict) -> List[float]:
    q = dict(query, resolved_at={"$ne": None})
    return [_hours_between(c["created_at"], c["resolved_at"])
            for c in db.complaints.find(q, {"created_at": 1, "resolved_at": 1})]

def response_hours(db, query: dict) -> List[float]:
    """Hours from submission to the first logged update, for complaints that have one."""
    q = dict(query, updates={"$exists": True, "$ne": []})
    return [_hours_between(c["created_at"], c["updates"][0]["created_at"])
            for c in db.complaints.find(q, {"created_at": 1, "updates": 1})]

def average_rating(db, query: dict) -> float:
    rows = list(db.complaints.aggregate([
        {"$match": dict(query, rating={"$ne": None})},
        {"$group": {"_id": None, "avg": {"$avg": "$rating"}}}]))
    return round(rows[0]["avg"], 2) if rows and rows[0].get("avg") is not None else 0.0

def complaint_analytics(db) -> dict:
    resolved = ComplaintStatus.RESOLVED.value
    resolved_sum = {"$sum": {"$cond": [{"$eq": ["$status", resolved]}, 1, 0]}}
    category_stats = list(db.complaints.aggregate([
        {"$group": {"_id": "$category", "count": {"$sum": 1}, "resolved": resolved_sum}},
        {"$sort": {"count": -1}}]))
    status_stats = list(db.complaints.aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}}]))
    monthly = list(db.complaints.aggregate([
        {"$group": {"_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
                    "complaints": {"$sum": 1}, "resolved": resolved_sum}},
        {"$sort": {"_id.year": -1, "_id.month": -1}},
        {"$limit": 12}]))
    return {
        "summary": {
            "total": db.complaints.count_documents({}),
            "resolved": db.complaints.count_documents({"status": resolved}),
            "emergency": db.complaints.count_documents({"is_emergency": True}),
            "average_rating": average_rating(db, {}),
            "average_resolution_hours": _average(resolution_hours(db, {})),
        },
        "category_stats": [{"category": r["_id"], "count": r["count"], "resolved": r["resolved"]}
                           for r in category_stats],
        "status_stats": [{"status": r["_id"], "count": r["count"]} for r in status_stats],
        "monthly_trends": [{"year": r["_id"]["year"], "month": r["_id"]["month"],
                            "complaints": r["complaints"], "resolved": r["resolved"]}
                           for r in monthly],
    }

def refresh_department_performance(db, department_id: str):
    """Recompute a department's averages from its complaints."""
    q = {"department": department_id}
    db.departments.update_one({"_id": department_id}, {"$set": {
        "performance.average_response_time": _average(response_hours(db, q)),
        "performance.average_resolution_time": _average(resolution_hours(db, q)),
        "performance.satisfaction_rating": average_rating(db, q),
    }})
