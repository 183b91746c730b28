# Department routing and SLA targets for new complaints

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from .errors import NoDepartmentForCategory

logger = logging.getLogger(__name__)


def route_complaint(db, category: str) -> dict:
    """Return the first active department covering ``category``.

    Departments are scanned in store insertion order. Service areas are not
    consulted.
    """
    department = db.departments.find_one({"categories": category, "is_active": True})
    if department is None:
        logger.info("No active department covers category %s", category)
        raise NoDepartmentForCategory()
    return department


def sla_for(department: dict, category: str) -> Optional[dict]:
    for entry in department.get("sla") or []:
        if entry.get("category") == category:
            return entry
    return None


def sla_deadlines(department: dict, category: str, is_emergency: bool,
                  created_at: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """(response_due_at, resolution_due_at) from the department's SLA entry."""
    entry = sla_for(department, category)
    if entry is None:
        return None, None
    response_hours = entry["emergency_response_time"] if is_emergency else entry["response_time"]
    return (created_at + timedelta(hours=response_hours),
            created_at + timedelta(hours=entry["resolution_time"]))
