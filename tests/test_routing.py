"""Department routing and SLA deadline rules."""

from datetime import datetime, timedelta, timezone

import pytest

from publiccare.errors import NoDepartmentForCategory
from publiccare.routing import route_complaint, sla_for, sla_deadlines


def test_routes_by_category(db, departments):
    assert route_complaint(db, "drainage")["_id"] == departments["roads"]["_id"]
    assert route_complaint(db, "sanitation")["_id"] == departments["water"]["_id"]
    assert route_complaint(db, "electricity")["_id"] == departments["electricity"]["_id"]


def test_first_active_department_wins(db, departments):
    db.departments.insert_one({"_id": "later", "name": "Second Roads Crew",
                               "categories": ["roads"], "is_active": True})
    assert route_complaint(db, "roads")["_id"] == departments["roads"]["_id"]
    db.departments.update_one({"_id": departments["roads"]["_id"]},
                              {"$set": {"is_active": False}})
    assert route_complaint(db, "roads")["_id"] == "later"


def test_uncovered_category_raises(db, departments):
    with pytest.raises(NoDepartmentForCategory) as exc:
        route_complaint(db, "public_transport")
    assert exc.value.status_code == 400


def test_inactive_departments_ignored(db, departments):
    db.departments.update_many({}, {"$set": {"is_active": False}})
    with pytest.raises(NoDepartmentForCategory):
        route_complaint(db, "water")


def test_sla_lookup(departments):
    roads = departments["roads"]
    assert sla_for(roads, "drainage")["resolution_time"] == 72
    assert sla_for(roads, "water") is None


def test_sla_deadlines_regular():
    dept = {"sla": [{"category": "roads", "response_time": 24, "resolution_time": 168,
                     "emergency_response_time": 4}]}
    created = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    response_due, resolution_due = sla_deadlines(dept, "roads", False, created)
    assert response_due == created + timedelta(hours=24)
    assert resolution_due == created + timedelta(days=7)


def test_sla_deadlines_emergency_uses_emergency_response():
    dept = {"sla": [{"category": "electricity", "response_time": 2, "resolution_time": 12,
                     "emergency_response_time": 0.5}]}
    created = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    response_due, resolution_due = sla_deadlines(dept, "electricity", True, created)
    assert response_due == created + timedelta(minutes=30)
    assert resolution_due == created + timedelta(hours=12)


def test_sla_deadlines_without_entry():
    assert sla_deadlines({"sla": []}, "roads", True, datetime.now(timezone.utc)) == (None, None)
    assert sla_deadlines({}, "roads", False, datetime.now(timezone.utc)) == (None, None)
