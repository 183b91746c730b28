# Seed data: Departments with SLA tables, working hours and service areas

from ..departments import create_department, add_staff
from ..models import DepartmentCreate, StaffCreate


def _weekdays(start: str, end: str, saturday=None) -> dict:
    day = {"start": start, "end": end, "is_closed": False}
    hours = {d: dict(day) for d in ("monday", "tuesday", "wednesday", "thursday", "friday")}
    hours["saturday"] = ({"start": saturday[0], "end": saturday[1], "is_closed": False}
                         if saturday else {"is_closed": True})
    hours["sunday"] = {"is_closed": True}
    return hours


def _box(west: float, south: float, east: float, north: float) -> dict:
    return {"type": "Polygon", "coordinates": [[
        [west, south], [east, south], [east, north], [west, north], [west, south]]]}


DEPARTMENTS = [
    {"name": "Department of Public Works",
     "description": "Responsible for infrastructure maintenance and development",
     "categories": ["roads", "drainage", "street_lights"],
     "contact_info": {"email": "publicworks@city.gov", "phone": "+1-555-1000",
                      "address": "123 City Hall Plaza, Downtown",
                      "website": "https://city.gov/publicworks"},
     "working_hours": _weekdays("08:00", "17:00", saturday=("09:00", "13:00")),
     "sla": [
         {"category": "roads", "response_time": 24, "resolution_time": 168,
          "emergency_response_time": 4},
         {"category": "drainage", "response_time": 12, "resolution_time": 72,
          "emergency_response_time": 2},
         {"category": "street_lights", "response_time": 8, "resolution_time": 48,
          "emergency_response_time": 1},
     ],
     "service_areas": [{"name": "Lower Manhattan", "boundaries": _box(-74.03, 40.69, -73.97, 40.74)}],
     "budget": {"annual": 5000000, "allocated": 3200000, "spent": 1100000},
     "tags": ["Infrastructure", "roads"]},

    {"name": "Water & Utilities Department",
     "description": "Managing water supply, sewage, and utility services",
     "categories": ["water", "sanitation"],
     "contact_info": {"email": "water@city.gov", "phone": "+1-555-2000",
                      "address": "456 Utility Street, Industrial District",
                      "website": "https://city.gov/water",
                      "emergency_contact": "+1-555-2911"},
     "working_hours": _weekdays("07:00", "16:00", saturday=("08:00", "12:00")),
     "sla": [
         {"category": "water", "response_time": 4, "resolution_time": 24,
          "emergency_response_time": 1},
         {"category": "sanitation", "response_time": 8, "resolution_time": 48,
          "emergency_response_time": 2},
     ],
     "budget": {"annual": 3500000, "allocated": 2000000, "spent": 900000},
     "tags": ["utilities"]},

    {"name": "Electrical Services Department",
     "description": "Electrical infrastructure and power supply management",
     "categories": ["electricity"],
     "contact_info": {"email": "electrical@city.gov", "phone": "+1-555-3000",
                      "address": "789 Power Avenue, Energy District",
                      "website": "https://city.gov/electrical"},
     "working_hours": _weekdays("06:00", "18:00", saturday=("08:00", "14:00")),
     "sla": [
         {"category": "electricity", "response_time": 2, "resolution_time": 12,
          "emergency_response_time": 0.5},
     ],
     "tags": ["power"]},
]


def import_departments(db, user_ids: dict, providers: list) -> dict:
    """Create departments; the i-th provider heads and staffs the i-th department.

    Returns {name: _id}.
    """
    print("\n  Importing departments...")
    dept_ids = {}
    for i, raw in enumerate(DEPARTMENTS):
        head = user_ids[providers[i]] if i < len(providers) else None
        d = create_department(db, DepartmentCreate(**raw, head=head))
        if head:
            add_staff(db, d["_id"], StaffCreate(user=head, position="Department Head"))
        dept_ids[d["name"]] = d["_id"]
        print(f"    {d['name']}")
    print(f"  => {len(DEPARTMENTS)} departments created")
    return dept_ids
