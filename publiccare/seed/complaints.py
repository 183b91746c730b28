# Seed data: Complaints across categories, one per seeded department at least
#
# Non-emergency complaints start assigned to a provider and in progress;
# emergencies start unassigned.

from ..models import Priority
from ..routing import route_complaint, sla_deadlines
from . import new_id, now_utc

COMPLAINTS = [
    {"title": "Pothole on Main Street",
     "description": "Large pothole causing damage to vehicles near the intersection of Main St and 1st Ave",
     "category": "roads", "priority": "high", "is_emergency": False,
     "location": {"type": "Point", "coordinates": [-74.0060, 40.7128],
                  "address": "123 Main Street", "city": "New York", "region": "NY"}},

    {"title": "Water leak in residential area",
     "description": "Continuous water leak from main pipe affecting multiple households",
     "category": "water", "priority": "critical", "is_emergency": True,
     "location": {"type": "Point", "coordinates": [-74.0070, 40.7138],
                  "address": "456 Oak Avenue", "city": "New York", "region": "NY"}},

    {"title": "Street light not working",
     "description": "Street light has been out for several days, creating safety concerns",
     "category": "street_lights", "priority": "medium", "is_emergency": False,
     "location": {"type": "Point", "coordinates": [-74.0050, 40.7118],
                  "address": "789 Pine Street", "city": "New York", "region": "NY"}},

    {"title": "Power outage in downtown area",
     "description": "Multiple buildings experiencing power outage since morning",
     "category": "electricity", "priority": "critical", "is_emergency": True,
     "location": {"type": "Point", "coordinates": [-74.0080, 40.7148],
                  "address": "321 Business District", "city": "New York", "region": "NY"}},

    {"title": "Garbage collection missed",
     "description": "Scheduled garbage collection was missed for the third consecutive week",
     "category": "sanitation", "priority": "medium", "is_emergency": False,
     "location": {"type": "Point", "coordinates": [-74.0040, 40.7108],
                  "address": "654 Residential Lane", "city": "New York", "region": "NY"}},
]


def import_complaints(db, user_ids: dict, citizens: list, providers: list) -> int:
    print("\n  Importing complaints...")
    for i, raw in enumerate(COMPLAINTS):
        department = route_complaint(db, raw["category"])
        now = now_utc()
        response_due, resolution_due = sla_deadlines(
            department, raw["category"], raw["is_emergency"], now)
        assigned = None
        status = "submitted"
        if not raw["is_emergency"] and providers:
            assigned = user_ids[providers[i % len(providers)]]
            status = "in_progress"
        db.complaints.insert_one({
            "_id": new_id(),
            **raw,
            "priority": Priority.CRITICAL.value if raw["is_emergency"] else raw["priority"],
            "status": status,
            "submitted_by": user_ids[citizens[i % len(citizens)]],
            "assigned_to": assigned,
            "department": department["_id"],
            "updates": [], "attachments": [], "view_count": 0,
            "rating": None, "feedback": None,
            "response_due_at": response_due, "resolution_due_at": resolution_due,
            "resolved_at": None, "created_at": now, "updated_at": now,
        })
        db.departments.update_one({"_id": department["_id"]},
                                  {"$inc": {"performance.total_complaints_handled": 1}})
        print(f"    {raw['title']}")
    print(f"  => {len(COMPLAINTS)} complaints created")
    return len(COMPLAINTS)
