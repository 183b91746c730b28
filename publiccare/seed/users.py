# Seed data: Users (admin, citizens, service providers)

from ..auth import pwd_context
from . import new_id, now_utc

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    {"username": "admin", "password": "admin123456",
     "full_name": "Admin User", "email": "admin@publiccare.gov",
     "phone": None, "role": "admin"},

    # ---- Citizens ----
    {"username": "john.doe", "password": "password123",
     "full_name": "John Doe", "email": "john.doe@email.com",
     "phone": "+1-555-0101", "role": "citizen"},

    {"username": "jane.smith", "password": "password123",
     "full_name": "Jane Smith", "email": "jane.smith@email.com",
     "phone": "+1-555-0102", "role": "citizen"},

    # ---- Providers (each heads one seeded department, by index) ----
    {"username": "mike.johnson", "password": "password123",
     "full_name": "Mike Johnson", "email": "mike.johnson@provider.com",
     "phone": "+1-555-0201", "role": "provider"},

    {"username": "sarah.wilson", "password": "password123",
     "full_name": "Sarah Wilson", "email": "sarah.wilson@provider.com",
     "phone": "+1-555-0202", "role": "provider"},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
def import_users(db) -> dict:
    """Insert seed users into MongoDB. Returns {username: _id} mapping."""
    print("\n  Importing seed users...")
    user_ids = {}
    for u in USERS:
        uid = new_id()
        db.users.insert_one({
            "_id": uid,
            "username": u["username"],
            "hashed_password": pwd_context.hash(u["password"]),
            "full_name": u["full_name"],
            "email": u["email"],
            "phone": u["phone"],
            "role": u["role"],
            "is_active": True,
            "department": None,
            "created_at": now_utc(),
        })
        user_ids[u["username"]] = uid
        print(f"    {u['username']:20s}  ({u['role']})")
    print(f"  => {len(USERS)} users created")
    return user_ids
