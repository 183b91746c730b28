# PublicCare seed data importer
# Drops and repopulates users, departments and complaints
#
# Usage:  python -m publiccare.importer

from pymongo import MongoClient

from .config import MONGODB_URL, MONGODB_DB
from .database import ensure_indexes
from .seed.users import import_users, USERS
from .seed.departments import import_departments
from .seed.complaints import import_complaints


def run(db) -> dict:
    print("  Clearing existing data...")
    for name in ("users", "departments", "complaints"):
        db[name].drop()
    ensure_indexes(db)

    user_ids = import_users(db)
    citizens = [u["username"] for u in USERS if u["role"] == "citizen"]
    providers = [u["username"] for u in USERS if u["role"] == "provider"]
    dept_ids = import_departments(db, user_ids, providers)
    n_complaints = import_complaints(db, user_ids, citizens, providers)
    return {"users": len(user_ids), "departments": len(dept_ids), "complaints": n_complaints}


def main():
    print(f"Seeding {MONGODB_DB} at {MONGODB_URL}")
    client = MongoClient(MONGODB_URL)
    try:
        summary = run(client[MONGODB_DB])
    finally:
        client.close()
    print("\nDatabase seeded successfully!")
    for name, count in summary.items():
        print(f"  {name:12s} {count}")
    print("\nLogin credentials:")
    for u in USERS:
        print(f"  {u['role']:9s} {u['username']} / {u['password']}")


if __name__ == "__main__":
    main()
