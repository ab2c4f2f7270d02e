"""
Seed Directory

Writes demo students, wardens and HODs into the directory trees so the pass
workflow can be tried end to end. Existing entries with the same keys are
overwritten; other entries are left alone.

Usage:
    cd apps/api
    python scripts/seed_directory.py
"""

import asyncio

from hostel_pass.core import store
from hostel_pass.core.database import async_session_maker, close_db, init_db
from hostel_pass.core.redis import close_redis, init_redis
from hostel_pass.core.security import hash_password
from hostel_pass.modules.directory import repository as directory

STUDENTS = {
    "CSE": {
        "REG001": {
            "emp_code": "student",
            "password": "student123",
            "first_name": "John Doe",
            "block": "A(Boys)",
            "room_no": "101",
            "contact_no": "9876543210",
            "year": "3",
        },
    },
    "ECE": {
        "REG002": {
            "emp_code": "student2",
            "password": "student123",
            "first_name": "Jane Roe",
            "block": "B(Girls)",
            "room_no": "204",
            "contact_no": "9876500000",
            "year": "2",
        },
    },
}

WARDENS = {
    "W001": {
        "username": "warden",
        "password": "warden123",
        "name": "Dr. Smith",
        "block": "A(Boys)",
    },
    "W002": {
        "username": "warden2",
        "password": "warden123",
        "name": "Dr. Brown",
        "block": "B(Girls)",
    },
}

HODS = {
    "HOD006": {
        "username": "hod",
        "password": "hod123",
        "name": "Prof. Johnson",
        "department": "CSE",
    },
    "HOD001": {
        "username": "hod_ece",
        "password": "hod123",
        "name": "Prof. Williams",
        "department": "ECE",
    },
}


def _with_hashed_password(entry: dict[str, str]) -> dict[str, str]:
    return {**entry, "password": hash_password(entry["password"])}


async def seed_directory() -> None:
    """Write the demo entries and drop cached directory trees."""
    await init_db()
    redis = await init_redis()

    async with async_session_maker() as db:
        for department, entries in STUDENTS.items():
            for key, entry in entries.items():
                path = f"{directory.STUDENTS_PATH}/{department}/{key}"
                await store.set(db, path, _with_hashed_password(entry))
                print(f"Student seeded: {entry['emp_code']} ({department})")

        for key, entry in WARDENS.items():
            await store.set(db, f"{directory.WARDENS_PATH}/{key}", _with_hashed_password(entry))
            print(f"Warden seeded: {entry['username']} (block {entry['block']})")

        for key, entry in HODS.items():
            await store.set(db, f"{directory.HODS_PATH}/{key}", _with_hashed_password(entry))
            print(f"HOD seeded: {entry['username']} ({entry['department']})")

    await directory.invalidate_cache(redis)
    await close_redis()
    await close_db()
    print("Directory seeded successfully!")


if __name__ == "__main__":
    asyncio.run(seed_directory())
