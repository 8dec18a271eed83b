"""
Seed demo data into every configured department partition

Creates the partition schema and inserts a few students, staff and modules
per department. Safe to run repeatedly: existing rows (matched by email or
module code) are left alone.

    python -m uniadmin.scripts.seed_demo
"""

import sys
from typing import Dict, List

from sqlmodel import select
import structlog

from uniadmin.core.config import get_settings
from uniadmin.core.partitions import PartitionRegistry, TenantPartitionStore
from uniadmin.models.module import Module
from uniadmin.models.staff import Staff
from uniadmin.models.student import Student

logger = structlog.get_logger(__name__)

DEMO_STUDENTS = [
    ("Ada", "Lovelace"),
    ("Alan", "Turing"),
    ("Grace", "Hopper"),
]

DEMO_STAFF = [
    ("Edsger", "Dijkstra", "Professor"),
    ("Barbara", "Liskov", "Department Administrator"),
]


def demo_modules(code: str) -> List[Dict]:
    """Two local modules and one global elective per department"""
    return [
        {"code": f"{code}101", "title": f"Foundations of {code}", "credits": 15, "semester": 1, "is_global": False},
        {"code": f"{code}201", "title": f"Intermediate {code}", "credits": 15, "semester": 2, "is_global": False},
        {"code": f"{code}300", "title": f"{code} Elective for All Departments", "credits": 10, "semester": 1, "is_global": True},
    ]


def university_email(first_name: str, last_name: str, code: str) -> str:
    return f"{first_name.lower()}.{last_name.lower()}@{code.lower()}.university.ac.uk"


def seed_partition(store: TenantPartitionStore) -> dict:
    """Insert missing demo rows into one partition"""
    code = store.tenant_code
    created = {"students": 0, "staff": 0, "modules": 0}

    with store.write() as session:
        for index, (first_name, last_name) in enumerate(DEMO_STUDENTS, start=1):
            email = university_email(first_name, last_name, code)
            if session.exec(select(Student).where(Student.university_email == email)).first():
                continue
            session.add(Student(
                student_number=f"{code}{index:04d}",
                first_name=first_name,
                last_name=last_name,
                university_email=email,
            ))
            created["students"] += 1

        for first_name, last_name, position in DEMO_STAFF:
            email = university_email(first_name, last_name, code)
            if session.exec(select(Staff).where(Staff.university_email == email)).first():
                continue
            session.add(Staff(
                first_name=first_name,
                last_name=last_name,
                university_email=email,
                position=position,
            ))
            created["staff"] += 1

        for module in demo_modules(code):
            if session.exec(select(Module).where(Module.code == module["code"])).first():
                continue
            session.add(Module(**module))
            created["modules"] += 1

    logger.info(f"Seeded department {code}: {created}")
    return created


def main():
    """Main entry point for the seed job"""
    logger.info("Starting demo seed job")
    settings = get_settings()

    try:
        registry = PartitionRegistry.from_settings(settings)
        try:
            results = {store.tenant_code: seed_partition(store) for store in registry}
        finally:
            registry.dispose()
        logger.info(f"Demo seed complete: {results}")
    except Exception as e:
        logger.error(f"Fatal error in seed job: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
