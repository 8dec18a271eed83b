"""
Test configuration for pytest
"""

import pytest
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Generator, Optional

# Test environment variables
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"

from fastapi.testclient import TestClient
from jose import jwt

from uniadmin.core.config import get_settings
from uniadmin.core.events import EventBus
from uniadmin.core.identity import CompositeIdentity, identity_of
from uniadmin.core.partitions import PartitionRegistry, SQLPartitionStore, TenantPartitionStore
from uniadmin.models.module import Module
from uniadmin.models.staff import Staff
from uniadmin.models.student import Student
from uniadmin.services.workflow import EnrollmentWorkflowEngine

settings = get_settings()

DEPARTMENT_CODES = ("CS", "ENG", "MATH")
TEST_LOCK_TIMEOUT = 2.0


def add_student(store: TenantPartitionStore, first_name: str, last_name: str, is_active: bool = True) -> CompositeIdentity:
    student = store.put(Student(
        student_number=f"{store.tenant_code}-{first_name.upper()}",
        first_name=first_name,
        last_name=last_name,
        university_email=f"{first_name.lower()}.{last_name.lower()}@{store.tenant_code.lower()}.example.ac.uk",
        is_active=is_active,
    ))
    return identity_of(store.tenant_code, student.id)


def add_staff(store: TenantPartitionStore, first_name: str, last_name: str, position: str = "Administrator") -> CompositeIdentity:
    staff = store.put(Staff(
        first_name=first_name,
        last_name=last_name,
        university_email=f"{first_name.lower()}.{last_name.lower()}@{store.tenant_code.lower()}.example.ac.uk",
        position=position,
    ))
    return identity_of(store.tenant_code, staff.id)


def add_module(store: TenantPartitionStore, code: str, is_global: bool = False, is_active: bool = True) -> CompositeIdentity:
    module = store.put(Module(
        code=code,
        title=f"Module {code}",
        credits=15,
        semester=1,
        is_global=is_global,
        is_active=is_active,
    ))
    return identity_of(store.tenant_code, module.id)


def make_token(identity: CompositeIdentity, role: str, tenant: Optional[str] = None, expires_in: int = 3600) -> str:
    """Mint a token the way the external auth service would"""
    claims = {
        "sub": identity.token,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    if tenant is not None:
        claims["tenant"] = tenant
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def auth_headers(identity: CompositeIdentity, role: str, tenant: Optional[str] = None) -> Dict[str, str]:
    if tenant is None and role != "central_admin":
        tenant = identity.tenant
    return {"Authorization": f"Bearer {make_token(identity, role, tenant)}"}


@dataclass
class University:
    """Seeded departments and the identities tests refer to"""
    registry: PartitionRegistry
    students: Dict[str, CompositeIdentity] = field(default_factory=dict)
    admins: Dict[str, CompositeIdentity] = field(default_factory=dict)
    modules: Dict[str, CompositeIdentity] = field(default_factory=dict)

    def store(self, code: str) -> TenantPartitionStore:
        return self.registry.get(code)


@pytest.fixture(scope="function")
def registry(tmp_path) -> Generator[PartitionRegistry, None, None]:
    """One SQLite database file per department"""
    registry = PartitionRegistry(
        SQLPartitionStore.from_url(
            code,
            f"sqlite:///{tmp_path / (code.lower() + '.db')}",
            lock_timeout=TEST_LOCK_TIMEOUT,
        )
        for code in DEPARTMENT_CODES
    )
    yield registry
    registry.dispose()


@pytest.fixture(scope="function")
def university(registry) -> University:
    """
    CS:   CS101 (local), CS300 (global); students Ada, Alan; admin Barbara
    ENG:  ENG42 (global), ENG110 (local); student Grace; admin Edsger
    MATH: MATH200 (global), MATH101 (local), MATH999 (global, inactive); student Emmy; admin Sofia
    """
    uni = University(registry=registry)
    cs, eng, math = registry.get("CS"), registry.get("ENG"), registry.get("MATH")

    uni.students["ada"] = add_student(cs, "Ada", "Lovelace")
    uni.students["alan"] = add_student(cs, "Alan", "Turing")
    uni.students["grace"] = add_student(eng, "Grace", "Hopper")
    uni.students["emmy"] = add_student(math, "Emmy", "Noether")
    uni.students["retired"] = add_student(math, "Old", "Student", is_active=False)

    uni.admins["CS"] = add_staff(cs, "Barbara", "Liskov")
    uni.admins["ENG"] = add_staff(eng, "Edsger", "Dijkstra")
    uni.admins["MATH"] = add_staff(math, "Sofia", "Kovalevskaya")

    uni.modules["CS101"] = add_module(cs, "CS101")
    uni.modules["CS300"] = add_module(cs, "CS300", is_global=True)
    uni.modules["ENG42"] = add_module(eng, "ENG42", is_global=True)
    uni.modules["ENG110"] = add_module(eng, "ENG110")
    uni.modules["MATH200"] = add_module(math, "MATH200", is_global=True)
    uni.modules["MATH101"] = add_module(math, "MATH101")
    uni.modules["MATH999"] = add_module(math, "MATH999", is_global=True, is_active=False)
    return uni


@pytest.fixture(scope="function")
def events() -> EventBus:
    return EventBus()


@pytest.fixture(scope="function")
def workflow(university, events) -> EnrollmentWorkflowEngine:
    return EnrollmentWorkflowEngine(
        university.registry,
        event_bus=events,
        lock_timeout=TEST_LOCK_TIMEOUT,
        read_timeout=TEST_LOCK_TIMEOUT,
    )


@pytest.fixture(scope="function")
def client(university) -> Generator[TestClient, None, None]:
    """HTTP client bound to the seeded registry"""
    from uniadmin.main import create_app

    app = create_app(university.registry)
    with TestClient(app) as test_client:
        yield test_client
