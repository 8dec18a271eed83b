"""
Module visibility resolver

The one place that decides what a student may request: every active module
of the student's own department plus every active global module of the
other departments, minus modules the student is already enrolled in or has
a pending request for.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
import asyncio

from sqlmodel import select
import structlog

from uniadmin.core.errors import PartitionTimeout
from uniadmin.core.identity import CompositeIdentity, identity_of
from uniadmin.core.partitions import PartitionRegistry, TenantPartitionStore, fan_out
from uniadmin.models.enrollment import Enrollment, EnrollmentStatus
from uniadmin.models.enrollment_request import EnrollmentRequest, RequestStatus
from uniadmin.models.module import Module
from uniadmin.services.lookups import load_active_student

logger = structlog.get_logger(__name__)

DEFAULT_READ_TIMEOUT_SECONDS = 3.0


@dataclass(frozen=True)
class EnrollableModule:
    identity: CompositeIdentity
    code: str
    title: str
    credits: int
    semester: Optional[int]
    # Offered to this student by a department other than their own
    is_global: bool
    home_tenant: str

    @property
    def sort_key(self):
        return (self.home_tenant, self.code)


@dataclass
class VisibilityResult:
    home_tenant: str
    modules: List[EnrollableModule]
    unavailable_tenants: List[str]


class ModuleVisibilityResolver:
    """Computes enrollable modules for a student"""

    def __init__(self, registry: PartitionRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout if timeout is not None else DEFAULT_READ_TIMEOUT_SECONDS

    def _read_partition(self, store: TenantPartitionStore, student: CompositeIdentity) -> List[EnrollableModule]:
        is_home = store.tenant_code == student.tenant

        with store.read() as session:
            if is_home:
                load_active_student(session, student)

            statement = select(Module).where(Module.is_active == True)  # noqa: E712
            if not is_home:
                statement = statement.where(Module.is_global == True)  # noqa: E712
            modules = session.exec(statement).all()

            enrolled = set(session.exec(
                select(Enrollment.module_id).where(
                    Enrollment.student_identity == student.token,
                    Enrollment.status == EnrollmentStatus.REGISTERED
                )
            ).all())
            pending = set(session.exec(
                select(EnrollmentRequest.module_id).where(
                    EnrollmentRequest.requester == student.token,
                    EnrollmentRequest.status == RequestStatus.PENDING
                )
            ).all())

        taken = enrolled | pending
        return [
            EnrollableModule(
                identity=identity_of(store.tenant_code, module.id),
                code=module.code,
                title=module.title,
                credits=module.credits,
                semester=module.semester,
                is_global=module.is_global and not is_home,
                home_tenant=store.tenant_code,
            )
            for module in modules
            if module.id not in taken
        ]

    async def enrollable_modules(self, student: CompositeIdentity, timeout: Optional[float] = None) -> VisibilityResult:
        """Enrollable modules for a student, ordered by (home tenant, module code)"""
        wait = self.timeout if timeout is None else timeout
        home = self.registry.get(student.tenant)

        # The home department must answer: it proves the student exists
        try:
            local_modules = await asyncio.wait_for(
                asyncio.to_thread(self._read_partition, home, student), wait
            )
        except asyncio.TimeoutError:
            raise PartitionTimeout(f"Department {home.tenant_code} did not answer within {wait}s")

        foreign = [store for store in self.registry.stores() if store.tenant_code != student.tenant]
        fanned = await fan_out(foreign, lambda store: self._read_partition(store, student), wait)

        by_identity: Dict[CompositeIdentity, EnrollableModule] = {}
        for module in local_modules:
            by_identity[module.identity] = module
        for tenant_code in sorted(fanned.results):
            for module in fanned.results[tenant_code]:
                by_identity.setdefault(module.identity, module)

        modules = sorted(by_identity.values(), key=lambda m: m.sort_key)
        if fanned.failures:
            logger.warning(
                f"Enrollable modules for {student} are missing departments {fanned.failed_tenants}"
            )

        return VisibilityResult(
            home_tenant=student.tenant,
            modules=modules,
            unavailable_tenants=fanned.failed_tenants,
        )
