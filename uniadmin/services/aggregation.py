"""
Central aggregation reader

Read-only fan-out over department partitions for institution-wide views.
Every row is tagged with the department it came from; departments that fail
or time out are listed in ``failed_tenants`` next to the rows that did
arrive. Rows are concatenated in department code order and are not sorted
otherwise.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlmodel import Session, select
import structlog

from uniadmin.core.errors import PartialAggregateFailure, UnknownView
from uniadmin.core.identity import identity_of
from uniadmin.core.partitions import PartitionRegistry, TenantPartitionStore, fan_out
from uniadmin.models.enrollment import Enrollment
from uniadmin.models.enrollment_request import EnrollmentRequest
from uniadmin.models.module import Module
from uniadmin.models.staff import Staff
from uniadmin.models.student import Student, StudentShadow

logger = structlog.get_logger(__name__)

DEFAULT_AGGREGATE_TIMEOUT_SECONDS = 3.0

Row = Dict[str, Any]


def _student_directory(session: Session, tenant: str) -> List[Row]:
    students = session.exec(select(Student).order_by(Student.id)).all()
    return [
        {
            "identity": identity_of(tenant, s.id).token,
            "student_number": s.student_number,
            "first_name": s.first_name,
            "last_name": s.last_name,
            "university_email": s.university_email,
            "is_active": s.is_active,
        }
        for s in students
    ]


def _staff_directory(session: Session, tenant: str) -> List[Row]:
    staff = session.exec(select(Staff).order_by(Staff.id)).all()
    return [
        {
            "identity": identity_of(tenant, s.id).token,
            "first_name": s.first_name,
            "last_name": s.last_name,
            "university_email": s.university_email,
            "position": s.position,
            "is_active": s.is_active,
        }
        for s in staff
    ]


def _module_catalog(session: Session, tenant: str) -> List[Row]:
    modules = session.exec(select(Module).order_by(Module.id)).all()
    return [
        {
            "identity": identity_of(tenant, m.id).token,
            "code": m.code,
            "title": m.title,
            "credits": m.credits,
            "semester": m.semester,
            "is_global": m.is_global,
            "is_active": m.is_active,
        }
        for m in modules
    ]


def _module_enrollments(session: Session, tenant: str) -> List[Row]:
    rows = session.exec(
        select(Enrollment, Module)
        .join(Module, Enrollment.module_id == Module.id)
        .order_by(Enrollment.id)
    ).all()

    # Names of local students come from the partition, foreign ones from shadows
    local_names = {
        identity_of(tenant, s.id).token: s.full_name
        for s in session.exec(select(Student)).all()
    }
    shadow_names = {
        s.student_identity: s.full_name
        for s in session.exec(select(StudentShadow)).all()
    }

    result = []
    for enrollment, module in rows:
        student = enrollment.student
        result.append({
            "identity": identity_of(tenant, enrollment.id).token,
            "student_identity": enrollment.student_identity,
            "student_home_tenant": student.tenant,
            "student_name": local_names.get(enrollment.student_identity)
            or shadow_names.get(enrollment.student_identity),
            "module_identity": identity_of(tenant, module.id).token,
            "module_code": module.code,
            "module_title": module.title,
            "module_is_active": module.is_active,
            "status": enrollment.status.value,
            "enrolled_at": enrollment.enrolled_at.isoformat(),
        })
    return result


def _enrollment_requests(session: Session, tenant: str) -> List[Row]:
    requests = session.exec(select(EnrollmentRequest).order_by(EnrollmentRequest.id)).all()
    return [
        {
            "identity": r.identity.token,
            "requester": r.requester,
            "module_identity": r.module_identity.token,
            "source_tenant": r.source_tenant,
            "target_tenant": r.target_tenant,
            "classification": r.classification.value,
            "status": r.status.value,
            "created_at": r.created_at.isoformat(),
            "decided_at": r.decided_at.isoformat() if r.decided_at else None,
            "decided_by": r.decided_by,
        }
        for r in requests
    ]


VIEWS: Dict[str, Callable[[Session, str], List[Row]]] = {
    "student_directory": _student_directory,
    "staff_directory": _staff_directory,
    "module_catalog": _module_catalog,
    "module_enrollments": _module_enrollments,
    "enrollment_requests": _enrollment_requests,
}


@dataclass
class AggregateResult:
    view: str
    rows: List[Row]
    failed_tenants: List[str]

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_tenants)

    def raise_for_failures(self) -> "AggregateResult":
        """Strict mode for callers that cannot use a partial view"""
        if self.failed_tenants:
            raise PartialAggregateFailure(self.rows, self.failed_tenants)
        return self


class CentralAggregationReader:
    """Federated read across department partitions"""

    def __init__(self, registry: PartitionRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout if timeout is not None else DEFAULT_AGGREGATE_TIMEOUT_SECONDS

    @staticmethod
    def view_names() -> List[str]:
        return sorted(VIEWS)

    async def aggregate(
        self,
        view_name: str,
        tenant_filter: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ) -> AggregateResult:
        """Read one view from every (or every filtered) department and concatenate"""
        build = VIEWS.get(view_name)
        if build is None:
            raise UnknownView(f"Unknown aggregate view: {view_name}")

        stores = self.registry.stores(tenant_filter)
        wait = self.timeout if timeout is None else timeout

        def read(store: TenantPartitionStore) -> List[Row]:
            with store.read() as session:
                return build(session, store.tenant_code)

        fanned = await fan_out(stores, read, wait)

        rows: List[Row] = []
        for store in stores:
            for row in fanned.results.get(store.tenant_code, []):
                rows.append({"tenant": store.tenant_code, **row})

        if fanned.failures:
            logger.warning(
                f"Aggregate {view_name} is partial, failed departments: {fanned.failed_tenants}"
            )
        else:
            logger.info(f"Aggregate {view_name}: {len(rows)} rows from {len(stores)} departments")

        return AggregateResult(view=view_name, rows=rows, failed_tenants=fanned.failed_tenants)
