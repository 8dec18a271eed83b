"""
Enrollment workflow engine

Requests live in the partition of the module they target, next to the
enrollments they produce, so an approval and its enrollment commit in one
transaction. Submission holds the locks of both the student's and the
module's departments (taken in code order), which makes the duplicate check
and the insert atomic against concurrent submissions and decisions.

    pending -> approved   (enrollment created in the target partition)
    pending -> rejected
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from uniadmin.core.errors import (
    DuplicatePendingRequest, ModuleNotFound, NotEnrollable, RequestNotFound, UnknownTenant
)
from uniadmin.core.events import (
    EventBus, EnrollmentRequestDecided, EnrollmentRequestSubmitted, event_bus as default_event_bus
)
from uniadmin.core.identity import CompositeIdentity, coerce_identity, identity_of
from uniadmin.core.partitions import PartitionRegistry, TenantPartitionStore, fan_out
from uniadmin.core.permissions import authorize_decision, authorize_write
from uniadmin.core.timestamps import utc_now
from uniadmin.models.enrollment import Enrollment, EnrollmentStatus
from uniadmin.models.enrollment_request import (
    DecisionOutcome, EnrollmentRequest, RequestClassification, RequestStatus
)
from uniadmin.models.student import StudentShadow
from uniadmin.services.lookups import load_active_module, load_active_student
from uniadmin.services.visibility import DEFAULT_READ_TIMEOUT_SECONDS

logger = structlog.get_logger(__name__)

IdentityLike = Union[str, CompositeIdentity]


class RequestScope:
    """Status filter for department request queues"""
    PENDING = "pending"
    DECIDED = "decided"


@dataclass
class RequestQueues:
    """A department's requests split by the classification stored at creation"""
    internal: List[EnrollmentRequest] = field(default_factory=list)
    external: List[EnrollmentRequest] = field(default_factory=list)


@dataclass
class StudentRequests:
    requests: List[EnrollmentRequest]
    unavailable_tenants: List[str]


@dataclass
class Decision:
    request: EnrollmentRequest
    enrollment: Optional[Enrollment] = None


class EnrollmentWorkflowEngine:
    """Submit, decide and list enrollment requests across departments"""

    def __init__(
        self,
        registry: PartitionRegistry,
        event_bus: Optional[EventBus] = None,
        lock_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.event_bus = event_bus or default_event_bus
        self.lock_timeout = lock_timeout
        self.read_timeout = read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT_SECONDS

    def _target_store(self, module: CompositeIdentity) -> TenantPartitionStore:
        try:
            return self.registry.get(module.tenant)
        except UnknownTenant:
            raise ModuleNotFound(f"Module {module} does not resolve to a department")

    def submit(
        self,
        student: IdentityLike,
        module: IdentityLike,
        justification: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> EnrollmentRequest:
        """Record a pending request from the student's department to the module's"""
        student = coerce_identity(student)
        module = coerce_identity(module)
        wait = self.lock_timeout if timeout is None else timeout

        source = self.registry.get(student.tenant)
        target = self._target_store(module)

        with self.registry.locked({source.tenant_code, target.tenant_code}, wait):
            with source.read() as session:
                profile = load_active_student(session, student)
                requester_name = profile.full_name
                requester_email = profile.university_email

            with target.write(wait) as session:
                record = load_active_module(session, module)
                if not record.is_visible_to(target.tenant_code, source.tenant_code):
                    raise NotEnrollable(
                        f"Module {module} is not open to students of department {source.tenant_code}"
                    )

                self._ensure_enrollable(session, student, record.id)

                request = EnrollmentRequest.open(
                    requester=student,
                    module=module,
                    justification=justification,
                    requester_name=requester_name,
                    requester_email=requester_email,
                )
                session.add(request)
                session.flush()
                session.refresh(request)

        logger.info(
            f"Enrollment request {request.identity} submitted by {student} for {module} "
            f"({request.classification.value})"
        )
        self.event_bus.publish(EnrollmentRequestSubmitted(
            request_identity=request.identity.token,
            requester=request.requester,
            module_identity=module.token,
            source_tenant=request.source_tenant,
            target_tenant=request.target_tenant,
            classification=request.classification.value,
        ))
        return request

    def _ensure_enrollable(self, session: Session, student: CompositeIdentity, module_id: int) -> None:
        enrolled = session.exec(
            select(Enrollment).where(
                Enrollment.student_identity == student.token,
                Enrollment.module_id == module_id,
                Enrollment.status == EnrollmentStatus.REGISTERED
            )
        ).first()
        if enrolled:
            raise NotEnrollable(f"Student {student} is already enrolled in this module")

        pending = session.exec(
            select(EnrollmentRequest).where(
                EnrollmentRequest.requester == student.token,
                EnrollmentRequest.module_id == module_id,
                EnrollmentRequest.status == RequestStatus.PENDING
            )
        ).first()
        if pending:
            raise DuplicatePendingRequest(
                f"Request {pending.identity} for this module is still pending"
            )

    def decide(
        self,
        admin_tenant: str,
        request_identity: IdentityLike,
        outcome: Union[str, DecisionOutcome],
        deciding_admin: IdentityLike,
        notes: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Decision:
        """Approve or reject a pending request targeting the admin's department"""
        request_identity = coerce_identity(request_identity)
        deciding_admin = coerce_identity(deciding_admin)
        outcome = DecisionOutcome(outcome)
        wait = self.lock_timeout if timeout is None else timeout

        # A request always lives in its target partition
        authorize_write(admin_tenant, request_identity.tenant)
        store = self.registry.get(request_identity.tenant)

        enrollment = None
        with store.write(wait) as session:
            request = self._load_request(session, request_identity)
            authorize_decision(admin_tenant, request)

            if outcome == DecisionOutcome.APPROVED:
                request.transition_to_approved(deciding_admin, notes)
                enrollment = self._materialize(session, request)
            else:
                request.transition_to_rejected(deciding_admin, notes)
                session.add(request)
                session.flush()

        enrollment_identity = identity_of(store.tenant_code, enrollment.id) if enrollment else None
        logger.info(
            f"Enrollment request {request_identity} {request.status.value} by {deciding_admin}"
            + (f", enrollment {enrollment_identity}" if enrollment_identity else "")
        )
        self.event_bus.publish(EnrollmentRequestDecided(
            request_identity=request_identity.token,
            requester=request.requester,
            module_identity=request.module_identity.token,
            status=request.status.value,
            decided_by=deciding_admin.token,
            enrollment_identity=enrollment_identity.token if enrollment_identity else None,
        ))
        return Decision(request=request, enrollment=enrollment)

    def _load_request(self, session: Session, request_identity: CompositeIdentity) -> EnrollmentRequest:
        try:
            request = session.get(EnrollmentRequest, request_identity.local_int())
        except ValueError:
            request = None
        if request is None:
            raise RequestNotFound(f"Enrollment request {request_identity} not found")
        return request

    def _materialize(self, session: Session, request: EnrollmentRequest) -> Enrollment:
        """Create the enrollment for an approved request in the same transaction"""
        load_active_module(session, request.module_identity)

        enrollment = Enrollment(
            student_identity=request.requester,
            module_id=request.module_id,
            request_id=request.id,
            status=EnrollmentStatus.REGISTERED,
        )
        # A failed flush rolls the session back and expires the request
        requester = request.requester
        module_token = request.module_identity.token
        session.add(request)

        try:
            # The shadow lookup autoflushes, so the unique check can fire there too
            session.add(enrollment)
            if request.classification == RequestClassification.EXTERNAL:
                self._upsert_shadow(session, request)
            session.flush()
        except IntegrityError:
            raise NotEnrollable(
                f"Student {requester} already holds an enrollment in module {module_token}"
            )
        session.refresh(enrollment)
        return enrollment

    def _upsert_shadow(self, session: Session, request: EnrollmentRequest) -> None:
        shadow = session.exec(
            select(StudentShadow).where(StudentShadow.student_identity == request.requester)
        ).first()
        if shadow is None:
            shadow = StudentShadow(
                student_identity=request.requester,
                source_tenant=request.source_tenant,
            )
        else:
            shadow.updated_at = utc_now()
        shadow.full_name = request.requester_name
        shadow.university_email = request.requester_email
        session.add(shadow)

    def list_for_tenant(self, tenant: str, scope: Optional[str] = None) -> RequestQueues:
        """Requests targeting a department, split into internal and external"""
        store = self.registry.get(tenant)

        statement = select(EnrollmentRequest).order_by(
            desc(EnrollmentRequest.created_at), desc(EnrollmentRequest.id)
        )
        if scope == RequestScope.PENDING:
            statement = statement.where(EnrollmentRequest.status == RequestStatus.PENDING)
        elif scope == RequestScope.DECIDED:
            statement = statement.where(EnrollmentRequest.status != RequestStatus.PENDING)
        elif scope is not None:
            raise ValueError(f"Unknown request scope: {scope}")

        with store.read() as session:
            requests = session.exec(statement).all()

        queues = RequestQueues()
        for request in requests:
            if request.classification == RequestClassification.INTERNAL:
                queues.internal.append(request)
            else:
                queues.external.append(request)
        return queues

    async def list_for_student(self, student: IdentityLike, timeout: Optional[float] = None) -> StudentRequests:
        """Every request a student made, across all departments, newest first"""
        student = coerce_identity(student)
        self.registry.get(student.tenant)
        wait = self.read_timeout if timeout is None else timeout

        def read(store: TenantPartitionStore) -> List[EnrollmentRequest]:
            with store.read() as session:
                return list(session.exec(
                    select(EnrollmentRequest).where(EnrollmentRequest.requester == student.token)
                ).all())

        fanned = await fan_out(self.registry.stores(), read, wait)
        requests = [request for rows in fanned.results.values() for request in rows]
        requests.sort(key=lambda r: (r.created_at, r.target_tenant, r.id), reverse=True)
        return StudentRequests(requests=requests, unavailable_tenants=fanned.failed_tenants)
