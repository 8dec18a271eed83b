"""
Tests for the enrollment workflow engine
"""

import pytest

from uniadmin.core.errors import (
    AlreadyDecided,
    DuplicatePendingRequest,
    Forbidden,
    MalformedIdentity,
    ModuleNotFound,
    NotEnrollable,
    RequestNotFound,
    StudentNotFound,
    UnknownTenant,
)
from uniadmin.core.identity import identity_of
from uniadmin.models.enrollment import Enrollment, EnrollmentStatus
from uniadmin.models.enrollment_request import (
    EnrollmentRequest, RequestClassification, RequestStatus
)
from uniadmin.models.student import StudentShadow
from uniadmin.services.catalog import ModuleCatalog
from uniadmin.services.workflow import RequestScope

from conftest import add_module
from stores import BrokenStore, replace_store


def enrollments(store):
    return store.list(Enrollment)


class TestExternalEnrollmentScenario:
    """CS student requests the global ENG module and ENG decides"""

    def test_submit_external_request(self, university, workflow):
        ada = university.students["ada"]
        request = workflow.submit(ada, university.modules["ENG42"], "elective credit")

        assert request.source_tenant == "CS"
        assert request.target_tenant == "ENG"
        assert request.classification == RequestClassification.EXTERNAL
        assert request.status == RequestStatus.PENDING
        assert request.requester == ada.token
        assert request.justification == "elective credit"
        assert request.identity.tenant == "ENG"
        assert request.module_identity == university.modules["ENG42"]

    def test_requester_snapshot_taken_from_home_department(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])

        assert request.requester_name == "Ada Lovelace"
        assert request.requester_email == "ada.lovelace@cs.example.ac.uk"

    def test_target_admin_approves(self, university, workflow):
        ada = university.students["ada"]
        request = workflow.submit(ada, university.modules["ENG42"], "elective credit")

        decision = workflow.decide("ENG", request.identity, "approved", university.admins["ENG"], notes="ok")

        assert decision.request.status == RequestStatus.APPROVED
        assert decision.request.decided_by == university.admins["ENG"].token
        assert decision.request.reviewer_notes == "ok"
        assert decision.enrollment is not None
        assert decision.enrollment.student_identity == ada.token
        assert decision.enrollment.module_id == university.modules["ENG42"].local_int()
        assert decision.enrollment.status == EnrollmentStatus.REGISTERED

        # The enrollment lives in the module's department only
        assert len(enrollments(university.store("ENG"))) == 1
        assert enrollments(university.store("CS")) == []

        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.APPROVED

    def test_source_admin_cannot_decide(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])

        with pytest.raises(Forbidden):
            workflow.decide("CS", request.identity, "approved", university.admins["CS"])

        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.PENDING
        assert enrollments(university.store("ENG")) == []

    def test_external_approval_records_student_shadow(self, university, workflow):
        ada = university.students["ada"]
        request = workflow.submit(ada, university.modules["ENG42"])
        workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        shadows = university.store("ENG").list(StudentShadow)
        assert len(shadows) == 1
        assert shadows[0].student_identity == ada.token
        assert shadows[0].source_tenant == "CS"
        assert shadows[0].full_name == "Ada Lovelace"

    def test_internal_approval_has_no_shadow(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["CS101"])
        assert request.classification == RequestClassification.INTERNAL

        workflow.decide("CS", request.identity, "approved", university.admins["CS"])
        assert university.store("CS").list(StudentShadow) == []


class TestDecisionBoundaries:
    """Test the target department owns every decision"""

    @pytest.mark.parametrize("status", ["pending", "approved", "rejected"])
    def test_other_department_always_forbidden(self, university, workflow, status):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])
        if status != "pending":
            workflow.decide("ENG", request.identity, status, university.admins["ENG"])

        for tenant in ("CS", "MATH"):
            with pytest.raises(Forbidden):
                workflow.decide(tenant, request.identity, "approved", university.admins[tenant])

    def test_unknown_request_identity_is_forbidden_outside_own_department(self, workflow, university):
        """The boundary check happens before the request is looked up"""
        with pytest.raises(Forbidden):
            workflow.decide("CS", "ENG:9999", "approved", university.admins["CS"])

    def test_missing_request(self, workflow, university):
        with pytest.raises(RequestNotFound):
            workflow.decide("ENG", "ENG:9999", "approved", university.admins["ENG"])

    def test_non_numeric_request_id(self, workflow, university):
        with pytest.raises(RequestNotFound):
            workflow.decide("ENG", "ENG:abc", "approved", university.admins["ENG"])

    def test_malformed_request_identity(self, workflow, university):
        with pytest.raises(MalformedIdentity):
            workflow.decide("ENG", "ENG-1", "approved", university.admins["ENG"])

    def test_second_decision_already_decided(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])
        workflow.decide("ENG", request.identity, "rejected", university.admins["ENG"])

        with pytest.raises(AlreadyDecided):
            workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        assert enrollments(university.store("ENG")) == []

    def test_invalid_outcome(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])
        with pytest.raises(ValueError):
            workflow.decide("ENG", request.identity, "maybe", university.admins["ENG"])


class TestNonCanonicalLocalIds:
    """Test padded or non-ASCII digits never resolve to a stored row"""

    ARABIC_INDIC = str.maketrans("0123456789", "٠١٢٣٤٥٦٧٨٩")

    def variants(self, identity):
        return [
            f"{identity.tenant}:0{identity.local}",
            f"{identity.tenant}:{identity.local.translate(self.ARABIC_INDIC)}",
        ]

    def test_module_variants_not_found(self, university, workflow):
        for token in self.variants(university.modules["ENG42"]):
            with pytest.raises(ModuleNotFound):
                workflow.submit(university.students["ada"], token)
        assert university.store("ENG").list(EnrollmentRequest) == []

    def test_student_variants_not_found(self, university, workflow):
        for token in self.variants(university.students["ada"]):
            with pytest.raises(StudentNotFound):
                workflow.submit(token, university.modules["ENG42"])

    def test_request_variants_not_found(self, university, workflow):
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])

        for token in self.variants(request.identity):
            with pytest.raises(RequestNotFound):
                workflow.decide("ENG", token, "approved", university.admins["ENG"])

        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.PENDING
        assert enrollments(university.store("ENG")) == []


class TestSubmissionRules:
    """Test what a student may request"""

    def test_duplicate_pending_request(self, university, workflow):
        ada, module = university.students["ada"], university.modules["ENG42"]
        workflow.submit(ada, module)

        with pytest.raises(DuplicatePendingRequest):
            workflow.submit(ada, module)

        assert len(university.store("ENG").list(EnrollmentRequest)) == 1

    def test_resubmission_allowed_after_rejection(self, university, workflow):
        ada, module = university.students["ada"], university.modules["ENG42"]
        first = workflow.submit(ada, module)
        workflow.decide("ENG", first.identity, "rejected", university.admins["ENG"])

        second = workflow.submit(ada, module)
        assert second.status == RequestStatus.PENDING
        assert second.identity != first.identity

    def test_resubmission_after_approval_not_enrollable(self, university, workflow):
        ada, module = university.students["ada"], university.modules["ENG42"]
        first = workflow.submit(ada, module)
        workflow.decide("ENG", first.identity, "approved", university.admins["ENG"])

        with pytest.raises(NotEnrollable):
            workflow.submit(ada, module)

    def test_foreign_local_module_not_enrollable(self, university, workflow):
        with pytest.raises(NotEnrollable):
            workflow.submit(university.students["ada"], university.modules["ENG110"])

    def test_inactive_module(self, university, workflow):
        with pytest.raises(ModuleNotFound):
            workflow.submit(university.students["ada"], university.modules["MATH999"])

    def test_missing_module(self, university, workflow):
        with pytest.raises(ModuleNotFound):
            workflow.submit(university.students["ada"], identity_of("ENG", 9999))

    def test_module_in_unknown_department(self, university, workflow):
        with pytest.raises(ModuleNotFound):
            workflow.submit(university.students["ada"], identity_of("HIST", 1))

    def test_student_in_unknown_department(self, university, workflow):
        with pytest.raises(UnknownTenant):
            workflow.submit(identity_of("HIST", 1), university.modules["ENG42"])

    def test_unknown_student(self, university, workflow):
        with pytest.raises(StudentNotFound):
            workflow.submit(identity_of("CS", 9999), university.modules["ENG42"])

    def test_malformed_module_token(self, university, workflow):
        with pytest.raises(MalformedIdentity):
            workflow.submit(university.students["ada"], "ENG42")


class TestDecisionRollback:
    """Test a failed enrollment leaves the request pending"""

    def test_conflicting_enrollment_rolls_back(self, university, workflow):
        ada, module = university.students["ada"], university.modules["ENG42"]
        request = workflow.submit(ada, module)

        # Enrollment written behind the workflow's back
        university.store("ENG").put(Enrollment(student_identity=ada.token, module_id=module.local_int()))

        with pytest.raises(NotEnrollable):
            workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.PENDING
        assert stored.decided_by is None
        assert stored.version == 1
        assert len(enrollments(university.store("ENG"))) == 1
        assert university.store("ENG").list(StudentShadow) == []

    def test_conflicting_internal_enrollment_rolls_back(self, university, workflow):
        """No shadow lookup on internal approvals: the conflict surfaces at the final flush"""
        grace, module = university.students["grace"], university.modules["ENG110"]
        request = workflow.submit(grace, module)
        university.store("ENG").put(Enrollment(student_identity=grace.token, module_id=module.local_int()))

        with pytest.raises(NotEnrollable) as exc_info:
            workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        assert module.token in exc_info.value.message
        assert grace.token in exc_info.value.message
        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.PENDING

    def test_module_deactivated_before_approval(self, university, workflow):
        module = university.modules["ENG42"]
        request = workflow.submit(university.students["ada"], module)
        ModuleCatalog(university.registry).deactivate("ENG", module)

        with pytest.raises(ModuleNotFound):
            workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        stored = university.store("ENG").get(EnrollmentRequest, request.id)
        assert stored.status == RequestStatus.PENDING

        # Rejection still works for the orphaned request
        decision = workflow.decide("ENG", request.identity, "rejected", university.admins["ENG"])
        assert decision.request.status == RequestStatus.REJECTED


class TestModuleDeactivation:
    """Test deactivation keeps history"""

    def test_enrollments_retained(self, university, workflow):
        ada, module = university.students["ada"], university.modules["ENG42"]
        request = workflow.submit(ada, module)
        workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        record = ModuleCatalog(university.registry).deactivate("ENG", module)
        assert record.is_active is False

        remaining = enrollments(university.store("ENG"))
        assert len(remaining) == 1
        assert remaining[0].is_active()
        assert university.store("ENG").get(EnrollmentRequest, request.id).status == RequestStatus.APPROVED

    def test_other_department_cannot_deactivate(self, university):
        with pytest.raises(Forbidden):
            ModuleCatalog(university.registry).deactivate("CS", university.modules["ENG42"])

    def test_deactivating_twice(self, university):
        catalog = ModuleCatalog(university.registry)
        catalog.deactivate("ENG", university.modules["ENG42"])
        with pytest.raises(ModuleNotFound):
            catalog.deactivate("ENG", university.modules["ENG42"])


class TestWorkflowEvents:
    """Test domain events are published after commit"""

    def test_submit_and_decide_publish_events(self, university, workflow, events):
        published = []
        events.subscribe("EnrollmentRequestSubmitted", published.append)
        events.subscribe("EnrollmentRequestDecided", published.append)

        request = workflow.submit(university.students["ada"], university.modules["ENG42"])
        decision = workflow.decide("ENG", request.identity, "approved", university.admins["ENG"])

        submitted, decided = published
        assert submitted.request_identity == request.identity.token
        assert submitted.classification == "external"
        assert submitted.source_tenant == "CS"
        assert submitted.target_tenant == "ENG"
        assert decided.status == "approved"
        assert decided.enrollment_identity == identity_of("ENG", decision.enrollment.id).token
        assert decided.to_dict()["event_type"] == "EnrollmentRequestDecided"

    def test_failing_subscriber_does_not_undo_transition(self, university, workflow, events):
        def explode(event):
            raise RuntimeError("mail server down")

        events.subscribe("EnrollmentRequestSubmitted", explode)
        request = workflow.submit(university.students["ada"], university.modules["ENG42"])

        assert university.store("ENG").get(EnrollmentRequest, request.id).status == RequestStatus.PENDING

    def test_rejected_submission_publishes_nothing(self, university, workflow, events):
        published = []
        events.subscribe("EnrollmentRequestSubmitted", published.append)

        with pytest.raises(NotEnrollable):
            workflow.submit(university.students["ada"], university.modules["ENG110"])
        assert published == []


class TestRequestListings:
    """Test department queues and a student's own requests"""

    def test_list_for_tenant_splits_by_classification(self, university, workflow):
        external = workflow.submit(university.students["ada"], university.modules["ENG42"])
        internal = workflow.submit(university.students["grace"], university.modules["ENG110"])

        queues = workflow.list_for_tenant("ENG")
        assert [r.identity for r in queues.external] == [external.identity]
        assert [r.identity for r in queues.internal] == [internal.identity]

        # Source department sees none of them
        cs_queues = workflow.list_for_tenant("CS")
        assert cs_queues.internal == [] and cs_queues.external == []

    def test_list_for_tenant_filters_by_status(self, university, workflow):
        first = workflow.submit(university.students["ada"], university.modules["ENG42"])
        second = workflow.submit(university.students["alan"], university.modules["ENG42"])
        workflow.decide("ENG", first.identity, "rejected", university.admins["ENG"])

        pending = workflow.list_for_tenant("ENG", RequestScope.PENDING)
        decided = workflow.list_for_tenant("ENG", RequestScope.DECIDED)
        everything = workflow.list_for_tenant("ENG")

        assert [r.identity for r in pending.external] == [second.identity]
        assert [r.identity for r in decided.external] == [first.identity]
        assert {r.identity for r in everything.external} == {first.identity, second.identity}

    def test_list_for_tenant_newest_first(self, university, workflow):
        first = workflow.submit(university.students["ada"], university.modules["ENG42"])
        second = workflow.submit(university.students["alan"], university.modules["ENG42"])

        queues = workflow.list_for_tenant("ENG")
        assert [r.identity for r in queues.external] == [second.identity, first.identity]

    def test_list_for_tenant_unknown_scope(self, workflow):
        with pytest.raises(ValueError):
            workflow.list_for_tenant("ENG", "archived")

    def test_list_for_tenant_unknown_department(self, workflow):
        with pytest.raises(UnknownTenant):
            workflow.list_for_tenant("HIST")

    @pytest.mark.asyncio
    async def test_list_for_student_across_departments(self, university, workflow):
        ada = university.students["ada"]
        eng = workflow.submit(ada, university.modules["ENG42"])
        math = workflow.submit(ada, university.modules["MATH200"])
        local = workflow.submit(ada, university.modules["CS101"])
        workflow.submit(university.students["alan"], university.modules["ENG42"])

        result = await workflow.list_for_student(ada)

        assert {r.identity for r in result.requests} == {eng.identity, math.identity, local.identity}
        assert all(r.requester == ada.token for r in result.requests)
        assert result.unavailable_tenants == []

    @pytest.mark.asyncio
    async def test_list_for_student_reports_unavailable(self, university, workflow):
        ada = university.students["ada"]
        workflow.submit(ada, university.modules["ENG42"])
        replace_store(university.registry, "MATH", BrokenStore)

        result = await workflow.list_for_student(ada)
        assert len(result.requests) == 1
        assert result.unavailable_tenants == ["MATH"]

    def test_queue_includes_newly_added_module(self, university, workflow):
        module = add_module(university.store("MATH"), "MATH300", is_global=True)
        request = workflow.submit(university.students["grace"], module)

        queues = workflow.list_for_tenant("MATH", RequestScope.PENDING)
        assert [r.identity for r in queues.external] == [request.identity]
