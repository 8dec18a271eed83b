"""
Domain events system

Enrollment workflow transitions are published after their transaction
commits. The app subscribes a structlog audit line for each of them; other
subscribers (notification delivery) live outside the core. A failing
subscriber never undoes a committed transition.
"""

from typing import Any, Callable, Dict, List, Optional
import uuid
import structlog

from uniadmin.core.timestamps import utc_now

logger = structlog.get_logger(__name__)


class DomainEvent:
    """Base class for domain events"""

    def __init__(self, event_id: Optional[uuid.UUID] = None):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.__class__.__name__
        }


class EnrollmentRequestSubmitted(DomainEvent):
    """Event fired when a student submits an enrollment request"""

    def __init__(
        self,
        request_identity: str,
        requester: str,
        module_identity: str,
        source_tenant: str,
        target_tenant: str,
        classification: str,
        event_id: Optional[uuid.UUID] = None
    ):
        super().__init__(event_id)
        self.request_identity = request_identity
        self.requester = requester
        self.module_identity = module_identity
        self.source_tenant = source_tenant
        self.target_tenant = target_tenant
        self.classification = classification

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "request_identity": self.request_identity,
            "requester": self.requester,
            "module_identity": self.module_identity,
            "source_tenant": self.source_tenant,
            "target_tenant": self.target_tenant,
            "classification": self.classification
        })
        return data


class EnrollmentRequestDecided(DomainEvent):
    """Event fired when the target department approves or rejects a request"""

    def __init__(
        self,
        request_identity: str,
        requester: str,
        module_identity: str,
        status: str,
        decided_by: str,
        enrollment_identity: Optional[str] = None,
        event_id: Optional[uuid.UUID] = None
    ):
        super().__init__(event_id)
        self.request_identity = request_identity
        self.requester = requester
        self.module_identity = module_identity
        self.status = status
        self.decided_by = decided_by
        self.enrollment_identity = enrollment_identity

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "request_identity": self.request_identity,
            "requester": self.requester,
            "module_identity": self.module_identity,
            "status": self.status,
            "decided_by": self.decided_by,
            "enrollment_identity": self.enrollment_identity
        })
        return data


class EventBus:
    """In-process bus carrying workflow events to their subscribers"""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable):
        """Register a handler for an event type; registering it twice is a no-op"""
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"Subscribed handler to event type: {event_type}")

    def subscribers(self, event_type: str) -> List[Callable]:
        return list(self._subscribers.get(event_type, []))

    def publish(self, event: DomainEvent):
        """Publish an event to all subscribers"""
        event_type = event.__class__.__name__
        handlers = self._subscribers.get(event_type, [])

        if not handlers:
            logger.debug(f"No subscribers for event type: {event_type}")
            return

        logger.info(f"Publishing event {event_type}: {event.event_id}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {e}", exc_info=True)


WORKFLOW_EVENT_TYPES = (
    EnrollmentRequestSubmitted.__name__,
    EnrollmentRequestDecided.__name__,
)

audit_logger = structlog.get_logger("uniadmin.audit")


def log_workflow_event(event: DomainEvent):
    """Audit trail: one structured log line per committed workflow transition"""
    audit_logger.info("enrollment_workflow_event", **event.to_dict())


def subscribe_audit_log(bus: EventBus):
    for event_type in WORKFLOW_EVENT_TYPES:
        bus.subscribe(event_type, log_workflow_event)


# Global event bus instance
event_bus = EventBus()
