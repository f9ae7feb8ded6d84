"""
Authorization Status State Machine.

Provides:
- Valid status transitions and the events that trigger them
- Target-status to event mapping for manual status changes
- Applying an event to an authorization through its own guarded methods

State Diagram:
    PENDIENTE -> EN_REVISION | APROBADA | RECHAZADA
    EN_REVISION -> APROBADA | RECHAZADA
    APROBADA, RECHAZADA: final (RECHAZADA may still be soft deleted)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from meditrack.core.enums import AuthorizationStatus
from meditrack.models import MedicalAuthorization
from meditrack.utils.errors import ValidationError
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


class TransitionEvent(str, Enum):
    """Events that change an authorization's status or visibility."""

    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


@dataclass(frozen=True)
class Transition:
    """A valid transition. ``to_status`` is None for events that keep the status."""

    from_status: AuthorizationStatus
    event: TransitionEvent
    to_status: Optional[AuthorizationStatus]


# =============================================================================
# Valid Transitions Definition
# =============================================================================


VALID_TRANSITIONS: list[Transition] = [
    # From PENDIENTE
    Transition(
        from_status=AuthorizationStatus.PENDIENTE,
        event=TransitionEvent.START_REVIEW,
        to_status=AuthorizationStatus.EN_REVISION,
    ),
    Transition(
        from_status=AuthorizationStatus.PENDIENTE,
        event=TransitionEvent.APPROVE,
        to_status=AuthorizationStatus.APROBADA,
    ),
    Transition(
        from_status=AuthorizationStatus.PENDIENTE,
        event=TransitionEvent.REJECT,
        to_status=AuthorizationStatus.RECHAZADA,
    ),
    Transition(
        from_status=AuthorizationStatus.PENDIENTE,
        event=TransitionEvent.DELETE,
        to_status=None,
    ),

    # From EN_REVISION
    Transition(
        from_status=AuthorizationStatus.EN_REVISION,
        event=TransitionEvent.APPROVE,
        to_status=AuthorizationStatus.APROBADA,
    ),
    Transition(
        from_status=AuthorizationStatus.EN_REVISION,
        event=TransitionEvent.REJECT,
        to_status=AuthorizationStatus.RECHAZADA,
    ),

    # From RECHAZADA
    Transition(
        from_status=AuthorizationStatus.RECHAZADA,
        event=TransitionEvent.DELETE,
        to_status=None,
    ),
]

# Event that reaches each status when an administrator forces it
TARGET_STATUS_EVENTS: dict[AuthorizationStatus, TransitionEvent] = {
    AuthorizationStatus.EN_REVISION: TransitionEvent.START_REVIEW,
    AuthorizationStatus.APROBADA: TransitionEvent.APPROVE,
    AuthorizationStatus.RECHAZADA: TransitionEvent.REJECT,
}


# =============================================================================
# State Machine
# =============================================================================


class AuthorizationStateMachine:
    """
    Transition table for medical authorizations.

    The table answers questions about the lifecycle; the entity's own methods
    stay the authority on whether a transition is allowed and raise
    ``ConflictError`` when it is not.
    """

    def __init__(self):
        self._transitions: dict[tuple[AuthorizationStatus, TransitionEvent], Transition] = {}
        self._from_status_map: dict[AuthorizationStatus, list[Transition]] = {}

        for transition in VALID_TRANSITIONS:
            self._transitions[(transition.from_status, transition.event)] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: AuthorizationStatus) -> list[Transition]:
        return self._from_status_map.get(status, [])

    def get_valid_events(self, status: AuthorizationStatus) -> list[TransitionEvent]:
        return [t.event for t in self.get_valid_transitions(status)]

    def get_next_statuses(self, status: AuthorizationStatus) -> list[AuthorizationStatus]:
        return [t.to_status for t in self.get_valid_transitions(status) if t.to_status is not None]

    def can_transition(self, from_status: AuthorizationStatus, to_status: AuthorizationStatus) -> bool:
        return to_status in self.get_next_statuses(from_status)

    def get_transition(
        self,
        from_status: AuthorizationStatus,
        event: TransitionEvent,
    ) -> Optional[Transition]:
        return self._transitions.get((from_status, event))

    def event_for_target(self, target_status: AuthorizationStatus) -> TransitionEvent:
        """Event that moves an authorization into ``target_status``."""
        status = AuthorizationStatus(target_status)
        event = TARGET_STATUS_EVENTS.get(status)
        if event is None:
            raise ValidationError(f"Invalid target status: {status.value}")
        return event

    def apply(self, authorization: MedicalAuthorization, event: TransitionEvent) -> None:
        """Fire ``event`` on ``authorization`` through the entity's guarded method."""
        previous = authorization.status

        if event == TransitionEvent.APPROVE:
            authorization.approve()
        elif event == TransitionEvent.REJECT:
            authorization.reject()
        elif event == TransitionEvent.START_REVIEW:
            authorization.mark_under_review()
        elif event == TransitionEvent.DELETE:
            authorization.delete()
        else:
            raise ValidationError(f"Unknown transition event: {event}")

        logger.info(
            f"Authorization {authorization.id} transitioned: "
            f"{previous.value} -> {authorization.status.value} (event: {event.value})"
        )


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[AuthorizationStateMachine] = None


def get_authorization_state_machine() -> AuthorizationStateMachine:
    """Get singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = AuthorizationStateMachine()
    return _state_machine
