"""Representment lifecycle transition table"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from chargeback_engine.domain.exceptions import InvalidTransitionError
from chargeback_engine.domain.models import DisputeStatus, RepresentmentStatus

S = RepresentmentStatus


class RepresentmentEvent(str, Enum):
    MERCHANT_CONTESTED = "merchant_contested"
    MERCHANT_ACCEPTED = "merchant_accepted"
    ACCEPT = "accept"
    REJECT = "reject"
    REQUEST_CUSTOMER_INFO = "request_customer_info"
    SUBMIT_CUSTOMER_EVIDENCE = "submit_customer_evidence"
    PROCEED_TO_PREARBITRATION = "proceed_to_prearbitration"
    CLOSE_AFTER_CUSTOMER_EVIDENCE = "close_after_customer_evidence"
    RECORD_PREARBITRATION_OUTCOME = "record_prearbitration_outcome"


@dataclass(frozen=True)
class Transition:
    source: RepresentmentStatus
    target: RepresentmentStatus
    dispute_status: Optional[DisputeStatus]
    needs_attention: Optional[bool]
    bank_admin_only: bool = False
    requires_dispute_status: Optional[DisputeStatus] = None


E = RepresentmentEvent

TRANSITIONS: Dict[RepresentmentEvent, Transition] = {
    E.MERCHANT_CONTESTED: Transition(
        S.NO_REPRESENTMENT, S.PENDING, DisputeStatus.REPRESENTMENT_RECEIVED, True,
        requires_dispute_status=DisputeStatus.CHARGEBACK_FILED,
    ),
    E.MERCHANT_ACCEPTED: Transition(
        S.NO_REPRESENTMENT, S.NO_REPRESENTMENT, DisputeStatus.CLOSED_WON, False,
        requires_dispute_status=DisputeStatus.CHARGEBACK_FILED,
    ),
    E.ACCEPT: Transition(S.PENDING, S.ACCEPTED_BY_BANK, DisputeStatus.CLOSED_LOST, False, bank_admin_only=True),
    E.REJECT: Transition(S.PENDING, S.REJECTED_BY_BANK, DisputeStatus.CLOSED_WON, False, bank_admin_only=True),
    E.REQUEST_CUSTOMER_INFO: Transition(
        S.PENDING, S.AWAITING_CUSTOMER_INFO, DisputeStatus.AWAITING_CUSTOMER_INFO, False, bank_admin_only=True
    ),
    E.SUBMIT_CUSTOMER_EVIDENCE: Transition(S.AWAITING_CUSTOMER_INFO, S.AWAITING_CUSTOMER_INFO, None, True),
    E.PROCEED_TO_PREARBITRATION: Transition(
        S.AWAITING_CUSTOMER_INFO, S.PREARBITRATION_FILED, DisputeStatus.PRE_ARBITRATION_FILED, False,
        bank_admin_only=True,
    ),
    E.CLOSE_AFTER_CUSTOMER_EVIDENCE: Transition(
        S.AWAITING_CUSTOMER_INFO, S.ACCEPTED_BY_BANK, DisputeStatus.CLOSED_LOST, False, bank_admin_only=True
    ),
    E.RECORD_PREARBITRATION_OUTCOME: Transition(
        S.PREARBITRATION_FILED, S.PREARBITRATION_FILED, None, None, bank_admin_only=True
    ),
}

TERMINAL_STATES = frozenset({S.ACCEPTED_BY_BANK, S.REJECTED_BY_BANK})


def plan_transition(
    event: RepresentmentEvent,
    current: RepresentmentStatus,
    dispute_status: Optional[DisputeStatus] = None,
) -> Transition:
    """Return the transition for event from current, or raise InvalidTransitionError"""
    transition = TRANSITIONS[event]
    if current != transition.source:
        raise InvalidTransitionError(event.value, current.value, [transition.source.value])
    if transition.requires_dispute_status is not None and dispute_status != transition.requires_dispute_status:
        raise InvalidTransitionError(
            event.value,
            dispute_status.value if dispute_status else None,
            [transition.requires_dispute_status.value],
        )
    return transition


def allowed_events(current: RepresentmentStatus):
    return [event for event, t in TRANSITIONS.items() if t.source == current]
