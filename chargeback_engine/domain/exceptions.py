"""Domain-specific exceptions"""

from typing import Iterable, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input was rejected before any decision was made"""

    pass


class TransactionNotFoundError(ValidationError):
    pass


class DisputeNotFoundError(ValidationError):
    pass


class DisputeMismatchError(ValidationError):
    """Dispute does not belong to the given transaction"""

    pass


class InvalidEvidenceError(ValidationError):
    """Evidence set is malformed (unknown document key, missing key)"""

    pass


class DisputeAlreadyFiledError(ValidationError):
    """A chargeback already exists for this transaction"""

    pass


class RepresentmentNotFoundError(ValidationError):
    pass


class AuthorizationError(DomainException):
    """Actor lacks the capability required for the operation"""

    pass


class InvalidTransitionError(DomainException):
    """State-machine event attempted from a state that does not allow it"""

    def __init__(self, action: str, current_status: Optional[str], expected_statuses: Iterable[str]):
        self.action = action
        self.current_status = current_status
        self.expected_statuses = sorted(expected_statuses)
        super().__init__(
            f"Action not allowed in current state: '{action}' requires "
            f"{' or '.join(self.expected_statuses)}, current status is {current_status}"
        )


class ConcurrentTransitionError(DomainException):
    """Status changed between read and compare-and-swap"""

    pass


class PersistenceError(DomainException):
    """Store rejected a write; the unit of work was rolled back"""

    pass


class DispatchError(DomainException):
    """External side effect could not be delivered"""

    pass


class CreditLedgerError(DispatchError):
    pass


class CardNetworkError(DispatchError):
    pass
