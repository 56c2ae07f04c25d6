"""Evidence sufficiency checks against per-reason document requirements"""

from typing import Dict, Iterable, List, Optional, Tuple

from chargeback_engine.domain.exceptions import InvalidEvidenceError
from chargeback_engine.domain.models import DocumentKey, EvidenceItem, ReasonCode, SufficiencyResult

REQUIRED_DOCUMENTS: Dict[ReasonCode, Tuple[DocumentKey, ...]] = {
    ReasonCode.UNAUTHORIZED: (DocumentKey.BANK_STATEMENT,),
    ReasonCode.NOT_RECEIVED: (DocumentKey.INVOICE, DocumentKey.TRACKING_PROOF),
    ReasonCode.WRONG_ITEM: (DocumentKey.INVOICE, DocumentKey.PRODUCT_PHOTO),
    ReasonCode.NOT_AS_DESCRIBED: (DocumentKey.INVOICE, DocumentKey.PRODUCT_PHOTO),
    ReasonCode.DAMAGED_DEFECTIVE: (DocumentKey.INVOICE, DocumentKey.PRODUCT_PHOTO),
    ReasonCode.DUPLICATE: (DocumentKey.BANK_STATEMENT,),
    ReasonCode.CANCELLED_BUT_CHARGED: (DocumentKey.CANCELLATION_PROOF, DocumentKey.BANK_STATEMENT),
    ReasonCode.REFUND_NOT_PROCESSED: (DocumentKey.CANCELLATION_PROOF, DocumentKey.BANK_STATEMENT),
    ReasonCode.INCORRECT_AMOUNT: (DocumentKey.INVOICE, DocumentKey.BANK_STATEMENT),
}


def normalize_reason(reason_code: Optional[str]) -> str:
    return (reason_code or "").strip().upper()


def parse_reason(reason_code: Optional[str]) -> Optional[ReasonCode]:
    try:
        return ReasonCode(normalize_reason(reason_code))
    except ValueError:
        return None


def canonical_evidence(items: Iterable[EvidenceItem]) -> Dict[DocumentKey, bool]:
    """
    Collapse evidence items to one validity flag per document key.

    A key counts as valid when any submitted item for it was validated.
    Unknown or empty keys make the whole set malformed.
    """
    validity: Dict[DocumentKey, bool] = {}
    for item in items:
        raw_key = (item.key or "").strip().lower()
        if not raw_key:
            raise InvalidEvidenceError("Evidence item is missing its document key")
        try:
            key = DocumentKey(raw_key)
        except ValueError:
            raise InvalidEvidenceError(f"Unknown evidence document key: {item.key!r}")
        validity[key] = validity.get(key, False) or bool(item.is_valid)
    return validity


def check_sufficiency(
    reason_code: Optional[str],
    items: Iterable[EvidenceItem],
    unknown_reason_requires_review: bool = True,
) -> SufficiencyResult:
    validity = canonical_evidence(items)
    valid = frozenset(key for key, ok in validity.items() if ok)

    reason = parse_reason(reason_code)
    if reason is None:
        return SufficiencyResult(
            sufficient=not unknown_reason_requires_review,
            missing=(),
            valid=valid,
            required=(),
            reason_recognised=False,
        )

    required = REQUIRED_DOCUMENTS[reason]
    missing: List[DocumentKey] = [key for key in required if key not in valid]
    return SufficiencyResult(
        sufficient=not missing,
        missing=tuple(missing),
        valid=valid,
        required=required,
    )


def document_findings(items: Iterable[EvidenceItem]) -> List[dict]:
    """Per-document findings kept on the decision audit trail"""
    return [
        {"key": item.key, "is_valid": bool(item.is_valid), "reason_if_invalid": item.reason_if_invalid}
        for item in items
    ]
