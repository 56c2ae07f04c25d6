"""Stable input fingerprint used as the decision idempotency key"""

import hashlib
import json
from typing import Iterable, Optional

from chargeback_engine.domain.evidence import canonical_evidence, normalize_reason
from chargeback_engine.domain.models import EvidenceItem, TransactionFacts


def fingerprint_inputs(
    facts: TransactionFacts,
    reason_code: Optional[str],
    custom_reason: Optional[str],
    evidence: Iterable[EvidenceItem],
) -> str:
    """
    SHA-256 over the canonical JSON form of the logical evaluation inputs.

    Evidence is reduced to sorted (key, is_valid) pairs so submission order,
    duplicate uploads and free-text invalidity reasons do not change the key.

    The facts snapshot carries whole-day ages, which settlement and age rules
    decide on. A retry on a later day is a new evaluation of new facts, not a
    replay, and once the transaction is filed it is refused as already filed.
    """
    validity = canonical_evidence(evidence)
    payload = {
        "facts": facts.snapshot(),
        "reason_code": normalize_reason(reason_code),
        "custom_reason": (custom_reason or "").strip(),
        "evidence": sorted([key.value, ok] for key, ok in validity.items()),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
