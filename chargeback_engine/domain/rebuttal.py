"""Advisory assessment of customer rebuttal evidence"""

import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from chargeback_engine.domain.models import EvidenceAssessment, Transaction

MIN_CRITERIA = 3
DATE_WINDOW = timedelta(days=30)

MERCHANT_TERMS = ("merchant", "invoice", "order", "receipt", "purchase")
RESOLUTION_TERMS = ("contacted", "emailed", "called", "asked for a refund", "requested a refund", "complained", "support ticket")
ACKNOWLEDGMENT_TERMS = ("acknowledged", "admitted", "agreed to refund", "confirmed the", "promised", "apologized", "apologised")
READABLE_FILE_TYPES = ("application/pdf", "image/")

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_DMY_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")


class EvidenceAssessor:
    """Interface for judging whether rebuttal evidence could win pre-arbitration"""

    def assess(self, tx: Transaction, note: str, files: Sequence[dict]) -> EvidenceAssessment:
        raise NotImplementedError


def _mentioned_dates(text: str) -> List[date]:
    found = []
    for year, month, day in _ISO_DATE.findall(text):
        try:
            found.append(date(int(year), int(month), int(day)))
        except ValueError:
            continue
    for day, month, year in _DMY_DATE.findall(text):
        try:
            found.append(date(int(year), int(month), int(day)))
        except ValueError:
            continue
    return found


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


class CriteriaEvidenceAssessor(EvidenceAssessor):
    """Keyword criteria; sufficient when at least three of five are met"""

    def __init__(self, min_criteria: int = MIN_CRITERIA):
        self.min_criteria = min_criteria

    def assess(self, tx: Transaction, note: str, files: Sequence[dict]) -> EvidenceAssessment:
        text = (note or "").lower()
        tx_date = tx.transaction_time.date() if isinstance(tx.transaction_time, datetime) else tx.transaction_time

        criteria = {
            "mentions_merchant_or_order": _contains_any(text, MERCHANT_TERMS)
            or bool(tx.merchant_name and tx.merchant_name.lower() in text),
            "attempted_resolution": _contains_any(text, RESOLUTION_TERMS),
            "relevant_date": any(abs(d - tx_date) <= DATE_WINDOW for d in _mentioned_dates(text)),
            "merchant_acknowledgment": _contains_any(text, ACKNOWLEDGMENT_TERMS),
            "readable_attachment": any(
                str(f.get("type", "")).lower().startswith(READABLE_FILE_TYPES) for f in files
            ),
        }
        met = [name for name, ok in criteria.items() if ok]
        sufficient = len(met) >= self.min_criteria
        summary = (
            f"{len(met)} of {len(criteria)} criteria met - "
            + ("evidence supports pre-arbitration" if sufficient else "evidence is insufficient")
        )
        return EvidenceAssessment(sufficient=sufficient, criteria_met=met, summary=summary)


def default_assessor(min_criteria: Optional[int] = None) -> EvidenceAssessor:
    return CriteriaEvidenceAssessor(min_criteria or MIN_CRITERIA)
