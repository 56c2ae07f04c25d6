"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EvidenceItemSchema(BaseModel):
    """Validator output for one submitted document"""

    key: str = Field(..., min_length=1, description="Document vocabulary key, e.g. invoice")
    is_valid: bool
    reason_if_invalid: Optional[str] = None


class EvaluateRequest(BaseModel):
    """Request body for POST /v1/evaluate"""

    transaction_id: UUID
    dispute_id: UUID
    evidence_items: List[EvidenceItemSchema] = Field(default_factory=list)


class DecisionResponse(BaseModel):
    """Stored policy decision"""

    decision_id: UUID
    transaction_id: UUID
    dispute_id: UUID
    decision_kind: str
    policy_code: str
    reason_summary: str
    flags: Dict[str, Any]
    next_actions: List[str]
    audit: Dict[str, Any]
    base_amount_usd: Optional[Decimal] = None
    remaining_amount_usd: Decimal
    created_at: datetime
    replayed: bool = False


class DecisionHistoryResponse(BaseModel):
    transaction_id: UUID
    decisions: List[DecisionResponse]


class EligibilityResponse(BaseModel):
    transaction_id: UUID
    eligible: bool
    reasons: List[str]


class TransitionRequest(BaseModel):
    """Body for bank-admin representment actions"""

    notes: Optional[str] = None


class MerchantResponseRequest(BaseModel):
    contested: bool
    reason_code: Optional[str] = None
    reason_text: Optional[str] = None
    document_ref: Optional[str] = None
    source: str = "card_network"


class EvidenceFileSchema(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., description="MIME type, e.g. application/pdf")
    url: Optional[str] = None


class CustomerEvidenceRequest(BaseModel):
    note: Optional[str] = None
    files: List[EvidenceFileSchema] = Field(default_factory=list)


class PrearbitrationOutcomeRequest(BaseModel):
    outcome: str = Field(..., min_length=1, description="Network ruling, e.g. won or lost")
    notes: Optional[str] = None


class AssessmentSchema(BaseModel):
    sufficient: bool
    criteria_met: List[str]
    summary: str


class RepresentmentResponse(BaseModel):
    transaction_id: UUID
    status: str
    dispute_status: Optional[str] = None
    needs_attention: bool
    merchant_reason_code: Optional[str] = None
    merchant_reason_text: Optional[str] = None
    merchant_document_ref: Optional[str] = None
    temporary_credit_provided: bool
    temporary_credit_reversal_at: Optional[datetime] = None
    prearbitration_filed_at: Optional[datetime] = None
    assessment: Optional[AssessmentSchema] = None


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    performed_by: Optional[str] = None
    performed_at: datetime
    note: Optional[str] = None
    network: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class AuditTrailResponse(BaseModel):
    transaction_id: UUID
    entries: List[AuditEntryResponse]


class OpsTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    transaction_id: UUID
    dispute_id: Optional[UUID] = None
    kind: str
    status: str
    details: Optional[Dict[str, Any]] = None
    due_at: Optional[datetime] = None
    created_at: datetime


class RedeliveryResponse(BaseModel):
    scheduled: int
