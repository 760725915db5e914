"""
NotaryPro Certify - Document Schemas

Pydantic schemas for documents, evidence, signatures and the audit trail.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.document import DocumentStatus
from app.models.evidence import EvidenceType
from app.models.signature import SignatureKind


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class DocumentCreateRequest(BaseModel):
    """Schema for creating a document at a POS terminal."""
    type_id: UUID
    client_name: str = Field(..., min_length=1, max_length=255)
    client_rut: str = Field(..., min_length=8, max_length=20, description="Chilean RUT, e.g. 12.345.678-5")
    client_phone: Optional[str] = Field(None, max_length=30)
    client_email: Optional[str] = Field(None, max_length=255)
    content: Optional[Dict[str, Any]] = None
    pos_terminal_id: Optional[UUID] = None
    actor_id: Optional[UUID] = Field(None, description="User performing the action")


class EvidenceCreateRequest(BaseModel):
    """Schema for attaching evidence."""
    evidence_type: str = Field(..., description="photo, gps, voice, biometric or signature_image")
    payload: Dict[str, Any]
    actor_id: Optional[UUID] = None


class SimpleSignatureRequest(BaseModel):
    """Handwritten signature captured at the POS."""
    signature_data: str = Field(..., description="Base64 signature image")
    signer_name: str = Field(..., max_length=255)
    signer_rut: Optional[str] = Field(None, max_length=20)
    actor_id: Optional[UUID] = None


class AdvancedSignatureRequest(BaseModel):
    """FEA signature by a certifier."""
    certifier_id: UUID
    certificate_id: str = Field(..., min_length=1, max_length=64)
    pin: str = Field(..., description="eToken PIN")


class RejectDocumentRequest(BaseModel):
    reason: str = Field(..., max_length=1000)
    actor_id: Optional[UUID] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class DocumentTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class DocumentResponse(BaseModel):
    """Schema for document response."""
    id: UUID
    document_number: str
    type_id: UUID
    client_name: str
    client_rut: str
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    pos_terminal_id: Optional[UUID] = None
    content: Optional[Dict[str, Any]] = None
    status: DocumentStatus
    hash: str
    qr_code: str
    rejection_reason: Optional[str] = None
    created_at: datetime
    signed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DocumentCreateResponse(BaseModel):
    document: DocumentResponse
    validation_url: str


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int


class EvidenceResponse(BaseModel):
    id: UUID
    document_id: UUID
    evidence_type: EvidenceType
    payload: Dict[str, Any]
    captured_at: datetime

    class Config:
        from_attributes = True


class EvidenceListResponse(BaseModel):
    evidence: List[EvidenceResponse]
    total: int


class SignatureResponse(BaseModel):
    id: UUID
    document_id: UUID
    kind: SignatureKind
    signer_name: str
    signer_rut: Optional[str] = None
    signature_data: str
    algorithm: Optional[str] = None
    certificate_info: Optional[Dict[str, Any]] = None
    certifier_id: Optional[UUID] = None
    signed_at: datetime

    class Config:
        from_attributes = True


class SignatureAppliedResponse(BaseModel):
    """Result of a signature transition."""
    document: DocumentResponse
    signature: SignatureResponse


class DocumentDetailResponse(BaseModel):
    document: DocumentResponse
    document_type: Optional[DocumentTypeResponse] = None
    evidence: List[EvidenceResponse]
    signatures: List[SignatureResponse]
    validation_url: str


class AuditEntryResponse(BaseModel):
    id: str
    timestamp: str
    action: str
    user_id: Optional[str] = None
    details: Dict[str, Any] = {}
    ip_address: Optional[str] = None


class AuditHistoryResponse(BaseModel):
    document_id: UUID
    entries: List[AuditEntryResponse]
    total: int
    skip: int = 0
    limit: int = 100


class ValidationResponse(BaseModel):
    """Public validation result."""
    is_valid: bool
    marker: str
    validation_url: str
    checked_at: datetime
    integrity_reason: Optional[str] = None
    document: DocumentResponse
    evidence: List[EvidenceResponse]
    signatures: List[SignatureResponse]
