"""
NotaryPro Certify - Public Validator

Read-only lookup used by the public validation page and QR scans. A code is
resolved as a QR token, then as a document number, then as a content hash.
Every lookup, found or not, leaves one `document_validated` audit entry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import Settings, get_settings
from app.models.audit import AuditAction
from app.models.base import utcnow
from app.models.document import Document, DocumentStatus
from app.models.evidence import Evidence
from app.models.signature import Signature, SignatureKind
from app.services.audit_service import AuditTrail
from app.services.document_lifecycle import RequestContext, authoritative_signature
from app.services.integrity_service import (
    build_validation_url,
    verify_document_hash,
    verify_signature_material,
)
from app.utils.error_handling import (
    DocumentNotFoundException,
    IntegrityFailureException,
    ValidationException,
)
from app.utils.validation import validate_hash

logger = logging.getLogger(__name__)


class ValidationMarker(str, Enum):
    """Outcome of a public validation."""
    VALID = "VALID"
    NOT_YET_SIGNED = "NOT_YET_SIGNED"
    REJECTED = "REJECTED"
    INTEGRITY_FAILURE = "INTEGRITY_FAILURE"


@dataclass
class ValidationResult:
    document: Document
    is_valid: bool
    marker: ValidationMarker
    validation_url: str
    evidence: List[Evidence] = field(default_factory=list)
    signatures: List[Signature] = field(default_factory=list)
    integrity_reason: Optional[str] = None
    checked_at: datetime = field(default_factory=utcnow)


class PublicValidator:
    """Service answering public validation requests."""

    def __init__(
        self,
        db: AsyncSession,
        audit: Optional[AuditTrail] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self.settings = settings or get_settings()

    async def _find(self, column, value) -> Optional[Document]:
        result = await self.db.execute(
            select(Document)
            .where(column == value)
            .options(
                selectinload(Document.document_type),
                selectinload(Document.evidence),
                selectinload(Document.signatures),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lookup(self, code: str) -> Optional[Document]:
        """Resolve a code: QR token first, then document number, then hash."""
        normalized = code.strip()

        document = await self._find(Document.qr_code, normalized.upper())
        if document is None:
            document = await self._find(Document.document_number, normalized.upper())
        if document is None and validate_hash(normalized):
            document = await self._find(Document.hash, normalized.lower())
        return document

    def verify_integrity(self, document: Document) -> None:
        """Raise IntegrityFailureException if the stored document does not verify."""
        if not verify_document_hash(document):
            raise IntegrityFailureException(document.document_number, "content hash mismatch")

        advanced = authoritative_signature(list(document.signatures), SignatureKind.ADVANCED)
        if advanced is not None:
            pem = (advanced.certificate_info or {}).get("pem")
            if not pem:
                raise IntegrityFailureException(document.document_number, "advanced signature has no certificate")
            if not verify_signature_material(document.hash, advanced.signature_data, pem):
                raise IntegrityFailureException(
                    document.document_number, "advanced signature does not match the document hash"
                )
        elif document.status == DocumentStatus.COMPLETED:
            raise IntegrityFailureException(document.document_number, "completed document has no advanced signature")

    async def validate(self, code: str, context: Optional[RequestContext] = None) -> ValidationResult:
        """
        Validate a document by public code.

        Raises:
            ValidationException: empty code
            DocumentNotFoundException: nothing matches the code
        """
        context = context or RequestContext()
        if not code or not code.strip():
            raise ValidationException("A validation code is required", field="code")

        document = await self.lookup(code)
        if document is None:
            await self.audit.record(
                AuditAction.DOCUMENT_VALIDATED,
                details={"code": code.strip()[:64], "outcome": "not_found"},
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            raise DocumentNotFoundException(code.strip()[:64])

        document_id = document.id
        result = self._evaluate(document)

        entry = await self.audit.record(
            AuditAction.DOCUMENT_VALIDATED,
            document_id=document_id,
            details={
                "code": code.strip()[:64],
                "outcome": result.marker.value,
                "is_valid": result.is_valid,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        if entry is None:
            # Reload what the failed audit write expired
            document = await self._find(Document.id, document_id)
            result = self._evaluate(document)

        return result

    def _evaluate(self, document: Document) -> ValidationResult:
        validation_url = build_validation_url(document.qr_code, self.settings.base_url)
        base = dict(
            document=document,
            validation_url=validation_url,
            evidence=list(document.evidence),
            signatures=list(document.signatures),
        )

        if document.status == DocumentStatus.PENDING:
            return ValidationResult(is_valid=False, marker=ValidationMarker.NOT_YET_SIGNED, **base)
        if document.status == DocumentStatus.REJECTED:
            return ValidationResult(is_valid=False, marker=ValidationMarker.REJECTED, **base)

        try:
            self.verify_integrity(document)
        except IntegrityFailureException as e:
            logger.error(e.message)
            return ValidationResult(
                is_valid=False,
                marker=ValidationMarker.INTEGRITY_FAILURE,
                integrity_reason=e.details["reason"],
                **base,
            )

        return ValidationResult(is_valid=True, marker=ValidationMarker.VALID, **base)
