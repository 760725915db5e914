"""
NotaryPro Certify - Document Lifecycle Manager

State machine and orchestrator for document certification:

    (none) --create--> pending --simple signature--> signed
    pending | signed --advanced signature--> completed
    pending | signed --reject--> rejected

Completed and rejected documents accept no further transitions.

Each transition commits its primary writes (document row, evidence or
signature) together, then writes one audit entry as a separate best-effort
step.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import Settings, get_settings
from app.models.audit import AuditAction
from app.models.base import utcnow
from app.models.document import Document, DocumentStatus, DocumentType, PosTerminal
from app.models.evidence import Evidence, EvidenceType
from app.models.signature import Signature, SignatureKind
from app.models.user import CERTIFYING_ROLES, User
from app.services.audit_service import AuditTrail
from app.services.evidence_service import EvidenceStore
from app.services.integrity_service import compute_document_hash, mint_validation_token
from app.services.signing import (
    AdvancedSigner,
    AdvancedSigningRequest,
    SignerCapability,
    SimpleSigner,
    SimpleSigningRequest,
    TokenCapability,
)
from app.utils.error_handling import (
    AuthenticationFailedException,
    ConflictException,
    DocumentNotFoundException,
    ErrorCode,
    InsufficientAuthorityException,
    InvalidTransitionException,
    NotFoundException,
    SignerUnavailableException,
    ValidationException,
)
from app.utils.validation import (
    require_valid_rut,
    sanitize_input,
    validate_chilean_phone,
    validate_email,
)

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    """Events that move a document through its lifecycle."""
    ATTACH_EVIDENCE = "attach_evidence"
    SIMPLE_SIGNATURE = "simple_signature"
    ADVANCED_SIGNATURE = "advanced_signature"
    REJECT = "reject"


# (current status, event) -> next status. Anything missing is invalid.
TRANSITIONS: Dict[tuple, DocumentStatus] = {
    (DocumentStatus.PENDING, LifecycleEvent.ATTACH_EVIDENCE): DocumentStatus.PENDING,
    (DocumentStatus.PENDING, LifecycleEvent.SIMPLE_SIGNATURE): DocumentStatus.SIGNED,
    (DocumentStatus.PENDING, LifecycleEvent.ADVANCED_SIGNATURE): DocumentStatus.COMPLETED,
    (DocumentStatus.SIGNED, LifecycleEvent.ADVANCED_SIGNATURE): DocumentStatus.COMPLETED,
    (DocumentStatus.PENDING, LifecycleEvent.REJECT): DocumentStatus.REJECTED,
    (DocumentStatus.SIGNED, LifecycleEvent.REJECT): DocumentStatus.REJECTED,
}

# Documents awaiting a certifier
QUEUE_STATUSES = (DocumentStatus.PENDING, DocumentStatus.SIGNED)


@dataclass
class RequestContext:
    """Origin of a request, recorded on signatures and audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class DocumentDetail:
    """A document with its evidence and signatures."""
    document: Document
    evidence: List[Evidence] = field(default_factory=list)
    signatures: List[Signature] = field(default_factory=list)


def next_status(document: Document, event: LifecycleEvent) -> DocumentStatus:
    """Target status for an event, or InvalidTransitionException."""
    target = None if document.is_final else TRANSITIONS.get((document.status, event))
    if target is None:
        raise InvalidTransitionException(document.document_number, document.status.value, event.value)
    return target


def authoritative_signature(signatures: List[Signature], kind: SignatureKind) -> Optional[Signature]:
    """The most recent signature of a kind, which is the one that counts."""
    candidates = [s for s in signatures if s.kind == kind]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.signed_at)


class DocumentLifecycleManager:
    """Service driving documents through the certification lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        token: Optional[TokenCapability] = None,
        settings: Optional[Settings] = None,
        audit: Optional[AuditTrail] = None,
        evidence_store: Optional[EvidenceStore] = None,
        signers: Optional[Dict[SignatureKind, SignerCapability]] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.audit = audit or AuditTrail(db)
        self.evidence_store = evidence_store or EvidenceStore(db)

        if signers is None:
            signers = {SignatureKind.SIMPLE: SimpleSigner()}
            if token is not None:
                signers[SignatureKind.ADVANCED] = AdvancedSigner(
                    token,
                    pin_min_length=self.settings.pin_min_length,
                    pin_max_length=self.settings.pin_max_length,
                )
        self.signers = signers

    def _signer(self, kind: SignatureKind) -> SignerCapability:
        signer = self.signers.get(kind)
        if signer is None:
            raise SignerUnavailableException(f"No {kind.value} signer is configured")
        return signer

    async def _record(self, action: AuditAction, document: Document, *touched, **kwargs) -> None:
        """Write the audit entry for a committed transition."""
        entry = await self.audit.record(action, document_id=document.id, **kwargs)
        if entry is None:
            # The failed write rolled the session back and expired what it held
            for instance in (document, *touched):
                await self.db.refresh(instance)

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_document(self, document_id: uuid.UUID) -> Document:
        document = await self.db.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundException(document_id)
        return document

    async def get_document_detail(self, document_id: uuid.UUID) -> DocumentDetail:
        """Document with its type, evidence (capture order) and signatures."""
        result = await self.db.execute(
            select(Document)
            .where(Document.id == document_id)
            .options(
                selectinload(Document.document_type),
                selectinload(Document.evidence),
                selectinload(Document.signatures),
            )
            .execution_options(populate_existing=True)
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundException(document_id)

        return DocumentDetail(
            document=document,
            evidence=list(document.evidence),
            signatures=list(document.signatures),
        )

    async def list_pending_documents(self, skip: int = 0, limit: int = 50) -> List[Document]:
        """Documents awaiting certification, newest first."""
        result = await self.db.execute(
            select(Document)
            .where(Document.status.in_(QUEUE_STATUSES))
            .order_by(Document.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_document_types(self, include_inactive: bool = False) -> List[DocumentType]:
        query = select(DocumentType).order_by(DocumentType.name)
        if not include_inactive:
            query = query.where(DocumentType.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def authoritative_signature(self, document_id: uuid.UUID, kind: SignatureKind) -> Optional[Signature]:
        result = await self.db.execute(
            select(Signature)
            .where(Signature.document_id == document_id, Signature.kind == kind)
            .order_by(Signature.signed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ===========================================
    # CREATE
    # ===========================================

    async def create_document(
        self,
        type_id: uuid.UUID,
        client_name: str,
        client_rut: str,
        client_phone: Optional[str] = None,
        client_email: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
        pos_terminal_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
        context: Optional[RequestContext] = None,
    ) -> Document:
        """
        Create a pending document with its integrity hash and QR token.

        Raises:
            InvalidRUTException: client RUT fails the checksum
            ValidationException: missing name or malformed contact data
            NotFoundException: unknown or inactive document type or terminal
        """
        context = context or RequestContext()

        name = sanitize_input(client_name, max_length=255)
        if not name:
            raise ValidationException("Client name is required", field="client_name")
        rut = require_valid_rut(client_rut, field="client_rut")
        if client_phone and not validate_chilean_phone(client_phone):
            raise ValidationException("Invalid Chilean phone number", field="client_phone")
        if client_email and not validate_email(client_email):
            raise ValidationException("Invalid e-mail address", field="client_email")

        document_type = await self.db.get(DocumentType, type_id)
        if document_type is None or not document_type.is_active:
            raise NotFoundException("DocumentType", type_id)

        if pos_terminal_id is not None:
            terminal = await self.db.get(PosTerminal, pos_terminal_id)
            if terminal is None or not terminal.is_active:
                raise NotFoundException("PosTerminal", pos_terminal_id)

        document_number = await self._generate_document_number()
        created_at = utcnow()
        document_hash = compute_document_hash({
            "document_number": document_number,
            "client_name": name,
            "client_rut": rut,
            "type_id": type_id,
            "created_at": created_at,
        })

        document = Document(
            document_number=document_number,
            type_id=type_id,
            client_name=name,
            client_rut=rut,
            client_phone=client_phone,
            client_email=client_email,
            pos_terminal_id=pos_terminal_id,
            content=content or {},
            status=DocumentStatus.PENDING,
            hash=document_hash,
            qr_code=mint_validation_token(document_hash, created_at),
            created_at=created_at,
        )
        self.db.add(document)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Document number collision on {document_number}: {e}")
            raise ConflictException(
                f"Document number {document_number} is already taken, retry the request",
                code=ErrorCode.DUPLICATE_ENTRY,
            )

        logger.info(f"Document {document_number} created for {rut}")

        await self._record(
            AuditAction.DOCUMENT_CREATED,
            document,
            user_id=actor_id,
            details={
                "document_number": document_number,
                "type_id": str(type_id),
                "client_rut": rut,
                "pos_terminal_id": str(pos_terminal_id) if pos_terminal_id else None,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return document

    async def _generate_document_number(self) -> str:
        """Next DOC-<year>-<seq> number for the current year."""
        year = utcnow().year
        prefix = f"{self.settings.document_number_prefix}-{year}-"

        last = await self.db.scalar(
            select(func.max(Document.document_number)).where(
                Document.document_number.like(f"{prefix}%")
            )
        )
        sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1

        return f"{prefix}{sequence:06d}"

    # ===========================================
    # EVIDENCE
    # ===========================================

    async def attach_evidence(
        self,
        document_id: uuid.UUID,
        evidence_type: EvidenceType,
        payload: Dict[str, Any],
        actor_id: Optional[uuid.UUID] = None,
        context: Optional[RequestContext] = None,
    ) -> Evidence:
        """Attach one evidence item to a pending document."""
        context = context or RequestContext()
        document = await self.get_document(document_id)
        next_status(document, LifecycleEvent.ATTACH_EVIDENCE)

        evidence = await self.evidence_store.attach(document.id, evidence_type, payload)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        logger.info(f"Evidence {evidence.evidence_type.value} added to {document.document_number}")

        await self._record(
            AuditAction.EVIDENCE_ADDED,
            document,
            evidence,
            user_id=actor_id,
            details={"evidence_id": str(evidence.id), "evidence_type": evidence.evidence_type.value},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return evidence

    # ===========================================
    # SIGNATURES
    # ===========================================

    async def apply_simple_signature(
        self,
        document_id: uuid.UUID,
        signature_data: str,
        signer_name: str,
        signer_rut: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
        context: Optional[RequestContext] = None,
    ) -> Signature:
        """Record the client's handwritten signature: pending -> signed."""
        context = context or RequestContext()
        document = await self.get_document(document_id)
        target = next_status(document, LifecycleEvent.SIMPLE_SIGNATURE)

        result = await self._signer(SignatureKind.SIMPLE).sign(
            SimpleSigningRequest(payload=signature_data, signer_name=signer_name, signer_rut=signer_rut)
        )

        signature = Signature(
            document_id=document.id,
            kind=result.kind,
            signer_name=result.signer_name,
            signer_rut=result.signer_rut,
            signature_data=result.material,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            signed_at=result.signed_at,
        )
        document.status = target
        document.signed_at = result.signed_at
        await self._commit_signature(signature)

        logger.info(f"Simple signature added to {document.document_number}")

        await self._record(
            AuditAction.SIMPLE_SIGNATURE_ADDED,
            document,
            signature,
            user_id=actor_id,
            details={"signature_id": str(signature.id), "signer_name": result.signer_name},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return signature

    async def apply_advanced_signature(
        self,
        document_id: uuid.UUID,
        actor_id: uuid.UUID,
        certificate_id: str,
        pin: str,
        context: Optional[RequestContext] = None,
    ) -> Signature:
        """
        Apply the certifier's FEA signature: pending | signed -> completed.

        Raises:
            InvalidTransitionException: document already completed or rejected
            InsufficientAuthorityException: actor is not a certifier or admin
            InvalidCredentialException: PIN length rejected before touching the token
            AuthenticationFailedException: token absent or PIN refused
        """
        context = context or RequestContext()
        document = await self.get_document(document_id)
        target = next_status(document, LifecycleEvent.ADVANCED_SIGNATURE)
        certifier = await self._require_certifier(actor_id)

        result = await self._signer(SignatureKind.ADVANCED).sign(
            AdvancedSigningRequest(document_hash=document.hash, certificate_id=certificate_id, pin=pin)
        )

        signature = Signature(
            document_id=document.id,
            kind=result.kind,
            signer_name=result.signer_name,
            signer_rut=result.signer_rut,
            signature_data=result.material,
            algorithm=result.algorithm,
            certificate_info=result.certificate.to_dict() if result.certificate else None,
            certifier_id=certifier.id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            signed_at=result.signed_at,
        )
        document.status = target
        document.completed_at = result.signed_at
        await self._commit_signature(signature)

        logger.info(f"Advanced signature applied to {document.document_number} by {certifier.username}")

        await self._record(
            AuditAction.ADVANCED_SIGNATURE_APPLIED,
            document,
            signature,
            user_id=certifier.id,
            details={
                "signature_id": str(signature.id),
                "certificate_id": certificate_id,
                "signer_name": result.signer_name,
                "algorithm": result.algorithm,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return signature

    async def _require_certifier(self, actor_id: uuid.UUID) -> User:
        user = await self.db.get(User, actor_id) if actor_id else None
        if user is None or not user.is_active:
            raise AuthenticationFailedException("Unknown or inactive user")
        if not user.can_certify:
            logger.warning(f"User {user.username} ({user.role.value}) attempted an advanced signature")
            raise InsufficientAuthorityException(
                required_roles=sorted(role.value for role in CERTIFYING_ROLES),
                actor_role=user.role.value,
            )
        return user

    async def _commit_signature(self, signature: Signature) -> None:
        self.db.add(signature)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Signature for document {signature.document_id} could not be stored: {e}")
            raise

    # ===========================================
    # REJECTION
    # ===========================================

    async def reject_document(
        self,
        document_id: uuid.UUID,
        reason: str,
        actor_id: Optional[uuid.UUID] = None,
        context: Optional[RequestContext] = None,
    ) -> Document:
        """Reject a pending or signed document. Rejection is terminal."""
        context = context or RequestContext()
        reason = sanitize_input(reason)
        if not reason:
            raise ValidationException("A rejection reason is required", field="reason")

        document = await self.get_document(document_id)
        previous = document.status
        document.status = next_status(document, LifecycleEvent.REJECT)
        document.rejection_reason = reason

        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        logger.info(f"Document {document.document_number} rejected")

        await self._record(
            AuditAction.DOCUMENT_REJECTED,
            document,
            user_id=actor_id,
            details={"reason": reason, "previous_status": previous.value},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return document
