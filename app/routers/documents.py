"""
NotaryPro Certify - Documents Router

API endpoints for the document certification lifecycle: creation at the POS,
evidence capture, simple and advanced signatures, rejection and audit history.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_lifecycle_manager, get_request_context
from app.schemas.document import (
    AdvancedSignatureRequest,
    AuditEntryResponse,
    AuditHistoryResponse,
    DocumentCreateRequest,
    DocumentCreateResponse,
    DocumentDetailResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentTypeResponse,
    EvidenceCreateRequest,
    EvidenceListResponse,
    EvidenceResponse,
    RejectDocumentRequest,
    SignatureAppliedResponse,
    SignatureResponse,
    SimpleSignatureRequest,
)
from app.models.audit import AuditAction
from app.services.audit_service import AuditTrail
from app.services.document_lifecycle import DocumentLifecycleManager, RequestContext
from app.services.integrity_service import build_validation_url


router = APIRouter()


@router.get(
    "/document-types",
    response_model=List[DocumentTypeResponse],
    summary="List document types",
)
async def list_document_types(
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Active document types offered at the POS."""
    types = await manager.list_document_types()
    return [DocumentTypeResponse.model_validate(t) for t in types]


@router.post(
    "/documents",
    response_model=DocumentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create document",
    description="Create a pending document. The client RUT must pass the modulo-11 check.",
)
async def create_document(
    request: DocumentCreateRequest,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
    context: RequestContext = Depends(get_request_context),
):
    document = await manager.create_document(
        type_id=request.type_id,
        client_name=request.client_name,
        client_rut=request.client_rut,
        client_phone=request.client_phone,
        client_email=request.client_email,
        content=request.content,
        pos_terminal_id=request.pos_terminal_id,
        actor_id=request.actor_id,
        context=context,
    )
    return DocumentCreateResponse(
        document=DocumentResponse.model_validate(document),
        validation_url=build_validation_url(document.qr_code, manager.settings.base_url),
    )


@router.get(
    "/documents/pending",
    response_model=DocumentListResponse,
    summary="Certification queue",
    description="Documents awaiting an advanced signature, newest first.",
)
async def list_pending_documents(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
):
    documents = await manager.list_pending_documents(skip=skip, limit=limit)
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total=len(documents),
    )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentDetailResponse,
    summary="Get document",
)
async def get_document(
    document_id: UUID,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Document with its evidence and signatures."""
    detail = await manager.get_document_detail(document_id)
    document = detail.document
    return DocumentDetailResponse(
        document=DocumentResponse.model_validate(document),
        document_type=DocumentTypeResponse.model_validate(document.document_type),
        evidence=[EvidenceResponse.model_validate(e) for e in detail.evidence],
        signatures=[SignatureResponse.model_validate(s) for s in detail.signatures],
        validation_url=build_validation_url(document.qr_code, manager.settings.base_url),
    )


@router.post(
    "/documents/{document_id}/evidence",
    response_model=EvidenceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach evidence",
)
async def attach_evidence(
    document_id: UUID,
    request: EvidenceCreateRequest,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
    context: RequestContext = Depends(get_request_context),
):
    evidence = await manager.attach_evidence(
        document_id,
        request.evidence_type,
        request.payload,
        actor_id=request.actor_id,
        context=context,
    )
    return EvidenceResponse.model_validate(evidence)


@router.get(
    "/documents/{document_id}/evidence",
    response_model=EvidenceListResponse,
    summary="List evidence",
)
async def list_evidence(
    document_id: UUID,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
):
    items = await manager.evidence_store.list_for(document_id)
    return EvidenceListResponse(
        evidence=[EvidenceResponse.model_validate(e) for e in items],
        total=len(items),
    )


@router.post(
    "/documents/{document_id}/sign-simple",
    response_model=SignatureAppliedResponse,
    summary="Apply simple signature",
)
async def sign_simple(
    document_id: UUID,
    request: SimpleSignatureRequest,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
    context: RequestContext = Depends(get_request_context),
):
    signature = await manager.apply_simple_signature(
        document_id,
        signature_data=request.signature_data,
        signer_name=request.signer_name,
        signer_rut=request.signer_rut,
        actor_id=request.actor_id,
        context=context,
    )
    document = await manager.get_document(document_id)
    return SignatureAppliedResponse(
        document=DocumentResponse.model_validate(document),
        signature=SignatureResponse.model_validate(signature),
    )


@router.post(
    "/documents/{document_id}/sign-advanced",
    response_model=SignatureAppliedResponse,
    summary="Apply advanced signature",
    description="FEA signature with a certificate on the eToken. Certifier or admin only.",
)
async def sign_advanced(
    document_id: UUID,
    request: AdvancedSignatureRequest,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
    context: RequestContext = Depends(get_request_context),
):
    signature = await manager.apply_advanced_signature(
        document_id,
        actor_id=request.certifier_id,
        certificate_id=request.certificate_id,
        pin=request.pin,
        context=context,
    )
    document = await manager.get_document(document_id)
    return SignatureAppliedResponse(
        document=DocumentResponse.model_validate(document),
        signature=SignatureResponse.model_validate(signature),
    )


@router.post(
    "/documents/{document_id}/reject",
    response_model=DocumentResponse,
    summary="Reject document",
)
async def reject_document(
    document_id: UUID,
    request: RejectDocumentRequest,
    manager: DocumentLifecycleManager = Depends(get_lifecycle_manager),
    context: RequestContext = Depends(get_request_context),
):
    document = await manager.reject_document(
        document_id,
        reason=request.reason,
        actor_id=request.actor_id,
        context=context,
    )
    return DocumentResponse.model_validate(document)


@router.get(
    "/documents/{document_id}/audit",
    response_model=AuditHistoryResponse,
    summary="Audit history",
)
async def get_audit_history(
    document_id: UUID,
    action: Optional[AuditAction] = Query(None, description="Filter by action"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
):
    """Audit trail of a document, oldest first. Kept even for rejected documents."""
    audit = AuditTrail(db)
    history = await audit.get_document_history(document_id, action=action, skip=skip, limit=limit)

    return AuditHistoryResponse(
        document_id=document_id,
        entries=[AuditEntryResponse(**entry) for entry in history],
        total=await audit.count(document_id, action),
        skip=skip,
        limit=limit,
    )
