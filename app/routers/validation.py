"""
NotaryPro Certify - Public Validation Router

Unauthenticated endpoint behind the QR code printed on every document.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_public_validator, get_request_context
from app.schemas.document import (
    DocumentResponse,
    EvidenceResponse,
    SignatureResponse,
    ValidationResponse,
)
from app.services.document_lifecycle import RequestContext
from app.services.validation_service import PublicValidator


router = APIRouter()


@router.get(
    "/validate/{code}",
    response_model=ValidationResponse,
    summary="Validate document",
    description="Look up a document by QR token, document number or content hash.",
)
async def validate_document(
    code: str,
    validator: PublicValidator = Depends(get_public_validator),
    context: RequestContext = Depends(get_request_context),
):
    result = await validator.validate(code, context)
    return ValidationResponse(
        is_valid=result.is_valid,
        marker=result.marker.value,
        validation_url=result.validation_url,
        checked_at=result.checked_at,
        integrity_reason=result.integrity_reason,
        document=DocumentResponse.model_validate(result.document),
        evidence=[EvidenceResponse.model_validate(e) for e in result.evidence],
        signatures=[SignatureResponse.model_validate(s) for s in result.signatures],
    )
