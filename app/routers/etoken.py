"""
NotaryPro Certify - eToken Router

Status of the signature token and the certificates it holds, so the
certifier UI can offer a certificate before requesting an FEA signature.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.config import get_settings
from app.dependencies import get_token
from app.schemas.etoken import (
    CertificateListRequest,
    CertificateListResponse,
    CertificateResponse,
    TokenStatusResponse,
)
from app.services.signing import AdvancedSigner, TokenCapability

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/etoken/status",
    response_model=TokenStatusResponse,
    summary="eToken status",
)
async def get_token_status(token: TokenCapability = Depends(get_token)):
    """Whether a signature token is present. Never fails for an absent token."""
    status = await asyncio.to_thread(token.check_availability)
    return TokenStatusResponse(**status.to_dict())


@router.post(
    "/etoken/certificates",
    response_model=CertificateListResponse,
    summary="List eToken certificates",
    description="Unlock the token with the PIN, read its certificates and lock it again.",
)
async def list_certificates(
    request: CertificateListRequest,
    token: TokenCapability = Depends(get_token),
):
    settings = get_settings()
    AdvancedSigner(token, settings.pin_min_length, settings.pin_max_length).validate_pin(request.pin)

    def _read():
        with token.session(request.pin):
            return token.list_certificates()

    certificates = await asyncio.to_thread(_read)
    logger.info(f"{len(certificates)} certificates read from {token.backend} token")

    return CertificateListResponse(
        certificates=[
            CertificateResponse(
                certificate_id=c.certificate_id,
                subject=c.subject,
                issuer=c.issuer,
                serial_number=c.serial_number,
                valid_from=c.valid_from,
                valid_to=c.valid_to,
                holder_name=c.holder_name,
                holder_rut=c.holder_rut,
                key_usage=c.key_usage,
            )
            for c in certificates
        ],
        total=len(certificates),
    )
