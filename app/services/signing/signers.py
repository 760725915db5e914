"""
NotaryPro Certify - Signers

SimpleSigner records the handwritten signature captured at the POS.
AdvancedSigner produces the FEA (Firma Electrónica Avanzada) signature over
the document hash using a certificate held on a TokenCapability.
"""

import asyncio
import base64
import logging

from app.models.signature import SignatureKind
from app.services.signing.base import (
    SIGNATURE_ALGORITHM,
    AdvancedSigningRequest,
    SignatureResult,
    SignerCapability,
    SimpleSigningRequest,
    TokenCapability,
    utcnow,
)
from app.utils.error_handling import (
    InvalidCredentialException,
    ValidationException,
)

logger = logging.getLogger(__name__)


class SimpleSigner(SignerCapability):
    """Handwritten signature: the captured payload is the material."""

    kind = SignatureKind.SIMPLE

    async def sign(self, request: SimpleSigningRequest) -> SignatureResult:
        if not request.payload or not request.payload.strip():
            raise ValidationException("Signature payload is required", field="signature_data")
        if not request.signer_name or not request.signer_name.strip():
            raise ValidationException("Signer name is required", field="signer_name")

        return SignatureResult(
            kind=self.kind,
            material=request.payload,
            signer_name=request.signer_name.strip(),
            signer_rut=request.signer_rut,
            signed_at=utcnow(),
        )


class AdvancedSigner(SignerCapability):
    """
    FEA signer backed by a signature token.

    The PIN length is checked before the token is contacted. Token calls
    block (PKCS#11 drivers are synchronous), so they run in a worker thread.
    The token is locked again after every signature.
    """

    kind = SignatureKind.ADVANCED

    def __init__(self, token: TokenCapability, pin_min_length: int = 4, pin_max_length: int = 16):
        self.token = token
        self.pin_min_length = pin_min_length
        self.pin_max_length = pin_max_length

    def validate_pin(self, pin: str) -> None:
        if not pin or not self.pin_min_length <= len(pin) <= self.pin_max_length:
            raise InvalidCredentialException(
                f"PIN must be between {self.pin_min_length} and {self.pin_max_length} characters"
            )

    async def sign(self, request: AdvancedSigningRequest) -> SignatureResult:
        if not request.document_hash:
            raise ValidationException("Document hash is required", field="hash")
        if not request.certificate_id:
            raise ValidationException("Certificate is required", field="certificate_id")
        self.validate_pin(request.pin)

        return await asyncio.to_thread(self._sign_blocking, request)

    def _sign_blocking(self, request: AdvancedSigningRequest) -> SignatureResult:
        with self.token.session(request.pin) as token:
            certificate = token.get_certificate(request.certificate_id)
            if certificate is None:
                raise ValidationException(
                    f"Certificate {request.certificate_id} is not on the token",
                    field="certificate_id",
                )

            now = utcnow()
            if not certificate.is_valid_at(now):
                raise ValidationException(
                    "Certificate is outside its validity period",
                    field="certificate_id",
                    details={"valid_from": certificate.valid_from.isoformat(), "valid_to": certificate.valid_to.isoformat()},
                )

            raw = token.sign(request.document_hash.encode("ascii"), certificate.certificate_id)

        logger.info(f"Advanced signature produced with certificate {certificate.certificate_id[:12]}")
        return SignatureResult(
            kind=self.kind,
            material=base64.b64encode(raw).decode("ascii"),
            signer_name=certificate.holder_name or certificate.subject,
            signer_rut=certificate.holder_rut,
            algorithm=SIGNATURE_ALGORITHM,
            certificate=certificate,
            signed_at=now,
        )
