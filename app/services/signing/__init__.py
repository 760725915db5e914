"""
NotaryPro Certify - Signing Package

Signer capabilities and the signature-token boundary.
"""

import logging

from app.config import Settings
from app.services.signing.base import (
    SIGNATURE_ALGORITHM,
    AdvancedSigningRequest,
    CertificateInfo,
    SignatureResult,
    SignerCapability,
    SimpleSigningRequest,
    TokenCapability,
    TokenStatus,
)
from app.services.signing.signers import AdvancedSigner, SimpleSigner
from app.services.signing.software_token import SoftwareIdentity, SoftwareToken
from app.utils.error_handling import SignerUnavailableException

logger = logging.getLogger(__name__)


def build_token(settings: Settings) -> TokenCapability:
    """Create the signature token selected by `signer_backend`."""
    backend = settings.signer_backend.lower()

    if backend == "software":
        logger.info("Using in-process software signature token")
        return SoftwareToken(
            pin=settings.software_token_pin,
            connected=settings.software_token_connected,
        )

    if backend == "pkcs11":
        if not settings.pkcs11_library_path:
            raise SignerUnavailableException("PKCS11_LIBRARY_PATH is not configured")
        # python-pkcs11 is an optional extra
        from app.services.signing.pkcs11_token import Pkcs11Token

        logger.info(f"Using PKCS#11 signature token via {settings.pkcs11_library_path}")
        return Pkcs11Token(settings.pkcs11_library_path, settings.pkcs11_token_label)

    raise SignerUnavailableException(f"Unknown signer backend: {settings.signer_backend}")


__all__ = [
    "SIGNATURE_ALGORITHM",
    "AdvancedSigningRequest",
    "CertificateInfo",
    "SignatureResult",
    "SignerCapability",
    "SimpleSigningRequest",
    "TokenCapability",
    "TokenStatus",
    "AdvancedSigner",
    "SimpleSigner",
    "SoftwareIdentity",
    "SoftwareToken",
    "build_token",
]
