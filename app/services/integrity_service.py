"""
NotaryPro Certify - Integrity Service

Content hashing and public validation tokens for documents.

The document hash is a SHA-256 digest over a stable subset of fields
(number, client identity, document type, creation time). The QR validation
token is salted with the minting time so two documents with identical
content never share a token.
"""

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from app.config import settings
from app.utils.error_handling import InvalidInputException

logger = logging.getLogger(__name__)


HASHED_FIELDS = ("document_number", "client_name", "client_rut", "type_id", "created_at")
VALIDATION_TOKEN_LENGTH = 16


def canonical_timestamp(value: datetime) -> str:
    """
    Render a timestamp as UTC with microseconds.

    Naive values are taken as UTC, which is how SQLite hands back
    timezone-aware columns.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def hash_payload(fields: Mapping[str, Any]) -> Dict[str, str]:
    """Extract and normalise the hashed subset of document fields."""
    payload = {}
    for name in HASHED_FIELDS:
        value = fields.get(name)
        if value is None or value == "":
            raise InvalidInputException(f"Missing required field for hashing: {name}", field=name)
        if isinstance(value, datetime):
            value = canonical_timestamp(value)
        payload[name] = str(value)
    return payload


def compute_document_hash(fields: Mapping[str, Any]) -> str:
    """
    Compute the deterministic content hash of a document.

    Args:
        fields: Mapping holding at least document_number, client_name,
            client_rut, type_id and created_at

    Returns:
        64-character lowercase SHA-256 hex digest
    """
    content = json.dumps(hash_payload(fields), sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def document_hash_fields(document) -> Dict[str, Any]:
    """Hashed fields of a Document model instance."""
    return {name: getattr(document, name) for name in HASHED_FIELDS}


def mint_validation_token(document_hash: str, minted_at: Optional[datetime] = None) -> str:
    """
    Derive a short public validation token from a document hash.

    The token is the first 16 hex characters, uppercased, of
    SHA-256("<hash>-<epoch milliseconds>").
    """
    if not document_hash:
        raise InvalidInputException("A document hash is required to mint a validation token", field="hash")

    minted_at = minted_at or datetime.now(timezone.utc)
    millis = int(minted_at.timestamp() * 1000)
    digest = hashlib.sha256(f"{document_hash}-{millis}".encode("utf-8")).hexdigest()
    return digest[:VALIDATION_TOKEN_LENGTH].upper()


def verify_document_hash(document) -> bool:
    """Recompute a stored document's hash and compare it in constant time."""
    try:
        expected = compute_document_hash(document_hash_fields(document))
    except InvalidInputException:
        return False
    return hmac.compare_digest(expected, document.hash or "")


def build_validation_url(token: str, base_url: Optional[str] = None) -> str:
    """Public URL encoded in the document's QR code."""
    base = (base_url or settings.base_url).rstrip("/")
    return f"{base}/validar/{token}"


def verify_signature_material(document_hash: str, signature_b64: str, certificate_pem: str) -> bool:
    """
    Verify an advanced signature (RSA PKCS#1 v1.5, SHA-256) over a document hash.

    Returns False for any malformed input rather than raising.
    """
    try:
        certificate = x509.load_pem_x509_certificate(certificate_pem.encode("ascii"))
        signature = base64.b64decode(signature_b64, validate=True)
        certificate.public_key().verify(
            signature,
            document_hash.encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True
    except (InvalidSignature, ValueError, TypeError) as e:
        logger.warning(f"Signature verification failed: {type(e).__name__}")
        return False
