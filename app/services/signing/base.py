"""
NotaryPro Certify - Signing Contracts

Two layers:

- TokenCapability: the hardware boundary (an eToken reached through
  PKCS#11, or an in-process software double). The core never talks to
  hardware except through this interface.
- SignerCapability: one `sign` contract with a simple and an advanced
  implementation, selected by SignatureKind.
"""

import hashlib
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtensionOID, NameOID

from app.models.signature import SignatureKind


SIGNATURE_ALGORITHM = "SHA256withRSA"


@dataclass
class CertificateInfo:
    """Public identity of a signing certificate."""
    certificate_id: str  # SHA-1 thumbprint, hex
    subject: str
    issuer: str
    serial_number: str
    valid_from: datetime
    valid_to: datetime
    holder_name: Optional[str] = None
    holder_rut: Optional[str] = None
    key_usage: List[str] = field(default_factory=list)
    pem: Optional[str] = None

    def is_valid_at(self, moment: datetime) -> bool:
        return self.valid_from <= moment <= self.valid_to

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certificate_id": self.certificate_id,
            "subject": self.subject,
            "issuer": self.issuer,
            "serial_number": self.serial_number,
            "valid_from": self.valid_from.isoformat(),
            "valid_to": self.valid_to.isoformat(),
            "holder_name": self.holder_name,
            "holder_rut": self.holder_rut,
            "key_usage": self.key_usage,
            "pem": self.pem,
        }


@dataclass
class TokenStatus:
    """Availability report of a signature token."""
    connected: bool
    unlocked: bool = False
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    firmware_version: Optional[str] = None
    backend: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "unlocked": self.unlocked,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serial_number": self.serial_number,
            "firmware_version": self.firmware_version,
            "backend": self.backend,
            "status": "connected" if self.connected else "not_detected",
        }


@dataclass
class SignatureResult:
    """Material produced by a signer. Persisting it is the caller's job."""
    kind: SignatureKind
    material: str
    signer_name: str
    signed_at: datetime
    signer_rut: Optional[str] = None
    algorithm: Optional[str] = None
    certificate: Optional[CertificateInfo] = None


@dataclass
class SimpleSigningRequest:
    """Handwritten signature captured at the POS."""
    payload: str
    signer_name: str
    signer_rut: Optional[str] = None


@dataclass
class AdvancedSigningRequest:
    """FEA signature over a document hash with a token certificate."""
    document_hash: str
    certificate_id: str
    pin: str


def certificate_info_from_x509(certificate: x509.Certificate) -> CertificateInfo:
    """Build a CertificateInfo from a parsed X.509 certificate."""
    thumbprint = hashlib.sha1(certificate.public_bytes(serialization.Encoding.DER)).hexdigest()

    def _attribute(name: x509.Name, oid) -> Optional[str]:
        values = name.get_attributes_for_oid(oid)
        return values[0].value if values else None

    key_usage: List[str] = []
    try:
        usage = certificate.extensions.get_extension_for_oid(ExtensionOID.KEY_USAGE).value
        if usage.digital_signature:
            key_usage.append("digitalSignature")
        if usage.content_commitment:
            key_usage.append("nonRepudiation")
        if usage.key_encipherment:
            key_usage.append("keyEncipherment")
    except x509.ExtensionNotFound:
        pass

    return CertificateInfo(
        certificate_id=thumbprint,
        subject=certificate.subject.rfc4514_string(),
        issuer=certificate.issuer.rfc4514_string(),
        serial_number=format(certificate.serial_number, "X"),
        valid_from=certificate.not_valid_before_utc,
        valid_to=certificate.not_valid_after_utc,
        holder_name=_attribute(certificate.subject, NameOID.COMMON_NAME),
        holder_rut=_attribute(certificate.subject, NameOID.SERIAL_NUMBER),
        key_usage=key_usage,
        pem=certificate.public_bytes(serialization.Encoding.PEM).decode("ascii"),
    )


class TokenCapability(ABC):
    """Hardware-backed credential store holding signing certificates."""

    backend = "unknown"

    def __init__(self):
        # Held for a whole unlock..lock sequence; the token has one login state
        self._session_lock = threading.Lock()

    @contextmanager
    def session(self, pin: str) -> Iterator["TokenCapability"]:
        """
        Unlock the token for the duration of the block, then lock it again.

        Sessions are serialised: a concurrent caller waits until the current
        holder has locked the token instead of finding it locked mid-sign.
        """
        with self._session_lock:
            self.unlock(pin)
            try:
                yield self
            finally:
                self.lock()

    @abstractmethod
    def check_availability(self) -> TokenStatus:
        """Report whether the token is present. Never raises for an absent token."""

    @property
    @abstractmethod
    def is_unlocked(self) -> bool:
        """Whether a PIN-authenticated session is open."""

    @abstractmethod
    def unlock(self, pin: str) -> None:
        """Open an authenticated session. Raises AuthenticationFailedException."""

    @abstractmethod
    def lock(self) -> None:
        """Close the authenticated session, if any."""

    @abstractmethod
    def list_certificates(self) -> List[CertificateInfo]:
        """Certificates on the token. Requires an unlocked session."""

    @abstractmethod
    def sign(self, data: bytes, certificate_id: str) -> bytes:
        """Sign data with the private key paired to certificate_id."""

    def get_certificate(self, certificate_id: str) -> Optional[CertificateInfo]:
        for certificate in self.list_certificates():
            if certificate.certificate_id == certificate_id:
                return certificate
        return None


class SignerCapability(ABC):
    """A way of signing a document; one implementation per SignatureKind."""

    kind: SignatureKind

    @abstractmethod
    async def sign(self, request) -> SignatureResult:
        """Produce signature material for the request."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
