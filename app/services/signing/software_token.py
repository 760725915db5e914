"""
NotaryPro Certify - Software Signature Token

In-process stand-in for an eToken: an issuing CA plus one RSA key pair and
certificate per identity, all generated in memory when the token is built.
Used in development and tests, and wherever no PKCS#11 driver is configured.
"""

import hmac
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from app.services.signing.base import (
    CertificateInfo,
    TokenCapability,
    TokenStatus,
    certificate_info_from_x509,
)
from app.utils.error_handling import AuthenticationFailedException, NotFoundException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SoftwareIdentity:
    """Holder of a certificate issued onto the software token."""
    common_name: str
    organization: str
    rut: str


DEFAULT_IDENTITIES: Tuple[SoftwareIdentity, ...] = (
    SoftwareIdentity("Juan Pérez González", "Notaría Primera Santiago", "12.345.678-5"),
    SoftwareIdentity("María Rodriguez Silva", "Certificador Digital", "11.111.111-1"),
)

ISSUER_NAME = "E-Cert Autoridad Certificadora"


class SoftwareToken(TokenCapability):
    """TokenCapability backed by keys held in process memory."""

    backend = "software"

    def __init__(
        self,
        pin: str,
        identities: Sequence[SoftwareIdentity] = DEFAULT_IDENTITIES,
        connected: bool = True,
        serial_number: str = "SW-000001",
        key_size: int = 2048,
        validity_days: int = 730,
    ):
        super().__init__()
        self._pin = pin
        self._connected = connected
        self._serial_number = serial_number
        self._unlocked = False
        self._failed_attempts = 0
        self._lock = threading.Lock()
        self._keys: Dict[str, rsa.RSAPrivateKey] = {}
        self._certificates: Dict[str, CertificateInfo] = {}

        self._issue(identities, key_size, validity_days)

    def _issue(self, identities: Sequence[SoftwareIdentity], key_size: int, validity_days: int) -> None:
        now = datetime.now(timezone.utc)
        ca_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        ca_subject = x509.Name([
            x509.NameAttribute(NameOID.COUNTRY_NAME, "CL"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "E-Cert Chile"),
            x509.NameAttribute(NameOID.COMMON_NAME, ISSUER_NAME),
        ])

        for identity in identities:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
            subject = x509.Name([
                x509.NameAttribute(NameOID.COUNTRY_NAME, "CL"),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, identity.organization),
                x509.NameAttribute(NameOID.COMMON_NAME, identity.common_name),
                x509.NameAttribute(NameOID.SERIAL_NUMBER, identity.rut),
            ])
            certificate = x509.CertificateBuilder().subject_name(
                subject
            ).issuer_name(
                ca_subject
            ).public_key(
                private_key.public_key()
            ).serial_number(
                x509.random_serial_number()
            ).not_valid_before(
                now - timedelta(days=1)
            ).not_valid_after(
                now + timedelta(days=validity_days)
            ).add_extension(
                x509.BasicConstraints(ca=False, path_length=None), critical=True
            ).add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            ).sign(ca_key, hashes.SHA256())

            info = certificate_info_from_x509(certificate)
            self._keys[info.certificate_id] = private_key
            self._certificates[info.certificate_id] = info

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked

    @property
    def failed_attempts(self) -> int:
        return self._failed_attempts

    def set_connected(self, connected: bool) -> None:
        """Simulate plugging in or removing the token."""
        with self._lock:
            self._connected = connected
            if not connected:
                self._unlocked = False

    def check_availability(self) -> TokenStatus:
        if not self._connected:
            return TokenStatus(connected=False, backend=self.backend)
        return TokenStatus(
            connected=True,
            unlocked=self._unlocked,
            manufacturer="NotaryPro",
            model="Software Token",
            serial_number=self._serial_number,
            firmware_version="1.0",
            backend=self.backend,
        )

    def unlock(self, pin: str) -> None:
        with self._lock:
            if not self._connected:
                raise AuthenticationFailedException("eToken not connected")
            if not hmac.compare_digest(pin.encode("utf-8"), self._pin.encode("utf-8")):
                self._failed_attempts += 1
                logger.warning(f"Software token PIN rejected ({self._failed_attempts} failed attempts)")
                raise AuthenticationFailedException("Incorrect PIN")
            self._failed_attempts = 0
            self._unlocked = True

    def lock(self) -> None:
        with self._lock:
            self._unlocked = False

    def _require_session(self) -> None:
        if not self._connected:
            raise AuthenticationFailedException("eToken not connected")
        if not self._unlocked:
            raise AuthenticationFailedException("eToken is locked. Enter the PIN first")

    def list_certificates(self) -> List[CertificateInfo]:
        self._require_session()
        return list(self._certificates.values())

    def get_certificate(self, certificate_id: str) -> Optional[CertificateInfo]:
        self._require_session()
        return self._certificates.get(certificate_id)

    def sign(self, data: bytes, certificate_id: str) -> bytes:
        self._require_session()
        private_key = self._keys.get(certificate_id)
        if private_key is None:
            raise NotFoundException("Certificate", certificate_id)
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
