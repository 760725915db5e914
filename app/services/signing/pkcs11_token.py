"""
NotaryPro Certify - PKCS#11 Signature Token

Hardware eToken (SafeNet, ePass, etc.) reached through the vendor's PKCS#11
driver with python-pkcs11. Install the `hardware` extra to use it.
"""

import logging
import threading
from typing import Dict, List, Optional

import pkcs11
from cryptography import x509
from pkcs11 import Attribute, Mechanism, ObjectClass
from pkcs11.exceptions import (
    NoSuchKey,
    NoSuchToken,
    PinIncorrect,
    PinLenRange,
    PinLocked,
    PKCS11Error,
    TokenNotPresent,
)

from app.services.signing.base import (
    CertificateInfo,
    TokenCapability,
    TokenStatus,
    certificate_info_from_x509,
)
from app.utils.error_handling import (
    AuthenticationFailedException,
    NotFoundException,
    SignerUnavailableException,
)

logger = logging.getLogger(__name__)


class Pkcs11Token(TokenCapability):
    """TokenCapability over a PKCS#11 module."""

    backend = "pkcs11"

    def __init__(self, library_path: str, token_label: Optional[str] = None):
        super().__init__()
        self.library_path = library_path
        self.token_label = token_label
        self._lib = None
        self._session = None
        # certificate thumbprint -> CKA_ID of the paired private key
        self._key_ids: Dict[str, bytes] = {}
        self._lock = threading.RLock()

    def _library(self):
        if self._lib is None:
            try:
                self._lib = pkcs11.lib(self.library_path)
            except (OSError, RuntimeError, PKCS11Error) as e:
                logger.error(f"Failed to load PKCS#11 module {self.library_path}: {e}")
                raise SignerUnavailableException("PKCS#11 driver could not be loaded", original_error=e)
        return self._lib

    def _token(self):
        return self._library().get_token(token_label=self.token_label)

    @property
    def is_unlocked(self) -> bool:
        return self._session is not None

    def check_availability(self) -> TokenStatus:
        try:
            token = self._token()
        except (NoSuchToken, TokenNotPresent, SignerUnavailableException) as e:
            logger.info(f"No eToken detected: {type(e).__name__}")
            return TokenStatus(connected=False, backend=self.backend)
        except PKCS11Error as e:
            logger.warning(f"eToken status query failed: {e}")
            return TokenStatus(connected=False, backend=self.backend)

        serial = token.serial.decode("ascii", errors="replace") if isinstance(token.serial, bytes) else token.serial
        return TokenStatus(
            connected=True,
            unlocked=self.is_unlocked,
            manufacturer=token.manufacturer_id,
            model=token.model,
            serial_number=serial.strip() if serial else None,
            backend=self.backend,
        )

    def unlock(self, pin: str) -> None:
        with self._lock:
            if self._session is not None:
                return
            try:
                self._session = self._token().open(user_pin=pin)
            except (PinIncorrect, PinLenRange) as e:
                logger.warning(f"eToken rejected PIN: {type(e).__name__}")
                raise AuthenticationFailedException("Incorrect PIN")
            except PinLocked:
                raise AuthenticationFailedException("eToken PIN is locked")
            except (NoSuchToken, TokenNotPresent):
                raise AuthenticationFailedException("eToken not connected")
            except PKCS11Error as e:
                raise SignerUnavailableException("eToken session could not be opened", original_error=e)

    def lock(self) -> None:
        with self._lock:
            if self._session is None:
                return
            try:
                self._session.close()
            except PKCS11Error as e:
                logger.warning(f"Error closing eToken session: {e}")
            finally:
                self._session = None

    def _require_session(self):
        if self._session is None:
            raise AuthenticationFailedException("eToken is locked. Enter the PIN first")
        return self._session

    def list_certificates(self) -> List[CertificateInfo]:
        with self._lock:
            session = self._require_session()
            certificates = []
            try:
                for obj in session.get_objects({Attribute.CLASS: ObjectClass.CERTIFICATE}):
                    certificate = x509.load_der_x509_certificate(obj[Attribute.VALUE])
                    info = certificate_info_from_x509(certificate)
                    self._key_ids[info.certificate_id] = obj[Attribute.ID]
                    certificates.append(info)
            except PKCS11Error as e:
                raise SignerUnavailableException("Could not read certificates from eToken", original_error=e)
            return certificates

    def sign(self, data: bytes, certificate_id: str) -> bytes:
        with self._lock:
            session = self._require_session()
            if certificate_id not in self._key_ids:
                self.list_certificates()
            key_id = self._key_ids.get(certificate_id)
            if key_id is None:
                raise NotFoundException("Certificate", certificate_id)

            try:
                key = session.get_key(object_class=ObjectClass.PRIVATE_KEY, id=key_id)
                return key.sign(data, mechanism=Mechanism.SHA256_RSA_PKCS)
            except NoSuchKey:
                raise NotFoundException("Private key", certificate_id)
            except PKCS11Error as e:
                raise SignerUnavailableException("eToken failed to sign", original_error=e)
