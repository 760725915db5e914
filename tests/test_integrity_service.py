"""
NotaryPro Certify - Integrity Service Tests

Tests for document hashing, validation tokens and signature verification.
"""

import base64
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from app.services.integrity_service import (
    build_validation_url,
    canonical_timestamp,
    compute_document_hash,
    mint_validation_token,
    verify_signature_material,
)
from app.utils.error_handling import InvalidInputException
from app.utils.validation import validate_hash, validate_qr_token


CREATED_AT = datetime(2025, 3, 14, 15, 9, 26, 535000, tzinfo=timezone.utc)


def _fields(**overrides):
    fields = {
        "document_number": "DOC-2025-000001",
        "client_name": "Juan Pérez",
        "client_rut": "12.345.678-5",
        "type_id": uuid.UUID("4b0a7c1e-3f41-4c36-9d7b-53a1f0b0c001"),
        "created_at": CREATED_AT,
    }
    fields.update(overrides)
    return fields


class TestDocumentHash:
    """Test cases for compute_document_hash."""

    def test_hash_is_deterministic(self):
        assert compute_document_hash(_fields()) == compute_document_hash(_fields())

    def test_hash_format(self):
        value = compute_document_hash(_fields())
        assert validate_hash(value)
        assert value == value.lower()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("document_number", "DOC-2025-000002"),
            ("client_name", "Juan Perez"),
            ("client_rut", "11.111.111-1"),
            ("type_id", uuid.UUID("4b0a7c1e-3f41-4c36-9d7b-53a1f0b0c002")),
            ("created_at", CREATED_AT + timedelta(milliseconds=1)),
        ],
    )
    def test_hash_changes_with_each_field(self, field, value):
        assert compute_document_hash(_fields(**{field: value})) != compute_document_hash(_fields())

    def test_unrelated_fields_are_ignored(self):
        assert compute_document_hash(_fields(client_phone="+56912345678")) == compute_document_hash(_fields())

    @pytest.mark.parametrize("missing", ["document_number", "client_rut", "created_at"])
    def test_missing_field_raises(self, missing):
        fields = _fields()
        del fields[missing]

        with pytest.raises(InvalidInputException) as exc_info:
            compute_document_hash(fields)

        assert exc_info.value.field == missing

    def test_empty_field_raises(self):
        with pytest.raises(InvalidInputException):
            compute_document_hash(_fields(client_name=""))

    def test_naive_timestamp_is_treated_as_utc(self):
        naive = CREATED_AT.replace(tzinfo=None)
        assert compute_document_hash(_fields(created_at=naive)) == compute_document_hash(_fields())

    def test_offset_timestamp_is_normalised(self):
        santiago = CREATED_AT.astimezone(timezone(timedelta(hours=-3)))
        assert canonical_timestamp(santiago) == "2025-03-14T15:09:26.535000Z"
        assert compute_document_hash(_fields(created_at=santiago)) == compute_document_hash(_fields())


class TestValidationToken:
    """Test cases for mint_validation_token."""

    def test_token_format(self):
        token = mint_validation_token("a" * 64, CREATED_AT)
        assert validate_qr_token(token)

    def test_token_is_reproducible_for_same_instant(self):
        assert mint_validation_token("a" * 64, CREATED_AT) == mint_validation_token("a" * 64, CREATED_AT)

    def test_token_is_salted_with_time(self):
        later = CREATED_AT + timedelta(milliseconds=1)
        assert mint_validation_token("a" * 64, CREATED_AT) != mint_validation_token("a" * 64, later)

    def test_different_hashes_give_different_tokens(self):
        assert mint_validation_token("a" * 64, CREATED_AT) != mint_validation_token("b" * 64, CREATED_AT)

    def test_empty_hash_raises(self):
        with pytest.raises(InvalidInputException):
            mint_validation_token("")

    def test_validation_url(self):
        assert build_validation_url("ABCDEF0123456789", "https://vecinoxpress.cl/") == (
            "https://vecinoxpress.cl/validar/ABCDEF0123456789"
        )


class TestSignatureMaterial:
    """Test cases for verify_signature_material."""

    def _sign(self, token, certificate_id, data: str) -> str:
        token.unlock("123456")
        try:
            return base64.b64encode(token.sign(data.encode("ascii"), certificate_id)).decode("ascii")
        finally:
            token.lock()

    def test_valid_signature(self, token, certificates):
        cert = certificates[0]
        digest = "c" * 64
        material = self._sign(token, cert.certificate_id, digest)

        assert verify_signature_material(digest, material, cert.pem) is True

    def test_signature_over_other_hash_fails(self, token, certificates):
        cert = certificates[0]
        material = self._sign(token, cert.certificate_id, "c" * 64)

        assert verify_signature_material("d" * 64, material, cert.pem) is False

    def test_signature_with_other_certificate_fails(self, token, certificates):
        digest = "c" * 64
        material = self._sign(token, certificates[0].certificate_id, digest)

        assert verify_signature_material(digest, material, certificates[1].pem) is False

    def test_malformed_inputs_fail(self, certificates):
        pem = certificates[0].pem
        assert verify_signature_material("c" * 64, "not base64!!", pem) is False
        assert verify_signature_material("c" * 64, "AAAA", "not a certificate") is False

    def test_foreign_key_signature_fails(self, certificates):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        digest = "c" * 64
        signature = key.sign(digest.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())

        material = base64.b64encode(signature).decode("ascii")
        assert verify_signature_material(digest, material, certificates[0].pem) is False
