"""
NotaryPro Certify - Public Validator Tests
"""

import pytest
from sqlalchemy import update

from app.models.audit import AuditAction
from app.models.document import Document
from app.models.evidence import EvidenceType
from app.models.signature import Signature, SignatureKind
from app.services.audit_service import AuditTrail
from app.services.validation_service import PublicValidator, ValidationMarker
from app.utils.error_handling import DocumentNotFoundException, ValidationException


PIN = "123456"
GPS = {"latitude": -33.45, "longitude": -70.66}


async def _validations(db_session, document_id=None):
    return await AuditTrail(db_session).count(document_id, AuditAction.DOCUMENT_VALIDATED)


class TestLookup:
    """Test cases for code resolution."""

    @pytest.mark.asyncio
    async def test_qr_token_round_trip(self, validator, pending_document):
        document = await validator.lookup(pending_document.qr_code)
        assert document.id == pending_document.id

    @pytest.mark.asyncio
    async def test_qr_token_is_case_insensitive(self, validator, pending_document):
        document = await validator.lookup(f"  {pending_document.qr_code.lower()} ")
        assert document.id == pending_document.id

    @pytest.mark.asyncio
    async def test_lookup_by_document_number(self, validator, pending_document):
        document = await validator.lookup(pending_document.document_number.lower())
        assert document.id == pending_document.id

    @pytest.mark.asyncio
    async def test_lookup_by_hash(self, validator, pending_document):
        document = await validator.lookup(pending_document.hash.upper())
        assert document.id == pending_document.id

    @pytest.mark.asyncio
    async def test_unknown_code(self, validator, pending_document):
        assert await validator.lookup("0000000000000000") is None


class TestValidate:
    """Test cases for PublicValidator.validate."""

    @pytest.mark.asyncio
    async def test_pending_document_not_yet_signed(self, validator, db_session, pending_document, request_context):
        result = await validator.validate(pending_document.qr_code, request_context)

        assert result.is_valid is False
        assert result.marker == ValidationMarker.NOT_YET_SIGNED
        assert result.document.id == pending_document.id
        assert result.validation_url == f"https://vecinoxpress.cl/validar/{pending_document.qr_code}"

        entries = await AuditTrail(db_session).list_for_document(
            pending_document.id, action=AuditAction.DOCUMENT_VALIDATED
        )
        assert len(entries) == 1
        assert entries[0].user_id is None
        assert entries[0].ip_address == "190.160.10.20"
        assert entries[0].details["outcome"] == "NOT_YET_SIGNED"

    @pytest.mark.asyncio
    async def test_signed_document_is_valid(self, validator, signed_document):
        result = await validator.validate(signed_document.qr_code)

        assert result.is_valid is True
        assert result.marker == ValidationMarker.VALID
        assert [s.kind for s in result.signatures] == [SignatureKind.SIMPLE]

    @pytest.mark.asyncio
    async def test_completed_document_is_valid(self, manager, validator, signed_document, certifier, certificate_id):
        await manager.apply_advanced_signature(signed_document.id, certifier.id, certificate_id, PIN)

        result = await validator.validate(signed_document.document_number)

        assert result.is_valid is True
        assert result.marker == ValidationMarker.VALID
        assert [s.kind for s in result.signatures] == [SignatureKind.SIMPLE, SignatureKind.ADVANCED]

    @pytest.mark.asyncio
    async def test_validation_is_idempotent(self, manager, validator, db_session, pending_document):
        await manager.attach_evidence(pending_document.id, EvidenceType.GPS, GPS)
        await manager.apply_simple_signature(pending_document.id, "aGVsbG8=", "Juan Pérez")

        first = await validator.validate(pending_document.qr_code)
        second = await validator.validate(pending_document.qr_code)

        assert first.document.id == second.document.id
        assert first.document.hash == second.document.hash
        assert first.document.status == second.document.status
        assert [e.id for e in first.evidence] == [e.id for e in second.evidence]
        assert [e.payload for e in first.evidence] == [e.payload for e in second.evidence]
        assert [s.id for s in first.signatures] == [s.id for s in second.signatures]
        assert (first.is_valid, first.marker) == (second.is_valid, second.marker)
        assert await _validations(db_session, pending_document.id) == 2

    @pytest.mark.asyncio
    async def test_rejected_document(self, manager, validator, pending_document):
        await manager.reject_document(pending_document.id, "Documento ilegible")

        result = await validator.validate(pending_document.qr_code)

        assert result.is_valid is False
        assert result.marker == ValidationMarker.REJECTED

    @pytest.mark.asyncio
    async def test_tampered_content(self, validator, db_session, signed_document):
        await db_session.execute(
            update(Document).where(Document.id == signed_document.id).values(client_name="Pedro Pérez")
        )
        await db_session.commit()

        result = await validator.validate(signed_document.qr_code)

        assert result.is_valid is False
        assert result.marker == ValidationMarker.INTEGRITY_FAILURE
        assert result.integrity_reason == "content hash mismatch"

    @pytest.mark.asyncio
    async def test_tampered_advanced_signature(self, manager, validator, db_session, pending_document, certifier, certificate_id):
        signature = await manager.apply_advanced_signature(pending_document.id, certifier.id, certificate_id, PIN)
        await db_session.execute(
            update(Signature).where(Signature.id == signature.id).values(signature_data="AAAA")
        )
        await db_session.commit()

        result = await validator.validate(pending_document.qr_code)

        assert result.is_valid is False
        assert result.marker == ValidationMarker.INTEGRITY_FAILURE
        assert "advanced signature" in result.integrity_reason

    @pytest.mark.asyncio
    async def test_not_found_is_still_audited(self, validator, db_session):
        with pytest.raises(DocumentNotFoundException):
            await validator.validate("FFFFFFFFFFFFFFFF")

        assert await _validations(db_session) == 1

    @pytest.mark.asyncio
    async def test_empty_code(self, validator, db_session):
        with pytest.raises(ValidationException):
            await validator.validate("   ")

        assert await _validations(db_session) == 0


class TestValidateWithFailingAudit:
    """A validation whose audit entry cannot be written still answers."""

    @pytest.mark.asyncio
    async def test_result_is_returned(self, db_session, broken_audit, test_settings, signed_document, request_context):
        document_id = signed_document.id
        validator = PublicValidator(db_session, audit=broken_audit, settings=test_settings)

        result = await validator.validate(signed_document.qr_code, request_context)

        assert result.is_valid is True
        assert result.marker == ValidationMarker.VALID
        assert result.document.id == document_id
        assert [s.kind for s in result.signatures] == [SignatureKind.SIMPLE]
        assert await _validations(db_session, document_id) == 0

    @pytest.mark.asyncio
    async def test_not_found_still_reported(self, db_session, broken_audit, test_settings):
        validator = PublicValidator(db_session, audit=broken_audit, settings=test_settings)

        with pytest.raises(DocumentNotFoundException):
            await validator.validate("FFFFFFFFFFFFFFFF")

        assert await _validations(db_session) == 0
