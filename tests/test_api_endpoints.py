"""
NotaryPro Certify - API Endpoint Tests

HTTP-level tests for the document, validation and eToken routers, including
the mapping of domain errors to status codes and the error envelope.
"""

import uuid

import pytest


PIN = "123456"
VALID_RUT = "12.345.678-5"
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


async def _create(client, document_type, **overrides):
    body = {
        "type_id": str(document_type.id),
        "client_name": "Juan Pérez",
        "client_rut": VALID_RUT,
    }
    body.update(overrides)
    return await client.post("/api/documents", json=body)


class TestInfoEndpoints:
    """Test cases for the root endpoints."""

    @pytest.mark.asyncio
    async def test_api_info(self, client):
        response = await client.get("/api")

        assert response.status_code == 200
        assert response.json()["name"] == "NotaryPro Certify"

    @pytest.mark.asyncio
    async def test_document_types(self, client, document_type, inactive_document_type):
        response = await client.get("/api/document-types")

        assert response.status_code == 200
        names = [t["name"] for t in response.json()]
        assert names == ["Declaración Jurada Simple"]


class TestDocumentEndpoints:
    """Test cases for the document lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_create_document(self, client, document_type):
        response = await _create(client, document_type, client_email="juan@example.cl")

        assert response.status_code == 201
        data = response.json()
        assert data["document"]["status"] == "pending"
        assert data["document"]["client_rut"] == VALID_RUT
        assert len(data["document"]["hash"]) == 64
        assert data["validation_url"].endswith(f"/validar/{data['document']['qr_code']}")

    @pytest.mark.asyncio
    async def test_create_with_invalid_rut(self, client, document_type):
        response = await _create(client, document_type, client_rut="12.345.678-9")

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_RUT"
        assert detail["field"] == "client_rut"

    @pytest.mark.asyncio
    async def test_create_with_missing_fields(self, client):
        response = await client.post("/api/documents", json={"client_name": "Juan"})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_create_with_unknown_type(self, client):
        response = await client.post(
            "/api/documents",
            json={"type_id": str(uuid.uuid4()), "client_name": "Juan", "client_rut": VALID_RUT},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_get_document_detail(self, client, signed_document):
        response = await client.get(f"/api/documents/{signed_document.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["document"]["status"] == "signed"
        assert data["document_type"]["name"] == "Declaración Jurada Simple"
        assert [s["kind"] for s in data["signatures"]] == ["simple"]

    @pytest.mark.asyncio
    async def test_get_unknown_document(self, client):
        response = await client.get(f"/api/documents/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "DOCUMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_evidence(self, client, pending_document):
        response = await client.post(
            f"/api/documents/{pending_document.id}/evidence",
            json={"evidence_type": "gps", "payload": {"latitude": -33.45, "longitude": -70.66}},
        )
        assert response.status_code == 201
        assert response.json()["evidence_type"] == "gps"

        listing = await client.get(f"/api/documents/{pending_document.id}/evidence")
        assert listing.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_evidence_with_bad_payload(self, client, pending_document):
        response = await client.post(
            f"/api/documents/{pending_document.id}/evidence",
            json={"evidence_type": "gps", "payload": {"latitude": 48.85, "longitude": 2.35}},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_EVIDENCE"

    @pytest.mark.asyncio
    async def test_evidence_with_unknown_type(self, client, pending_document):
        response = await client.post(
            f"/api/documents/{pending_document.id}/evidence",
            json={"evidence_type": "fingerprint_scan", "payload": {}},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_EVIDENCE"

    @pytest.mark.asyncio
    async def test_sign_simple(self, client, pending_document):
        response = await client.post(
            f"/api/documents/{pending_document.id}/sign-simple",
            json={"signature_data": PNG_B64, "signer_name": "Juan Pérez", "signer_rut": VALID_RUT},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["document"]["status"] == "signed"
        assert data["signature"]["kind"] == "simple"

    @pytest.mark.asyncio
    async def test_sign_simple_twice_conflicts(self, client, signed_document):
        response = await client.post(
            f"/api/documents/{signed_document.id}/sign-simple",
            json={"signature_data": PNG_B64, "signer_name": "Juan Pérez"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_sign_advanced(self, client, signed_document, certifier, certificate_id):
        response = await client.post(
            f"/api/documents/{signed_document.id}/sign-advanced",
            json={"certifier_id": str(certifier.id), "certificate_id": certificate_id, "pin": PIN},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["document"]["status"] == "completed"
        assert data["signature"]["kind"] == "advanced"
        assert data["signature"]["algorithm"] == "SHA256withRSA"
        assert data["signature"]["certificate_info"]["certificate_id"] == certificate_id

    @pytest.mark.asyncio
    async def test_sign_advanced_as_operator(self, client, signed_document, operator, certificate_id):
        response = await client.post(
            f"/api/documents/{signed_document.id}/sign-advanced",
            json={"certifier_id": str(operator.id), "certificate_id": certificate_id, "pin": PIN},
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_AUTHORITY"

    @pytest.mark.asyncio
    async def test_sign_advanced_with_wrong_pin(self, client, pending_document, certifier, certificate_id):
        response = await client.post(
            f"/api/documents/{pending_document.id}/sign-advanced",
            json={"certifier_id": str(certifier.id), "certificate_id": certificate_id, "pin": "000000"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTHENTICATION_FAILED"

    @pytest.mark.asyncio
    async def test_reject(self, client, pending_document, certifier):
        response = await client.post(
            f"/api/documents/{pending_document.id}/reject",
            json={"reason": "cliente no compareció", "actor_id": str(certifier.id)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "cliente no compareció"

    @pytest.mark.asyncio
    async def test_pending_queue(self, client, pending_document):
        response = await client.get("/api/documents/pending")

        assert response.status_code == 200
        assert [d["id"] for d in response.json()["documents"]] == [str(pending_document.id)]

    @pytest.mark.asyncio
    async def test_audit_history(self, client, signed_document):
        response = await client.get(f"/api/documents/{signed_document.id}/audit")

        assert response.status_code == 200
        actions = [entry["action"] for entry in response.json()["entries"]]
        assert actions == ["document_created", "simple_signature_added"]

        filtered = await client.get(
            f"/api/documents/{signed_document.id}/audit", params={"action": "document_created"}
        )
        assert filtered.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_audit_history_pages(self, client, signed_document):
        for _ in range(3):
            await client.get(f"/api/validate/{signed_document.qr_code}")

        response = await client.get(
            f"/api/documents/{signed_document.id}/audit", params={"skip": 1, "limit": 2}
        )

        data = response.json()
        assert data["total"] == 5
        assert (data["skip"], data["limit"]) == (1, 2)
        assert [entry["action"] for entry in data["entries"]] == ["simple_signature_added", "document_validated"]

        validated = await client.get(
            f"/api/documents/{signed_document.id}/audit",
            params={"action": "document_validated", "skip": 2, "limit": 10},
        )
        assert validated.json()["total"] == 3
        assert len(validated.json()["entries"]) == 1

    @pytest.mark.asyncio
    async def test_audit_history_unknown_action(self, client, signed_document):
        response = await client.get(
            f"/api/documents/{signed_document.id}/audit", params={"action": "document_shredded"}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


class TestValidationEndpoint:
    """Test cases for the public validation endpoint."""

    @pytest.mark.asyncio
    async def test_validate_pending(self, client, pending_document):
        response = await client.get(
            f"/api/validate/{pending_document.qr_code}",
            headers={"x-forwarded-for": "200.1.2.3, 10.0.0.1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is False
        assert data["marker"] == "NOT_YET_SIGNED"
        assert data["document"]["id"] == str(pending_document.id)

        audit = await client.get(f"/api/documents/{pending_document.id}/audit", params={"action": "document_validated"})
        entries = audit.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["ip_address"] == "200.1.2.3"

    @pytest.mark.asyncio
    async def test_validate_signed(self, client, signed_document):
        response = await client.get(f"/api/validate/{signed_document.document_number}")

        assert response.status_code == 200
        assert response.json()["is_valid"] is True
        assert response.json()["marker"] == "VALID"

    @pytest.mark.asyncio
    async def test_validate_unknown_code(self, client):
        response = await client.get("/api/validate/FFFFFFFFFFFFFFFF")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "DOCUMENT_NOT_FOUND"


class TestETokenEndpoints:
    """Test cases for the eToken endpoints."""

    @pytest.mark.asyncio
    async def test_status_connected(self, client):
        response = await client.get("/api/etoken/status")

        assert response.status_code == 200
        assert response.json()["connected"] is True
        assert response.json()["status"] == "connected"

    @pytest.mark.asyncio
    async def test_status_disconnected(self, client, token):
        token.set_connected(False)

        response = await client.get("/api/etoken/status")

        assert response.status_code == 200
        assert response.json()["status"] == "not_detected"

    @pytest.mark.asyncio
    async def test_list_certificates(self, client, token):
        response = await client.post("/api/etoken/certificates", json={"pin": PIN})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["certificates"][0]["holder_rut"] == VALID_RUT
        assert token.is_unlocked is False

    @pytest.mark.asyncio
    async def test_list_certificates_wrong_pin(self, client):
        response = await client.post("/api/etoken/certificates", json={"pin": "000000"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTHENTICATION_FAILED"

    @pytest.mark.asyncio
    async def test_list_certificates_malformed_pin(self, client):
        response = await client.post("/api/etoken/certificates", json={"pin": "12"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_CREDENTIAL"

    @pytest.mark.asyncio
    async def test_list_certificates_token_absent(self, client, token):
        token.set_connected(False)

        response = await client.post("/api/etoken/certificates", json={"pin": PIN})

        assert response.status_code == 401
        assert "not connected" in response.json()["detail"]["message"]
