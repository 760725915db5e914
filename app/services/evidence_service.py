"""
NotaryPro Certify - Evidence Store

Typed, append-only storage of the identity evidence captured at the POS
(photos, GPS position, voice sample, biometric template, signature image).
Each evidence type has its own payload schema; a payload that does not match
is rejected before anything is written.
"""

import base64
import binascii
import logging
import math
import re
import uuid
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.document import Document
from app.models.evidence import Evidence, EvidenceType
from app.utils.error_handling import (
    DocumentNotFoundException,
    InvalidEvidencePayloadException,
)
from app.utils.validation import CHILE_LAT_RANGE, CHILE_LNG_RANGE

logger = logging.getLogger(__name__)


DATA_URL_PATTERN = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")


def _require_base64(value: str) -> str:
    encoded = DATA_URL_PATTERN.sub("", value.strip(), count=1)
    if not encoded:
        raise ValueError("must not be empty")
    try:
        base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("must be base64 encoded")
    return value


# ===========================================
# PAYLOAD SCHEMAS
# ===========================================

class ImagePayload(BaseModel):
    """Photo of the client or the handwritten signature image."""
    model_config = ConfigDict(extra="allow")

    image: str = Field(..., min_length=1)
    mime_type: Optional[str] = None

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        return _require_base64(v)


class GpsPayload(BaseModel):
    """Device position at capture time; must fall inside Chile."""
    model_config = ConfigDict(extra="allow")

    latitude: float
    longitude: float
    accuracy: Optional[float] = Field(None, ge=0)

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if not math.isfinite(v) or not CHILE_LAT_RANGE[0] <= v <= CHILE_LAT_RANGE[1]:
            raise ValueError("latitude is outside Chile")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if not math.isfinite(v) or not CHILE_LNG_RANGE[0] <= v <= CHILE_LNG_RANGE[1]:
            raise ValueError("longitude is outside Chile")
        return v


class VoicePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    audio: str = Field(..., min_length=1)
    duration_seconds: Optional[float] = Field(None, ge=0)

    @field_validator("audio")
    @classmethod
    def validate_audio(cls, v: str) -> str:
        return _require_base64(v)


class BiometricPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    template: str = Field(..., min_length=1)
    modality: Optional[str] = None  # fingerprint, face
    score: Optional[float] = Field(None, ge=0, le=1)


PAYLOAD_SCHEMAS: Dict[EvidenceType, Type[BaseModel]] = {
    EvidenceType.PHOTO: ImagePayload,
    EvidenceType.SIGNATURE_IMAGE: ImagePayload,
    EvidenceType.GPS: GpsPayload,
    EvidenceType.VOICE: VoicePayload,
    EvidenceType.BIOMETRIC: BiometricPayload,
}


def validate_payload(evidence_type: EvidenceType, payload: Any) -> Dict[str, Any]:
    """Validate a payload against the schema of its evidence type."""
    if not isinstance(payload, dict):
        raise InvalidEvidencePayloadException(evidence_type.value, message="Evidence payload must be an object")

    schema = PAYLOAD_SCHEMAS[evidence_type]
    try:
        validated = schema.model_validate(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidEvidencePayloadException(evidence_type.value, errors=errors)

    return validated.model_dump(exclude_none=True)


def parse_evidence_type(value: Any) -> EvidenceType:
    """Coerce a raw type tag, raising a payload error for unknown tags."""
    if isinstance(value, EvidenceType):
        return value
    try:
        return EvidenceType(value)
    except ValueError:
        raise InvalidEvidencePayloadException(
            str(value),
            message=f"Unknown evidence type: {value}",
        )


class EvidenceStore:
    """Service for attaching and reading document evidence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _require_document(self, document_id: uuid.UUID) -> None:
        exists = await self.db.scalar(select(Document.id).where(Document.id == document_id))
        if exists is None:
            raise DocumentNotFoundException(document_id)

    async def attach(
        self,
        document_id: uuid.UUID,
        evidence_type: EvidenceType,
        payload: Dict[str, Any],
    ) -> Evidence:
        """
        Validate and store one evidence item.

        The row is flushed, not committed; the caller owns the transaction.

        Raises:
            InvalidEvidencePayloadException: unknown type or malformed payload
            DocumentNotFoundException: no such document
        """
        evidence_type = parse_evidence_type(evidence_type)
        clean_payload = validate_payload(evidence_type, payload)
        await self._require_document(document_id)

        evidence = Evidence(
            document_id=document_id,
            evidence_type=evidence_type,
            payload=clean_payload,
        )
        self.db.add(evidence)
        await self.db.flush()

        logger.debug(f"Evidence {evidence_type.value} attached to document {document_id}")
        return evidence

    async def list_for(self, document_id: uuid.UUID) -> List[Evidence]:
        """Evidence of a document in capture order."""
        await self._require_document(document_id)
        result = await self.db.execute(
            select(Evidence)
            .where(Evidence.document_id == document_id)
            .order_by(Evidence.captured_at.asc())
        )
        return list(result.scalars().all())
