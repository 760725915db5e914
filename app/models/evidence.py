"""
NotaryPro Certify - Evidence Model

Identity evidence captured at the POS for a document. Rows are
insert-only; archiving a document keeps its evidence.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, JSONType, enum_values, utcnow

if TYPE_CHECKING:
    from app.models.document import Document


class EvidenceType(str, Enum):
    """Kinds of captured evidence."""
    PHOTO = "photo"
    GPS = "gps"
    VOICE = "voice"
    BIOMETRIC = "biometric"
    SIGNATURE_IMAGE = "signature_image"


class Evidence(BaseModel):
    """A single captured evidence item. This table should have no UPDATE or DELETE permissions."""

    __tablename__ = "evidence"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id"),
        nullable=False,
        index=True,
    )
    evidence_type: Mapped[EvidenceType] = mapped_column(
        SQLEnum(EvidenceType, name="evidence_type", values_callable=enum_values),
        nullable=False,
    )
    payload: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="Type-specific data (photo base64, GPS coordinates, ...)",
    )
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    document: Mapped["Document"] = relationship(back_populates="evidence", lazy="raise")

    def __repr__(self) -> str:
        return f"<Evidence(id={self.id}, type={self.evidence_type.value})>"
