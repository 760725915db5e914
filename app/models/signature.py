"""
NotaryPro Certify - Signature Model

Simple (POS, handwritten image) and advanced (FEA, certificate-backed)
signatures. Every attempt that reached storage is kept; the lifecycle
manager treats the most recent signature of each kind as authoritative.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, JSONType, enum_values, utcnow

if TYPE_CHECKING:
    from app.models.document import Document


class SignatureKind(str, Enum):
    """Signature variants, ordered by the authority they carry."""
    SIMPLE = "simple"
    ADVANCED = "advanced"


class Signature(BaseModel):
    """A signature applied to a document."""

    __tablename__ = "signatures"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id"),
        nullable=False,
        index=True,
    )
    kind: Mapped[SignatureKind] = mapped_column(
        SQLEnum(SignatureKind, name="signature_kind", values_callable=enum_values),
        nullable=False,
    )

    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_rut: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Taken from the certificate for advanced signatures",
    )

    signature_data: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Base64 signature image or signature material",
    )
    algorithm: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    certificate_info: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Public identity of the signing certificate",
    )

    certifier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=True,
    )

    # Request Context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    signed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    document: Mapped["Document"] = relationship(back_populates="signatures", lazy="raise")

    def __repr__(self) -> str:
        return f"<Signature(id={self.id}, kind={self.kind.value}, signer={self.signer_name})>"
