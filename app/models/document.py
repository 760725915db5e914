"""
NotaryPro Certify - Document Models

Notarial documents created at POS terminals, their catalog of document
types, and the terminals themselves.

Certification lifecycle:
    pending -> signed (simple signature) -> completed (advanced signature)
    pending | signed -> rejected

Documents are never physically deleted; rejection is a terminal status.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, JSONType, TimestampMixin, enum_values, utcnow

if TYPE_CHECKING:
    from app.models.evidence import Evidence
    from app.models.signature import Signature


class DocumentStatus(str, Enum):
    """Document certification status."""
    PENDING = "pending"       # Created, awaiting signatures
    SIGNED = "signed"         # Simple signature applied at the POS
    COMPLETED = "completed"   # Advanced (FEA) signature applied
    REJECTED = "rejected"     # Rejected by a certifier (terminal)


class DocumentType(BaseModel):
    """Catalog entry for a kind of notarial document."""

    __tablename__ = "document_types"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    template: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="HTML template for the document",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PosTerminal(BaseModel, TimestampMixin):
    """Point-of-sale terminal where documents are created."""

    __tablename__ = "pos_terminals"

    terminal_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="Unique terminal identifier (e.g., POS001)",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    region: Mapped[str] = mapped_column(String(100), nullable=False)
    latitude: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=8),
        nullable=True,
    )
    longitude: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=11, scale=8),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Document(BaseModel):
    """
    A notarial document under certification.

    The integrity hash and the QR validation token are minted once at
    creation and never rewritten.
    """

    __tablename__ = "documents"

    # DOC-2025-000001
    document_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
    )

    type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("document_types.id"),
        nullable=False,
    )

    # Client
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_rut: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    client_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    pos_terminal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pos_terminals.id"),
        nullable=True,
    )

    content: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Document content and form data",
    )

    status: Mapped[DocumentStatus] = mapped_column(
        SQLEnum(DocumentStatus, name="document_status", values_callable=enum_values),
        nullable=False,
        default=DocumentStatus.PENDING,
        index=True,
    )

    # Integrity
    hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="SHA-256 content hash",
    )
    qr_code: Mapped[str] = mapped_column(
        String(16),
        unique=True,
        nullable=False,
        index=True,
        comment="Public QR validation token",
    )

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    signed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    document_type: Mapped["DocumentType"] = relationship(lazy="raise")
    pos_terminal: Mapped[Optional["PosTerminal"]] = relationship(lazy="raise")
    evidence: Mapped[List["Evidence"]] = relationship(
        back_populates="document",
        order_by="Evidence.captured_at",
        lazy="raise",
    )
    signatures: Mapped[List["Signature"]] = relationship(
        back_populates="document",
        order_by="Signature.signed_at",
        lazy="raise",
    )

    @property
    def is_final(self) -> bool:
        """Completed and rejected documents accept no further transitions."""
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.REJECTED)

    def __repr__(self) -> str:
        return f"<Document(number={self.document_number}, status={self.status.value})>"
