"""
NotaryPro Certify - Audit Log Model

Immutable audit log for non-repudiation of every lifecycle action.

The document reference is a plain identifier, not a foreign key: the trail
outlives the document's presence in primary views and is never joined for
correctness.
"""

import uuid
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import JSONType, enum_values, utcnow


class AuditAction(str, enum.Enum):
    """Audit action types. Values are consumed downstream verbatim."""
    DOCUMENT_CREATED = "document_created"
    EVIDENCE_ADDED = "evidence_added"
    SIMPLE_SIGNATURE_ADDED = "simple_signature_added"
    ADVANCED_SIGNATURE_APPLIED = "advanced_signature_applied"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_VALIDATED = "document_validated"


class AuditLog(Base):
    """
    Immutable audit log entry.

    This table should have no UPDATE or DELETE permissions.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Weak reference to the document
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )

    # Actor (NULL for public / system actions)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )

    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="audit_action", values_callable=enum_values),
        nullable=False,
        index=True,
    )

    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Request Context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action.value}, document={self.document_id})>"
