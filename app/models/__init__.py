"""
NotaryPro Certify - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, JSONType
from app.models.user import User, UserRole, CERTIFYING_ROLES
from app.models.document import Document, DocumentStatus, DocumentType, PosTerminal
from app.models.evidence import Evidence, EvidenceType
from app.models.signature import Signature, SignatureKind
from app.models.audit import AuditLog, AuditAction

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "JSONType",
    # Users
    "User",
    "UserRole",
    "CERTIFYING_ROLES",
    # Documents
    "Document",
    "DocumentStatus",
    "DocumentType",
    "PosTerminal",
    # Evidence
    "Evidence",
    "EvidenceType",
    # Signatures
    "Signature",
    "SignatureKind",
    # Audit
    "AuditLog",
    "AuditAction",
]
