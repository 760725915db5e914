"""
NotaryPro Certify - Services Package

Business logic services.
"""

from app.services.audit_service import AuditTrail
from app.services.evidence_service import EvidenceStore
from app.services.document_lifecycle import DocumentLifecycleManager, RequestContext
from app.services.validation_service import PublicValidator, ValidationResult
from app.services.seed_service import SeedService

__all__ = [
    "AuditTrail",
    "EvidenceStore",
    "DocumentLifecycleManager",
    "RequestContext",
    "PublicValidator",
    "ValidationResult",
    "SeedService",
]
