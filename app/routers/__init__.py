"""
NotaryPro Certify - Routers Package

FastAPI route handlers.

Routers:
- documents: Document lifecycle (create, evidence, signatures, rejection, audit)
- validation: Public validation by QR token, document number or hash
- etoken: Signature token status and certificates
"""

from app.routers import documents, validation, etoken

__all__ = ["documents", "validation", "etoken"]
