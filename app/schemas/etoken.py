"""
NotaryPro Certify - eToken Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TokenStatusResponse(BaseModel):
    connected: bool
    unlocked: bool
    status: str
    backend: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    firmware_version: Optional[str] = None


class CertificateListRequest(BaseModel):
    pin: str = Field(..., description="eToken PIN")


class CertificateResponse(BaseModel):
    certificate_id: str
    subject: str
    issuer: str
    serial_number: str
    valid_from: datetime
    valid_to: datetime
    holder_name: Optional[str] = None
    holder_rut: Optional[str] = None
    key_usage: List[str] = []


class CertificateListResponse(BaseModel):
    certificates: List[CertificateResponse]
    total: int
