"""
NotaryPro Certify - Input Validation Utilities

Chilean identity (RUT) checksum, contact and format checks used by the
certification lifecycle.
"""

import math
import re
from typing import Optional

from app.utils.error_handling import InvalidRUTException


RUT_WEIGHTS = (2, 3, 4, 5, 6, 7)

DOCUMENT_NUMBER_PATTERN = re.compile(r"^DOC-\d{4}-\d{6}$")
HASH_PATTERN = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)
QR_TOKEN_PATTERN = re.compile(r"^[A-F0-9]{16}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_PATTERN = re.compile(r"^(\+56)?9[0-9]{8}$")
LANDLINE_PATTERN = re.compile(r"^(\+56)?[2-6][0-9]{8}$")

# Chile's approximate bounding box (mainland, Easter Island, Antarctic claim excluded)
CHILE_LAT_RANGE = (-55.98, -17.5)
CHILE_LNG_RANGE = (-109.45, -66.42)


# ===========================================
# RUT
# ===========================================

def clean_rut(rut: str) -> str:
    """Remove dots and hyphens and uppercase the check digit."""
    return rut.replace(".", "").replace("-", "").strip().upper()


def compute_rut_check_digit(body: str) -> str:
    """
    Compute the modulo-11 check digit for a RUT body.

    Digits are weighted from least to most significant with the cyclic
    weights 2..7. A remainder of 0 yields '0', 1 yields 'K', anything else
    11 - remainder.
    """
    total = 0
    for index, digit in enumerate(reversed(body)):
        total += int(digit) * RUT_WEIGHTS[index % len(RUT_WEIGHTS)]

    remainder = total % 11
    if remainder == 0:
        return "0"
    if remainder == 1:
        return "K"
    return str(11 - remainder)


def validate_rut(rut: Optional[str]) -> bool:
    """Validate a Chilean RUT such as '12.345.678-5' or '123456785'."""
    if not rut or not isinstance(rut, str):
        return False

    cleaned = clean_rut(rut)
    if len(cleaned) < 8 or len(cleaned) > 9:
        return False

    body, check_digit = cleaned[:-1], cleaned[-1]
    if not body.isdigit() or not body.isascii():
        return False

    return check_digit == compute_rut_check_digit(body)


def format_rut(rut: str) -> str:
    """Format a RUT with thousands dots and a hyphen: 12.345.678-5."""
    if not rut:
        return ""

    cleaned = clean_rut(rut)
    if len(cleaned) < 8:
        return rut

    body, check_digit = cleaned[:-1], cleaned[-1]
    grouped = re.sub(r"\B(?=(\d{3})+(?!\d))", ".", body)
    return f"{grouped}-{check_digit}"


def require_valid_rut(rut: Optional[str], field: str = "client_rut") -> str:
    """Validate and return the formatted RUT, raising InvalidRUTException otherwise."""
    if not validate_rut(rut):
        raise InvalidRUTException(rut or "", field=field)
    return format_rut(rut)


# ===========================================
# CONTACT DATA
# ===========================================

def validate_chilean_phone(phone: Optional[str]) -> bool:
    """Chilean mobile (+56 9 XXXX XXXX) or landline (+56 2 XXXX XXXX)."""
    if not phone:
        return False
    cleaned = re.sub(r"[\s.\-]", "", phone)
    return bool(MOBILE_PATTERN.match(cleaned) or LANDLINE_PATTERN.match(cleaned))


def validate_email(email: Optional[str]) -> bool:
    """Loose e-mail shape check."""
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def sanitize_input(value: Optional[str], max_length: int = 1000) -> str:
    """Strip markup and quote characters and cap the length."""
    if not value or not isinstance(value, str):
        return ""
    cleaned = re.sub(r"[<>]", "", value.strip())
    cleaned = re.sub(r"['\";]", "", cleaned)
    return cleaned[:max_length]


# ===========================================
# DOCUMENT IDENTIFIERS
# ===========================================

def validate_document_number(document_number: Optional[str]) -> bool:
    """Format: DOC-YYYY-XXXXXX"""
    return bool(document_number) and bool(DOCUMENT_NUMBER_PATTERN.match(document_number))


def validate_hash(value: Optional[str]) -> bool:
    """SHA-256 hex digest (64 characters)."""
    return bool(value) and bool(HASH_PATTERN.match(value))


def validate_qr_token(token: Optional[str]) -> bool:
    """QR validation tokens are 16 uppercase hex characters."""
    return bool(token) and bool(QR_TOKEN_PATTERN.match(token))


# ===========================================
# GEOLOCATION
# ===========================================

def validate_chilean_gps(latitude: float, longitude: float) -> bool:
    """Coordinates must be finite and inside Chile's bounding box."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return (
        CHILE_LAT_RANGE[0] <= latitude <= CHILE_LAT_RANGE[1]
        and CHILE_LNG_RANGE[0] <= longitude <= CHILE_LNG_RANGE[1]
    )
