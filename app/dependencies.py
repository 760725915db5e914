"""
NotaryPro Certify - FastAPI Dependencies

Shared dependencies for database sessions, the signature token, request
context and the core services.

The signature token is built once per process and cached; tests replace it
through `app.dependency_overrides[get_token]`.
"""

from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_async_session
from app.services.document_lifecycle import DocumentLifecycleManager, RequestContext
from app.services.signing import TokenCapability, build_token
from app.services.validation_service import PublicValidator


@lru_cache()
def _process_token() -> TokenCapability:
    return build_token(get_settings())


def get_token() -> TokenCapability:
    """The configured signature token (software or PKCS#11)."""
    return _process_token()


def get_request_context(request: Request) -> RequestContext:
    """Client IP and user agent of the current request."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return RequestContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


def get_lifecycle_manager(
    db: AsyncSession = Depends(get_async_session),
    token: TokenCapability = Depends(get_token),
) -> DocumentLifecycleManager:
    return DocumentLifecycleManager(db, token=token, settings=get_settings())


def get_public_validator(
    db: AsyncSession = Depends(get_async_session),
) -> PublicValidator:
    return PublicValidator(db, settings=get_settings())
