"""
NotaryPro Certify - Test Configuration

Pytest fixtures and configuration.

Each test runs against its own in-memory SQLite database. The software
signature token is generated once per session (RSA key generation is slow)
and reset to connected + locked before every test.
"""

from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base, get_async_session
from app.dependencies import get_token
from app.models.document import DocumentType, PosTerminal
from app.models.user import User, UserRole
from app.services.audit_service import AuditTrail
from app.services.document_lifecycle import DocumentLifecycleManager, RequestContext
from app.services.signing import CertificateInfo, SoftwareToken
from app.services.validation_service import PublicValidator
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PIN = "123456"
VALID_RUT = "12.345.678-5"


@pytest.fixture(scope="session")
def session_token() -> SoftwareToken:
    """Software token shared by the whole session."""
    return SoftwareToken(pin=TEST_PIN)


@pytest.fixture
def token(session_token: SoftwareToken) -> SoftwareToken:
    """The shared token, connected and locked."""
    session_token.set_connected(True)
    session_token.lock()
    yield session_token
    session_token.set_connected(True)
    session_token.lock()


@pytest.fixture
def certificates(token: SoftwareToken) -> List[CertificateInfo]:
    with token.session(TEST_PIN):
        return token.list_certificates()


@pytest.fixture
def certificate_id(certificates: List[CertificateInfo]) -> str:
    return certificates[0].certificate_id


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="testing",
        database_url_async=TEST_DATABASE_URL,
        base_url="https://vecinoxpress.cl",
        signer_backend="software",
        software_token_pin=TEST_PIN,
    )


@pytest.fixture
def request_context() -> RequestContext:
    return RequestContext(ip_address="190.160.10.20", user_agent="pytest-pos/1.0")


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, token: SoftwareToken) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database session and token overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_token] = lambda: token

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# SERVICE FIXTURES
# ===========================================

@pytest.fixture
def manager(db_session: AsyncSession, token: SoftwareToken, test_settings: Settings) -> DocumentLifecycleManager:
    return DocumentLifecycleManager(db_session, token=token, settings=test_settings)


@pytest.fixture
def validator(db_session: AsyncSession, test_settings: Settings) -> PublicValidator:
    return PublicValidator(db_session, settings=test_settings)


class BrokenAuditTrail(AuditTrail):
    """Audit trail whose entries can never be serialised."""

    async def record(self, action, document_id=None, user_id=None, details=None, **kwargs):
        return await super().record(
            action,
            document_id=document_id,
            user_id=user_id,
            details={**(details or {}), "unserialisable": object()},
            **kwargs,
        )


@pytest.fixture
def broken_audit(db_session: AsyncSession) -> AuditTrail:
    """An audit trail whose writes always fail."""
    return BrokenAuditTrail(db_session)


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def document_type(db_session: AsyncSession) -> DocumentType:
    doc_type = DocumentType(
        id=uuid4(),
        name="Declaración Jurada Simple",
        description="Documento de declaración personal",
        price=Decimal("2500"),
    )
    db_session.add(doc_type)
    await db_session.commit()
    return doc_type


@pytest_asyncio.fixture
async def inactive_document_type(db_session: AsyncSession) -> DocumentType:
    doc_type = DocumentType(id=uuid4(), name="Poder Especial", price=Decimal("9000"), is_active=False)
    db_session.add(doc_type)
    await db_session.commit()
    return doc_type


@pytest_asyncio.fixture
async def terminal(db_session: AsyncSession) -> PosTerminal:
    pos = PosTerminal(
        id=uuid4(),
        terminal_code="POS001",
        name="Terminal Las Condes",
        address="Av. Apoquindo 4500",
        region="Metropolitana",
    )
    db_session.add(pos)
    await db_session.commit()
    return pos


async def _user(db_session: AsyncSession, username: str, role: UserRole, is_active: bool = True) -> User:
    user = User(id=uuid4(), username=username, name=username.title(), role=role, is_active=is_active)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def certifier(db_session: AsyncSession) -> User:
    return await _user(db_session, "CERT001", UserRole.CERTIFICADOR)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _user(db_session, "admin001", UserRole.ADMIN)


@pytest_asyncio.fixture
async def operator(db_session: AsyncSession) -> User:
    return await _user(db_session, "POS001", UserRole.OPERATOR)


@pytest_asyncio.fixture
async def pending_document(manager: DocumentLifecycleManager, document_type: DocumentType):
    return await manager.create_document(
        type_id=document_type.id,
        client_name="Juan Pérez",
        client_rut=VALID_RUT,
    )


@pytest_asyncio.fixture
async def signed_document(manager: DocumentLifecycleManager, pending_document):
    await manager.apply_simple_signature(
        pending_document.id,
        signature_data="iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg==",
        signer_name="Juan Pérez",
        signer_rut=VALID_RUT,
    )
    return pending_document
