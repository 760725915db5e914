"""
NotaryPro Certify - Development Seed Data

Idempotent get-or-create of the document catalog, demo users and a demo POS
terminal. Run on startup in development only.
"""

import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.document import DocumentType, PosTerminal
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


DEFAULT_DOCUMENT_TYPES: List[Dict] = [
    {"name": "Declaración Jurada Simple", "description": "Documento de declaración personal", "price": Decimal("2500")},
    {"name": "Poder Simple", "description": "Autorización para representación", "price": Decimal("3500")},
    {"name": "Recibo de Dinero", "description": "Comprobante de pago", "price": Decimal("1500")},
    {"name": "Contrato de Prestación de Servicios", "description": "Acuerdo de servicios profesionales", "price": Decimal("4500")},
    {"name": "Carta de Autorización", "description": "Autorización para trámites específicos", "price": Decimal("2000")},
]

DEFAULT_USERS: List[Dict] = [
    {"username": "admin001", "name": "Administrador Sistema", "role": UserRole.ADMIN},
    {"username": "CERT001", "name": "Maria Elena Rodriguez", "role": UserRole.CERTIFICADOR, "rut": "11.111.111-1"},
    {"username": "POS001", "name": "Terminal Las Condes", "role": UserRole.OPERATOR},
]

DEFAULT_TERMINAL = {
    "terminal_code": "POS001",
    "name": "Terminal Las Condes",
    "address": "Av. Apoquindo 4500, Las Condes",
    "region": "Metropolitana",
    "latitude": Decimal("-33.41330000"),
    "longitude": Decimal("-70.58230000"),
}


class SeedService:
    """Get-or-create of development reference data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def seed_document_types(self) -> int:
        existing = set((await self.db.execute(select(DocumentType.name))).scalars().all())
        created = 0
        for data in DEFAULT_DOCUMENT_TYPES:
            if data["name"] not in existing:
                self.db.add(DocumentType(**data))
                created += 1
        return created

    async def seed_users(self) -> int:
        existing = set((await self.db.execute(select(User.username))).scalars().all())
        created = 0
        for data in DEFAULT_USERS:
            if data["username"] not in existing:
                self.db.add(User(**data))
                created += 1
        return created

    async def seed_terminal(self) -> bool:
        found = await self.db.scalar(
            select(PosTerminal.id).where(PosTerminal.terminal_code == DEFAULT_TERMINAL["terminal_code"])
        )
        if found is not None:
            return False
        self.db.add(PosTerminal(**DEFAULT_TERMINAL))
        return True

    async def seed_all(self) -> Dict[str, int]:
        summary = {
            "document_types": await self.seed_document_types(),
            "users": await self.seed_users(),
            "terminals": int(await self.seed_terminal()),
        }
        await self.db.commit()
        logger.info(f"Seed data ready: {summary}")
        return summary
