"""
NotaryPro Certify - User Model

Users acting on documents. Roles decide which lifecycle transitions a user
may trigger:

- Operator: POS staff; creates documents, captures evidence, simple signatures
- Certificador: certifying agent; applies advanced (FEA) signatures
- Admin: full access, may also certify
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, TimestampMixin, enum_values


class UserRole(str, Enum):
    """User roles."""
    OPERATOR = "operator"
    CERTIFICADOR = "certificador"
    ADMIN = "admin"


# Roles allowed to apply an advanced electronic signature
CERTIFYING_ROLES = frozenset({UserRole.CERTIFICADOR, UserRole.ADMIN})


class User(BaseModel, TimestampMixin):
    """A platform user (operator, certifier or admin)."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.OPERATOR,
    )
    rut: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Chilean RUT",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def can_certify(self) -> bool:
        """Whether this user holds certifier authority."""
        return self.is_active and self.role in CERTIFYING_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role.value})>"
