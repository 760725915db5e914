"""
NotaryPro Certify - Audit Trail Service

Append-only record of every lifecycle action for non-repudiation.

Recording is best-effort: the primary transaction has already been committed
when an entry is written, and a failure to write the entry is logged but
never undoes or fails the operation it describes.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditAction, AuditLog

logger = logging.getLogger(__name__)


class AuditTrail:
    """Service for writing and reading the audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: AuditAction,
        document_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Append an audit entry and commit it.

        Args:
            action: What happened
            document_id: Document the action concerns (weak reference)
            user_id: Actor, None for public or system actions
            details: Structured context for the action
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            The stored AuditLog, or None when it could not be written
        """
        entry = AuditLog(
            document_id=document_id,
            user_id=user_id,
            action=action,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            self.db.add(entry)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Audit entry '{action.value}' for document {document_id} was not recorded: {e}"
            )
            return None

        return entry

    async def list_for_document(
        self,
        document_id: uuid.UUID,
        action: Optional[AuditAction] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLog]:
        """Entries for a document, oldest first."""
        query = select(AuditLog).where(AuditLog.document_id == document_id)

        if action:
            query = query.where(AuditLog.action == action)

        query = query.order_by(AuditLog.created_at.asc()).offset(skip).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(
        self,
        document_id: Optional[uuid.UUID] = None,
        action: Optional[AuditAction] = None,
    ) -> int:
        query = select(func.count(AuditLog.id))
        if document_id:
            query = query.where(AuditLog.document_id == document_id)
        if action:
            query = query.where(AuditLog.action == action)
        return await self.db.scalar(query) or 0

    async def get_document_history(
        self,
        document_id: uuid.UUID,
        action: Optional[AuditAction] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        One page of the chronological history of a document.

        Returns one dict per entry with the timestamp, action, actor and details.
        """
        logs = await self.list_for_document(document_id, action=action, skip=skip, limit=limit)

        return [
            {
                "id": str(log.id),
                "timestamp": log.created_at.isoformat(),
                "action": log.action.value,
                "user_id": str(log.user_id) if log.user_id else None,
                "details": log.details or {},
                "ip_address": log.ip_address,
            }
            for log in logs
        ]
