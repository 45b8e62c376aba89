"""
录用决定 CRUD 操作
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import Decision
from .base import CRUDBase


class CRUDDecision(CRUDBase[Decision]):
    """录用决定 CRUD 操作类"""
    
    async def get_by_application(self, db: AsyncSession, application_id: str) -> Optional[Decision]:
        result = await db.execute(
            select(self.model).where(self.model.application_id == application_id)
        )
        return result.scalar_one_or_none()


decision_crud = CRUDDecision(Decision)
