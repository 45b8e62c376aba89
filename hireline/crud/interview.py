"""
面试 CRUD 操作
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import Interview
from .base import CRUDBase


class CRUDInterview(CRUDBase[Interview]):
    """面试 CRUD 操作类"""
    
    async def get_open(self, db: AsyncSession, application_id: str) -> Optional[Interview]:
        """申请当前未完成的面试（部分唯一索引保证至多一条）"""
        result = await db.execute(
            select(self.model).where(
                self.model.application_id == application_id,
                self.model.completed_at.is_(None),
            )
        )
        return result.scalar_one_or_none()


interview_crud = CRUDInterview(Interview)
