"""
候选人 CRUD 操作
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import Person
from .base import CRUDBase


class CRUDPerson(CRUDBase[Person]):
    """候选人 CRUD 操作类"""
    
    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[Person]:
        """按邮箱查找（邮箱统一小写存储）"""
        result = await db.execute(
            select(self.model).where(self.model.email == email.lower())
        )
        return result.scalar_one_or_none()
    
    async def get_by_respondent_id(self, db: AsyncSession, respondent_id: str) -> Optional[Person]:
        """按表单答题人ID查找"""
        result = await db.execute(
            select(self.model)
            .where(self.model.respondent_id == respondent_id)
            .order_by(self.model.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


person_crud = CRUDPerson(Person)
