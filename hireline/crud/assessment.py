"""
测评 CRUD 操作
"""
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import Assessment, AssessmentType
from .base import CRUDBase


class CRUDAssessment(CRUDBase[Assessment]):
    """测评 CRUD 操作类"""
    
    async def get_for_application(
        self,
        db: AsyncSession,
        id: str,
        application_id: str,
        type: AssessmentType
    ) -> Optional[Assessment]:
        """获取属于某申请的指定类型测评"""
        result = await db.execute(
            select(self.model).where(
                self.model.id == id,
                self.model.application_id == application_id,
                self.model.type == type.value,
            )
        )
        return result.scalar_one_or_none()
    
    async def get_unreviewed_sc(
        self,
        db: AsyncSession,
        application_id: str
    ) -> Optional[Assessment]:
        """申请的待审核专业能力测评（至多一条）"""
        result = await db.execute(
            select(self.model).where(
                self.model.application_id == application_id,
                self.model.type == AssessmentType.SPECIALIZED_COMPETENCIES.value,
                self.model.passed.is_(None),
            )
        )
        return result.scalar_one_or_none()
    
    async def get_gc_for_person(self, db: AsyncSession, person_id: str) -> Optional[Assessment]:
        """候选人最近一次通用能力测评"""
        result = await db.execute(
            select(self.model)
            .where(
                self.model.person_id == person_id,
                self.model.type == AssessmentType.GENERAL_COMPETENCIES.value,
            )
            .order_by(self.model.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
    
    async def delete_gc_for_person(self, db: AsyncSession, person_id: str) -> None:
        """删除候选人已有的通用能力测评（重新测评时替换）"""
        await db.execute(
            delete(self.model).where(
                self.model.person_id == person_id,
                self.model.type == AssessmentType.GENERAL_COMPETENCIES.value,
            )
        )
        await db.flush()


assessment_crud = CRUDAssessment(Assessment)
