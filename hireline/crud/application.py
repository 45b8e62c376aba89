"""
应聘申请 CRUD 操作
"""
from typing import Optional, List, Sequence
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hireline.models import Application, Status
from .base import CRUDBase


class CRUDApplication(CRUDBase[Application]):
    """应聘申请 CRUD 操作类"""
    
    async def get_detail(self, db: AsyncSession, id: str) -> Optional[Application]:
        """获取申请详情（预加载测评、面试、决定）"""
        result = await db.execute(
            select(self.model)
            .options(
                selectinload(self.model.assessments),
                selectinload(self.model.interviews),
                selectinload(self.model.decisions),
            )
            .where(self.model.id == id)
        )
        return result.scalar_one_or_none()
    
    async def get_active_by_person(
        self,
        db: AsyncSession,
        person_id: str,
        stages: Sequence[str]
    ) -> List[Application]:
        """候选人处于指定阶段的进行中申请（新的在前）"""
        result = await db.execute(
            select(self.model)
            .where(
                self.model.person_id == person_id,
                self.model.status == Status.ACTIVE.value,
                self.model.current_stage.in_(list(stages)),
            )
            .order_by(self.model.created_at.desc())
        )
        return list(result.scalars().all())
    
    async def count_other_active_at_stage(
        self,
        db: AsyncSession,
        person_id: str,
        stage: str,
        exclude_id: str
    ) -> int:
        """同一候选人除 exclude_id 外、处于某阶段的进行中申请数"""
        result = await db.execute(
            select(func.count())
            .select_from(self.model)
            .where(
                self.model.person_id == person_id,
                self.model.status == Status.ACTIVE.value,
                self.model.current_stage == stage,
                self.model.id != exclude_id,
            )
        )
        return result.scalar() or 0
    
    async def delete_with_dependents(self, db: AsyncSession, application: Application) -> None:
        """
        删除申请及其测评、面试、决定
        
        已加载的从表对象由 ORM 级联删除，其余由数据库外键 ON DELETE CASCADE 删除
        """
        await db.delete(application)
        await db.flush()


application_crud = CRUDApplication(Application)
