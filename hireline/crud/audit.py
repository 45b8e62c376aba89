"""
审计日志 CRUD 操作

只提供追加与查询，没有更新和删除
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import AuditLog


class CRUDAudit:
    """审计日志 CRUD 操作类（只追加）"""
    
    def __init__(self, model=AuditLog):
        self.model = model
    
    async def create(self, db: AsyncSession, *, obj_in: Dict[str, Any]) -> AuditLog:
        """追加一条审计日志"""
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        await db.flush()
        return db_obj
    
    async def list_by_application(
        self,
        db: AsyncSession,
        application_id: str,
        *,
        offset: int = 0,
        limit: int = 50,
        action_type: Optional[str] = None
    ) -> List[AuditLog]:
        """申请的审计日志（新的在前）"""
        query = select(self.model).where(self.model.application_id == application_id)
        if action_type:
            query = query.where(self.model.action_type == action_type)
        result = await db.execute(
            query.order_by(self.model.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())
    
    async def count_by_application(
        self,
        db: AsyncSession,
        application_id: str,
        action_type: Optional[str] = None
    ) -> int:
        query = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.application_id == application_id)
        )
        if action_type:
            query = query.where(self.model.action_type == action_type)
        result = await db.execute(query)
        return result.scalar() or 0


audit_crud = CRUDAudit()
