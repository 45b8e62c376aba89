"""
Webhook 回执 CRUD 操作
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.models import WebhookReceipt
from .base import CRUDBase


class CRUDWebhookReceipt(CRUDBase[WebhookReceipt]):
    """Webhook 回执 CRUD 操作类"""
    
    async def get_by_submission(
        self,
        db: AsyncSession,
        webhook: str,
        submission_id: str
    ) -> Optional[WebhookReceipt]:
        """按 Webhook 类型 + 表单提交ID查找（幂等检查）"""
        result = await db.execute(
            select(self.model).where(
                self.model.webhook == webhook,
                self.model.submission_id == submission_id,
            )
        )
        return result.scalar_one_or_none()
    
    async def record(
        self,
        db: AsyncSession,
        webhook: str,
        submission_id: str,
        entity_id: Optional[str]
    ) -> WebhookReceipt:
        """写入回执；同一提交并发处理时由唯一约束抛出 IntegrityError"""
        return await self.create(db, obj_in={
            "webhook": webhook,
            "submission_id": submission_id,
            "entity_id": entity_id,
        })


webhook_receipt_crud = CRUDWebhookReceipt(WebhookReceipt)
