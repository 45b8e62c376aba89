"""
审计日志服务

每次状态变更写入一条结构化审计记录；details 中保留 from/to 等字段，
展示层无需再解析 action 文本
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hireline.crud import audit_crud
from hireline.models import ActionType, Application, AuditLog, Person


@dataclass(frozen=True)
class AuditContext:
    """操作来源"""
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


SYSTEM = AuditContext()


async def create_audit_log(
    db: AsyncSession,
    *,
    action: str,
    action_type: ActionType,
    person_id: Optional[str] = None,
    application_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    context: AuditContext = SYSTEM,
) -> AuditLog:
    """追加一条审计日志"""
    return await audit_crud.create(db, obj_in={
        "action": action,
        "action_type": action_type.value,
        "person_id": person_id,
        "application_id": application_id,
        "user_id": context.user_id,
        "details": details,
        "ip_address": context.ip_address,
        "user_agent": context.user_agent[:500] if context.user_agent else None,
    })


async def log_person_created(
    db: AsyncSession,
    person: Person,
    context: AuditContext = SYSTEM,
    source: str = "application_form",
) -> AuditLog:
    return await create_audit_log(
        db,
        action="Person record created",
        action_type=ActionType.CREATE,
        person_id=person.id,
        details={
            "email": person.email,
            "firstName": person.first_name,
            "lastName": person.last_name,
            "source": source,
        },
        context=context,
    )


async def log_application_created(
    db: AsyncSession,
    application: Application,
    context: AuditContext = SYSTEM,
    **details: Any,
) -> AuditLog:
    return await create_audit_log(
        db,
        action=f"Application submitted for {application.position}",
        action_type=ActionType.CREATE,
        person_id=application.person_id,
        application_id=application.id,
        details={"position": application.position, **details},
        context=context,
    )


async def log_stage_change(
    db: AsyncSession,
    application: Application,
    from_stage: str,
    to_stage: str,
    context: AuditContext = SYSTEM,
    reason: Optional[str] = None,
    **details: Any,
) -> AuditLog:
    """阶段变更"""
    return await create_audit_log(
        db,
        action=f"Stage changed from {from_stage} to {to_stage}",
        action_type=ActionType.STAGE_CHANGE,
        person_id=application.person_id,
        application_id=application.id,
        details={
            "from": from_stage,
            "to": to_stage,
            "fromStage": from_stage,
            "toStage": to_stage,
            "reason": reason,
            **details,
        },
        context=context,
    )


async def log_status_change(
    db: AsyncSession,
    application: Application,
    from_status: str,
    to_status: str,
    context: AuditContext = SYSTEM,
    reason: Optional[str] = None,
    **details: Any,
) -> AuditLog:
    """状态变更（拒绝时阶段不变，一并记录以便还原现场）"""
    return await create_audit_log(
        db,
        action=f"Status changed from {from_status} to {to_status}",
        action_type=ActionType.STATUS_CHANGE,
        person_id=application.person_id,
        application_id=application.id,
        details={
            "from": from_status,
            "to": to_status,
            "fromStatus": from_status,
            "toStatus": to_status,
            "stage": application.current_stage,
            "reason": reason,
            **details,
        },
        context=context,
    )


async def log_assessment_completed(
    db: AsyncSession,
    *,
    person_id: str,
    application_id: Optional[str],
    assessment_type: str,
    score: Optional[float],
    passed: Optional[bool],
    context: AuditContext = SYSTEM,
    **details: Any,
) -> AuditLog:
    return await create_audit_log(
        db,
        action=f"{assessment_type} assessment completed",
        action_type=ActionType.UPDATE,
        person_id=person_id,
        application_id=application_id,
        details={
            "assessmentType": assessment_type,
            "score": score,
            "passed": passed,
            **details,
        },
        context=context,
    )


async def log_email_sent(
    db: AsyncSession,
    *,
    template: str,
    recipient: str,
    person_id: Optional[str],
    application_id: Optional[str],
    context: AuditContext = SYSTEM,
) -> AuditLog:
    return await create_audit_log(
        db,
        action=f"Email sent: {template}",
        action_type=ActionType.EMAIL_SENT,
        person_id=person_id,
        application_id=application_id,
        details={"template": template, "recipient": recipient},
        context=context,
    )


async def log_webhook_received(
    db: AsyncSession,
    webhook_type: str,
    *,
    person_id: Optional[str] = None,
    application_id: Optional[str] = None,
    context: AuditContext = SYSTEM,
    **details: Any,
) -> AuditLog:
    return await create_audit_log(
        db,
        action=f"Webhook received: {webhook_type}",
        action_type=ActionType.CREATE,
        person_id=person_id,
        application_id=application_id,
        details=details,
        context=context,
    )


async def log_record_viewed(
    db: AsyncSession,
    application: Application,
    context: AuditContext,
    view_type: str = "application",
) -> AuditLog:
    return await create_audit_log(
        db,
        action=f"Record viewed: {view_type}",
        action_type=ActionType.VIEW,
        person_id=application.person_id,
        application_id=application.id,
        context=context,
    )


async def log_record_deleted(
    db: AsyncSession,
    application: Application,
    context: AuditContext,
    **details: Any,
) -> AuditLog:
    return await create_audit_log(
        db,
        action="Application deleted",
        action_type=ActionType.DELETE,
        person_id=application.person_id,
        application_id=application.id,
        details={
            "position": application.position,
            "stage": application.current_stage,
            "status": application.status,
            **details,
        },
        context=context,
    )
