"""
应聘申请 API 路由

员工操作接口：查看详情、审计记录、面试、测评审核、录用决定与手动发送邮件。
所有接口需要登录；审核、决定、撤回与审计记录仅限管理员。
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.core.auth import require_access, require_admin
from hireline.core.database import get_db
from hireline.core.exceptions import NotFoundException
from hireline.core.response import success_response, paged_response
from hireline.core.security import require_uuid
from hireline.crud import application_crud, assessment_crud, audit_crud
from hireline.models import User
from hireline.schemas.application import (
    ApplicationDetailResponse,
    AssessmentBrief,
    AuditLogResponse,
    CompleteInterviewRequest,
    DecisionBrief,
    DecisionRequest,
    InterviewBrief,
    PersonBrief,
    RescheduleInterviewRequest,
    ReviewSCRequest,
    ScheduleInterviewRequest,
    SendEmailRequest,
    WithdrawOfferRequest,
)
from hireline.services.audit import AuditContext, log_record_viewed
from hireline.services.pipeline import Outcome
from hireline.services.staff import StaffActionService, get_staff_actions
from hireline.webhooks.verify import get_client_ip

router = APIRouter()


def _audit_context(request: Request, user: User) -> AuditContext:
    """从请求中提取操作人与来源"""
    client_host = request.client.host if request.client else None
    return AuditContext(
        user_id=user.id,
        ip_address=get_client_ip(request.headers, fallback=client_host),
        user_agent=request.headers.get("user-agent"),
    )


def _respond(outcome: Outcome) -> dict:
    return success_response(data=outcome.data, message=outcome.message, **outcome.extra)


@router.get("/{application_id}", summary="获取应聘申请详情")
async def get_application(
    application_id: str,
    request: Request,
    user: User = Depends(require_access),
    db: AsyncSession = Depends(get_db),
):
    """
    获取申请详情，包含候选人、测评、面试与录用决定
    
    每次查看写入一条 VIEW 审计记录
    """
    require_uuid(application_id, "application ID")
    application = await application_crud.get_detail(db, application_id)
    if not application:
        raise NotFoundException("Application not found")
    
    await log_record_viewed(db, application, _audit_context(request, user))
    
    # 通用能力测评挂在候选人上，单独查询
    assessments = list(application.assessments)
    gc = await assessment_crud.get_gc_for_person(db, application.person_id)
    if gc:
        assessments.insert(0, gc)
    
    response = ApplicationDetailResponse.model_validate(application)
    response.person = PersonBrief.model_validate(application.person)
    response.assessments = [AssessmentBrief.model_validate(a) for a in assessments]
    response.interviews = [InterviewBrief.model_validate(i) for i in application.interviews]
    if application.decisions:
        response.decision = DecisionBrief.model_validate(application.decisions[0])
    
    return success_response(data=response.model_dump())


@router.get("/{application_id}/audit-log", summary="获取申请审计记录")
async def get_audit_log(
    application_id: str,
    limit: int = Query(50, ge=1, le=200, description="每页数量"),
    offset: int = Query(0, ge=0, description="偏移量"),
    action_type: Optional[str] = Query(None, description="动作类型筛选"),
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    审计记录（新的在前）
    
    申请删除后审计记录仍然保留，因此不校验申请是否存在
    """
    require_uuid(application_id, "application ID")
    logs = await audit_crud.list_by_application(
        db, application_id, offset=offset, limit=limit, action_type=action_type
    )
    total = await audit_crud.count_by_application(db, application_id, action_type=action_type)
    items = [AuditLogResponse.model_validate(log).model_dump() for log in logs]
    return paged_response(items, total, limit, offset)


@router.post("/{application_id}/schedule-interview", summary="安排面试")
async def schedule_interview(
    application_id: str,
    body: ScheduleInterviewRequest,
    request: Request,
    user: User = Depends(require_access),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.schedule_interview(db, application_id, body, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/reschedule-interview", summary="更换面试官")
async def reschedule_interview(
    application_id: str,
    body: RescheduleInterviewRequest,
    request: Request,
    user: User = Depends(require_access),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.reschedule_interview(db, application_id, body, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/complete-interview", summary="完成面试")
async def complete_interview(
    application_id: str,
    body: CompleteInterviewRequest,
    request: Request,
    user: User = Depends(require_access),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.complete_interview(db, application_id, body, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/review-sc", summary="审核专业能力测评")
async def review_specialised_competency(
    application_id: str,
    body: ReviewSCRequest,
    request: Request,
    user: User = Depends(require_admin),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.review_sc(db, application_id, body, user, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/decision", summary="记录录用决定")
async def record_decision(
    application_id: str,
    body: DecisionRequest,
    request: Request,
    user: User = Depends(require_admin),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.record_decision(db, application_id, body, user, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/withdraw-offer", summary="撤回录用")
async def withdraw_offer(
    application_id: str,
    body: WithdrawOfferRequest,
    request: Request,
    user: User = Depends(require_admin),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    outcome = await service.withdraw_offer(db, application_id, body, user, _audit_context(request, user))
    return _respond(outcome)


@router.post("/{application_id}/send-email", summary="手动发送候选人邮件")
async def send_email(
    application_id: str,
    body: SendEmailRequest,
    request: Request,
    user: User = Depends(require_access),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    """按允许的模板重新发送 GC 邀请、面试邀请、录用通知或拒绝邮件"""
    outcome = await service.send_email(db, application_id, body, _audit_context(request, user))
    return _respond(outcome)


@router.delete("/{application_id}", summary="撤回并删除申请")
async def withdraw_application(
    application_id: str,
    request: Request,
    user: User = Depends(require_admin),
    service: StaffActionService = Depends(get_staff_actions),
    db: AsyncSession = Depends(get_db),
):
    """级联删除申请及其测评、面试和录用决定，审计记录保留"""
    outcome = await service.withdraw_application(db, application_id, _audit_context(request, user))
    return _respond(outcome)
