"""
员工操作服务

面试安排 / 完成、专业能力测评审核、录用决定、撤回录用与撤回申请。
权限在路由层通过依赖校验，这里只负责前置条件与状态迁移。
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.core.exceptions import (
    BadRequestException,
    EmailDeliveryError,
    NotFoundException,
    StageConflictError,
)
from hireline.core.security import (
    is_valid_url,
    require_string,
    require_uuid,
    sanitize_for_log,
    sanitize_text,
)
from hireline.crud import (
    application_crud,
    assessment_crud,
    decision_crud,
    interview_crud,
    person_crud,
    user_crud,
)
from hireline.models import (
    ActionType,
    Application,
    AssessmentType,
    DecisionType,
    InterviewOutcome,
    Stage,
    Status,
    User,
)
from hireline.models.base import utcnow
from hireline.schemas.application import (
    CompleteInterviewRequest,
    DecisionRequest,
    RescheduleInterviewRequest,
    ReviewSCRequest,
    ScheduleInterviewRequest,
    SendEmailRequest,
    WithdrawOfferRequest,
)
from .audit import (
    AuditContext,
    create_audit_log,
    log_record_deleted,
    log_status_change,
)
from .notifications import NotificationDispatcher, get_notifier
from .pipeline import Outcome, advance_stage

COMPLETED_OUTCOMES = (
    InterviewOutcome.PASSED.value,
    InterviewOutcome.FAILED.value,
    InterviewOutcome.NO_SHOW.value,
)

# 员工可以手动（重新）发送的邮件模板
MANUAL_EMAIL_TEMPLATES = (
    "gc_invitation",
    "interview_invitation",
    "offer_letter",
    "rejection",
)


def parse_scheduled_at(value: Optional[str]) -> Optional[datetime]:
    """解析 ISO 8601 时间；无时区按 UTC 处理，必须晚于当前时间"""
    if value is None or value == "":
        return None
    try:
        scheduled_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        raise BadRequestException("Invalid scheduledAt date format") from None
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
    if scheduled_at <= utcnow():
        raise BadRequestException("scheduledAt must be in the future")
    return scheduled_at


async def get_application_or_404(db: AsyncSession, application_id: str) -> Application:
    require_uuid(application_id, "application ID")
    application = await application_crud.get(db, application_id)
    if application is None:
        raise NotFoundException("Application not found")
    return application


def require_active(application: Application, message: str) -> None:
    if application.status != Status.ACTIVE.value:
        raise StageConflictError(f"{message} (current status: {application.status})")


class StaffActionService:
    """员工对申请的操作"""
    
    def __init__(self, notifier: NotificationDispatcher):
        self.notifier = notifier
    
    async def _get_interviewer(self, db: AsyncSession, interviewer_id: Any) -> User:
        """校验面试官存在且配置了合法的预约链接"""
        interviewer_id = require_string(interviewer_id, "interviewerId")
        require_uuid(interviewer_id, "interviewerId")
        
        interviewer = await user_crud.get(db, interviewer_id)
        if interviewer is None:
            raise NotFoundException("Interviewer not found")
        if not interviewer.scheduling_link:
            raise BadRequestException(
                "Interviewer has not configured their scheduling link. Please update their profile first."
            )
        if not is_valid_url(interviewer.scheduling_link):
            raise BadRequestException("Interviewer has an invalid scheduling link configured")
        return interviewer
    
    async def _send_invitation(self, db, application, interview, interviewer, context) -> bool:
        person = await person_crud.get(db, application.person_id)
        sent = await self.notifier.send_interview_invitation(db, person, application, interviewer, context)
        if sent:
            await interview_crud.update(db, db_obj=interview, obj_in={"email_sent_at": utcnow()})
            await db.commit()
        return sent
    
    # ========== 面试 ==========
    
    async def schedule_interview(
        self,
        db: AsyncSession,
        application_id: str,
        body: ScheduleInterviewRequest,
        context: AuditContext,
    ) -> Outcome:
        """
        安排面试
        
        申请尚未到 INTERVIEW 时先推进阶段；同一申请同一时间只能有一场未完成的面试
        """
        application = await get_application_or_404(db, application_id)
        require_active(application, "Can only schedule interviews for active applications")
        
        interviewer = await self._get_interviewer(db, body.interviewer_id)
        notes = sanitize_text(body.notes, 2000)
        scheduled_at = parse_scheduled_at(body.scheduled_at)
        
        if await interview_crud.get_open(db, application.id):
            raise BadRequestException("An interview is already scheduled for this application")
        
        current = Stage(application.current_stage)
        if current.order > Stage.INTERVIEW.order:
            raise StageConflictError(f"Cannot schedule an interview at {current.value} stage")
        stage_changed = await advance_stage(
            db, application, Stage.INTERVIEW, context,
            reason="Interview scheduled",
            interviewerId=interviewer.id,
        )
        
        try:
            interview = await interview_crud.create(db, obj_in={
                "application_id": application.id,
                "interviewer_id": interviewer.id,
                "scheduling_link": interviewer.scheduling_link,
                "scheduled_at": scheduled_at,
                "notes": notes,
                "outcome": InterviewOutcome.PENDING.value,
            })
        except IntegrityError:
            # 并发安排：部分唯一索引兜底
            await db.rollback()
            raise BadRequestException("An interview is already scheduled for this application") from None
        
        await create_audit_log(
            db,
            action="Interview scheduled",
            action_type=ActionType.CREATE,
            person_id=application.person_id,
            application_id=application.id,
            details={
                "interviewId": interview.id,
                "interviewerId": interviewer.id,
                "interviewerName": interviewer.display_name,
                "schedulingLink": interviewer.scheduling_link,
                "scheduledAt": scheduled_at.isoformat() if scheduled_at else None,
            },
            context=context,
        )
        await db.commit()
        
        email_sent = False
        if body.send_email:
            email_sent = await self._send_invitation(db, application, interview, interviewer, context)
        
        logger.info(
            f"[面试] 已安排: 申请 {application.id}, 面试官 {interviewer.id}, 邮件: {email_sent}"
        )
        return Outcome(
            message="Interview scheduled successfully",
            data={
                "interviewId": interview.id,
                "applicationId": application.id,
                "interviewerId": interviewer.id,
                "schedulingLink": interviewer.scheduling_link,
                "scheduledAt": scheduled_at,
                "currentStage": application.current_stage,
                "stageChanged": stage_changed,
                "emailSent": email_sent,
            },
        )
    
    async def reschedule_interview(
        self,
        db: AsyncSession,
        application_id: str,
        body: RescheduleInterviewRequest,
        context: AuditContext,
    ) -> Outcome:
        """更换未完成面试的面试官"""
        application = await get_application_or_404(db, application_id)
        require_active(application, "Can only reschedule interviews for active applications")
        
        interview = await interview_crud.get_open(db, application.id)
        if interview is None:
            raise NotFoundException("No active interview found to reschedule")
        
        interviewer = await self._get_interviewer(db, body.interviewer_id)
        previous_id = interview.interviewer_id
        
        interview = await interview_crud.update(db, db_obj=interview, obj_in={
            "interviewer_id": interviewer.id,
            "scheduling_link": interviewer.scheduling_link,
            "email_sent_at": None,
        })
        await create_audit_log(
            db,
            action="Interview rescheduled",
            action_type=ActionType.UPDATE,
            person_id=application.person_id,
            application_id=application.id,
            details={
                "interviewId": interview.id,
                "from": previous_id,
                "to": interviewer.id,
                "previousInterviewerId": previous_id,
                "newInterviewerId": interviewer.id,
                "newInterviewerName": interviewer.display_name,
            },
            context=context,
        )
        await db.commit()
        
        email_sent = False
        if body.send_email:
            email_sent = await self._send_invitation(db, application, interview, interviewer, context)
        
        logger.info(f"[面试] 已改期: 申请 {application.id}, {previous_id} -> {interviewer.id}")
        return Outcome(
            message="Interview rescheduled successfully",
            data={
                "interviewId": interview.id,
                "applicationId": application.id,
                "interviewerId": interviewer.id,
                "schedulingLink": interviewer.scheduling_link,
                "emailSent": email_sent,
            },
        )
    
    async def complete_interview(
        self,
        db: AsyncSession,
        application_id: str,
        body: CompleteInterviewRequest,
        context: AuditContext,
    ) -> Outcome:
        """完成唯一一场未完成的面试"""
        application = await get_application_or_404(db, application_id)
        
        if not isinstance(body.notes, str) or not body.notes.strip():
            raise BadRequestException("Interview notes are required")
        notes = sanitize_text(body.notes.strip(), 5000)
        
        outcome = body.outcome
        if outcome is not None:
            outcome = outcome.strip().upper()
            if outcome not in COMPLETED_OUTCOMES:
                raise BadRequestException(
                    f"Invalid outcome. Must be one of: {', '.join(COMPLETED_OUTCOMES)}"
                )
        
        interview = await interview_crud.get_open(db, application.id)
        if interview is None:
            raise NotFoundException("No active interview found to complete")
        
        values: Dict[str, Any] = {"notes": notes, "completed_at": utcnow()}
        if outcome:
            values["outcome"] = outcome
        interview = await interview_crud.update(db, db_obj=interview, obj_in=values)
        
        await create_audit_log(
            db,
            action="Interview completed",
            action_type=ActionType.UPDATE,
            person_id=application.person_id,
            application_id=application.id,
            details={
                "interviewId": interview.id,
                "interviewerId": interview.interviewer_id,
                "from": InterviewOutcome.PENDING.value,
                "to": interview.outcome,
                "outcome": interview.outcome,
                "notesLength": len(notes),
            },
            context=context,
        )
        await db.commit()
        
        logger.info(f"[面试] 已完成: 申请 {application.id}, 结果 {interview.outcome}")
        return Outcome(
            message="Interview completed successfully",
            data={
                "interviewId": interview.id,
                "applicationId": application.id,
                "outcome": interview.outcome,
                "completedAt": interview.completed_at,
            },
        )
    
    # ========== 测评审核 ==========
    
    async def review_sc(
        self,
        db: AsyncSession,
        application_id: str,
        body: ReviewSCRequest,
        reviewer: User,
        context: AuditContext,
    ) -> Outcome:
        """人工审核无分数的专业能力测评；审核结果不改变阶段"""
        application = await get_application_or_404(db, application_id)
        
        if not isinstance(body.assessment_id, str) or not body.assessment_id:
            raise BadRequestException("Valid assessmentId is required")
        require_uuid(body.assessment_id, "assessmentId")
        if not isinstance(body.passed, bool):
            raise BadRequestException("passed must be a boolean")
        
        assessment = await assessment_crud.get_for_application(
            db, body.assessment_id, application.id, AssessmentType.SPECIALIZED_COMPETENCIES
        )
        if assessment is None:
            raise NotFoundException("Assessment not found for this application")
        if assessment.completed_at is None:
            raise BadRequestException("Cannot review an assessment that has not been submitted")
        if assessment.reviewed_at is not None:
            raise BadRequestException("Assessment has already been reviewed")
        
        assessment = await assessment_crud.update(db, db_obj=assessment, obj_in={
            "passed": body.passed,
            "reviewed_at": utcnow(),
            "reviewed_by": reviewer.id,
        })
        verdict = "approved" if body.passed else "rejected"
        await create_audit_log(
            db,
            action=f"Specialised Competency {verdict}",
            action_type=ActionType.UPDATE,
            person_id=application.person_id,
            application_id=application.id,
            details={
                "assessmentId": assessment.id,
                "assessmentType": AssessmentType.SPECIALIZED_COMPETENCIES.value,
                "specialisedCompetencyId": assessment.specialised_competency_id,
                "from": None,
                "to": body.passed,
                "passed": body.passed,
                "reviewedBy": reviewer.id,
            },
            context=context,
        )
        await db.commit()
        
        logger.info(f"[审核] 专业能力测评 {assessment.id} 已{'通过' if body.passed else '驳回'}")
        return Outcome(
            message=f"Assessment {verdict}",
            data={
                "assessmentId": assessment.id,
                "applicationId": application.id,
                "passed": assessment.passed,
                "reviewedAt": assessment.reviewed_at,
                "reviewedBy": reviewer.id,
            },
        )
    
    # ========== 录用决定 ==========
    
    async def record_decision(
        self,
        db: AsyncSession,
        application_id: str,
        body: DecisionRequest,
        decider: User,
        context: AuditContext,
    ) -> Outcome:
        """
        记录最终录用决定
        
        ACCEPT：状态 ACCEPTED，进入 AGREEMENT 并发送录用通知
        REJECT：状态 REJECTED（必须给出原因），发送拒绝通知
        """
        application = await get_application_or_404(db, application_id)
        require_active(application, "Can only record a decision for active applications")
        
        if await decision_crud.get_by_application(db, application.id):
            raise BadRequestException("A decision has already been recorded for this application")
        
        valid = [d.value for d in DecisionType]
        if body.decision not in valid:
            raise BadRequestException(f"Invalid decision. Must be one of: {', '.join(valid)}")
        decision = DecisionType(body.decision)
        
        reason = sanitize_text(body.reason, 2000)
        reason = reason.strip() if reason else None
        if decision == DecisionType.REJECT and not reason:
            raise BadRequestException("Reason is required for rejection decisions")
        final_reason = reason or "Application accepted"
        notes = sanitize_text(body.notes, 5000)
        
        try:
            record = await decision_crud.create(db, obj_in={
                "application_id": application.id,
                "decision": decision.value,
                "reason": final_reason,
                "notes": notes,
                "decided_by": decider.id,
                "decided_at": utcnow(),
            })
        except IntegrityError:
            await db.rollback()
            raise BadRequestException("A decision has already been recorded for this application") from None
        
        from_status = application.status
        from_stage = application.current_stage
        if decision == DecisionType.ACCEPT:
            to_status, to_stage = Status.ACCEPTED.value, Stage.AGREEMENT.value
        else:
            to_status, to_stage = Status.REJECTED.value, from_stage
        
        await application_crud.update(db, db_obj=application, obj_in={
            "status": to_status,
            "current_stage": to_stage,
        })
        await log_status_change(
            db, application, from_status, to_status, context,
            reason=final_reason,
            decision=decision.value,
            decisionId=record.id,
            fromStage=from_stage,
            toStage=to_stage,
        )
        await db.commit()
        
        email_sent = False
        if body.send_email:
            person = await person_crud.get(db, application.person_id)
            if decision == DecisionType.ACCEPT:
                email_sent = await self.notifier.send_offer_letter(db, person, application, context)
            else:
                email_sent = await self.notifier.send_rejection(
                    db, person, application, reason=final_reason, context=context
                )
        
        logger.info(
            f"[决定] 申请 {application.id}: {decision.value} by {decider.id}, 邮件: {email_sent}"
        )
        verdict = "accepted" if decision == DecisionType.ACCEPT else "rejected"
        return Outcome(
            message=f"Application {verdict} successfully",
            data={
                "decision": {
                    "id": record.id,
                    "decision": record.decision,
                    "reason": record.reason,
                    "notes": record.notes,
                    "decidedAt": record.decided_at,
                    "decidedBy": decider.id,
                },
                "applicationId": application.id,
                "applicationStatus": application.status,
                "currentStage": application.current_stage,
                "emailSent": email_sent,
            },
        )
    
    async def withdraw_offer(
        self,
        db: AsyncSession,
        application_id: str,
        body: WithdrawOfferRequest,
        decider: User,
        context: AuditContext,
    ) -> Outcome:
        """撤回录用：ACCEPTED 且处于 AGREEMENT 的申请改为 REJECTED"""
        application = await get_application_or_404(db, application_id)
        
        if application.status != Status.ACCEPTED.value:
            raise StageConflictError(
                f"Cannot withdraw offer - application is not accepted (current status: {application.status})"
            )
        if application.current_stage != Stage.AGREEMENT.value:
            raise StageConflictError(
                "Cannot withdraw offer - application is not at agreement stage "
                f"(current stage: {application.current_stage})"
            )
        
        reason = sanitize_text(body.reason, 2000) if isinstance(body.reason, str) else None
        reason = reason.strip() if reason else None
        if not reason:
            raise BadRequestException("Reason is required when withdrawing an offer")
        
        decision_values = {
            "decision": DecisionType.REJECT.value,
            "reason": reason,
            "notes": "Offer withdrawn at agreement stage",
            "decided_by": decider.id,
            "decided_at": utcnow(),
        }
        existing = await decision_crud.get_by_application(db, application.id)
        if existing:
            await decision_crud.update(db, db_obj=existing, obj_in=decision_values)
        else:
            await decision_crud.create(db, obj_in={"application_id": application.id, **decision_values})
        
        from_status = application.status
        await application_crud.update(db, db_obj=application, obj_in={"status": Status.REJECTED.value})
        await log_status_change(
            db, application, from_status, Status.REJECTED.value, context,
            reason=reason,
            decision=DecisionType.REJECT.value,
            offerWithdrawn=True,
        )
        await db.commit()
        
        email_sent = False
        if body.send_email:
            person = await person_crud.get(db, application.person_id)
            email_sent = await self.notifier.send_rejection(
                db, person, application, reason=reason, context=context
            )
        
        logger.info(f"[决定] 申请 {application.id} 的录用已撤回: {sanitize_for_log(reason)}")
        return Outcome(
            message="Offer withdrawn successfully",
            data={
                "applicationId": application.id,
                "applicationStatus": application.status,
                "emailSent": email_sent,
            },
        )
    
    async def withdraw_application(
        self,
        db: AsyncSession,
        application_id: str,
        context: AuditContext,
    ) -> Outcome:
        """撤回申请：先写删除审计，再级联删除申请及其测评、面试、决定"""
        application = await get_application_or_404(db, application_id)
        
        await log_record_deleted(db, application, context)
        await application_crud.delete_with_dependents(db, application)
        await db.commit()
        
        logger.info(f"[申请] 已撤回并删除: {application_id}")
        return Outcome(
            message="Application withdrawn and deleted",
            data={"applicationId": application_id},
        )
    
    # ========== 手动邮件 ==========
    
    async def send_email(
        self,
        db: AsyncSession,
        application_id: str,
        body: SendEmailRequest,
        context: AuditContext,
    ) -> Outcome:
        """
        按模板手动（重新）发送候选人邮件
        
        - gc_invitation：候选人尚未完成 GC
        - interview_invitation：使用当前未完成面试的面试官
        - offer_letter：ACCEPTED 且处于 AGREEMENT
        - rejection：可附带原因
        
        发送成功由分发器写入 EMAIL_SENT 审计；发送失败返回 502
        """
        application = await get_application_or_404(db, application_id)
        if application.status not in (Status.ACTIVE.value, Status.ACCEPTED.value):
            raise StageConflictError(
                f"Cannot send emails to inactive applications (current status: {application.status})"
            )
        
        template = body.template_name
        if not isinstance(template, str) or template not in MANUAL_EMAIL_TEMPLATES:
            raise BadRequestException(
                f"Invalid template. Must be one of: {', '.join(MANUAL_EMAIL_TEMPLATES)}"
            )
        
        person = await person_crud.get(db, application.person_id)
        if template == "gc_invitation":
            if person.general_competencies_completed:
                raise BadRequestException(
                    "Person has already completed general competencies assessment"
                )
            sent = await self.notifier.send_gc_invitation(db, person, application, context)
        elif template == "interview_invitation":
            interview = await interview_crud.get_open(db, application.id)
            if interview is None:
                raise BadRequestException("No active interview found - schedule an interview first")
            sent = await self._send_invitation(db, application, interview, interview.interviewer, context)
        elif template == "offer_letter":
            if (
                application.status != Status.ACCEPTED.value
                or application.current_stage != Stage.AGREEMENT.value
            ):
                raise StageConflictError(
                    "Offer letter can only be sent for accepted applications at agreement stage"
                )
            sent = await self.notifier.send_offer_letter(db, person, application, context)
        else:
            reason = sanitize_text(body.reason, 500) if isinstance(body.reason, str) else None
            sent = await self.notifier.send_rejection(
                db, person, application, reason=reason or None, context=context
            )
        
        if not sent:
            raise EmailDeliveryError()
        
        logger.info(f"[邮件] 员工手动发送: {template} -> 申请 {application.id}")
        return Outcome(
            message="Email sent successfully",
            data={"applicationId": application.id, "template": template, "emailSent": True},
        )


def get_staff_actions(
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> StaffActionService:
    """依赖注入：员工操作服务"""
    return StaffActionService(notifier)
