"""
招聘流程状态机

阶段只能沿 APPLICATION -> GENERAL_COMPETENCIES -> SPECIALIZED_COMPETENCIES
-> INTERVIEW -> AGREEMENT -> SIGNED 单向前进；拒绝只改状态，不改阶段。

每次迁移配一条审计记录，并在发送通知前提交事务：
邮件失败不会回滚已提交的迁移。
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.core.config import Settings, get_settings
from hireline.core.exceptions import NotFoundException, StageConflictError
from hireline.core.security import sanitize_for_log
from hireline.crud import application_crud, assessment_crud, person_crud, webhook_receipt_crud
from hireline.models import Application, AssessmentType, Person, Stage, Status
from hireline.models.base import utcnow
from hireline.schemas.webhook import TallyWebhookPayload
from hireline.webhooks.extractor import FieldExtractor, PersonData, get_field_extractor
from .audit import (
    AuditContext,
    SYSTEM,
    log_application_created,
    log_assessment_completed,
    log_person_created,
    log_stage_change,
    log_status_change,
    log_webhook_received,
)
from .notifications import NotificationDispatcher, get_notifier

DUPLICATE_MESSAGE = "Duplicate submission - already processed"

# 回执中的 Webhook 类型
APPLICATION_WEBHOOK = "application"
GC_WEBHOOK = "general-competencies"
SC_WEBHOOK = "specialized-competencies"
AGREEMENT_WEBHOOK = "agreement"

# 等待 GC 结果的申请所处阶段
AWAITING_GC_STAGES = (Stage.APPLICATION.value, Stage.GENERAL_COMPETENCIES.value)
# 可以接收 SC 结果的申请所处阶段
SC_ELIGIBLE_STAGES = (Stage.GENERAL_COMPETENCIES.value, Stage.SPECIALIZED_COMPETENCIES.value)


@dataclass
class Outcome:
    """
    一次处理的结果
    
    data 放在响应的 data 字段；extra 平铺到响应顶层
    """
    message: str
    data: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def _duplicate(key: str, entity_id: Optional[str], submission_id: str, tag: str) -> Outcome:
    logger.info(f"{tag} 重复提交已忽略: {sanitize_for_log(submission_id)}")
    return Outcome(
        message=DUPLICATE_MESSAGE,
        data={key: entity_id, "duplicate": True},
        extra={key: entity_id},
    )


async def find_replay(
    db: AsyncSession,
    webhook: str,
    submission_id: str,
    key: str,
    tag: str,
) -> Optional[Outcome]:
    """
    幂等检查：该提交已有回执时返回重复响应
    
    回执独立于业务记录保存，测评被替换或申请被删除后重投依然识别为重复
    """
    receipt = await webhook_receipt_crud.get_by_submission(db, webhook, submission_id)
    if receipt is None:
        return None
    return _duplicate(key, receipt.entity_id, submission_id, tag)


# ========== 迁移原语 ==========

async def advance_stage(
    db: AsyncSession,
    application: Application,
    to_stage: Stage,
    context: AuditContext = SYSTEM,
    reason: Optional[str] = None,
    **details: Any,
) -> bool:
    """
    推进阶段并写入一条 STAGE_CHANGE 审计
    
    Returns:
        阶段是否发生变化
    
    Raises:
        StageConflictError: 目标阶段在当前阶段之前
    """
    from_stage = Stage(application.current_stage)
    if to_stage.order < from_stage.order:
        raise StageConflictError(
            f"Cannot move application back from {from_stage.value} to {to_stage.value}"
        )
    if to_stage == from_stage:
        return False
    
    await application_crud.update(db, db_obj=application, obj_in={"current_stage": to_stage.value})
    await log_stage_change(
        db, application, from_stage.value, to_stage.value, context, reason=reason, **details
    )
    return True


async def change_status(
    db: AsyncSession,
    application: Application,
    to_status: Status,
    context: AuditContext = SYSTEM,
    reason: Optional[str] = None,
    **details: Any,
) -> None:
    """修改状态并写入一条 STATUS_CHANGE 审计（阶段保持不变）"""
    from_status = application.status
    await application_crud.update(db, db_obj=application, obj_in={"status": to_status.value})
    await log_status_change(
        db, application, from_status, to_status.value, context, reason=reason, **details
    )


class PipelineService:
    """Webhook 驱动的流程迁移"""
    
    def __init__(
        self,
        extractor: FieldExtractor,
        notifier: NotificationDispatcher,
        settings: Settings,
    ):
        self.extractor = extractor
        self.notifier = notifier
        self.settings = settings
    
    # ========== 新投递 ==========
    
    async def _find_or_create_person(
        self,
        db: AsyncSession,
        data: PersonData
    ) -> Tuple[Person, bool]:
        """按邮箱匹配候选人，不存在则创建；已存在时补充空缺的资料"""
        person = await person_crud.get_by_email(db, data.email)
        if person is None:
            person = await person_crud.create(db, obj_in=asdict(data))
            return person, True
        
        updates = {
            name: value
            for name, value in asdict(data).items()
            if value is not None and getattr(person, name) is None
        }
        if data.respondent_id:
            updates["respondent_id"] = data.respondent_id
        if updates:
            person = await person_crud.update(db, db_obj=person, obj_in=updates)
        return person, False
    
    async def _has_passed_gc(self, db: AsyncSession, person: Person) -> bool:
        gc = await assessment_crud.get_gc_for_person(db, person.id)
        if gc is not None and gc.passed is not None:
            return gc.passed
        if person.general_competencies_score is not None:
            return person.general_competencies_score >= self.settings.gc_threshold
        return person.general_competencies_passed_at is not None
    
    async def process_application(
        self,
        db: AsyncSession,
        payload: TallyWebhookPayload,
        context: AuditContext = SYSTEM,
    ) -> Outcome:
        """
        处理新投递
        
        - 未完成 GC：进入 GENERAL_COMPETENCIES，发送 GC 邀请（同一候选人只发一次）
        - 已通过 GC：直接进入 SPECIALIZED_COMPETENCIES
        - 未通过 GC：拒绝，阶段不变
        """
        submission = payload.data
        replay = await find_replay(
            db, APPLICATION_WEBHOOK, submission.submission_id, "applicationId", "[Webhook]"
        )
        if replay:
            return replay
        
        person_data = self.extractor.extract_person_data(payload)
        application_data = self.extractor.extract_application_data(payload)
        
        # 同一新邮箱的两份投递并发到达时，后写入候选人的一方会撞上邮箱唯一约束；
        # 回滚后重新匹配候选人（此时已存在）并重试一次
        for attempt in range(2):
            try:
                person, person_created = await self._find_or_create_person(db, person_data)
                application = await application_crud.create(
                    db, obj_in={"person_id": person.id, **asdict(application_data)}
                )
                await webhook_receipt_crud.record(
                    db, APPLICATION_WEBHOOK, submission.submission_id, application.id
                )
                break
            except IntegrityError:
                await db.rollback()
                replay = await find_replay(
                    db, APPLICATION_WEBHOOK, submission.submission_id, "applicationId", "[Webhook]"
                )
                if replay:
                    return replay
                if attempt:
                    raise
                logger.warning(
                    f"[Webhook] 候选人写入冲突，重试: {sanitize_for_log(person_data.email)}"
                )
        
        if person_created:
            await log_person_created(db, person, context)
        await log_webhook_received(
            db,
            "application",
            person_id=person.id,
            application_id=application.id,
            context=context,
            submissionId=submission.submission_id,
            formId=submission.form_id,
            formName=submission.form_name,
            eventId=payload.event_id,
            personName=person.full_name,
            personCreated=person_created,
            position=application.position,
        )
        await log_application_created(
            db, application, context,
            submissionId=submission.submission_id,
            formId=submission.form_id,
            personCreated=person_created,
        )
        
        send_gc_invite = False
        if not person.general_competencies_completed:
            await advance_stage(
                db, application, Stage.GENERAL_COMPETENCIES, context,
                reason="Awaiting general competencies assessment",
            )
            others = await application_crud.count_other_active_at_stage(
                db, person.id, Stage.GENERAL_COMPETENCIES.value, exclude_id=application.id
            )
            send_gc_invite = others == 0
            next_step = "send_gc_assessment"
            message = "Application received. General competencies assessment pending."
        elif await self._has_passed_gc(db, person):
            await advance_stage(
                db, application, Stage.SPECIALIZED_COMPETENCIES, context,
                reason="Auto-advanced: person already passed general competencies",
                assessmentType=AssessmentType.GENERAL_COMPETENCIES.value,
                score=person.general_competencies_score,
                passed=True,
                threshold=self.settings.gc_threshold,
            )
            next_step = "advance_to_specialized"
            message = "Application received. Advancing to specialised competencies stage."
        else:
            await change_status(
                db, application, Status.REJECTED, context,
                reason="General competencies not passed",
                assessmentType=AssessmentType.GENERAL_COMPETENCIES.value,
                score=person.general_competencies_score,
                passed=False,
                threshold=self.settings.gc_threshold,
            )
            next_step = "rejected_gc_failed"
            message = "Application received. General competencies not passed - application rejected."
        
        await db.commit()
        
        emails: Dict[str, bool] = {}
        if application.status == Status.REJECTED.value:
            emails["rejection"] = await self.notifier.send_rejection(db, person, application, context=context)
        else:
            emails["applicationReceived"] = await self.notifier.send_application_received(
                db, person, application, context
            )
        if send_gc_invite:
            emails["gcInvitation"] = await self.notifier.send_gc_invitation(db, person, application, context)
        elif next_step == "send_gc_assessment":
            logger.info(f"[Webhook] 候选人 {person.id} 已有待完成的 GC 邀请，不再重复发送")
        
        logger.info(
            f"[Webhook] 投递已处理: {application.id} ({sanitize_for_log(person.email)}) -> {next_step}"
        )
        return Outcome(
            message=message,
            data={
                "applicationId": application.id,
                "personId": person.id,
                "personCreated": person_created,
                "position": application.position,
                "currentStage": application.current_stage,
                "status": application.status,
                "nextStep": next_step,
                "missingFields": application.missing_fields,
                "emailsSent": emails,
            },
        )
    
    # ========== 通用能力测评 ==========
    
    async def process_gc_result(
        self,
        db: AsyncSession,
        payload: TallyWebhookPayload,
        context: AuditContext = SYSTEM,
    ) -> Outcome:
        """
        处理 GC 测评结果
        
        成绩记录在候选人上；该候选人所有等待 GC 的进行中申请一并推进或拒绝
        """
        submission = payload.data
        replay = await find_replay(
            db, GC_WEBHOOK, submission.submission_id, "assessmentId", "[Webhook GC]"
        )
        if replay:
            return replay
        
        data = self.extractor.extract_gc_assessment_data(payload)
        
        person = await person_crud.get(db, data.person_id)
        if person is None:
            logger.error(f"[Webhook GC] 候选人不存在: {sanitize_for_log(data.person_id)}")
            raise NotFoundException("Person not found")
        
        threshold = self.settings.gc_threshold
        passed = data.score >= threshold
        now = utcnow()
        
        try:
            # 重新测评时替换旧记录
            await assessment_crud.delete_gc_for_person(db, person.id)
            assessment = await assessment_crud.create(db, obj_in={
                "person_id": person.id,
                "type": AssessmentType.GENERAL_COMPETENCIES.value,
                "score": data.score,
                "passed": passed,
                "threshold": threshold,
                "culture_score": data.culture_score,
                "situational_score": data.situational_score,
                "digital_score": data.digital_score,
                "completed_at": now,
                "raw_data": data.raw_data,
                "submission_id": data.submission_id,
            })
            await webhook_receipt_crud.record(db, GC_WEBHOOK, submission.submission_id, assessment.id)
        except IntegrityError:
            await db.rollback()
            replay = await find_replay(
                db, GC_WEBHOOK, submission.submission_id, "assessmentId", "[Webhook GC]"
            )
            if replay is None:
                raise
            return replay
        
        await person_crud.update(db, db_obj=person, obj_in={
            "general_competencies_completed": True,
            "general_competencies_score": data.score,
            "general_competencies_passed_at": now if passed else None,
        })
        
        await log_webhook_received(
            db,
            "general-competencies",
            person_id=person.id,
            context=context,
            submissionId=submission.submission_id,
            formId=submission.form_id,
            formName=submission.form_name,
            eventId=payload.event_id,
            score=data.score,
        )
        await log_assessment_completed(
            db,
            person_id=person.id,
            application_id=None,
            assessment_type="General Competencies",
            score=data.score,
            passed=passed,
            context=context,
            assessmentId=assessment.id,
            threshold=threshold,
        )
        
        awaiting = await application_crud.get_active_by_person(db, person.id, AWAITING_GC_STAGES)
        scale = self.settings.assessment_scale
        for application in awaiting:
            details = {
                "assessmentType": AssessmentType.GENERAL_COMPETENCIES.value,
                "score": data.score,
                "passed": passed,
                "threshold": threshold,
            }
            if passed:
                await advance_stage(
                    db, application, Stage.SPECIALIZED_COMPETENCIES, context,
                    reason=f"General competencies passed with score {data.score}/{scale} (threshold: {threshold})",
                    **details,
                )
            else:
                await change_status(
                    db, application, Status.REJECTED, context,
                    reason=f"General competencies failed with score {data.score}/{scale} (threshold: {threshold})",
                    **details,
                )
        
        await db.commit()
        
        if not passed:
            for application in awaiting:
                await self.notifier.send_rejection(db, person, application, context=context)
        
        application_ids = [a.id for a in awaiting]
        logger.info(
            f"[Webhook GC] 测评已处理: 候选人 {person.id}, 分数 {data.score}/{scale} "
            f"(阈值 {threshold}), 通过: {passed}, 涉及申请: {len(application_ids)}"
        )
        return Outcome(
            message=(
                "General competencies passed - applications advanced"
                if passed else
                "General competencies not passed - applications rejected"
            ),
            data={
                "assessmentId": assessment.id,
                "personId": person.id,
                "score": data.score,
                "threshold": threshold,
                "passed": passed,
                "applicationsAdvanced": len(application_ids) if passed else 0,
                "applicationsRejected": 0 if passed else len(application_ids),
                "applicationIds": application_ids,
            },
        )
    
    # ========== 专业能力测评 ==========
    
    async def _resolve_sc_application(
        self,
        db: AsyncSession,
        application_id: Optional[str],
        respondent_id: Optional[str],
    ) -> Application:
        """表单缺少 applicationId 时按答题人ID反查进行中的申请"""
        if application_id:
            application = await application_crud.get(db, application_id)
            if application is None:
                logger.error(f"[Webhook SC] 申请不存在: {sanitize_for_log(application_id)}")
                raise NotFoundException("Application not found")
            return application
        
        logger.info(f"[Webhook SC] 缺少 applicationId，按答题人 {sanitize_for_log(respondent_id)} 查找")
        person = await person_crud.get_by_respondent_id(db, respondent_id) if respondent_id else None
        if person is None:
            raise NotFoundException("Candidate not found - no person matched this respondent ID")
        
        candidates = await application_crud.get_active_by_person(db, person.id, SC_ELIGIBLE_STAGES)
        if not candidates:
            raise NotFoundException(
                "No active application awaiting a specialised competency assessment for this candidate"
            )
        if len(candidates) > 1:
            logger.warning(f"[Webhook SC] 候选人 {person.id} 有多个待测评申请，使用最新的一条")
        return candidates[0]
    
    async def process_sc_result(
        self,
        db: AsyncSession,
        payload: TallyWebhookPayload,
        context: AuditContext = SYSTEM,
    ) -> Outcome:
        """
        处理 SC 测评结果
        
        - 有分数：score >= 阈值进入 INTERVIEW，否则拒绝
        - 无分数：记为待人工审核；审核前重复提交会更新同一条记录
        """
        submission = payload.data
        replay = await find_replay(
            db, SC_WEBHOOK, submission.submission_id, "assessmentId", "[Webhook SC]"
        )
        if replay:
            return replay
        
        data = self.extractor.extract_sc_assessment_data(payload)
        application = await self._resolve_sc_application(db, data.application_id, data.respondent_id)
        
        if (
            application.current_stage not in SC_ELIGIBLE_STAGES
            or application.status != Status.ACTIVE.value
        ):
            logger.error(
                f"[Webhook SC] 申请 {application.id} 状态不符: "
                f"{application.current_stage}/{application.status}"
            )
            raise StageConflictError(
                "Application is not awaiting a specialised competency assessment "
                f"(stage: {application.current_stage}, status: {application.status})"
            )
        
        now = utcnow()
        values = {
            "person_id": application.person_id,
            "application_id": application.id,
            "type": AssessmentType.SPECIALIZED_COMPETENCIES.value,
            "specialised_competency_id": data.specialised_competency_id,
            "completed_at": now,
            "raw_data": data.raw_data,
            "submission_id": data.submission_id,
        }
        
        threshold = self.settings.sc_threshold
        passed: Optional[bool] = None
        try:
            if data.score is None:
                assessment = await assessment_crud.get_unreviewed_sc(db, application.id)
                if assessment is not None:
                    logger.info(f"[Webhook SC] 审核前重新提交，更新测评 {assessment.id}")
                    assessment = await assessment_crud.update(db, db_obj=assessment, obj_in=values)
                else:
                    assessment = await assessment_crud.create(db, obj_in=values)
            else:
                passed = data.score >= threshold
                assessment = await assessment_crud.create(db, obj_in={
                    **values,
                    "score": data.score,
                    "passed": passed,
                    "threshold": threshold,
                })
            await webhook_receipt_crud.record(db, SC_WEBHOOK, submission.submission_id, assessment.id)
        except IntegrityError:
            await db.rollback()
            replay = await find_replay(
                db, SC_WEBHOOK, submission.submission_id, "assessmentId", "[Webhook SC]"
            )
            if replay is None:
                raise
            return replay
        
        await log_webhook_received(
            db,
            "specialized-competencies",
            person_id=application.person_id,
            application_id=application.id,
            context=context,
            submissionId=submission.submission_id,
            formId=submission.form_id,
            formName=submission.form_name,
            eventId=payload.event_id,
            specialisedCompetencyId=data.specialised_competency_id,
            position=application.position,
        )
        await log_assessment_completed(
            db,
            person_id=application.person_id,
            application_id=application.id,
            assessment_type="Specialised Competencies",
            score=data.score,
            passed=passed,
            context=context,
            assessmentId=assessment.id,
            threshold=threshold if passed is not None else None,
        )
        
        if passed is None:
            await db.commit()
            logger.info(f"[Webhook SC] 已记录待审核提交: 申请 {application.id}, 测评 {assessment.id}")
            return Outcome(
                message="Specialised competency submission recorded - awaiting admin review",
                data={
                    "assessmentId": assessment.id,
                    "applicationId": application.id,
                    "specialisedCompetencyId": data.specialised_competency_id,
                    "passed": None,
                    "currentStage": application.current_stage,
                    "status": application.status,
                },
            )
        
        details = {
            "assessmentType": AssessmentType.SPECIALIZED_COMPETENCIES.value,
            "assessmentId": assessment.id,
            "score": data.score,
            "passed": passed,
            "threshold": threshold,
        }
        scale = self.settings.assessment_scale
        if passed:
            await advance_stage(
                db, application, Stage.INTERVIEW, context,
                reason=f"Specialised competencies passed with score {data.score}/{scale} (threshold: {threshold})",
                **details,
            )
        else:
            await change_status(
                db, application, Status.REJECTED, context,
                reason=f"Specialised competencies failed with score {data.score}/{scale} (threshold: {threshold})",
                **details,
            )
        
        await db.commit()
        
        if not passed:
            person = await person_crud.get(db, application.person_id)
            await self.notifier.send_rejection(db, person, application, context=context)
        
        logger.info(
            f"[Webhook SC] 测评已处理: 申请 {application.id}, 分数 {data.score}/{scale} "
            f"(阈值 {threshold}), 通过: {passed}"
        )
        return Outcome(
            message=(
                "Specialised competencies passed - application advanced to interview"
                if passed else
                "Specialised competencies not passed - application rejected"
            ),
            data={
                "assessmentId": assessment.id,
                "applicationId": application.id,
                "score": data.score,
                "threshold": threshold,
                "passed": passed,
                "currentStage": application.current_stage,
                "status": application.status,
            },
        )
    
    # ========== 协议签署 ==========
    
    async def process_agreement(
        self,
        db: AsyncSession,
        payload: TallyWebhookPayload,
        context: AuditContext = SYSTEM,
    ) -> Outcome:
        """处理协议签署：ACCEPTED 且处于 AGREEMENT 的申请进入 SIGNED"""
        submission = payload.data
        replay = await find_replay(
            db, AGREEMENT_WEBHOOK, submission.submission_id, "applicationId", "[Webhook Agreement]"
        )
        if replay:
            return replay
        
        data = self.extractor.extract_agreement_data(payload)
        application = await application_crud.get(db, data.application_id)
        if application is None:
            logger.error(f"[Webhook Agreement] 申请不存在: {sanitize_for_log(data.application_id)}")
            raise NotFoundException("Application not found")
        
        person_name = f"{data.legal_first_name} {data.legal_last_name}"
        receipt = dict(
            submissionId=submission.submission_id,
            formId=submission.form_id,
            formName=submission.form_name,
            eventId=payload.event_id,
            personName=person_name,
            position=application.position,
        )
        
        # 录用已撤回：返回 200 避免表单平台重试
        if application.status == Status.REJECTED.value:
            try:
                await webhook_receipt_crud.record(
                    db, AGREEMENT_WEBHOOK, submission.submission_id, application.id
                )
            except IntegrityError:
                await db.rollback()
                replay = await find_replay(
                    db, AGREEMENT_WEBHOOK, submission.submission_id, "applicationId", "[Webhook Agreement]"
                )
                if replay is None:
                    raise
                return replay
            await log_webhook_received(
                db, "agreement",
                person_id=application.person_id,
                application_id=application.id,
                context=context,
                ignored=True,
                **receipt,
            )
            logger.info(f"[Webhook Agreement] 申请 {application.id} 的录用已撤回，忽略签署")
            return Outcome(
                message="Application offer was withdrawn - signing ignored",
                data={"applicationId": application.id, "ignored": True},
            )
        
        if application.status != Status.ACCEPTED.value:
            raise StageConflictError(
                f"Application is not in ACCEPTED status (current: {application.status})"
            )
        if application.current_stage != Stage.AGREEMENT.value:
            raise StageConflictError(
                f"Application is not at AGREEMENT stage (current: {application.current_stage})"
            )
        
        agreement = asdict(data)
        agreement.pop("submission_id")
        try:
            await application_crud.update(db, db_obj=application, obj_in={
                "agreement_submission_id": data.submission_id,
                "agreement_signed_at": utcnow(),
                "agreement_data": agreement,
            })
            await webhook_receipt_crud.record(
                db, AGREEMENT_WEBHOOK, submission.submission_id, application.id
            )
        except IntegrityError:
            await db.rollback()
            replay = await find_replay(
                db, AGREEMENT_WEBHOOK, submission.submission_id, "applicationId", "[Webhook Agreement]"
            )
            if replay is None:
                raise
            return replay
        
        await log_webhook_received(
            db, "agreement",
            person_id=application.person_id,
            application_id=application.id,
            context=context,
            **receipt,
        )
        await advance_stage(
            db, application, Stage.SIGNED, context,
            reason=f"Auto-advanced: agreement signed by {person_name}",
        )
        await db.commit()
        
        logger.info(f"[Webhook Agreement] 协议已签署: 申请 {application.id}")
        return Outcome(
            message="Agreement signed successfully - application advanced to SIGNED",
            data={
                "applicationId": application.id,
                "personId": application.person_id,
                "currentStage": application.current_stage,
            },
        )


def get_pipeline(
    extractor: FieldExtractor = Depends(get_field_extractor),
    notifier: NotificationDispatcher = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> PipelineService:
    """依赖注入：流程服务"""
    return PipelineService(extractor, notifier, settings)
