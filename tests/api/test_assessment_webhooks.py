"""
测评 Webhook 测试

通用能力（GC）成绩挂在候选人上；专业能力（SC）成绩挂在申请上
"""
import pytest
from sqlalchemy import select

from hireline.crud import assessment_crud
from hireline.models import Application, Assessment, Person
from hireline.models.base import utcnow
from tests.payloads import application_payload, gc_payload, sc_payload


async def submit_application(factory, **kwargs) -> dict:
    response = await factory.post_webhook("application", application_payload(**kwargs))
    assert response.status_code == 200
    return response.json()["data"]


async def assessments_for(db, application_id: str):
    result = await db.execute(select(Assessment).where(Assessment.application_id == application_id))
    return list(result.scalars().all())


# ========== 通用能力测评 ==========

@pytest.mark.asyncio
async def test_gc_pass_advances_all_waiting_applications(factory, mailbox):
    first = await submit_application(factory, position="Designer")
    second = await submit_application(factory, position="Analyst")
    person_id = first["personId"]
    mailbox.sent.clear()
    
    response = await factory.post_webhook("general-competencies", gc_payload(person_id, 82))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["passed"] is True
    assert data["score"] == 82
    assert data["threshold"] == 70
    assert data["applicationsAdvanced"] == 2
    assert sorted(data["applicationIds"]) == sorted([first["applicationId"], second["applicationId"]])
    
    for application_id in data["applicationIds"]:
        application = await factory.db.get(Application, application_id)
        assert application.current_stage == "SPECIALIZED_COMPETENCIES"
        assert application.status == "ACTIVE"
    
    person = await factory.db.get(Person, person_id)
    assert person.general_competencies_completed is True
    assert person.general_competencies_score == 82
    assert person.general_competencies_passed_at is not None
    assert mailbox.sent == []


@pytest.mark.asyncio
async def test_gc_score_at_threshold_passes(factory):
    submitted = await submit_application(factory)
    response = await factory.post_webhook(
        "general-competencies", gc_payload(submitted["personId"], 70)
    )
    assert response.json()["data"]["passed"] is True


@pytest.mark.asyncio
async def test_gc_fail_rejects_and_notifies(factory, mailbox):
    submitted = await submit_application(factory)
    mailbox.sent.clear()
    
    response = await factory.post_webhook(
        "general-competencies", gc_payload(submitted["personId"], "55")
    )
    data = response.json()["data"]
    assert data["passed"] is False
    assert data["applicationsRejected"] == 1
    
    application = await factory.db.get(Application, submitted["applicationId"])
    assert application.status == "REJECTED"
    assert application.current_stage == "GENERAL_COMPETENCIES"
    assert mailbox.templates() == ["rejection"]
    
    person = await factory.db.get(Person, submitted["personId"])
    assert person.general_competencies_completed is True
    assert person.general_competencies_passed_at is None


@pytest.mark.asyncio
async def test_gc_retake_replaces_previous_result(factory):
    submitted = await submit_application(factory)
    person_id = submitted["personId"]
    
    await factory.post_webhook("general-competencies", gc_payload(person_id, 40))
    response = await factory.post_webhook("general-competencies", gc_payload(person_id, 90))
    assert response.status_code == 200
    
    result = await factory.db.execute(
        select(Assessment).where(
            Assessment.person_id == person_id,
            Assessment.type == "GENERAL_COMPETENCIES",
        )
    )
    assessments = list(result.scalars().all())
    assert len(assessments) == 1
    assert assessments[0].score == 90


@pytest.mark.asyncio
async def test_gc_replay_is_idempotent(factory):
    submitted = await submit_application(factory)
    payload = gc_payload(submitted["personId"], 82)
    
    first = await factory.post_webhook("general-competencies", payload)
    second = await factory.post_webhook("general-competencies", payload)
    
    assessment_id = first.json()["data"]["assessmentId"]
    assert second.status_code == 200
    assert second.json()["assessmentId"] == assessment_id
    assert second.json()["data"]["duplicate"] is True


@pytest.mark.asyncio
async def test_gc_earlier_submission_replayed_after_retake(factory, mailbox):
    """重新测评后旧提交被重投：仍按重复处理，不覆盖新成绩也不拒绝申请"""
    submitted = await submit_application(factory)
    person_id = submitted["personId"]
    failed = gc_payload(person_id, 40)
    
    first = await factory.post_webhook("general-competencies", failed)
    assert first.json()["data"]["passed"] is False
    retake = await factory.post_webhook("general-competencies", gc_payload(person_id, 90))
    assert retake.json()["data"]["passed"] is True
    
    later = await submit_application(factory, position="Analyst")
    assert later["nextStep"] == "advance_to_specialized"
    mailbox.sent.clear()
    
    replay = await factory.post_webhook("general-competencies", failed)
    assert replay.status_code == 200
    assert replay.json()["data"] == {
        "assessmentId": first.json()["data"]["assessmentId"],
        "duplicate": True,
    }
    
    person = await factory.db.get(Person, person_id)
    assert person.general_competencies_score == 90
    assert person.general_competencies_passed_at is not None
    
    application = await factory.db.get(Application, later["applicationId"])
    assert application.status == "ACTIVE"
    assert application.current_stage == "SPECIALIZED_COMPETENCIES"
    assert mailbox.sent == []


@pytest.mark.asyncio
async def test_gc_fail_with_mail_outage_still_rejects(factory, mailbox):
    """邮件服务故障不影响 GC 未通过的拒绝迁移"""
    submitted = await submit_application(factory)
    mailbox.fail = True
    
    response = await factory.post_webhook(
        "general-competencies", gc_payload(submitted["personId"], 30)
    )
    assert response.status_code == 200
    assert response.json()["data"]["applicationsRejected"] == 1
    
    application = await factory.db.get(Application, submitted["applicationId"])
    assert application.status == "REJECTED"
    assert await factory.audit_logs(submitted["applicationId"], action_type="STATUS_CHANGE")
    sent = await factory.audit_logs(submitted["applicationId"], action_type="EMAIL_SENT")
    assert sorted(log.details["template"] for log in sent) == ["application_received", "gc_invitation"]


@pytest.mark.asyncio
async def test_gc_unknown_person(factory):
    response = await factory.post_webhook(
        "general-competencies", gc_payload("00000000-0000-4000-8000-000000000000", 82)
    )
    assert response.status_code == 404
    assert response.json()["error"] == "Person not found"


@pytest.mark.asyncio
async def test_gc_non_numeric_score(factory):
    submitted = await submit_application(factory)
    response = await factory.post_webhook(
        "general-competencies", gc_payload(submitted["personId"], "n/a")
    )
    assert response.status_code == 400


# ========== 专业能力测评 ==========

@pytest.mark.asyncio
async def test_sc_score_at_threshold_advances_to_interview(factory):
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    
    response = await factory.post_webhook("specialized-competencies", sc_payload(application.id, 75))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["passed"] is True
    assert data["currentStage"] == "INTERVIEW"
    
    stage_logs = await factory.audit_logs(application.id, action_type="STAGE_CHANGE")
    assert stage_logs[-1].details["assessmentId"] == data["assessmentId"]
    assert stage_logs[-1].details["score"] == 75


@pytest.mark.asyncio
async def test_sc_fail_rejects_without_moving_stage(factory, mailbox):
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    
    response = await factory.post_webhook("specialized-competencies", sc_payload(application.id, 74.5))
    data = response.json()["data"]
    assert data["passed"] is False
    assert data["status"] == "REJECTED"
    assert data["currentStage"] == "SPECIALIZED_COMPETENCIES"
    assert mailbox.templates() == ["rejection"]


@pytest.mark.asyncio
async def test_sc_wrong_stage_writes_nothing(factory):
    application = await factory.create_application(current_stage="INTERVIEW")
    application_id = application.id
    
    response = await factory.post_webhook("specialized-competencies", sc_payload(application_id, 90))
    assert response.status_code == 400
    assert "not awaiting" in response.json()["error"]
    assert await assessments_for(factory.db, application_id) == []


@pytest.mark.asyncio
async def test_sc_rejected_application_conflicts(factory):
    application = await factory.create_application(
        current_stage="SPECIALIZED_COMPETENCIES", status="REJECTED"
    )
    response = await factory.post_webhook("specialized-competencies", sc_payload(application.id, 90))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_sc_replay_returns_same_assessment(factory):
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    payload = sc_payload(application.id, 80)
    
    first = await factory.post_webhook("specialized-competencies", payload)
    second = await factory.post_webhook("specialized-competencies", payload)
    
    assert second.status_code == 200
    assert second.json()["assessmentId"] == first.json()["data"]["assessmentId"]
    assert len(await assessments_for(factory.db, application.id)) == 1


@pytest.mark.asyncio
async def test_sc_without_score_awaits_review(factory, mailbox):
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    
    response = await factory.post_webhook("specialized-competencies", sc_payload(application.id))
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Specialised competency submission recorded - awaiting admin review"
    assert body["data"]["passed"] is None
    assert body["data"]["currentStage"] == "SPECIALIZED_COMPETENCIES"
    
    # 审核前再次提交：更新同一条记录
    again = await factory.post_webhook("specialized-competencies", sc_payload(application.id))
    assert again.json()["data"]["assessmentId"] == body["data"]["assessmentId"]
    
    assessments = await assessments_for(factory.db, application.id)
    assert len(assessments) == 1
    assert assessments[0].passed is None
    assert assessments[0].raw_data["submissionUrls"][0]["url"].endswith("work.pdf")
    assert mailbox.sent == []


@pytest.mark.asyncio
async def test_sc_resolves_application_by_respondent(factory):
    person = await factory.create_person(respondent_id="resp-42")
    application = await factory.create_application(
        person=person, current_stage="GENERAL_COMPETENCIES"
    )
    
    response = await factory.post_webhook(
        "specialized-competencies", sc_payload(score=88, respondent_id="resp-42")
    )
    assert response.status_code == 200
    assert response.json()["data"]["applicationId"] == application.id


@pytest.mark.asyncio
async def test_sc_unknown_respondent(factory):
    response = await factory.post_webhook(
        "specialized-competencies", sc_payload(score=88, respondent_id="nobody")
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_sc_unknown_application(factory):
    response = await factory.post_webhook(
        "specialized-competencies", sc_payload("00000000-0000-4000-8000-000000000000", 88)
    )
    assert response.status_code == 404
    assert response.json()["error"] == "Application not found"


@pytest.mark.asyncio
async def test_sc_earlier_submission_replayed_after_review(factory):
    """审核前被覆盖的旧提交在审核后重投：不再新建测评"""
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    application_id = application.id
    original = sc_payload(application_id)
    
    first = await factory.post_webhook("specialized-competencies", original)
    assessment_id = first.json()["data"]["assessmentId"]
    again = await factory.post_webhook("specialized-competencies", sc_payload(application_id))
    assert again.json()["data"]["assessmentId"] == assessment_id
    
    assessment = await factory.db.get(Assessment, assessment_id)
    await assessment_crud.update(
        factory.db, db_obj=assessment, obj_in={"passed": True, "reviewed_at": utcnow()}
    )
    await factory.db.commit()
    
    replay = await factory.post_webhook("specialized-competencies", original)
    assert replay.status_code == 200
    assert replay.json()["data"] == {"assessmentId": assessment_id, "duplicate": True}
    
    assessments = await assessments_for(factory.db, application_id)
    assert len(assessments) == 1
    assert assessments[0].passed is True


@pytest.mark.asyncio
async def test_sc_fail_with_mail_outage_still_rejects(factory, mailbox):
    """邮件服务故障不影响 SC 未通过的拒绝迁移"""
    application = await factory.create_application(current_stage="SPECIALIZED_COMPETENCIES")
    application_id = application.id
    mailbox.fail = True
    
    response = await factory.post_webhook("specialized-competencies", sc_payload(application_id, 50))
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "REJECTED"
    
    await factory.reload(application)
    assert application.status == "REJECTED"
    assert await factory.audit_logs(application_id, action_type="STATUS_CHANGE")
    assert await factory.audit_logs(application_id, action_type="EMAIL_SENT") == []
