"""
投递表单 Webhook 测试

验证 守卫 → 提取 → 状态机 → 审计 → 邮件 整条链路
"""
import json

import pytest
from sqlalchemy import func, select

from hireline.crud import person_crud
from hireline.models import Application, Person
from hireline.models.base import utcnow
from hireline.webhooks.verify import SIGNATURE_HEADER, compute_signature
from tests.conftest import WEBHOOK_SECRET
from tests.payloads import application_payload


async def count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar()


@pytest.mark.asyncio
async def test_new_candidate_awaits_gc(factory, mailbox):
    """新候选人：进入 GC 阶段并收到测评邀请"""
    response = await factory.post_webhook(
        "application", application_payload(email="New.Person@Example.com")
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["personCreated"] is True
    assert data["currentStage"] == "GENERAL_COMPETENCIES"
    assert data["status"] == "ACTIVE"
    assert data["nextStep"] == "send_gc_assessment"
    assert data["missingFields"] == []
    assert data["emailsSent"] == {"applicationReceived": True, "gcInvitation": True}
    
    # 邮箱统一小写保存
    person = await factory.db.get(Person, data["personId"])
    assert person.email == "new.person@example.com"
    
    assert mailbox.templates() == ["application_received", "gc_invitation"]
    assert "who=" in mailbox.sent[1].html
    
    logs = await factory.audit_logs(data["applicationId"])
    actions = [log.action_type for log in logs]
    assert "STAGE_CHANGE" in actions
    assert actions.count("EMAIL_SENT") == 2
    stage_log = next(log for log in logs if log.action_type == "STAGE_CHANGE")
    assert stage_log.details["from"] == "APPLICATION"
    assert stage_log.details["to"] == "GENERAL_COMPETENCIES"


@pytest.mark.asyncio
async def test_gc_invitation_sent_once_per_candidate(factory, mailbox):
    """同一候选人第二次投递不再重复发送 GC 邀请"""
    first = await factory.post_webhook("application", application_payload(position="Designer"))
    second = await factory.post_webhook("application", application_payload(position="Analyst"))
    
    assert first.status_code == 200 and second.status_code == 200
    assert second.json()["data"]["personCreated"] is False
    assert second.json()["data"]["personId"] == first.json()["data"]["personId"]
    assert second.json()["data"]["emailsSent"] == {"applicationReceived": True}
    assert mailbox.templates().count("gc_invitation") == 1
    assert await count(factory.db, Person) == 1
    assert await count(factory.db, Application) == 2


@pytest.mark.asyncio
async def test_candidate_who_passed_gc_skips_ahead(factory):
    """已通过 GC 的候选人直接进入专业能力阶段"""
    await factory.create_person(
        email="ada@example.com",
        general_competencies_completed=True,
        general_competencies_score=85,
        general_competencies_passed_at=utcnow(),
    )
    
    response = await factory.post_webhook("application", application_payload())
    data = response.json()["data"]
    assert data["personCreated"] is False
    assert data["currentStage"] == "SPECIALIZED_COMPETENCIES"
    assert data["nextStep"] == "advance_to_specialized"


@pytest.mark.asyncio
async def test_candidate_who_failed_gc_is_rejected(factory, mailbox):
    """未通过 GC 的候选人：拒绝，阶段不变"""
    await factory.create_person(
        email="ada@example.com",
        general_competencies_completed=True,
        general_competencies_score=50,
    )
    
    response = await factory.post_webhook("application", application_payload())
    data = response.json()["data"]
    assert data["status"] == "REJECTED"
    assert data["currentStage"] == "APPLICATION"
    assert data["nextStep"] == "rejected_gc_failed"
    assert mailbox.templates() == ["rejection"]
    
    logs = await factory.audit_logs(data["applicationId"], action_type="STATUS_CHANGE")
    assert len(logs) == 1
    assert logs[0].details["passed"] is False
    assert logs[0].details["stage"] == "APPLICATION"


@pytest.mark.asyncio
async def test_replayed_submission_is_idempotent(factory):
    """同一 submissionId 重放返回已有申请，不产生新数据"""
    payload = application_payload()
    first = await factory.post_webhook("application", payload)
    application_id = first.json()["data"]["applicationId"]
    log_count = len(await factory.audit_logs(application_id))
    
    second = await factory.post_webhook("application", payload)
    assert second.status_code == 200
    body = second.json()
    assert body["message"] == "Duplicate submission - already processed"
    assert body["applicationId"] == application_id
    assert body["data"] == {"applicationId": application_id, "duplicate": True}
    
    assert await count(factory.db, Application) == 1
    assert len(await factory.audit_logs(application_id)) == log_count


@pytest.mark.asyncio
async def test_replay_after_withdrawal_is_still_duplicate(factory):
    """申请撤回删除后重投原提交：不会重新建出申请"""
    admin = await factory.create_admin()
    headers = factory.auth_headers(admin)
    payload = application_payload()
    first = await factory.post_webhook("application", payload)
    application_id = first.json()["data"]["applicationId"]
    
    deleted = await factory.client.delete(f"/api/v1/applications/{application_id}", headers=headers)
    assert deleted.status_code == 200
    
    replay = await factory.post_webhook("application", payload)
    assert replay.status_code == 200
    assert replay.json()["data"] == {"applicationId": application_id, "duplicate": True}
    assert await count(factory.db, Application) == 0


@pytest.mark.asyncio
async def test_person_created_concurrently_is_matched_on_retry(factory, monkeypatch):
    """同一新邮箱的另一份投递先写入了候选人：撞上邮箱唯一约束后重新匹配，不返回 500"""
    person = await factory.create_person(email="ada@example.com")
    person_id = person.id
    lookup = person_crud.get_by_email
    calls = []
    
    async def lookup_before_other_commit(db, email):
        calls.append(email)
        if len(calls) == 1:
            return None
        return await lookup(db, email)
    
    monkeypatch.setattr(person_crud, "get_by_email", lookup_before_other_commit)
    
    response = await factory.post_webhook("application", application_payload())
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["personId"] == person_id
    assert data["personCreated"] is False
    assert calls == ["ada@example.com", "ada@example.com"]
    
    assert await count(factory.db, Person) == 1
    assert await count(factory.db, Application) == 1


@pytest.mark.asyncio
async def test_missing_materials_reported(factory):
    """勾选了简历但未上传：记入 missingFields"""
    response = await factory.post_webhook("application", application_payload(with_resume=False))
    assert response.json()["data"]["missingFields"] == ["Resume"]


@pytest.mark.asyncio
async def test_mail_failure_does_not_roll_back(factory, mailbox):
    """邮件服务故障：迁移与审计照常提交，只是没有 EMAIL_SENT 记录"""
    mailbox.fail = True
    
    response = await factory.post_webhook("application", application_payload())
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["emailsSent"] == {"applicationReceived": False, "gcInvitation": False}
    
    application = await factory.db.get(Application, data["applicationId"])
    assert application.current_stage == "GENERAL_COMPETENCIES"
    assert await factory.audit_logs(data["applicationId"], action_type="STAGE_CHANGE")
    assert await factory.audit_logs(data["applicationId"], action_type="EMAIL_SENT") == []


@pytest.mark.asyncio
async def test_missing_required_field_rejected(factory):
    payload = application_payload()
    payload["data"]["fields"] = [f for f in payload["data"]["fields"] if f["label"] != "Email"]
    
    response = await factory.post_webhook("application", payload)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Email is required but missing from webhook payload"
    assert "X-RateLimit-Limit" in response.headers
    assert await count(factory.db, Application) == 0


# ========== 守卫 ==========

@pytest.mark.asyncio
async def test_bad_signature_forbidden(factory):
    response = await factory.post_webhook("application", application_payload(), secret="wrong")
    assert response.status_code == 403
    assert response.json()["error"] == "Webhook verification failed"
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert await count(factory.db, Application) == 0


@pytest.mark.asyncio
async def test_missing_signature_forbidden(factory):
    response = await factory.post_webhook("application", application_payload(), secret=None)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_json_rejected(factory):
    body = b"{not json"
    response = await factory.client.post(
        "/api/v1/webhooks/tally/application",
        content=body,
        headers={SIGNATURE_HEADER: compute_signature(body, WEBHOOK_SECRET)},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON payload"


@pytest.mark.asyncio
async def test_payload_without_fields_rejected(factory):
    body = json.dumps({"eventId": "evt-1", "data": {"submissionId": "sub-1"}}).encode()
    response = await factory.client.post(
        "/api/v1/webhooks/tally/application",
        content=body,
        headers={SIGNATURE_HEADER: compute_signature(body, WEBHOOK_SECRET)},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid payload structure"


@pytest.mark.asyncio
async def test_rate_limit_exceeded(factory, rate_limiter):
    rate_limiter.limit = 1
    
    first = await factory.post_webhook("application", application_payload())
    assert first.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "0"
    
    second = await factory.post_webhook("application", application_payload())
    assert second.status_code == 429
    assert second.json()["error"] == "Rate limit exceeded"
    assert "Retry-After" in second.headers


@pytest.mark.asyncio
async def test_preflight(client):
    response = await client.options("/api/v1/webhooks/tally/application")
    assert response.status_code == 204
    assert "POST" in response.headers["Access-Control-Allow-Methods"]
    assert SIGNATURE_HEADER in response.headers["Access-Control-Allow-Headers"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "healthy"
