"""
测试配置文件

提供测试用的 fixtures：内存数据库、测试客户端、邮件桩、测试数据工厂等
"""
import json
import uuid
from typing import AsyncGenerator, List, Optional
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from hireline.core.auth import create_access_token
from hireline.core.config import Settings, get_settings
from hireline.core.database import Base, build_engine, get_db
from hireline.core.rate_limiter import SlidingWindowRateLimiter, get_webhook_rate_limiter
from hireline.crud import application_crud, person_crud, user_crud
from hireline.main import create_app
from hireline.models import Application, AuditLog, Person, User
from hireline.services.notifications import (
    EmailMessage,
    NotificationDispatcher,
    NotificationError,
    get_notifier,
)
from hireline.webhooks.verify import SIGNATURE_HEADER, compute_signature

WEBHOOK_SECRET = "test-webhook-secret"


# ========== 配置与邮件桩 ==========

@pytest.fixture
def test_settings() -> Settings:
    """测试配置：不读取 .env，启用签名校验与邮件"""
    return Settings(
        _env_file=None,
        app_env="test",
        debug=False,
        webhook_secret=WEBHOOK_SECRET,
        webhook_ip_allowlist=[],
        gc_threshold=70,
        sc_threshold=75,
        session_secret="test-session-secret",
        mail_enabled=True,
        agreement_form_url="https://tally.so/r/agreement",
    )


class RecordingTransport:
    """记录发出的邮件；fail 为 True 时模拟邮件服务故障"""
    
    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.fail = False
    
    def __call__(self, message: EmailMessage) -> None:
        if self.fail:
            raise NotificationError("SendGrid returned 503")
        self.sent.append(message)
    
    def templates(self) -> List[str]:
        return [m.template for m in self.sent]


@pytest.fixture
def mailbox() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def rate_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(limit=100, window_seconds=60)


# ========== 数据库 ==========

# 使用内存 SQLite 作为测试数据库（StaticPool 保证所有连接共享同一个库，外键约束与生产一致）
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    为每个测试函数提供独立的数据库会话
    
    每个测试新建引擎并建表，结束后释放，确保测试隔离
    （引擎与当前测试的事件循环绑定）
    """
    engine = build_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
    
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    test_settings: Settings,
    mailbox: RecordingTransport,
    rate_limiter: SlidingWindowRateLimiter,
) -> AsyncGenerator[AsyncClient, None]:
    """
    提供测试用的 HTTP 客户端
    
    覆盖数据库、配置、邮件分发器与限流器依赖
    """
    app = create_app()
    
    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
    
    notifier = NotificationDispatcher(mailbox, settings=test_settings)
    
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_webhook_rate_limiter] = lambda: rate_limiter
    
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac
    
    app.dependency_overrides.clear()


# ========== 测试数据工厂 ==========

@dataclass
class DataFactory:
    """
    测试数据工厂类
    
    直接写库创建候选人、员工与申请；Webhook 请求统一在这里签名发送
    """
    client: AsyncClient
    db: AsyncSession
    settings: Settings
    _counter: int = field(default=0, repr=False)
    
    def _next_id(self) -> str:
        self._counter += 1
        return str(self._counter)
    
    async def create_person(self, **overrides) -> Person:
        suffix = self._next_id()
        data = {
            "email": f"candidate{suffix}@example.com",
            "first_name": "Ada",
            "last_name": f"Tester{suffix}",
            "general_competencies_completed": False,
            **overrides
        }
        person = await person_crud.create(self.db, obj_in=data)
        await self.db.commit()
        return person
    
    async def create_user(self, **overrides) -> User:
        suffix = self._next_id()
        data = {
            "email": f"staff{suffix}@example.org",
            "display_name": f"Staff {suffix}",
            "is_admin": False,
            "has_access": True,
            "scheduling_link": f"https://cal.example.org/staff{suffix}",
            **overrides
        }
        user = await user_crud.create(self.db, obj_in=data)
        await self.db.commit()
        return user
    
    async def create_admin(self, **overrides) -> User:
        return await self.create_user(is_admin=True, **overrides)
    
    async def create_application(self, person: Optional[Person] = None, **overrides) -> Application:
        if person is None:
            person = await self.create_person()
        data = {
            "person_id": person.id,
            "position": "Software Developer",
            "submission_id": f"sub-{uuid.uuid4().hex}",
            **overrides
        }
        application = await application_crud.create(self.db, obj_in=data)
        await self.db.commit()
        return application
    
    def auth_headers(self, user: User) -> dict:
        token = create_access_token(user.id, self.settings)
        return {"Authorization": f"Bearer {token}"}
    
    async def post_webhook(
        self,
        form: str,
        payload: dict,
        secret: Optional[str] = WEBHOOK_SECRET,
        headers: Optional[dict] = None,
    ) -> Response:
        """签名并发送 Webhook 请求"""
        body = json.dumps(payload).encode("utf-8")
        request_headers = {"content-type": "application/json"}
        if secret:
            request_headers[SIGNATURE_HEADER] = compute_signature(body, secret)
        request_headers.update(headers or {})
        return await self.client.post(
            f"/api/v1/webhooks/tally/{form}",
            content=body,
            headers=request_headers,
        )
    
    async def reload(self, obj):
        """重新从数据库读取（接口内已提交的修改）"""
        await self.db.refresh(obj)
        return obj
    
    async def audit_logs(self, application_id: Optional[str] = None, **filters) -> List[AuditLog]:
        query = select(AuditLog)
        if application_id is not None:
            query = query.where(AuditLog.application_id == application_id)
        for name, value in filters.items():
            query = query.where(getattr(AuditLog, name) == value)
        result = await self.db.execute(query.order_by(AuditLog.created_at.asc()))
        return list(result.scalars().all())


@pytest_asyncio.fixture
async def factory(client: AsyncClient, db_session: AsyncSession, test_settings: Settings) -> DataFactory:
    """提供测试数据工厂实例"""
    return DataFactory(client=client, db=db_session, settings=test_settings)
