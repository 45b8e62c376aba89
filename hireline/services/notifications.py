"""
候选人邮件通知

邮件发送是尽力而为的副作用：发送失败只记录日志，
不影响已经提交的状态变更与审计记录。
"""
import asyncio
import html
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from loguru import logger
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.core.config import Settings, settings as app_settings
from hireline.core.loader import ResourceLoader, get_resource_loader
from hireline.core.security import sanitize_for_log
from hireline.models import Application, Person, User
from .audit import AuditContext, SYSTEM, log_email_sent


class NotificationError(Exception):
    """邮件服务返回错误"""


@dataclass(frozen=True)
class EmailMessage:
    template: str
    to: str
    subject: str
    html: str


Transport = Callable[[EmailMessage], None]


class SendGridTransport:
    """通过 SendGrid 发送邮件"""
    
    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
    
    def __call__(self, message: EmailMessage) -> None:
        sg = SendGridAPIClient(api_key=self.api_key)
        mail = Mail(
            from_email=(self.from_email, self.from_name),
            to_emails=message.to,
            subject=message.subject,
            html_content=message.html,
        )
        resp = sg.send(mail)
        if resp.status_code >= 400:
            raise NotificationError(f"SendGrid returned {resp.status_code}")


def build_form_link(base_url: str, **params: Optional[str]) -> str:
    """在表单链接上附加隐藏字段参数"""
    if not base_url:
        return ""
    query = urlencode({k: v for k, v in params.items() if v})
    if not query:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"


class NotificationDispatcher:
    """
    邮件分发器
    
    transport 为 None 表示邮件未启用：不发送，也不写审计
    """
    
    def __init__(
        self,
        transport: Optional[Transport],
        settings: Settings = app_settings,
        loader: Optional[ResourceLoader] = None,
    ):
        self.transport = transport
        self.settings = settings
        self.loader = loader or get_resource_loader()
    
    def render(self, template: str, to: str, **variables: Any) -> EmailMessage:
        """渲染模板；变量中的用户输入统一做 HTML 转义"""
        values = {
            "organization_name": html.escape(self.settings.mail_from_name),
            "support_email": html.escape(self.settings.mail_from),
        }
        values.update({k: html.escape(str(v)) if v is not None else "" for k, v in variables.items()})
        return EmailMessage(
            template=template,
            to=to,
            subject=html.unescape(self.loader.render("emails", f"{template}.subject", **values)),
            html=self.loader.render("emails", f"{template}.body", **values),
        )
    
    async def dispatch(
        self,
        db: AsyncSession,
        *,
        template: str,
        person: Person,
        application: Optional[Application],
        context: AuditContext = SYSTEM,
        **variables: Any,
    ) -> bool:
        """
        发送一封模板邮件
        
        Returns:
            是否发送成功；成功时追加 EMAIL_SENT 审计记录
        """
        if self.transport is None:
            logger.info(f"[邮件] 未启用，跳过发送: {template}")
            return False
        
        application_id = application.id if application else None
        try:
            message = self.render(template, person.email, **variables)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.transport, message)
        except Exception as e:
            logger.error(
                f"[邮件] 发送失败: {template} -> {sanitize_for_log(person.email)} | "
                f"{type(e).__name__}: {sanitize_for_log(e)}"
            )
            return False
        
        await log_email_sent(
            db,
            template=template,
            recipient=person.email,
            person_id=person.id,
            application_id=application_id,
            context=context,
        )
        logger.info(f"[邮件] 已发送: {template} -> {sanitize_for_log(person.email)}")
        return True
    
    # ========== 各类通知 ==========
    
    async def send_application_received(
        self, db: AsyncSession, person: Person, application: Application,
        context: AuditContext = SYSTEM,
    ) -> bool:
        submitted: datetime = application.created_at
        return await self.dispatch(
            db,
            template="application_received",
            person=person,
            application=application,
            context=context,
            first_name=person.first_name,
            position=application.position,
            application_date=submitted.strftime("%d %B %Y"),
        )
    
    async def send_gc_invitation(
        self, db: AsyncSession, person: Person, application: Application,
        context: AuditContext = SYSTEM,
    ) -> bool:
        return await self.dispatch(
            db,
            template="gc_invitation",
            person=person,
            application=application,
            context=context,
            first_name=person.first_name,
            position=application.position,
            gc_assessment_link=build_form_link(self.settings.gc_form_url, who=person.id),
        )
    
    async def send_interview_invitation(
        self, db: AsyncSession, person: Person, application: Application, interviewer: User,
        context: AuditContext = SYSTEM,
    ) -> bool:
        return await self.dispatch(
            db,
            template="interview_invitation",
            person=person,
            application=application,
            context=context,
            first_name=person.first_name,
            position=application.position,
            interviewer_name=interviewer.display_name,
            scheduling_link=interviewer.scheduling_link,
        )
    
    async def send_offer_letter(
        self, db: AsyncSession, person: Person, application: Application,
        context: AuditContext = SYSTEM,
    ) -> bool:
        return await self.dispatch(
            db,
            template="offer_letter",
            person=person,
            application=application,
            context=context,
            first_name=person.first_name,
            position=application.position,
            agreement_link=build_form_link(
                self.settings.agreement_form_url,
                who=person.id,
                applicationId=application.id,
            ),
        )
    
    async def send_rejection(
        self, db: AsyncSession, person: Person, application: Application,
        reason: Optional[str] = None,
        context: AuditContext = SYSTEM,
    ) -> bool:
        return await self.dispatch(
            db,
            template="rejection",
            person=person,
            application=application,
            context=context,
            first_name=person.first_name,
            position=application.position,
            rejection_reason=reason,
        )


_notifier: NotificationDispatcher | None = None


def get_notifier() -> NotificationDispatcher:
    """获取全局邮件分发器（FastAPI 依赖）"""
    global _notifier
    if _notifier is None:
        transport = None
        if app_settings.mail_enabled and app_settings.sendgrid_api_key:
            transport = SendGridTransport(
                api_key=app_settings.sendgrid_api_key,
                from_email=app_settings.mail_from,
                from_name=app_settings.mail_from_name,
            )
        _notifier = NotificationDispatcher(transport)
    return _notifier
