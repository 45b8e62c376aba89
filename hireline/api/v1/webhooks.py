"""
表单 Webhook API 路由

每种表单一个入口；守卫依赖完成限流与来源校验后交给流程状态机。
无论成功与否，响应都带频率限制头。
"""
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from hireline.core.database import get_db
from hireline.core.exceptions import AppException
from hireline.core.response import merge_headers, success_response
from hireline.services.audit import AuditContext
from hireline.services.pipeline import Outcome, PipelineService, get_pipeline
from hireline.webhooks.guard import VerifiedWebhook, parse_and_verify_webhook
from hireline.webhooks.verify import SIGNATURE_HEADER

router = APIRouter()

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {SIGNATURE_HEADER}",
}

Handler = Callable[..., Awaitable[Outcome]]


async def _process(
    handler: Handler,
    db: AsyncSession,
    webhook: VerifiedWebhook,
    name: str,
) -> JSONResponse:
    """执行处理函数，把频率限制头附加到成功和失败响应上"""
    context = AuditContext(ip_address=webhook.ip, user_agent=webhook.user_agent)
    try:
        outcome = await handler(db, webhook.payload, context)
    except AppException as e:
        e.headers = merge_headers(e.headers, webhook.rate_limit_headers)
        raise
    except Exception:
        logger.exception(f"[Webhook] {name} 处理失败")
        raise AppException(
            "Internal server error", code=500, headers=webhook.rate_limit_headers
        ) from None
    
    return JSONResponse(
        content=jsonable_encoder(
            success_response(data=outcome.data, message=outcome.message, **outcome.extra)
        ),
        headers=webhook.rate_limit_headers,
    )


def _preflight() -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


@router.post("/application", summary="新投递")
async def application_webhook(
    webhook: VerifiedWebhook = Depends(parse_and_verify_webhook),
    pipeline: PipelineService = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db),
):
    """
    处理投递表单
    
    按邮箱匹配或创建候选人并创建申请，初始阶段取决于候选人的通用能力测评情况
    """
    return await _process(pipeline.process_application, db, webhook, "application")


@router.post("/general-competencies", summary="通用能力测评结果")
async def general_competencies_webhook(
    webhook: VerifiedWebhook = Depends(parse_and_verify_webhook),
    pipeline: PipelineService = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db),
):
    """记录测评成绩，并推进或拒绝该候选人所有等待测评的申请"""
    return await _process(pipeline.process_gc_result, db, webhook, "general-competencies")


@router.post("/specialized-competencies", summary="专业能力测评结果")
async def specialized_competencies_webhook(
    webhook: VerifiedWebhook = Depends(parse_and_verify_webhook),
    pipeline: PipelineService = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db),
):
    """有分数时按阈值推进或拒绝；无分数时等待人工审核"""
    return await _process(pipeline.process_sc_result, db, webhook, "specialized-competencies")


@router.post("/agreement", summary="协议签署")
async def agreement_webhook(
    webhook: VerifiedWebhook = Depends(parse_and_verify_webhook),
    pipeline: PipelineService = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db),
):
    return await _process(pipeline.process_agreement, db, webhook, "agreement")


# ========== CORS 预检 ==========

@router.options("/application", include_in_schema=False)
async def application_preflight():
    return _preflight()


@router.options("/general-competencies", include_in_schema=False)
async def general_competencies_preflight():
    return _preflight()


@router.options("/specialized-competencies", include_in_schema=False)
async def specialized_competencies_preflight():
    return _preflight()


@router.options("/agreement", include_in_schema=False)
async def agreement_preflight():
    return _preflight()
