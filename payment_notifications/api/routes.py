"""
API routes for gateway notifications.
"""
from dataclasses import dataclass
from typing import Any, Dict
from urllib.parse import parse_qsl

import structlog
from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from payment_notifications.core.acknowledgement import GatewayReply
from payment_notifications.core.exceptions import VerificationError
from payment_notifications.core.notifications import NotificationHandler
from payment_notifications.integrations.verifier import (
    AlipayNotificationVerifier,
    WechatPaymentVerifier,
    WechatRefundVerifier,
    parse_wechat_xml,
)
from payment_notifications.monitoring.health import HealthCheck
from payment_notifications.monitoring.metrics import metrics

from .schemas import HealthCheckResponse, PaymentReturnResponse

logger = structlog.get_logger(__name__)

notify_router = APIRouter(prefix="/payments", tags=["payments"])
monitoring_router = APIRouter(tags=["monitoring"])


@dataclass
class Services:
    """Collaborators wired once in create_app and shared by every request."""

    handler: NotificationHandler
    alipay: AlipayNotificationVerifier
    wechat: WechatPaymentVerifier
    wechat_refund: WechatRefundVerifier
    health_check: HealthCheck


def get_services(request: Request) -> Services:
    return request.app.state.services


def _to_response(reply: GatewayReply) -> Response:
    return Response(
        content=reply.body,
        status_code=reply.status_code,
        media_type=reply.media_type,
    )


def _decode_form(body: bytes) -> Dict[str, str]:
    # Alipay percent-encodes fields in the charset it names, utf-8 by default
    raw = body.decode("latin-1")
    fields = dict(parse_qsl(raw, keep_blank_values=True))
    charset = fields.get("charset") or "utf-8"
    try:
        return dict(parse_qsl(raw, keep_blank_values=True, encoding=charset))
    except LookupError:
        return fields


@notify_router.post(
    "/alipay/notify",
    summary="Alipay asynchronous notification",
    response_class=Response,
)
async def alipay_notify(request: Request) -> Response:
    """Reconcile an Alipay payment notification."""
    services = get_services(request)
    fields = _decode_form(await request.body())
    reply = await services.handler.handle_payment(services.alipay, fields)
    return _to_response(reply)


@notify_router.get(
    "/alipay/return",
    response_model=PaymentReturnResponse,
    summary="Alipay browser redirect",
    description="Tells the customer whether the redirect was genuine; never changes order state",
)
async def alipay_return(request: Request) -> Any:
    """Verify the browser redirect leg of an Alipay payment."""
    services = get_services(request)
    metrics.record_notification(services.alipay.payment_method.value, "return")
    try:
        services.alipay.verify_return(dict(request.query_params))
    except VerificationError as e:
        logger.warning("alipay_return_verification_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": "Invalid payment data"},
        )
    return {"status": "success", "message": "Payment successful"}


@notify_router.post(
    "/wechat/notify",
    summary="WeChat Pay payment notification",
    response_class=Response,
)
async def wechat_notify(request: Request) -> Response:
    """Reconcile a WeChat Pay payment notification."""
    services = get_services(request)
    try:
        fields = parse_wechat_xml(await request.body())
    except VerificationError as e:
        return _to_response(services.handler.reject(services.wechat, "payment", str(e)))
    reply = await services.handler.handle_payment(services.wechat, fields)
    return _to_response(reply)


@notify_router.post(
    "/wechat/refund_notify",
    summary="WeChat Pay refund notification",
    response_class=Response,
)
async def wechat_refund_notify(request: Request) -> Response:
    """Record a WeChat Pay refund result."""
    services = get_services(request)
    try:
        fields = parse_wechat_xml(await request.body())
    except VerificationError as e:
        return _to_response(services.handler.reject(services.wechat_refund, "refund", str(e)))
    reply = await services.handler.handle_refund(services.wechat_refund, fields)
    return _to_response(reply)


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(request: Request) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await get_services(request).health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(request: Request) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await get_services(request).health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(request: Request) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await get_services(request).health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
