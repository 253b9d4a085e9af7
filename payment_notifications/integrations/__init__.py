"""Gateway integrations."""
from .verifier import (
    AlipayNotificationVerifier,
    NotificationVerifier,
    WechatPaymentVerifier,
    WechatRefundVerifier,
    parse_wechat_xml,
)

__all__ = [
    "AlipayNotificationVerifier",
    "NotificationVerifier",
    "WechatPaymentVerifier",
    "WechatRefundVerifier",
    "parse_wechat_xml",
]
