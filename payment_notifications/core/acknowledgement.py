"""
Gateway acknowledgement bodies.

These literals are defined by Alipay and WeChat Pay, not by us, and must be
returned byte for byte.
"""
from dataclasses import dataclass

from .domain import PaymentMethod
from .outcomes import Outcome, ReplyKind, reply_kind

ALIPAY_SUCCESS = "success"
PLAIN_FAIL = "fail"
WECHAT_SUCCESS_XML = (
    "<xml><return_code><![CDATA[SUCCESS]]></return_code>"
    "<return_msg><![CDATA[OK]]></return_msg></xml>"
)
WECHAT_FAIL_XML = (
    "<xml><return_code><![CDATA[FAIL]]></return_code>"
    "<return_msg><![CDATA[FAIL]]></return_msg></xml>"
)

_BODIES = {
    (PaymentMethod.ALIPAY, ReplyKind.SUCCESS): ALIPAY_SUCCESS,
    (PaymentMethod.ALIPAY, ReplyKind.RETRY): PLAIN_FAIL,
    (PaymentMethod.ALIPAY, ReplyKind.REJECT): PLAIN_FAIL,
    (PaymentMethod.WECHAT, ReplyKind.SUCCESS): WECHAT_SUCCESS_XML,
    (PaymentMethod.WECHAT, ReplyKind.RETRY): PLAIN_FAIL,
    (PaymentMethod.WECHAT, ReplyKind.REJECT): WECHAT_FAIL_XML,
}

_MEDIA_TYPES = {
    PaymentMethod.ALIPAY: "text/plain",
    PaymentMethod.WECHAT: "application/xml",
}

_STATUS_CODES = {
    Outcome.VERIFICATION_FAILED: 400,
    Outcome.STORE_UNAVAILABLE: 503,
}


@dataclass(frozen=True)
class GatewayReply:
    """Wire-level reply to a gateway notification."""

    outcome: Outcome
    kind: ReplyKind
    body: str
    media_type: str
    status_code: int = 200

    @property
    def is_success(self) -> bool:
        return self.kind is ReplyKind.SUCCESS


class AcknowledgementBuilder:
    """Maps reconciliation outcomes to the reply each gateway expects."""

    def build(self, gateway: PaymentMethod, outcome: Outcome) -> GatewayReply:
        kind = reply_kind(outcome)
        body = _BODIES[(gateway, kind)]
        # "fail" is plain text for both gateways
        media_type = "text/plain" if body == PLAIN_FAIL else _MEDIA_TYPES[gateway]
        return GatewayReply(
            outcome=outcome,
            kind=kind,
            body=body,
            media_type=media_type,
            status_code=_STATUS_CODES.get(outcome, 200),
        )
