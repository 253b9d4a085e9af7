"""
Gateway notification verifiers.

Signature checking and req_info decryption are gateway-SDK primitives
injected as plain callables; this module only wraps them and turns the
authenticated fields into typed notifications. Anything unexpected becomes
a VerificationError and is never acted on.
"""
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from payment_notifications.core.domain import (
    PaymentMethod,
    RefundResult,
    VerifiedPaymentNotification,
    VerifiedRefundNotification,
    to_major_units,
)
from payment_notifications.core.exceptions import VerificationError

logger = structlog.get_logger(__name__)

SignatureCheck = Callable[[Mapping[str, str]], bool]
ReqInfoDecrypt = Callable[[str], Mapping[str, str]]

VerifiedNotification = Union[VerifiedPaymentNotification, VerifiedRefundNotification]


class NotificationVerifier(Protocol):
    """Boundary turning raw gateway fields into a verified notification."""

    payment_method: PaymentMethod

    def verify(self, fields: Mapping[str, str]) -> VerifiedNotification:
        ...


def parse_wechat_xml(body: bytes) -> Dict[str, str]:
    """
    Parse a flat WeChat Pay ``<xml>`` document into a dict.

    Raises:
        VerificationError: If the body is not a flat xml document
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise VerificationError(f"Malformed notification body: {str(e)}") from e
    if root.tag != "xml":
        raise VerificationError(f"Unexpected root element: {root.tag}")
    return {child.tag: (child.text or "").strip() for child in root}


def _require(fields: Mapping[str, str], *names: str) -> None:
    missing = [name for name in names if not fields.get(name)]
    if missing:
        raise VerificationError(f"Missing notification fields: {', '.join(missing)}")


def _check_signature(check: Optional[SignatureCheck], fields: Mapping[str, str]) -> None:
    if check is None:
        raise VerificationError("No signature check configured")
    try:
        valid = check(fields)
    except Exception as e:
        logger.error("notification_signature_check_error", error=str(e))
        raise VerificationError(f"Signature verification failed: {str(e)}") from e
    if not valid:
        raise VerificationError("Invalid notification signature")


def _amount(raw: Optional[str], method: PaymentMethod) -> Any:
    if not raw:
        return None
    try:
        return to_major_units(raw, method)
    except ValueError as e:
        raise VerificationError(str(e)) from e


def _build(model: Any, **data: Any) -> Any:
    try:
        return model(**data)
    except ValidationError as e:
        raise VerificationError(f"Invalid notification: {str(e)}") from e


class AlipayNotificationVerifier:
    """Verifies Alipay asynchronous (form-encoded) and return-leg notifications."""

    payment_method = PaymentMethod.ALIPAY

    def __init__(self, signature_check: Optional[SignatureCheck], app_id: Optional[str] = None):
        """
        Initialize Alipay verifier.

        Args:
            signature_check: Alipay SDK signature primitive
            app_id: Expected app_id, checked when given
        """
        self.signature_check = signature_check
        self.app_id = app_id

    def verify(self, fields: Mapping[str, str]) -> VerifiedPaymentNotification:
        """
        Verify an Alipay notification.

        Args:
            fields: Decoded form fields, including ``sign`` and ``sign_type``

        Returns:
            VerifiedPaymentNotification: Typed notification

        Raises:
            VerificationError: If the notification cannot be trusted
        """
        _check_signature(self.signature_check, fields)
        if self.app_id and fields.get("app_id") != self.app_id:
            raise VerificationError(f"Unexpected app_id: {fields.get('app_id')}")
        _require(fields, "out_trade_no", "trade_status")

        return _build(
            VerifiedPaymentNotification,
            order_no=fields["out_trade_no"],
            trade_status=fields["trade_status"],
            transaction_id=fields.get("trade_no") or None,
            payment_method=self.payment_method,
            amount_paid=_amount(fields.get("total_amount"), self.payment_method),
        )

    def verify_return(self, fields: Mapping[str, str]) -> None:
        """Verify the browser redirect leg; only the signature matters there."""
        _check_signature(self.signature_check, fields)


class WechatPaymentVerifier:
    """Verifies WeChat Pay payment result notifications."""

    payment_method = PaymentMethod.WECHAT

    def __init__(self, signature_check: Optional[SignatureCheck]):
        """
        Initialize WeChat Pay payment verifier.

        Args:
            signature_check: WeChat Pay SDK signature primitive
        """
        self.signature_check = signature_check

    def verify(self, fields: Mapping[str, str]) -> VerifiedPaymentNotification:
        """
        Verify a WeChat Pay payment notification.

        Args:
            fields: Parsed xml fields, including ``sign``

        Returns:
            VerifiedPaymentNotification: Typed notification

        Raises:
            VerificationError: If the notification cannot be trusted
        """
        if fields.get("return_code") != "SUCCESS":
            raise VerificationError(
                f"Communication failure reported: {fields.get('return_msg', '')}"
            )
        _check_signature(self.signature_check, fields)
        _require(fields, "out_trade_no", "result_code")

        return _build(
            VerifiedPaymentNotification,
            order_no=fields["out_trade_no"],
            trade_status=fields["result_code"],
            transaction_id=fields.get("transaction_id") or None,
            payment_method=self.payment_method,
            amount_paid=_amount(fields.get("total_fee"), self.payment_method),
        )


class WechatRefundVerifier:
    """
    Verifies WeChat Pay refund result notifications.

    Refund notifications are not signed; their payload sits encrypted in
    ``req_info``, and successful decryption is what authenticates them.
    """

    payment_method = PaymentMethod.WECHAT

    def __init__(self, decrypt_req_info: Optional[ReqInfoDecrypt]):
        """
        Initialize WeChat Pay refund verifier.

        Args:
            decrypt_req_info: WeChat Pay SDK primitive decrypting ``req_info``
        """
        self.decrypt_req_info = decrypt_req_info

    def verify(self, fields: Mapping[str, str]) -> VerifiedRefundNotification:
        """
        Verify a WeChat Pay refund notification.

        Args:
            fields: Parsed xml fields, including ``req_info``

        Returns:
            VerifiedRefundNotification: Typed notification

        Raises:
            VerificationError: If the notification cannot be trusted
        """
        if fields.get("return_code") != "SUCCESS":
            raise VerificationError(
                f"Communication failure reported: {fields.get('return_msg', '')}"
            )
        _require(fields, "req_info")
        if self.decrypt_req_info is None:
            raise VerificationError("No req_info decryption configured")

        try:
            data = self.decrypt_req_info(fields["req_info"])
        except Exception as e:
            logger.error("refund_req_info_decrypt_error", error=str(e))
            raise VerificationError(f"Failed to decrypt req_info: {str(e)}") from e

        _require(data, "out_trade_no", "refund_status")
        refund_status = data["refund_status"]
        succeeded = refund_status == "SUCCESS"

        return _build(
            VerifiedRefundNotification,
            order_no=data["out_trade_no"],
            refund_result=RefundResult.SUCCESS if succeeded else RefundResult.FAILURE,
            # CHANGE / REFUNDCLOSE are kept verbatim as the failure code
            refund_failure_code=None if succeeded else refund_status,
            payment_method=self.payment_method,
        )
