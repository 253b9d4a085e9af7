"""
Tests for gateway reply mapping.
"""
import pytest

from payment_notifications.core.acknowledgement import (
    ALIPAY_SUCCESS,
    PLAIN_FAIL,
    WECHAT_FAIL_XML,
    WECHAT_SUCCESS_XML,
    AcknowledgementBuilder,
)
from payment_notifications.core.domain import PaymentMethod
from payment_notifications.core.outcomes import Outcome, ReplyKind, reply_kind

SUCCESS_OUTCOMES = [
    Outcome.IGNORED,
    Outcome.ALREADY_PAID,
    Outcome.NEWLY_PAID,
    Outcome.REFUND_RECORDED,
]


class TestAcknowledgementBuilder:
    """Test suite for AcknowledgementBuilder."""

    @pytest.mark.unit
    def test_every_outcome_has_a_reply_kind(self) -> None:
        for outcome in Outcome:
            assert isinstance(reply_kind(outcome), ReplyKind)

    @pytest.mark.unit
    @pytest.mark.parametrize("outcome", SUCCESS_OUTCOMES)
    def test_success_outcomes(self, outcome: Outcome) -> None:
        builder = AcknowledgementBuilder()

        alipay = builder.build(PaymentMethod.ALIPAY, outcome)
        wechat = builder.build(PaymentMethod.WECHAT, outcome)

        assert alipay.is_success and wechat.is_success
        assert alipay.body == "success"
        assert wechat.body == (
            "<xml><return_code><![CDATA[SUCCESS]]></return_code>"
            "<return_msg><![CDATA[OK]]></return_msg></xml>"
        )
        assert alipay.status_code == wechat.status_code == 200

    @pytest.mark.unit
    def test_payment_not_found_induces_retry(self) -> None:
        reply = AcknowledgementBuilder().build(PaymentMethod.ALIPAY, Outcome.NOT_FOUND)

        assert reply.kind is ReplyKind.RETRY
        assert reply.body == "fail"
        assert reply.media_type == "text/plain"
        assert reply.status_code == 200

    @pytest.mark.unit
    def test_refund_order_not_found_is_fail_document(self) -> None:
        reply = AcknowledgementBuilder().build(
            PaymentMethod.WECHAT, Outcome.REFUND_ORDER_NOT_FOUND
        )

        assert reply.kind is ReplyKind.REJECT
        assert reply.body == (
            "<xml><return_code><![CDATA[FAIL]]></return_code>"
            "<return_msg><![CDATA[FAIL]]></return_msg></xml>"
        )
        assert reply.media_type == "application/xml"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "outcome", [Outcome.ORDER_CLOSED, Outcome.AMOUNT_MISMATCH, Outcome.VERIFICATION_FAILED]
    )
    def test_business_rule_violations_are_never_success(self, outcome: Outcome) -> None:
        builder = AcknowledgementBuilder()

        assert builder.build(PaymentMethod.ALIPAY, outcome).body == PLAIN_FAIL
        assert builder.build(PaymentMethod.WECHAT, outcome).body == WECHAT_FAIL_XML

    @pytest.mark.unit
    def test_status_codes(self) -> None:
        builder = AcknowledgementBuilder()

        assert builder.build(PaymentMethod.ALIPAY, Outcome.VERIFICATION_FAILED).status_code == 400
        assert builder.build(PaymentMethod.WECHAT, Outcome.STORE_UNAVAILABLE).status_code == 503
        assert builder.build(PaymentMethod.WECHAT, Outcome.STORE_UNAVAILABLE).body == PLAIN_FAIL

    @pytest.mark.unit
    def test_success_tokens(self) -> None:
        assert ALIPAY_SUCCESS == "success"
        assert "SUCCESS" in WECHAT_SUCCESS_XML
