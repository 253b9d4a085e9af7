"""
Tests for logging setup.
"""
import json
import logging

import pytest
import structlog

from payment_notifications.config import Settings
from payment_notifications.monitoring.logging import service_context, setup_logging


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        app_name="notify-test",
        app_env="staging",
        log_level="warning",
    )


class TestLogging:
    """Test suite for logging setup."""

    @pytest.mark.unit
    def test_service_context_does_not_override_bound_fields(self, settings: Settings) -> None:
        processor = service_context(settings)

        event = processor(None, "info", {"event": "x", "env": "bound"})

        assert event["service"] == "notify-test"
        assert event["env"] == "bound"
        assert "version" in event

    @pytest.mark.unit
    def test_setup_applies_level_and_single_handler(self, settings: Settings) -> None:
        setup_logging(settings)
        setup_logging(settings)

        root_logger = logging.getLogger()
        assert root_logger.level == logging.WARNING
        assert len(root_logger.handlers) == 1

    @pytest.mark.unit
    def test_events_are_json_with_service_identity(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(settings)
        capsys.readouterr()

        structlog.get_logger("payment_notifications.test").warning(
            "order_transition_lost", order_no="ORD-1001"
        )

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(json.loads(line)["message"])
        assert record["event"] == "order_transition_lost"
        assert record["order_no"] == "ORD-1001"
        assert record["service"] == "notify-test"
        assert record["env"] == "staging"
