"""
Unit Tests - Logging Context and Redaction
"""
import structlog

from marketos.config.logging import log_context, redact_secrets


class TestLogContext:
    """Tests for log_context"""

    def test_binds_and_restores(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(job="sync")

        with log_context(integration_id="42", marketplace="WB", rule=None):
            inside = structlog.contextvars.get_contextvars()
            with log_context(rule="low_roas"):
                nested = structlog.contextvars.get_contextvars()

        assert inside == {"job": "sync", "integration_id": "42", "marketplace": "WB"}
        assert nested["rule"] == "low_roas"
        assert structlog.contextvars.get_contextvars() == {"job": "sync"}
        structlog.contextvars.clear_contextvars()

    def test_restores_after_error(self):
        structlog.contextvars.clear_contextvars()
        try:
            with log_context(integration_id="42"):
                raise RuntimeError("fetch failed")
        except RuntimeError:
            pass

        assert structlog.contextvars.get_contextvars() == {}


class TestRedactSecrets:
    """Tests for the credential redaction processor"""

    def test_masks_credentials(self):
        event = redact_secrets(None, "info", {
            "event": "Integration created",
            "api_key": "wb-secret",
            "credentials": {"api_key": "x", "client_id": "7"},
            "marketplace": "OZON",
        })

        assert event["api_key"] == "***"
        assert event["credentials"] == {"api_key": "***", "client_id": "***"}
        assert event["marketplace"] == "OZON"

    def test_leaves_empty_values(self):
        assert redact_secrets(None, "info", {"event": "x", "token": None}) == {"event": "x", "token": None}
