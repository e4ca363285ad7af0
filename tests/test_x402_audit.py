"""
Unit tests for x402 audit events.
"""
import json
import logging
import pytest
from unittest.mock import patch

from app.x402.audit import (
    AuditEventType,
    create_audit_event,
    generate_request_id,
    log_audit_event,
    log_payment_failed,
    log_payment_required_sent,
    log_payment_verified,
)

AUDIT_LOGGER = "app.x402.audit"


def audit_events(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == AUDIT_LOGGER]


class TestCreateAuditEvent:
    """Test audit event structure."""

    def test_event_fields(self):
        event = create_audit_event(
            AuditEventType.PAYMENT_VERIFIED,
            {"txid": "0x01"},
            client_ip="203.0.113.5",
            wallet_address="SP123",
            request_id="abcd1234",
        )

        assert event["event_type"] == "payment_verified"
        assert event["request_id"] == "abcd1234"
        assert event["client_ip"] == "203.0.113.5"
        assert event["wallet_address"] == "SP123"
        assert event["data"] == {"txid": "0x01"}
        assert "timestamp" in event

    def test_generates_request_id(self):
        event = create_audit_event(AuditEventType.PAYMENT_FAILED, {})
        assert len(event["request_id"]) == 8

    def test_request_ids_are_unique(self):
        assert generate_request_id() != generate_request_id()


class TestLogAuditEvent:
    """Test JSON-line emission."""

    def test_emits_json_line(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            request_id = log_audit_event(AuditEventType.PAYMENT_FAILED, {"reason": "x"}, client_ip="1.2.3.4")

        events = audit_events(caplog)
        assert len(events) == 1
        assert events[0]["request_id"] == request_id
        assert events[0]["data"] == {"reason": "x"}

    @patch("app.x402.audit.settings")
    def test_disabled(self, mock_settings, caplog):
        mock_settings.AUDIT_LOG_ENABLED = False
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            result = log_audit_event(AuditEventType.PAYMENT_FAILED, {})

        assert result is None
        assert audit_events(caplog) == []


class TestConvenienceFunctions:
    """Test the per-event helpers."""

    def test_payment_required_sent(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            log_payment_required_sent(
                client_ip="1.2.3.4",
                resource="/alpha",
                token_type="sBTC",
                amount="5",
                nonce="n-1",
                expires_at="2026-01-01T12:10:00.000Z",
                request_id="req00001",
            )

        event = audit_events(caplog)[0]
        assert event["event_type"] == "payment_required_sent"
        assert event["data"]["token_type"] == "sBTC"
        assert event["data"]["amount"] == "5"

    def test_payment_verified(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            log_payment_verified(client_ip="1.2.3.4", resource="/alpha", txid="0x01", payer="SP123")

        event = audit_events(caplog)[0]
        assert event["event_type"] == "payment_verified"
        assert event["wallet_address"] == "SP123"

    def test_payment_failed(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            log_payment_failed(
                client_ip="1.2.3.4",
                resource="/alpha",
                txid="0x01",
                failure="wrong_contract_target",
                reason="Wrong contract",
            )

        event = audit_events(caplog)[0]
        assert event["event_type"] == "payment_failed"
        assert event["data"]["failure"] == "wrong_contract_target"
        assert event["data"]["reason"] == "Wrong contract"
