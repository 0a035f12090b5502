"""
Tests for EmailGatewayClient.

HTTP is mocked with the responses library; assertions cover the signed
payload the gateway receives and the errors callers see.
"""

import base64
import hashlib
import hmac
import json

import pytest
import requests
import responses

from clients.email_client import EmailGatewayClient, EmailGatewayError

GATEWAY_URL = "https://gateway.example.com/send"


@pytest.fixture
def client():
    """Create client with test credentials."""
    return EmailGatewayClient(
        gateway_url=GATEWAY_URL,
        api_key="test-api-key",
        hmac_secret="test-hmac-secret",
    )


def _sent_payload() -> dict:
    return json.loads(responses.calls[0].request.body)


class TestEmailGatewayClientInit:
    """Fail-fast on invalid config."""

    @pytest.mark.parametrize("missing", ["gateway_url", "api_key", "hmac_secret"])
    def test_rejects_empty_credential(self, missing):
        kwargs = {"gateway_url": GATEWAY_URL, "api_key": "key", "hmac_secret": "secret"}
        kwargs[missing] = ""

        with pytest.raises(ValueError, match=missing):
            EmailGatewayClient(**kwargs)


class TestSignAndSend:

    @responses.activate
    def test_signature_covers_exact_body(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_email(to="user@example.com", subject="Hello", body="Body")

        request = responses.calls[0].request
        body = request.body if isinstance(request.body, bytes) else request.body.encode("utf-8")
        expected = hmac.new(b"test-hmac-secret", body, hashlib.sha256).hexdigest()
        assert request.headers["X-Signature"] == expected
        assert request.headers["X-API-Key"] == "test-api-key"
        assert request.headers["Content-Type"] == "application/json"

    @responses.activate
    def test_gateway_500_raises_error(self, client):
        responses.add(
            responses.POST, GATEWAY_URL,
            json={"success": False, "message": "Internal error"}, status=500,
        )

        with pytest.raises(EmailGatewayError, match="Internal error"):
            client.send_email(to="user@example.com", subject="S", body="B")

    @responses.activate
    def test_gateway_success_false_raises_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": False}, status=200)

        with pytest.raises(EmailGatewayError, match="Unknown error"):
            client.send_email(to="user@example.com", subject="S", body="B")

    @responses.activate
    def test_connection_failure_raises_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, body=requests.exceptions.ConnectionError("Network unreachable"))

        with pytest.raises(EmailGatewayError, match="Connection failed"):
            client.send_email(to="user@example.com", subject="S", body="B")

    @responses.activate
    def test_invalid_json_response_raises_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, body="not json", status=200)

        with pytest.raises(EmailGatewayError, match="Invalid response"):
            client.send_email(to="user@example.com", subject="S", body="B")


class TestSendEmail:

    @responses.activate
    def test_payload(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        result = client.send_email(to="user@example.com", subject="Subject", body="Body")

        assert result is None
        assert _sent_payload() == {
            "type": "custom",
            "email": "user@example.com",
            "subject": "Subject",
            "body": "Body",
            "sender": "system",
        }

    def test_empty_recipient_rejected_before_http(self, client):
        with pytest.raises(ValueError, match="Recipient"):
            client.send_email(to="", subject="S", body="B")

    def test_empty_subject_rejected(self, client):
        with pytest.raises(ValueError, match="Subject"):
            client.send_email(to="user@example.com", subject="", body="B")


class TestSendInvoiceEmail:

    @responses.activate
    def test_pdf_attached_base64(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_invoice_email(
            to="billing@example.com",
            invoice_number="INV-0042",
            pdf_bytes=b"%PDF-1.4 test",
            subject="Invoice INV-0042",
            body="Please find attached.",
        )

        payload = _sent_payload()
        [attachment] = payload["attachments"]
        assert attachment["filename"] == "invoice-INV-0042.pdf"
        assert attachment["content_type"] == "application/pdf"
        assert base64.b64decode(attachment["content"]) == b"%PDF-1.4 test"
        assert "cc" not in payload

    def test_empty_pdf_rejected(self, client):
        with pytest.raises(ValueError, match="PDF is empty"):
            client.send_invoice_email("billing@example.com", "INV-1", b"", "S", "B")


class TestSendReminderEmail:

    @responses.activate
    def test_cc_included(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_reminder_email("billing@example.com", "Reminder", "Pay", cc="me@example.com")

        payload = _sent_payload()
        assert payload["cc"] == "me@example.com"
        assert "attachments" not in payload
