"""
Email gateway client for invoice and reminder delivery.

Uses HMAC-SHA256 signature for request authentication. Attachments travel
base64-encoded inside the signed JSON payload.
"""

import base64
import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=10,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
        attachments: list[dict] | None = None,
    ) -> None:
        """
        Send an email via gateway.

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Plain text email body
            cc: Optional CC address
            attachments: Optional list of {"filename", "content_type", "content"}
                dicts, content already base64-encoded

        Raises:
            ValueError: If recipient or subject is empty
            EmailGatewayError: On gateway failure
        """
        if not to:
            raise ValueError("Recipient email is required")
        if not subject:
            raise ValueError("Subject is required")

        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "body": body,
            "sender": "system",
        }
        if cc:
            payload["cc"] = cc
        if attachments:
            payload["attachments"] = attachments

        self._sign_and_send(payload)
        logger.info(f"Email sent to {to}: {subject}")

    def send_invoice_email(
        self,
        to: str,
        invoice_number: str,
        pdf_bytes: bytes,
        subject: str,
        body: str,
    ) -> None:
        """
        Send an invoice with its PDF attached.

        Raises:
            ValueError: If the PDF is empty
            EmailGatewayError: On gateway failure
        """
        if not pdf_bytes:
            raise ValueError("Invoice PDF is empty")

        attachment = {
            "filename": f"invoice-{invoice_number}.pdf",
            "content_type": "application/pdf",
            "content": base64.b64encode(pdf_bytes).decode("ascii"),
        }
        self.send_email(to, subject, body, attachments=[attachment])

    def send_reminder_email(
        self,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
    ) -> None:
        """Send an overdue payment reminder, optionally CC'ing the sender."""
        self.send_email(to, subject, body, cc=cc)
