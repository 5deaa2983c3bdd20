"""
Outbound email transport.

The rest of the subsystem only relies on ``send(to, subject, html) -> {"id": ...}``
raising ``TransportError`` on any failure.
"""
from typing import Dict, Optional, Protocol

import requests

from ..config import Settings, get_settings
from ..errors import TransportError
from ..logging_config import get_logger

logger = get_logger("transport")


class EmailTransport(Protocol):
    def send(self, to: str, subject: str, html: str) -> Dict[str, str]:
        ...


class ResendTransport:
    """Sends through the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, to: str, subject: str, html: str) -> Dict[str, str]:
        if not self.api_key:
            raise TransportError("Email service not configured", detail="RESEND_API_KEY missing")

        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.session.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Failed to reach email provider: {e}", recipient=to) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise TransportError(
                f"Email provider rejected message (status {response.status_code})",
                recipient=to,
                status=response.status_code,
                body=response.text[:200],
            )

        try:
            email_id = response.json().get("id")
        except ValueError as e:
            raise TransportError("Email provider returned an unreadable response", recipient=to) from e

        if not email_id:
            raise TransportError("Email provider response did not include an id", recipient=to)

        logger.info("Email accepted by provider", email_id=email_id, recipient=to)
        return {"id": email_id}


def build_transport(settings: Settings) -> ResendTransport:
    return ResendTransport(
        api_key=settings.resend_api_key,
        from_address=settings.email_from_address,
        api_url=settings.resend_api_url,
        timeout=settings.transport_timeout_seconds,
    )


def get_transport() -> EmailTransport:
    """FastAPI dependency for the configured transport"""
    return build_transport(get_settings())
