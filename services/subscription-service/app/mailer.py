"""Transactional e-mail delivery through the Resend HTTP API."""

from __future__ import annotations

import logging

import httpx

from .domain.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class ResendEmailClient:
    """Thin synchronous client for ``POST /emails``."""

    def __init__(
        self,
        api_key: str,
        *,
        sender: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._sender = sender
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self._enabled = bool(api_key)

    def send_email(self, to_address: str, subject: str, html_body: str) -> str | None:
        """Send one HTML message and return the provider's message id.

        Raises
        ------
        EmailDeliveryError
            When no API key is configured, the request cannot be delivered,
            or the provider answers with a non-2xx status.
        """
        if not self._enabled:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        payload = {
            "from": self._sender,
            "to": [to_address],
            "subject": subject,
            "html": html_body,
        }
        try:
            response = self._client.post("/emails", json=payload)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"email transport failed: {exc}") from exc

        if response.is_error:
            raise EmailDeliveryError(
                f"email provider returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            message_id = response.json().get("id")
        except (ValueError, AttributeError):
            # accepted, but without the usual {"id": ...} body
            logger.warning("resend accepted message for %s with unexpected body", to_address)
            message_id = None
        logger.debug("resend accepted message %s for %s", message_id, to_address)
        return message_id

    def close(self) -> None:
        self._client.close()
