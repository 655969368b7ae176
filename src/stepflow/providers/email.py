"""Client for a Resend-compatible transactional email API."""

from __future__ import annotations

from typing import Any

import httpx

from ..core.config import EmailProviderConfig
from ..core.exceptions import ConfigurationError
from ..core.logger import get_logger
from .models import ProviderResponse, parse_json_body

logger = get_logger("providers.email")


class ResendEmailClient:
    """Send messages through the email API.

    Network errors propagate so the retry utility can classify them. HTTP
    errors are returned as failed :class:`ProviderResponse` objects.
    """

    def __init__(
        self, config: EmailProviderConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        """Initialize the client.

        Args:
            config: Email provider settings (API key, endpoint, timeout)
            client: Optional shared AsyncClient; one is created per call otherwise
        """
        self.config = config
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    async def send(self, payload: dict[str, Any]) -> ProviderResponse:
        """POST one message.

        Args:
            payload: API payload (``from``, ``to``, ``subject``, ``html``/``text``...)

        Returns:
            ProviderResponse whose ``data`` carries the provider's message id
        """
        if not self.config.api_key:
            raise ConfigurationError("Email API key is not configured", field="api_key")

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        logger.debug("Sending email to %s via %s", payload.get("to"), self.config.api_url)

        if self._client is not None:
            response = await self._client.post(self.config.api_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(self.config.api_url, json=payload, headers=headers)

        body = parse_json_body(response)
        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("message") or body.get("error")
            error = message or response.reason_phrase or f"HTTP {response.status_code}"
            logger.warning("Email API returned %s: %s", response.status_code, error)
            return ProviderResponse.fail(
                str(error), status_code=response.status_code, data=body, raw_body=response.text
            )

        return ProviderResponse.ok(response.status_code, data=body, raw_body=response.text)
