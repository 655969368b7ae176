"""Slack delivery: Web API ``chat.postMessage`` and incoming webhooks."""

from __future__ import annotations

from typing import Any

import httpx

from ..core.config import SlackConfig
from ..core.logger import get_logger
from .models import ProviderResponse, parse_json_body

logger = get_logger("providers.chat")


class SlackClient:
    """Post messages to Slack.

    Provider-side errors are returned with the response body verbatim in
    ``error_msg``; transport errors propagate to the caller.
    """

    def __init__(self, config: SlackConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def _post(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    async def post_message(self, token: str, payload: dict[str, Any]) -> ProviderResponse:
        """Call ``chat.postMessage`` with a bot token.

        Success requires a 2xx status and ``"ok": true`` in the body.
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        response = await self._post(self.config.post_message_url, payload, headers)
        body = parse_json_body(response)

        if not response.is_success:
            return ProviderResponse.fail(
                f"Slack API error: {response.status_code} {response.reason_phrase} - "
                f"{response.text}",
                status_code=response.status_code,
                data=body,
                raw_body=response.text,
            )
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning("chat.postMessage rejected: %s", error or response.text)
            if error:
                error_msg = f"Slack API error: {error} - {response.text}"
            else:
                error_msg = f"Slack API error: {response.text}"
            return ProviderResponse.fail(
                error_msg,
                status_code=response.status_code,
                data=body,
                raw_body=response.text,
            )
        return ProviderResponse.ok(response.status_code, data=body, raw_body=response.text)

    async def post_webhook(self, url: str, payload: dict[str, Any]) -> ProviderResponse:
        """POST to an incoming webhook URL."""
        response = await self._post(url, payload, {"Content-Type": "application/json"})
        if not response.is_success:
            return ProviderResponse.fail(
                f"Slack API error: {response.status_code} {response.reason_phrase} - "
                f"{response.text}",
                status_code=response.status_code,
                raw_body=response.text,
            )
        return ProviderResponse.ok(response.status_code, raw_body=response.text)
