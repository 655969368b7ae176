"""Send-chat-message step handler for Slack.

Two delivery modes:

- integration mode: a stored Slack integration's bot token posts through
  ``chat.postMessage``. If the integration has no token, its stored incoming
  webhook URL is used instead.
- webhook mode: the step's own ``webhook_url`` is posted to directly.
"""

from __future__ import annotations

from typing import Any

from ..core.config import RetryConfig
from ..core.logger import get_logger
from ..engine.context import ExecutionContext
from ..engine.models import Step, StepResult
from ..engine.retry import RetryResult
from ..providers.chat import SlackClient
from ..providers.models import ProviderResponse
from ..stores.base import IntegrationStore
from .base import RetryableConfig, StepHandler

logger = get_logger("handlers.send_slack")


class SendSlackConfig(RetryableConfig):
    """Configuration of a ``send_slack`` step."""

    message: str = ""
    webhook_url: str | None = None
    integration_id: str | None = None
    channel: str | None = None
    username: str | None = None
    icon_emoji: str | None = None
    icon_url: str | None = None
    attachments: list[dict[str, Any]] | None = None
    blocks: list[dict[str, Any]] | None = None


class SendSlackHandler(StepHandler[SendSlackConfig]):
    """Post a message to Slack."""

    type = "send_slack"
    config_model = SendSlackConfig

    def __init__(
        self,
        slack_client: SlackClient,
        integration_store: IntegrationStore | None = None,
        default_retry: RetryConfig | None = None,
    ) -> None:
        super().__init__(default_retry)
        self.slack_client = slack_client
        self.integration_store = integration_store

    def build_payload(self, config: SendSlackConfig, context: ExecutionContext) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.templates.resolve(config.message, context)}
        if config.username:
            payload["username"] = self.templates.resolve(config.username, context)
        if config.icon_emoji:
            payload["icon_emoji"] = config.icon_emoji
        elif config.icon_url:
            payload["icon_url"] = self.templates.resolve(config.icon_url, context)
        if config.attachments:
            payload["attachments"] = self.templates.resolve_object(config.attachments, context)
        if config.blocks:
            payload["blocks"] = self.templates.resolve_object(config.blocks, context)
        return payload

    async def run(
        self, step: Step, config: SendSlackConfig, context: ExecutionContext
    ) -> StepResult:
        payload = self.build_payload(config, context)
        webhook_url: str | None = None

        if config.integration_id and self.integration_store is not None:
            integration = await self.integration_store.get_integration(
                context.user.id, config.integration_id, "slack"
            )
            if integration is None:
                logger.warning("Slack integration %s not found", config.integration_id)
            elif integration.access_token:
                channel = (
                    self.templates.resolve(config.channel, context)
                    if config.channel
                    else integration.default_channel_id
                )
                if not channel:
                    return self.failed(
                        step,
                        "Slack channel is required (set channel on the step or a default "
                        "channel on the integration)",
                    )
                payload["channel"] = channel
                token = integration.access_token
                result = await self.call_with_retry(
                    lambda: self.slack_client.post_message(token, payload), config.retry
                )
                return self._finish(step, result, mode="api", channel=channel)
            elif integration.webhook_url:
                webhook_url = integration.webhook_url

        if webhook_url is None and config.webhook_url:
            webhook_url = self.templates.resolve(config.webhook_url, context)

        if not webhook_url:
            return self.failed(
                step, "Slack webhook URL is required (provide webhook_url or integrationId)"
            )

        url = webhook_url
        result = await self.call_with_retry(
            lambda: self.slack_client.post_webhook(url, payload), config.retry
        )
        return self._finish(step, result, mode="webhook")

    def _finish(
        self,
        step: Step,
        result: RetryResult[ProviderResponse],
        mode: str,
        channel: str | None = None,
    ) -> StepResult:
        response: ProviderResponse | None = result.data
        if not result.success:
            return self.failed(step, result.error or "Failed to send Slack message")
        if response is None or not response.success:
            error = response.error_msg if response is not None else ""
            return self.failed(step, error or "Failed to send Slack message")

        data: dict[str, Any] = {"sent": True, "mode": mode, "response": response.raw_body}
        if channel:
            data["channel"] = channel
        if isinstance(response.data, dict) and response.data.get("ts"):
            data["ts"] = response.data["ts"]
        data.update(self.retry_stats(result))
        logger.info("Slack message sent for step %s via %s", step.id, mode)
        return self.completed(step, data)
