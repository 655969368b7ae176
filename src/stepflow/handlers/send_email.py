"""Send-email step handler.

Sends mail through a Resend-compatible API. Recipients come either from a
structured ``recipients`` config or from a legacy ``to`` string that is
template-resolved and then matched against the owner's contacts.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from ..core.config import RetryConfig
from ..core.exceptions import RecipientResolutionError
from ..core.logger import get_logger
from ..engine.context import ExecutionContext
from ..engine.models import ContactInfo, RecipientConfig, ResolvedRecipients, Step, StepResult
from ..engine.recipients import RecipientResolver
from ..engine.templates import has_unresolved
from ..providers.email import ResendEmailClient
from ..providers.models import ProviderResponse
from .base import RetryableConfig, StepHandler

logger = get_logger("handlers.send_email")


class SendEmailConfig(RetryableConfig):
    """Configuration of a ``send_email`` step."""

    to: str | None = None
    recipients: RecipientConfig | None = None
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    from_: str | None = Field(default=None, alias="from")
    reply_to: str | list[str] | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    personalize: bool = True

    @model_validator(mode="after")
    def _require_recipients(self) -> SendEmailConfig:
        if not self.to and self.recipients is None:
            raise ValueError("Email recipient (to) or recipients config is required")
        return self


def is_html(body: str) -> bool:
    return "<" in body and ">" in body


def contact_overlay(contact: ContactInfo) -> dict[str, Any]:
    """Template variables exposed as ``{{contact.*}}`` for one recipient.

    ``jobTitle`` mirrors ``job_title`` for templates written in camelCase.
    """
    overlay = contact.to_dict()
    overlay["jobTitle"] = contact.job_title
    return overlay


class SendEmailHandler(StepHandler[SendEmailConfig]):
    """Send an email to one or more recipients."""

    type = "send_email"
    config_model = SendEmailConfig

    def __init__(
        self,
        email_client: ResendEmailClient,
        recipient_resolver: RecipientResolver,
        default_retry: RetryConfig | None = None,
    ) -> None:
        super().__init__(default_retry)
        self.email_client = email_client
        self.recipient_resolver = recipient_resolver

    async def run(
        self, step: Step, config: SendEmailConfig, context: ExecutionContext
    ) -> StepResult:
        if not self.email_client.is_configured:
            return self.failed(step, "Email API key is not configured")

        owner_id = context.user.id
        if config.recipients is not None:
            try:
                resolved = await self.recipient_resolver.resolve_recipients(
                    owner_id, config.recipients
                )
            except Exception as exc:
                logger.error("Recipient lookup failed: %s", exc, exc_info=True)
                return self.failed(step, f"Failed to resolve recipients: {exc}")
            if not resolved.emails:
                return self.failed(step, "No recipients found matching the specified criteria")
        else:
            raw_to = config.to or ""
            resolved_to = self.templates.resolve(raw_to, context)
            if has_unresolved(resolved_to):
                return self.failed(
                    step,
                    f"Template variable in 'to' field could not be resolved. "
                    f'Original: "{raw_to}", Resolved: "{resolved_to}". '
                    f"Please use a specific email address or contact name.",
                )
            try:
                resolved = await self.recipient_resolver.resolve_recipient_from_text(
                    owner_id, resolved_to
                )
            except RecipientResolutionError as exc:
                return self.failed(step, f'Failed to resolve recipient "{resolved_to}": {exc}')
            logger.debug("Resolved recipient %r -> %s", resolved_to, resolved.emails)

        sender = self.templates.resolve(
            config.from_ or self.email_client.config.default_sender, context
        )

        if config.recipients is not None and config.personalize and len(resolved) > 1:
            return await self._send_personalized(step, config, context, sender, resolved)
        return await self._send_batch(step, config, context, sender, resolved)

    async def _send_personalized(
        self,
        step: Step,
        config: SendEmailConfig,
        context: ExecutionContext,
        sender: str,
        resolved: ResolvedRecipients,
    ) -> StepResult:
        sent: list[dict[str, Any]] = []
        for contact in resolved.contacts:
            personal = context.with_overlay(contact=contact_overlay(contact))
            payload = self.build_payload(
                sender,
                [contact.email],
                self.templates.resolve(config.subject, personal),
                self.templates.resolve(config.body, personal),
                config,
            )
            error, response = await self._deliver(payload, config.retry)
            if error is not None:
                return self.failed(
                    step,
                    f"Failed to send to {contact.email}: {error}",
                    data={"failed_recipients": [contact.email], "sent": sent},
                )
            sent.append({"email": contact.email, "message_id": _message_id(response)})

        logger.info("Sent %d personalized emails for step %s", len(sent), step.id)
        return self.completed(
            step,
            {"sent_count": len(sent), "recipients": sent, "message": f"Sent {len(sent)} emails"},
        )

    async def _send_batch(
        self,
        step: Step,
        config: SendEmailConfig,
        context: ExecutionContext,
        sender: str,
        resolved: ResolvedRecipients,
    ) -> StepResult:
        payload = self.build_payload(
            sender,
            resolved.emails,
            self.templates.resolve(config.subject, context),
            self.templates.resolve(config.body, context),
            config,
        )
        result = await self.call_with_retry(lambda: self.email_client.send(payload), config.retry)
        error = _delivery_error(result.success, result.error, result.data)
        if error is not None:
            return self.failed(step, f"Resend API error: {error}")

        logger.info("Sent email to %d recipient(s) for step %s", len(resolved), step.id)
        return self.completed(
            step,
            {
                "message_id": _message_id(result.data),
                "to": list(resolved.emails),
                "subject": payload["subject"],
                "sent_count": len(resolved.emails),
                **self.retry_stats(result),
            },
        )

    async def _deliver(
        self, payload: dict[str, Any], directive: Any
    ) -> tuple[str | None, ProviderResponse | None]:
        result = await self.call_with_retry(lambda: self.email_client.send(payload), directive)
        return _delivery_error(result.success, result.error, result.data), result.data

    def build_payload(
        self,
        sender: str,
        to: list[str],
        subject: str,
        body: str,
        config: SendEmailConfig,
    ) -> dict[str, Any]:
        """Build the API payload; the body goes out as HTML when it contains markup."""
        payload: dict[str, Any] = {"from": sender, "to": list(to), "subject": subject}
        if is_html(body):
            payload["html"] = body
        else:
            payload["text"] = body
        if config.reply_to:
            payload["reply_to"] = config.reply_to
        if config.cc:
            payload["cc"] = config.cc
        if config.bcc:
            payload["bcc"] = config.bcc
        return payload


def _delivery_error(
    success: bool, error: str | None, response: ProviderResponse | None
) -> str | None:
    if not success:
        return error or "Failed to send email"
    if response is None or not response.success:
        return response.error_msg if response is not None else "Empty response"
    return None


def _message_id(response: ProviderResponse | None) -> str | None:
    if response is not None and isinstance(response.data, dict):
        return response.data.get("id")
    return None
