"""Step handlers and the default handler table."""

from __future__ import annotations

from ..core.config import EngineSettings
from ..engine.recipients import RecipientResolver
from ..providers.chat import SlackClient
from ..providers.email import ResendEmailClient
from ..stores.base import ContactStore, IntegrationStore
from .base import HandlerConfig, RetryableConfig, StepHandler
from .conditional import ConditionalHandler
from .delay import DelayHandler
from .http_request import HttpRequestHandler
from .send_email import SendEmailHandler
from .send_slack import SendSlackHandler


def get_default_handlers(
    settings: EngineSettings,
    contact_store: ContactStore,
    integration_store: IntegrationStore | None = None,
) -> list[StepHandler]:
    """Build the built-in handlers from explicit settings and stores."""
    retry = settings.retry
    return [
        SendEmailHandler(
            ResendEmailClient(settings.email),
            RecipientResolver(contact_store),
            default_retry=retry,
        ),
        SendSlackHandler(SlackClient(settings.slack), integration_store, default_retry=retry),
        HttpRequestHandler(settings.http, default_retry=retry),
        DelayHandler(default_retry=retry),
        ConditionalHandler(default_retry=retry),
    ]


__all__ = [
    "ConditionalHandler",
    "DelayHandler",
    "HandlerConfig",
    "HttpRequestHandler",
    "RetryableConfig",
    "SendEmailHandler",
    "SendSlackHandler",
    "StepHandler",
    "get_default_handlers",
]
