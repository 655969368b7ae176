"""Clients for external email and chat providers."""

from .chat import SlackClient
from .email import ResendEmailClient
from .models import ProviderResponse

__all__ = ["ProviderResponse", "ResendEmailClient", "SlackClient"]
