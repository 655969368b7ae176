"""Response model shared by the provider clients."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel


class ProviderResponse(BaseModel):
    """Unified result of one provider call.

    Exposes ``status_code`` so the retry utility can classify it like any other
    HTTP response.

    Attributes:
        success: Whether the provider accepted the request.
        status_code: HTTP status returned by the provider.
        data: Parsed JSON body, if any.
        error_msg: Human-readable error (if failed).
        raw_body: Response body text, reported verbatim on failure.
    """

    success: bool
    status_code: int = 0
    data: Any = None
    error_msg: str = ""
    raw_body: str = ""

    @classmethod
    def ok(cls, status_code: int, data: Any = None, raw_body: str = "") -> ProviderResponse:
        """Create a successful response."""
        return cls(success=True, status_code=status_code, data=data, raw_body=raw_body)

    @classmethod
    def fail(
        cls, error_msg: str, status_code: int = 0, data: Any = None, raw_body: str = ""
    ) -> ProviderResponse:
        """Create a failed response."""
        return cls(
            success=False,
            status_code=status_code,
            data=data,
            error_msg=error_msg,
            raw_body=raw_body,
        )


def parse_json_body(response: httpx.Response) -> Any:
    """Return the decoded JSON body, or None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
