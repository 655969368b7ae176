"""HTTP request step handler.

Calls an arbitrary HTTP endpoint, which makes it the escape hatch for services
without a dedicated handler.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import Field, field_validator

from ..core.config import HTTPClientConfig, RetryConfig
from ..core.logger import get_logger
from ..engine.context import ExecutionContext
from ..engine.models import Step, StepResult
from ..providers.models import parse_json_body
from .base import RetryableConfig, StepHandler

logger = get_logger("handlers.http_request")

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class HttpRequestConfig(RetryableConfig):
    """Configuration of an ``http_request`` step."""

    url: str = Field(min_length=1)
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | dict[str, Any] | list[Any] | None = None
    timeout: float | None = Field(default=None, gt=0)

    @field_validator("method")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class HttpRequestHandler(StepHandler[HttpRequestConfig]):
    """Make an HTTP request and record the response."""

    type = "http_request"
    config_model = HttpRequestConfig

    def __init__(
        self,
        http_config: HTTPClientConfig | None = None,
        default_retry: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(default_retry)
        self.http_config = http_config or HTTPClientConfig()
        self._client = client

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: str | None,
        timeout: float,
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(
                method, url, headers=headers, content=content, timeout=timeout
            )
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.request(method, url, headers=headers, content=content)

    async def run(
        self, step: Step, config: HttpRequestConfig, context: ExecutionContext
    ) -> StepResult:
        url = self.templates.resolve(config.url, context)
        headers = {"Content-Type": "application/json"}
        headers.update(self.templates.resolve_object(config.headers, context))

        content: str | None = None
        if config.body is not None and config.method in BODY_METHODS:
            if isinstance(config.body, str):
                content = self.templates.resolve(config.body, context)
            else:
                content = json.dumps(self.templates.resolve_object(config.body, context))

        timeout = config.timeout or self.http_config.timeout
        logger.debug("%s %s (timeout=%ss)", config.method, url, timeout)
        result = await self.call_with_retry(
            lambda: self._request(config.method, url, headers, content, timeout), config.retry
        )
        if not result.success or result.data is None:
            return self.failed(step, result.error or "HTTP request failed")

        response = result.data
        if "application/json" in response.headers.get("content-type", ""):
            body = parse_json_body(response)
        else:
            body = response.text
        data = {
            "status": response.status_code,
            "status_text": response.reason_phrase,
            "body": body,
            **self.retry_stats(result),
        }

        if not response.is_success:
            return self.failed(
                step, f"HTTP {response.status_code}: {response.reason_phrase}", data=data
            )
        return self.completed(step, data)
