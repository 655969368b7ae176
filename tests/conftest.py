"""Test configuration hooks and shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from stepflow.core.config import EmailProviderConfig, RetryConfig, SlackConfig
from stepflow.engine.context import ExecutionContext, create_context
from stepflow.engine.models import StepResult, UserInfo, WorkflowInput
from stepflow.stores.base import ContactRecord, IntegrationRecord
from stepflow.stores.memory import InMemoryContactStore, InMemoryIntegrationStore

OWNER_ID = "owner-1"


# Configure anyio to only use asyncio backend (skip trio tests)
@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use only asyncio backend."""
    return "asyncio"


def _make_workflow(steps: list[dict[str, Any]], **overrides: Any) -> WorkflowInput:
    """Build a WorkflowInput from raw step dicts, camelCase as stored."""
    data: dict[str, Any] = {
        "id": "wf-1",
        "name": "Test workflow",
        "ownerId": OWNER_ID,
        "definition": {"steps": steps, "triggerStepId": steps[0]["id"] if steps else None},
    }
    data.update(overrides)
    return WorkflowInput.model_validate(data)


def _make_context(
    results: dict[str, StepResult] | None = None,
    trigger_data: dict[str, Any] | None = None,
) -> ExecutionContext:
    """Build a context for the default test workflow and user."""
    workflow = _make_workflow([])
    user = UserInfo(id=OWNER_ID, email="owner@example.com", name="Olive Owner")
    return create_context(workflow, user, "run-1", results or {}, trigger_data=trigger_data)


@pytest.fixture
def user() -> UserInfo:
    """The user running test workflows."""
    return UserInfo(id=OWNER_ID, email="owner@example.com", name="Olive Owner")


@pytest.fixture
def context() -> ExecutionContext:
    """An empty execution context."""
    return _make_context()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """A retry policy with millisecond delays and no jitter."""
    return RetryConfig(max_retries=2, base_delay=1, max_delay=5, jitter=False)


@pytest.fixture
def contacts() -> list[ContactRecord]:
    """Sample contacts owned by OWNER_ID."""
    return [
        ContactRecord(
            id="c1",
            owner_id=OWNER_ID,
            name="Alice Smith",
            email="alice@example.com",
            department="Engineering",
            job_title="Engineer",
            company="Acme",
            tags=["backend", "oncall"],
        ),
        ContactRecord(
            id="c2",
            owner_id=OWNER_ID,
            name="Bo Chen",
            email="bo@example.com",
            department="Engineering",
            tags=["frontend"],
        ),
        ContactRecord(
            id="c3",
            owner_id=OWNER_ID,
            name="Carol Diaz",
            email="carol@example.com",
            department="Sales",
            tags=["vip"],
        ),
        ContactRecord(
            id="c4",
            owner_id=OWNER_ID,
            name="Dan Inactive",
            email="dan@example.com",
            department="Sales",
            tags=["vip"],
            is_active=False,
        ),
        ContactRecord(
            id="x1",
            owner_id="someone-else",
            name="Eve Other",
            email="eve@example.com",
            department="Engineering",
        ),
    ]


@pytest.fixture
def contact_store(contacts: list[ContactRecord]) -> InMemoryContactStore:
    """In-memory contact store with one group of two contacts."""
    store = InMemoryContactStore(contacts)
    store.add_group(OWNER_ID, "g-eng", ["c1", "c2"])
    store.add_group(OWNER_ID, "g-empty", [])
    return store


@pytest.fixture
def integration_store() -> InMemoryIntegrationStore:
    """Slack integrations: one with a bot token, one with only a webhook."""
    return InMemoryIntegrationStore(
        [
            IntegrationRecord(
                id="int-token",
                owner_id=OWNER_ID,
                type="slack",
                name="Workspace",
                config={"access_token": "xoxb-test", "default_channel_id": "C123"},
            ),
            IntegrationRecord(
                id="int-webhook",
                owner_id=OWNER_ID,
                type="slack",
                name="Webhook",
                config={"webhook_url": "https://hooks.slack.test/services/T/B/X"},
            ),
        ]
    )


@pytest.fixture
def email_config() -> EmailProviderConfig:
    """Email provider settings pointing at a test endpoint."""
    return EmailProviderConfig(
        api_key="re_test", from_email="bot@example.com", api_url="https://email.test/emails"
    )


@pytest.fixture
def slack_config() -> SlackConfig:
    """Slack settings pointing at a test API base."""
    return SlackConfig(api_base_url="https://slack.test/api")


@pytest.fixture
def make_workflow():
    """Factory building a WorkflowInput from raw step dicts."""
    return _make_workflow


@pytest.fixture
def make_context():
    """Factory building an ExecutionContext over given results and trigger data."""
    return _make_context
