"""Template variable resolution.

Replaces ``{{path.to.value}}`` placeholders with values from the execution
context. Supported roots:

- ``{{user.id}}``, ``{{user.email}}``, ``{{user.name}}``
- ``{{workflow.id}}``, ``{{workflow.name}}``, ``{{workflow.trigger_type}}``
- ``{{trigger.data.*}}`` - data from the trigger payload
- ``{{steps.<step_id>.data.*}}`` and ``{{steps.<step_id>.status}}``
- any overlay variable, e.g. ``{{contact.name}}`` when personalising

Resolution is textual. A placeholder whose path does not resolve is left in the
output unchanged so callers can detect it with :func:`has_unresolved`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..core.logger import get_logger
from .context import ExecutionContext

logger = get_logger("engine.templates")

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_MISSING = object()


def has_unresolved(text: str | None) -> bool:
    """Return True if ``text`` still contains template braces."""
    if not text:
        return False
    return "{{" in text or "}}" in text


def lookup_path(namespace: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through mappings and sequences.

    Returns the module-level ``_MISSING`` sentinel when any segment is absent.
    """
    current: Any = namespace
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, str | bytes):
            if not segment.lstrip("-").isdigit():
                return _MISSING
            index = int(segment)
            if not -len(current) <= index < len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping | list | tuple):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


class TemplateResolver:
    """Render ``{{...}}`` placeholders against an :class:`ExecutionContext`."""

    def resolve(self, template: Any, context: ExecutionContext) -> Any:
        """Resolve placeholders in a string.

        Non-string input is returned unchanged.
        """
        if not template or not isinstance(template, str):
            return template
        return self.render(template, context.to_namespace())

    def render(self, template: str, namespace: Mapping[str, Any]) -> str:
        """Resolve placeholders against an explicit namespace."""

        def _replace(match: re.Match[str]) -> str:
            value = lookup_path(namespace, match.group(1))
            if value is _MISSING:
                logger.debug("Unresolved template variable: %s", match.group(1))
                return match.group(0)
            return _stringify(value)

        return PLACEHOLDER_PATTERN.sub(_replace, template)

    def resolve_object(self, obj: Any, context: ExecutionContext) -> Any:
        """Resolve placeholders recursively in dicts and lists."""
        return self._resolve_value(obj, context.to_namespace())

    def _resolve_value(self, obj: Any, namespace: Mapping[str, Any]) -> Any:
        if isinstance(obj, str):
            return self.render(obj, namespace)
        if isinstance(obj, Mapping):
            return {key: self._resolve_value(value, namespace) for key, value in obj.items()}
        if isinstance(obj, list | tuple):
            return [self._resolve_value(item, namespace) for item in obj]
        return obj


template_resolver = TemplateResolver()
