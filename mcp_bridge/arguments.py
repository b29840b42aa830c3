"""
Argument decoding, defaulting and validation for tool calls.

Models send arguments as JSON text and sometimes pick enum values the
backend will reject. Before a call goes out, missing parameters are filled
from the schema and from per-tool defaults, and bad enumerated values are
coerced to their default or rejected.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp_bridge.errors import InvalidArgumentsError
from mcp_bridge.models import ToolDescriptor

logger = logging.getLogger(__name__)

# Tool-specific defaults layered over schema defaults.
TOOL_DEFAULTS: dict[str, dict[str, Any]] = {
    "generate_image": {
        "megapixels": "1",
        "aspect_ratio": "1:1",
    },
}

# Allowed values enforced even when a backend's schema omits the enum.
TOOL_CHOICES: dict[str, dict[str, tuple[Any, ...]]] = {
    "generate_image": {
        "megapixels": ("1", "0.25"),
    },
}


def parse_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode the model's argument payload into a dict."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidArgumentsError(f"Arguments are not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise InvalidArgumentsError(
            f"Arguments must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


class ArgumentPreparer:
    """Fills defaults and checks enumerated values before a tool call."""

    def __init__(
        self,
        tool_defaults: dict[str, dict[str, Any]] | None = None,
        tool_choices: dict[str, dict[str, tuple[Any, ...]]] | None = None,
    ):
        self.tool_defaults = TOOL_DEFAULTS if tool_defaults is None else tool_defaults
        self.tool_choices = TOOL_CHOICES if tool_choices is None else tool_choices

    def defaults_for(self, descriptor: ToolDescriptor) -> dict[str, Any]:
        """Schema defaults overlaid with the tool-specific ones."""
        defaults = {
            prop: spec["default"]
            for prop, spec in descriptor.properties.items()
            if isinstance(spec, dict) and "default" in spec
        }
        defaults.update(self.tool_defaults.get(descriptor.name, {}))
        return defaults

    def prepare(self, descriptor: ToolDescriptor, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Return the arguments to send.

        Raises:
            InvalidArgumentsError: an enumerated value is invalid and has no
                default to fall back to, or a required field is missing.
        """
        defaults = self.defaults_for(descriptor)
        prepared = {**defaults, **arguments}

        for prop, allowed in self._choices(descriptor).items():
            if prop not in prepared or prepared[prop] in allowed:
                continue
            fallback = defaults.get(prop)
            if prop in defaults and fallback in allowed:
                logger.info(
                    f"{descriptor.name}: replacing invalid {prop}={prepared[prop]!r} with {fallback!r}"
                )
                prepared[prop] = fallback
            else:
                raise InvalidArgumentsError(
                    f"{descriptor.name}: {prop}={prepared[prop]!r} is not one of {list(allowed)}"
                )

        missing = [name for name in descriptor.required if name not in prepared]
        if missing:
            raise InvalidArgumentsError(
                f"{descriptor.name}: missing required argument(s): {', '.join(missing)}"
            )
        return prepared

    def _choices(self, descriptor: ToolDescriptor) -> dict[str, tuple[Any, ...]]:
        choices = {
            prop: tuple(spec["enum"])
            for prop, spec in descriptor.properties.items()
            if isinstance(spec, dict) and isinstance(spec.get("enum"), list)
        }
        choices.update(self.tool_choices.get(descriptor.name, {}))
        return choices
