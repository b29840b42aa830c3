"""
Keyword-based tool hints.

A cheap guess at which tool a prompt is about, used to add that tool's
usage instructions to the system prompt for one request. It never limits
which tools the model may call; the model still decides.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from mcp_bridge.models import ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass
class ToolHint:
    keywords: list[str]
    example_arguments: dict[str, Any]
    instructions: str


class KeywordToolHints:
    """Matches prompts against tool names to pick usage instructions."""

    def __init__(self):
        self._hints: dict[str, ToolHint] = {}

    def rebuild(self, descriptors: Iterable[ToolDescriptor]) -> None:
        """Replace all hints with ones derived from `descriptors`."""
        self._hints = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ToolDescriptor) -> None:
        example = self.example_arguments(descriptor.input_schema)
        self._hints[descriptor.name] = ToolHint(
            keywords=self._keywords(descriptor.name),
            example_arguments=example,
            instructions=self._format_instructions(descriptor.name, example),
        )
        logger.debug(
            f"Registered hints for {descriptor.name}: {', '.join(self._hints[descriptor.name].keywords)}"
        )

    def detect(self, prompt: str) -> str | None:
        """Name of the first tool whose keyword appears in `prompt`."""
        lowered = prompt.lower()
        for name, hint in self._hints.items():
            for keyword in hint.keywords:
                if keyword in lowered:
                    logger.debug(f"Detected tool {name} via keyword: {keyword}")
                    return name
        return None

    def instructions(self, name: str) -> str | None:
        hint = self._hints.get(name)
        return hint.instructions if hint else None

    def names(self) -> list[str]:
        return list(self._hints)

    @staticmethod
    def _keywords(name: str) -> list[str]:
        lowered = name.lower()
        spaced = lowered.replace("_", " ")
        return [lowered] if spaced == lowered else [lowered, spaced]

    @classmethod
    def example_arguments(cls, schema: dict[str, Any] | None) -> dict[str, Any]:
        """Placeholder argument values shaped like `schema`."""
        if not schema or not isinstance(schema.get("properties"), dict):
            return {}

        example: dict[str, Any] = {}
        for key, spec in schema["properties"].items():
            spec = spec if isinstance(spec, dict) else {}
            kind = spec.get("type")
            if kind == "string":
                if key == "prompt":
                    example[key] = "description of what you want"
                elif key == "query":
                    example[key] = "search query"
                elif "path" in key:
                    example[key] = "filename.txt"
                elif "content" in key:
                    example[key] = "content to write"
                else:
                    example[key] = f"example_{key}"
            elif kind in ("number", "integer"):
                example[key] = spec.get("example", 1)
            elif kind == "boolean":
                example[key] = spec.get("example", True)
            elif kind == "object":
                example[key] = cls.example_arguments(spec)
            elif kind == "array":
                example[key] = spec.get("example", [])
            else:
                example[key] = spec.get("example")
        return example

    @staticmethod
    def _format_instructions(name: str, example: dict[str, Any]) -> str:
        return (
            f"When using the {name} tool, call it with arguments like:\n"
            f"{json.dumps(example, indent=2)}"
        )
