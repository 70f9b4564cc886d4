"""Helpers for turning model output into usable data.

Used by InvocationResult.json() and InvocationResult.tool_call_json(); also
importable directly for post-processing research output.
"""

import json
import re
from typing import Any

from app.exceptions import LLMResponseError

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
_UUID_CITATION_RE = re.compile(
    r"\[[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}\]", re.IGNORECASE
)


def parse_json_response(content: str) -> Any:
    """
    2-tier JSON extraction:
      1. Direct parse
      2. Extract from ```json ... ``` code block
    Raises json.JSONDecodeError when neither works.
    """
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    match = _CODE_BLOCK_RE.search(content)
    if match:
        return json.loads(match.group(1).strip())

    raise json.JSONDecodeError("No valid JSON found", content, 0)


def extract_tool_call_json(response: Any) -> dict[str, Any]:
    """Arguments of the first tool call in a chat completion."""
    try:
        tool_calls = response.choices[0].message.tool_calls
    except (AttributeError, IndexError) as exc:
        raise LLMResponseError("Response has no message to read tool calls from") from exc
    if not tool_calls:
        raise LLMResponseError("Response contains no tool calls")

    arguments = tool_calls[0].function.arguments
    try:
        return json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise LLMResponseError(
            f"Tool call {tool_calls[0].function.name} returned invalid JSON arguments",
            details={"arguments": arguments[:500]},
        ) from exc


def clean_markdown_formatting(text: str) -> str:
    """Strip bold, italics, inline code and heading markers."""
    if not text:
        return ""
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"\*(.*?)\*", r"\1", text)
    text = re.sub(r"`(.*?)`", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    return text.strip()


def clean_citations(text: str) -> str:
    """Remove citation markers and attribution phrases from research output."""
    if not text:
        return ""
    cleaned = re.sub(r"\[\d+\]", "", text)
    cleaned = _UUID_CITATION_RE.sub("", cleaned)
    cleaned = re.sub(r"According to [^,]+,\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"Research shows that\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"Studies indicate that\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"Source:\s*[^\n]+\n?", "", cleaned, flags=re.IGNORECASE)
    cleaned = clean_markdown_formatting(cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()
