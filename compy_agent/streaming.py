"""Encode StreamEvents in the AI SDK data stream protocol.

One part per line, `<code>:<json>`; the chat UI consumes these incrementally.
"""

import json
from typing import Any, AsyncIterator, Dict

from .models import StreamEvent

DATA_STREAM_HEADERS = {"x-vercel-ai-data-stream": "v1"}

_FINISH_REASONS = {
    "stop": "stop",
    "tool-round-limit": "other",
    "error": "error",
}


def _part(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, ensure_ascii=False)}\n"


def encode_event(event: StreamEvent) -> str:
    if event.kind == "text":
        return _part("0", event.data)
    if event.kind == "tool_call":
        return _part("9", {
            "toolCallId": event.data["id"],
            "toolName": event.data["name"],
            "args": event.data["args"],
        })
    if event.kind == "tool_result":
        return _part("a", {"toolCallId": event.data["id"], "result": event.data["result"]})
    if event.kind == "error":
        return _part("3", str(event.data))
    if event.kind == "finish":
        data: Dict[str, Any] = event.data or {}
        return _part("d", {"finishReason": _FINISH_REASONS.get(data.get("reason"), "unknown")})
    raise ValueError(f"Unknown stream event kind: {event.kind!r}")


async def encode_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield encode_event(event)
