"""Utility functions for the Compy agent."""
from typing import Any, Dict, List, Optional

from .config import CURRENCY_SYMBOL


def format_price(value: Optional[float]) -> str:
    """Render a price the way the storefront shows it: 'S/ 1,299.00'."""
    if value is None:
        return ""
    return f"{CURRENCY_SYMBOL} {value:,.2f}"


def escape_cell(value: Any) -> str:
    """Make a value safe for a single markdown table cell."""
    if value is None:
        return ""
    text = str(value).replace("\r", " ").replace("\n", " ")
    return text.replace("|", "\\|").strip()


def assistant_message(content: str, tool_calls: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Build an assistant history entry from streamed content and accumulated tool calls."""
    payload: Dict[str, Any] = {"role": "assistant", "content": content or None}
    if tool_calls:
        payload["tool_calls"] = [
            {
                "id": tc["id"],
                "type": "function",
                "function": {
                    "name": tc["name"],
                    "arguments": tc["arguments"],
                },
            }
            for tc in tool_calls
        ]
    return payload
