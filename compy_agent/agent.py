"""Compy shopping assistant using OpenAI tool calling.

Bounded loop per request:
1. Model turn streams text and may call searchProducts
2. Tool calls run translate -> search -> compress and go back as tool messages
3. Repeat until the model answers without a tool call or the round budget is spent

Entry points: CompyChatAgent.stream_reply()
"""

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from .compressor import compress
from .config import (
    ABORT_ON_SEARCH_UNAVAILABLE,
    MAX_HISTORY_MESSAGES,
    MAX_TOOL_ROUNDS,
    MODEL_NAME,
    REQUEST_TIMEOUT_SECONDS,
)
from .errors import BudgetExceeded, CompyAgentError, InvalidFilter, ModelProviderError, SearchUnavailable
from .filters import query_from_tool_args, translate
from .models import StreamEvent
from .search import AbstractSearchClient, TypesenseSearchClient
from .utils import assistant_message

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "searchProducts"

SYSTEM_PROMPT = (
    "You are a helpful product recommendation assistant for Compy. "
    "Use the searchProducts tool to find relevant products based on the user's query. "
    "Only recommend products returned by the tool; never invent products, prices or links. "
    "If no relevant products are found, suggest searching with different terms. "
    "If the search service is unavailable, tell the user to try again in a moment.\n\n"
    "FORMAT YOUR RESPONSES USING MARKDOWN:\n"
    "- Use ## for section headings\n"
    "- Use **bold** for important information like prices and product names\n"
    "- Use tables for specifications:\n"
    "  | Specification | Value |\n"
    "  | ------------- | ----- |\n"
    "- Use bullet points for listing features\n"
    "- Use markdown image syntax when showing a product image\n\n"
    "When describing products:\n"
    "- Be concise but highlight key features, price, and specifications\n"
    "- Always include the product price, formatted as \"S/ XXX.XX\"\n"
    "- Include the price verdict from the results (good time to buy, consider waiting, "
    "or wait for a better offer); a blank or missing verdict means there is not enough price history\n"
    "- For multiple products, present a numbered list with brief descriptions\n"
    "- Include a comparison table if showing multiple similar products"
)

SEARCH_UNAVAILABLE_NOTE = (
    "SEARCH_UNAVAILABLE: the product catalog could not be reached, so no data is available. "
    "This is not an empty result. Ask the user to retry in a moment or rephrase the request."
)

FAILURE_MESSAGES = {
    ModelProviderError: "Sorry, something went wrong. Please try again in a moment.",
    BudgetExceeded: "Sorry, this answer took too long and was stopped. Please try again.",
    SearchUnavailable: "The product catalog is not reachable right now. Please try again shortly.",
}


tools = [
    {
        "type": "function",
        "function": {
            "name": SEARCH_TOOL_NAME,
            "description": "Search for products in the Compy catalog.",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The search query to find relevant products, e.g. 'televisor led 55'.",
                    },
                    "category": {
                        "type": "string",
                        "description": "Optional category to filter by (e.g., Electrohogar, Tecnologia).",
                    },
                    "brand": {
                        "type": "string",
                        "description": "Optional brand to filter by (e.g., SAMSUNG, LG, INDURAMA).",
                    },
                    "priceMin": {
                        "type": "number",
                        "description": "Optional minimum price, inclusive.",
                    },
                    "priceMax": {
                        "type": "number",
                        "description": "Optional maximum price, inclusive.",
                    },
                },
                "required": ["query"],
            },
        },
    }
]


@dataclass
class _TurnBuffer:
    """Text and tool calls accumulated from one streamed model turn."""
    content: str = ""
    calls: Dict[int, Dict[str, str]] = field(default_factory=dict)

    def add_tool_call_delta(self, delta: Any) -> None:
        call = self.calls.setdefault(delta.index, {"id": "", "name": "", "arguments": ""})
        if delta.id:
            call["id"] = delta.id
        fn = delta.function
        if fn is not None:
            if fn.name:
                call["name"] += fn.name
            if fn.arguments:
                call["arguments"] += fn.arguments

    @property
    def tool_calls(self) -> List[Dict[str, str]]:
        return [self.calls[i] for i in sorted(self.calls)]


def trim_history(messages: List[Dict[str, Any]], limit: int = MAX_HISTORY_MESSAGES) -> List[Dict[str, Any]]:
    """Keep the most recent user/assistant text messages; callers cannot inject system prompts."""
    kept = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in {"user", "assistant"} and isinstance(m.get("content"), str)
    ]
    return kept[-limit:]


class CompyChatAgent:
    """Streams one assistant reply per request, with a bounded number of search rounds."""

    def __init__(
        self,
        search_client: Optional[AbstractSearchClient] = None,
        llm_client: Optional[AsyncOpenAI] = None,
        model: str = MODEL_NAME,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
        abort_on_search_unavailable: bool = ABORT_ON_SEARCH_UNAVAILABLE,
    ) -> None:
        self.search_client: AbstractSearchClient = search_client or TypesenseSearchClient()
        # Created on first use so importing the agent does not require OPENAI_API_KEY.
        self._llm = llm_client
        self.model = model
        self.max_tool_rounds = max_tool_rounds
        self.timeout_seconds = timeout_seconds
        self.abort_on_search_unavailable = abort_on_search_unavailable

    @property
    def llm(self) -> AsyncOpenAI:
        if self._llm is None:
            self._llm = AsyncOpenAI()
        return self._llm

    async def search_products(self, args: Dict[str, Any]) -> str:
        """Execute the searchProducts tool and return the compressed result table."""
        query = query_from_tool_args(args)
        filter_by = translate(query)
        results = await self.search_client.search(query, filter_by)
        return compress(results)

    async def stream_reply(self, messages: List[Dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        """Run the tool-calling loop for one request, yielding events as they happen."""
        deadline = asyncio.get_running_loop().time() + self.timeout_seconds
        working: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}, *trim_history(messages)]
        rounds = 0

        try:
            while True:
                allow_tools = rounds < self.max_tool_rounds
                turn = _TurnBuffer()
                async with aclosing(self._model_turn(working, allow_tools, deadline, turn)) as chunks:
                    async for text in chunks:
                        yield StreamEvent("text", text)

                if not turn.tool_calls:
                    yield StreamEvent("finish", {"reason": "stop", "tool_rounds": rounds})
                    return

                if not allow_tools:
                    logger.warning("Refusing tool round %d; budget is %d", rounds + 1, self.max_tool_rounds)
                    yield StreamEvent("finish", {"reason": "tool-round-limit", "tool_rounds": rounds})
                    return

                rounds += 1
                logger.info("Tool round %d/%d with %d call(s)", rounds, self.max_tool_rounds, len(turn.tool_calls))
                working.append(assistant_message(turn.content, turn.tool_calls))

                for call in turn.tool_calls:
                    yield StreamEvent("tool_call", {
                        "id": call["id"],
                        "name": call["name"],
                        "args": _decode_args(call["arguments"]),
                    })
                    result = await self._run_tool(call, deadline)
                    yield StreamEvent("tool_result", {"id": call["id"], "result": result})
                    working.append({"role": "tool", "tool_call_id": call["id"], "content": result})

        except CompyAgentError as e:
            logger.error("Turn failed after %d tool round(s): %s", rounds, e)
            yield StreamEvent("error", FAILURE_MESSAGES.get(type(e), FAILURE_MESSAGES[ModelProviderError]))
            yield StreamEvent("finish", {"reason": "error", "tool_rounds": rounds})

    async def _model_turn(
        self,
        messages: List[Dict[str, Any]],
        allow_tools: bool,
        deadline: float,
        turn: _TurnBuffer,
    ) -> AsyncIterator[str]:
        try:
            stream = await self._with_deadline(
                self.llm.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    tools=tools,
                    # Last permitted turn must answer in prose.
                    tool_choice="auto" if allow_tools else "none",
                    stream=True,
                ),
                deadline,
            )
        except OpenAIError as e:
            raise ModelProviderError(f"Model request failed: {e}") from e

        try:
            while True:
                try:
                    chunk = await self._with_deadline(stream.__anext__(), deadline)
                except StopAsyncIteration:
                    break
                except OpenAIError as e:
                    raise ModelProviderError(f"Model stream failed: {e}") from e

                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    turn.content += delta.content
                    yield delta.content
                for tc_delta in delta.tool_calls or []:
                    turn.add_tool_call_delta(tc_delta)
        finally:
            # Also runs when the caller disconnects and the generator is closed.
            await stream.close()

    async def _run_tool(self, call: Dict[str, str], deadline: float) -> str:
        """Execute one tool call; stage-local problems come back as text for the model."""
        if call["name"] != SEARCH_TOOL_NAME:
            logger.warning("Model called unknown tool %r", call["name"])
            return f"ERROR: unknown tool {call['name']!r}. The only available tool is {SEARCH_TOOL_NAME}."

        args = _decode_args(call["arguments"])
        if args is None:
            return "ERROR: tool arguments were not a valid JSON object. Call searchProducts again with valid JSON."

        try:
            return await self._with_deadline(self.search_products(args), deadline)
        except InvalidFilter as e:
            logger.info("Rejected search arguments %s: %s", args, e)
            return f"ERROR: invalid search arguments: {e}. Correct them and call {SEARCH_TOOL_NAME} again."
        except SearchUnavailable as e:
            if self.abort_on_search_unavailable:
                raise
            logger.warning("Search unavailable, reporting to model: %s", e)
            return SEARCH_UNAVAILABLE_NOTE

    async def _with_deadline(self, awaitable: Awaitable[Any], deadline: float) -> Any:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise BudgetExceeded(f"Request exceeded its {self.timeout_seconds:.0f}s budget")
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except asyncio.TimeoutError:
            raise BudgetExceeded(f"Request exceeded its {self.timeout_seconds:.0f}s budget") from None


def _decode_args(raw: str) -> Optional[Dict[str, Any]]:
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return None
    return args if isinstance(args, dict) else None
