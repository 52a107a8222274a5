"""Simple CLI entry point for the Compy shopping assistant."""

import asyncio
import logging

from compy_agent import CompyChatAgent
from compy_agent.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def main() -> None:
    agent = CompyChatAgent()
    history = []
    print("Compy assistant is ready. Type 'exit' or 'quit' to stop, 'clear' to reset.")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nExiting.")
            break

        if not user_input:
            continue
        if user_input.lower() in {"exit", "quit"}:
            print("Goodbye.")
            break
        if user_input.lower() == "clear":
            history.clear()
            continue

        history.append({"role": "user", "content": user_input})
        reply = []
        print("Agent: ", end="", flush=True)
        async for event in agent.stream_reply(history):
            if event.kind == "text":
                reply.append(event.data)
                print(event.data, end="", flush=True)
            elif event.kind == "tool_call":
                print(f"\n[searching: {event.data['args']}]\n", end="", flush=True)
            elif event.kind == "error":
                print(f"\n{event.data}", end="")
        print("\n")
        history.append({"role": "assistant", "content": "".join(reply)})

    print("Session ended.")


if __name__ == "__main__":
    asyncio.run(main())
