"""
Example: Streaming chat with retries

Sends a few messages through the chat client, printing chunks as they
arrive and retry notices when the service asks us to back off. Needs
OPENAI_API_KEY in the environment or a .env file.
"""

import asyncio

from llm_chat_core import (
    CODE_REVIEWER,
    ChatClient,
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    RetryingEvent,
)


async def example_basic_chat():
    """Stream one reply and show the persisted history."""
    print("=== Basic Streaming Chat ===\n")

    async with ChatClient.from_settings() as chat:
        async for event in chat.send("Write a haiku about Python programming"):
            if isinstance(event, ChunkEvent):
                print(event.text, end="", flush=True)
            elif isinstance(event, RetryingEvent):
                print(f"\n[retry {event.attempt} in {event.delay_ms}ms: {event.error}]")
            elif isinstance(event, CompleteEvent):
                print(f"\n\nSaved reply ({event.message.token_count} tokens)")
            elif isinstance(event, ErrorEvent):
                print(f"\n{event.error.user_message}")

        history = await chat.load_history()
        print(f"Conversation now has {len(history)} messages")


async def example_personality_in_background():
    """Run a turn in the background with a personality preset."""
    print("\n=== Code Review Turn ===\n")

    async with ChatClient.from_settings() as chat:
        handle = chat.start("def add(a, b): return a - b", personality=CODE_REVIEWER)
        async for event in handle.events():
            if isinstance(event, ChunkEvent):
                print(event.text, end="", flush=True)
        print()
        await chat.clear()


async def main():
    await example_basic_chat()
    await example_personality_in_background()


if __name__ == "__main__":
    asyncio.run(main())
