"""
Streaming Answer Example

Feeds a simulated token stream through a StreamController twice: once as a
fresh answer, then as a follow-up with keepContext enabled so the second
answer is appended to the first under a separator.
"""

import asyncio

from answer_stream import AsyncioScheduler, ContextFlags, StreamController, stream_answer


class PrintDisplay:
    """Stand-in for a web view: shows the newest markup size and scroll requests."""

    def set_content(self, markup: str) -> None:
        print(f"  [display] {len(markup)} chars of markup")

    def scroll_to_end(self) -> None:
        print("  [display] scroll to end")


async def fake_tokens(text: str, delay: float = 0.02):
    for word in text.split(" "):
        await asyncio.sleep(delay)
        yield word + " "


async def main():
    print("=== Streaming Answer Example ===\n")

    flags = ContextFlags()
    controller = StreamController(
        flags=flags, display=PrintDisplay(), scheduler=AsyncioScheduler()
    )

    print("First answer:")
    await stream_answer(controller, fake_tokens("Use a **two pointer** scan over the array."))

    print("\nFollow-up with keepContext on:")
    flags.keep_context = True
    text = await stream_answer(controller, fake_tokens("Its time complexity is `O(n)`."))

    print("\nActive answer:\n")
    print(text)
    print("\nHistory:")
    for summary in controller.history.summaries():
        print(f"  - {summary}")


if __name__ == "__main__":
    asyncio.run(main())
