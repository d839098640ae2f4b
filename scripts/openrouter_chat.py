#!/usr/bin/env python3
"""Send a prompt to OpenRouter from the command line.

Reads OPENROUTER_API_KEY (and the other OPENROUTER_* settings) from the
environment or a local .env file. Needs the `cli` extra
(`pip install -e .[cli]`) for .env support.

Usage:
    # One-shot completion with the default model
    python scripts/openrouter_chat.py "Explain SSE in one sentence"

    # Streamed, with a system prompt and explicit model
    python scripts/openrouter_chat.py --stream --model openai/gpt-4o-mini \
        --system "Answer tersely" "What is OpenRouter?"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from openrouter_connector import (
    ChatHistory,
    OpenRouterChatCompletionService,
    OpenRouterError,
    OpenRouterExecutionSettings,
)

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = OpenRouterExecutionSettings(
        model_id=args.model,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )

    history = ChatHistory()
    if args.system:
        history.add_system_message(args.system)
    history.add_user_message(args.prompt)

    async with OpenRouterChatCompletionService() as service:
        try:
            if args.stream:
                async for delta in service.get_streaming_chat_message_contents(history, settings):
                    if delta.content:
                        print(delta.content, end="", flush=True)
                print()
            else:
                messages = await service.get_chat_message_contents(history, settings)
                for message in messages:
                    print(message.content or "")
                    usage = message.metadata.get("Usage")
                    if usage is not None:
                        logger.info(
                            "Tokens: prompt=%s completion=%s total=%s",
                            usage.prompt_tokens,
                            usage.completion_tokens,
                            usage.total_tokens,
                        )
        except OpenRouterError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        finally:
            await service.drain_background_tasks()

    return 0


def main():
    parser = argparse.ArgumentParser(description="Chat with a model through OpenRouter")

    parser.add_argument("prompt", help="User prompt to send")
    parser.add_argument(
        "--model",
        default=None,
        help="Model id, e.g. openai/gpt-4o-mini (default: OPENROUTER_MODEL)",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Stream the response as it is generated",
    )
    parser.add_argument("--system", default=None, help="Optional system prompt")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    parser.add_argument("--max-tokens", type=int, default=None, help="Maximum tokens to generate")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        sys.exit(asyncio.run(run(args)))
    except OpenRouterError as e:
        # Configuration errors are raised before any request is sent
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
