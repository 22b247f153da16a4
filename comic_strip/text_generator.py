"""
Comic Strip — Text Generator.

Sends the story prompt to Claude and returns the raw reply text.
Non-streaming: the pipeline waits for the complete message.
"""

import logging
import os
from typing import Optional

import anthropic

from comic_strip.models import StageResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicTextGenerator:
    """Pipeline stage: chat messages → raw story text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not self.api_key and client is None:
            logger.warning("ANTHROPIC_API_KEY not set, story generation will fail")
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.close()

    async def process(self, messages: list[dict]) -> StageResult:
        logger.info(f"Requesting comic story from {self.model}...")
        try:
            response = await self._get_client().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=messages,
            )
        except Exception as e:
            logger.error(f"Story generation call failed: {e}")
            return StageResult.fatal(str(e) or type(e).__name__)

        texts = [
            block.text for block in (response.content or [])
            if getattr(block, "type", "") == "text"
        ]
        if not texts:
            return StageResult.fatal("No text received from story generation")

        text = "".join(texts)
        logger.info(f"Story reply received ({len(text)} chars)")
        return StageResult.success(text)
