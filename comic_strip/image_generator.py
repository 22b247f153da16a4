"""
Comic Strip — Image Generator.

Generates the four panel images via the MiniMax image API.

All panels are requested at once. Each panel retries on its own with
exponential backoff; a panel that still fails gets an empty image URL
instead of failing the comic.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

import httpx

from comic_strip.config import MINIMAX_IMAGE_URL
from comic_strip.models import (
    ComicImagePanel,
    ComicPanel,
    ComicResult,
    ComicStory,
    DEFAULT_TITLE,
    ImageGenerationError,
    PipelineError,
    StageResult,
)

logger = logging.getLogger(__name__)

# Appended to every panel prompt
COMPOSITION_HINT = "clean composition"

PANEL_WIDTH = 512
PANEL_HEIGHT = 512
REQUEST_TIMEOUT = 120.0  # Seconds, per attempt

MAX_ATTEMPTS = 3
BASE_DELAY = 1.0
MAX_DELAY = 10.0


class PanelImageGenerator:
    """Pipeline stage: ComicStory → ComicResult with one image per panel."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = MINIMAX_IMAGE_URL,
        model: str = "image-01",
        width: int = PANEL_WIDTH,
        height: int = PANEL_HEIGHT,
        timeout: float = REQUEST_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY,
        max_delay: float = MAX_DELAY,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key or os.environ.get("MINIMAX_API_KEY", "")
        if not self.api_key:
            logger.warning("MINIMAX_API_KEY not set, image generation will fail")
        self.api_url = api_url
        self.model = model
        self.width = width
        self.height = height
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if we created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_prompt(panel: ComicPanel, art_style: str) -> str:
        return f"{panel.visual_description}, {art_style}, {COMPOSITION_HINT}"

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based), doubling up to max_delay."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def _request_image(self, prompt: str) -> str:
        """One generation call. Returns the image URL or raises ImageGenerationError."""
        client = await self._get_client()
        payload = {
            "model": self.model,
            "prompt": prompt,
            "width": self.width,
            "height": self.height,
            "response_format": "url",
            "n": 1,
            "prompt_optimizer": True,
        }

        try:
            response = await client.post(
                self.api_url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"MiniMax request error: {e!r}") from e

        if not response.is_success:
            raise ImageGenerationError(
                f"MiniMax request failed ({response.status_code}): {response.text[:300]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ImageGenerationError("Invalid response from MiniMax API (not JSON)") from e

        if not isinstance(data, dict) or not isinstance(data.get("base_resp"), dict):
            raise ImageGenerationError("Invalid response from MiniMax API")

        status = data["base_resp"]
        body = data.get("data")
        urls = body.get("image_urls") if isinstance(body, dict) else None
        if not isinstance(urls, list) or not urls or not isinstance(urls[0], str) or not urls[0]:
            raise ImageGenerationError(
                f"No image URL received from MiniMax API. "
                f"Status Code: {status.get('status_code')}, "
                f"Status Message: {status.get('status_msg')}"
            )
        return urls[0]

    async def _generate_panel(self, panel: ComicPanel, art_style: str) -> ComicImagePanel:
        """Generate one panel with retries. Never raises for API failures."""
        prompt = self.build_prompt(panel, art_style)
        logger.info(f"Starting image generation for panel {panel.panel_number}...")

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                f"Attempt {attempt}/{self.max_attempts} for panel {panel.panel_number}"
            )
            try:
                image_url = await self._request_image(prompt)
            except ImageGenerationError as e:
                logger.error(f"Attempt {attempt} failed for panel {panel.panel_number}: {e}")
                if attempt < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.info(f"Waiting {delay:.1f}s before retry...")
                    await self._sleep(delay)
                continue

            logger.info(f"Generated image for panel {panel.panel_number}")
            return ComicImagePanel.from_panel(panel, image_url)

        logger.error(f"All {self.max_attempts} attempts failed for panel {panel.panel_number}")
        return ComicImagePanel.from_panel(panel, "")

    async def generate(self, story: ComicStory) -> ComicResult:
        """
        Generate all panel images concurrently.

        Each panel retries on its own; one that never succeeds keeps an
        empty image_url and the others are unaffected.

        Args:
            story: Parsed ComicStory with four panels

        Returns:
            ComicResult with one ComicImagePanel per story panel, in order

        Raises:
            PipelineError: if no MiniMax API key is configured
        """
        if not self.api_key:
            raise PipelineError("MINIMAX_API_KEY environment variable is required")

        logger.info(f"Generating {len(story.panels)} comic panel images for: \"{story.title}\"")

        results = await asyncio.gather(
            *(self._generate_panel(panel, story.art_style) for panel in story.panels),
            return_exceptions=True,
        )

        panels = []
        for panel, result in zip(story.panels, results):
            if isinstance(result, BaseException):
                logger.error(f"Panel {panel.panel_number} failed unexpectedly: {result!r}")
                panels.append(ComicImagePanel.from_panel(panel, ""))
            else:
                panels.append(result)

        comic = ComicResult(
            title=story.title or DEFAULT_TITLE,
            art_style=story.art_style,
            panels=panels,
        )
        logger.info(
            f"Comic generation completed: {comic.successful_panels}/{len(panels)} "
            f"panels generated successfully"
        )
        return comic

    async def process(self, story: ComicStory) -> StageResult:
        return StageResult.success(await self.generate(story))
