"""
Comic Strip — Main Orchestrator.

ComicPipeline ties all stages together:
  Brief → Prompt → Text model → Parse → Panel images

and moves the tracked request through its lifecycle:
  pending → generating_story → generating_images → completed
with error reachable from any non-terminal state.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from comic_strip.image_generator import PanelImageGenerator
from comic_strip.models import (
    ComicBrief,
    ComicResult,
    PipelineError,
    RequestStatus,
    StageOutcome,
    StageResult,
    TrackedRequest,
)
from comic_strip.script_parser import StoryResponseParser, validate_comic_result
from comic_strip.story_prompt import StoryPromptBuilder
from comic_strip.text_generator import AnthropicTextGenerator

logger = logging.getLogger(__name__)

NO_OUTPUT_ERROR = "No valid result received from pipeline execution"


class ComicPipeline:
    """
    End-to-end four-panel comic generator.

    Usage:
        pipeline = ComicPipeline()
        result = await pipeline.generate(ComicBrief(
            character1_description="A brave knight",
            character2_description="A wise wizard",
            art_style="anime manga style",
        ))
    """

    def __init__(
        self,
        prompt_builder: Optional[StoryPromptBuilder] = None,
        text_generator=None,
        parser: Optional[StoryResponseParser] = None,
        image_generator=None,
    ):
        self.prompt_builder = prompt_builder or StoryPromptBuilder()
        self.text_generator = text_generator or AnthropicTextGenerator()
        self.parser = parser or StoryResponseParser()
        self.image_generator = image_generator or PanelImageGenerator()

    async def run(self, request: TrackedRequest) -> TrackedRequest:
        """
        Drive one request to a terminal state. Never raises.

        Panel failures still complete the request; only a failed text
        generation call, a missing stage output, or an unexpected fault
        ends it in error.

        Args:
            request: Pending TrackedRequest, mutated in place

        Returns:
            The same request, now completed or in error
        """
        logger.info(f"Starting comic generation for request {request.request_id}")
        try:
            request.advance(RequestStatus.GENERATING_STORY)
            result = await self._execute(request)
        except Exception as e:
            logger.error(f"Comic generation failed for request {request.request_id}: {e}")
            if not request.status.is_terminal:
                request.fail(str(e))
            return request

        request.complete(result)
        logger.info(f"Comic generation completed for request {request.request_id}")
        return request

    async def _execute(self, request: TrackedRequest) -> ComicResult:
        # === Stage 1: Story ===
        logger.info("Generating comic story...")
        messages = self.prompt_builder.process(request.brief)

        reply = await self.text_generator.process(messages)
        reply_text = self._unwrap(reply, "text generation")

        story_result = self.parser.process(reply_text)
        story = self._unwrap(story_result, "story parsing")
        if story_result.outcome is StageOutcome.FALLBACK:
            logger.warning(
                f"Request {request.request_id}: using fallback story ({story_result.error})"
            )

        # === Stage 2: Images ===
        request.advance(RequestStatus.GENERATING_IMAGES)
        logger.info("Generating comic images...")

        image_result = await self.image_generator.process(story)
        comic = self._unwrap(image_result, "image generation")

        is_valid, problems = validate_comic_result(comic)
        if not is_valid:
            logger.warning(
                f"Request {request.request_id} finished with issues: {'; '.join(problems)}"
            )
        return comic

    @staticmethod
    def _unwrap(result: Optional[StageResult], stage: str):
        """Return a stage's value, or raise PipelineError for fatal/missing output."""
        if result is None:
            raise PipelineError(NO_OUTPUT_ERROR)
        if not result.ok:
            raise PipelineError(result.error or f"{stage} failed")
        if result.value is None:
            raise PipelineError(NO_OUTPUT_ERROR)
        return result.value

    async def generate(self, brief: ComicBrief) -> ComicResult:
        """Run the pipeline for a brief without a ledger. Raises PipelineError on failure."""
        request = TrackedRequest(
            request_id=uuid.uuid4().hex,
            brief=brief,
            created_at=datetime.now(),
        )
        await self.run(request)
        if request.status is not RequestStatus.COMPLETED:
            raise PipelineError(request.error or NO_OUTPUT_ERROR)
        return request.result

    async def close(self):
        """Clean up resources."""
        for stage in (self.text_generator, self.image_generator):
            close = getattr(stage, "close", None)
            if close is not None:
                await close()
