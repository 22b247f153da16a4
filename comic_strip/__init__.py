"""
Comic Strip — four-panel comic generation.

Brief → story prompt → text model → parsed 4-panel story → panel images,
with every request tracked in an in-memory ledger.

Usage:
    from comic_strip import ComicPipeline, ComicBrief

    pipeline = ComicPipeline()
    result = await pipeline.generate(ComicBrief(
        character1_description="A brave knight",
        character2_description="A wise wizard",
        art_style="anime manga style",
        theme="medieval adventure",
    ))
"""

from comic_strip.comic_generator import ComicPipeline
from comic_strip.ledger import RequestLedger
from comic_strip.models import (
    BriefValidationError,
    ComicBrief,
    ComicImagePanel,
    ComicPanel,
    ComicResult,
    ComicStory,
    RequestStatus,
    TrackedRequest,
)
from comic_strip.service import ComicService

__all__ = [
    "ComicPipeline",
    "ComicService",
    "RequestLedger",
    "BriefValidationError",
    "ComicBrief",
    "ComicPanel",
    "ComicStory",
    "ComicImagePanel",
    "ComicResult",
    "RequestStatus",
    "TrackedRequest",
]
