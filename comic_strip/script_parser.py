"""
Comic Strip — Script Parser.

Turns the text model's raw reply into a validated 4-panel ComicStory.

The upstream format is not trusted: fenced replies are unwrapped, panel
numbers are rewritten from position, and anything that does not validate
is replaced by a fixed "error comic" so image generation always receives
exactly four panels.
"""

import json
import logging
import re

from comic_strip.models import (
    DEFAULT_ART_STYLE,
    DEFAULT_TITLE,
    PANEL_COUNT,
    ComicPanel,
    ComicResult,
    ComicStory,
    StageResult,
)

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "Error Comic"

# (dialogue, visual description) for the error comic
FALLBACK_PANELS = [
    ("Error generating comic story",
     "A simple illustration showing an error message, drawn in comic book style"),
    ("Please try again",
     "A character looking confused, drawn in comic book style"),
    ("Check your input",
     "A character pointing at the viewer, drawn in comic book style"),
    ("Thank you!",
     "A character waving goodbye, drawn in comic book style"),
]

_JSON_FENCE_OPEN = re.compile(r"^```json\s*", re.IGNORECASE)
_FENCE_OPEN = re.compile(r"^```\s*")
_FENCE_CLOSE = re.compile(r"```\s*$")


class StoryFormatError(ValueError):
    """The reply is not a usable 4-panel story."""


def fallback_story() -> ComicStory:
    """The deterministic placeholder story used when parsing fails."""
    return ComicStory(
        title=FALLBACK_TITLE,
        art_style=DEFAULT_ART_STYLE,
        panels=[
            ComicPanel(panel_number=i, dialogue_text=dialogue, visual_description=visual)
            for i, (dialogue, visual) in enumerate(FALLBACK_PANELS, start=1)
        ],
    )


def strip_code_fence(text: str) -> str:
    """Remove one markdown code fence wrapping the reply, if present."""
    text = text.strip()
    if _JSON_FENCE_OPEN.match(text):
        text = _FENCE_CLOSE.sub("", _JSON_FENCE_OPEN.sub("", text, count=1))
    elif _FENCE_OPEN.match(text):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text, count=1))
    return text.strip()


def _validate_panels(data) -> list[ComicPanel]:
    if not isinstance(data, dict):
        raise StoryFormatError("Invalid response: expected a JSON object")

    raw_panels = data.get("panels")
    if not isinstance(raw_panels, list):
        raise StoryFormatError("Invalid response: panels array missing")

    if len(raw_panels) != PANEL_COUNT:
        raise StoryFormatError(f"Expected {PANEL_COUNT} panels, got {len(raw_panels)}")

    panels = []
    for index, raw in enumerate(raw_panels, start=1):
        if not isinstance(raw, dict):
            raise StoryFormatError(f"Panel {index}: not an object")
        dialogue = raw.get("dialogueText")
        if not isinstance(dialogue, str):
            raise StoryFormatError(f"Panel {index}: missing dialogueText")
        visual = raw.get("visualDescription")
        if not isinstance(visual, str) or not visual:
            raise StoryFormatError(f"Panel {index}: missing visualDescription")

        # Upstream numbering is ignored
        panels.append(ComicPanel(
            panel_number=index,
            dialogue_text=dialogue,
            visual_description=visual,
        ))
    return panels


def _parse(raw: str) -> ComicStory:
    try:
        data = json.loads(strip_code_fence(raw or ""))
    except (ValueError, RecursionError) as e:
        # Huge integer literals and deep nesting raise outside JSONDecodeError
        raise StoryFormatError(f"Reply is not valid JSON: {e}") from e

    panels = _validate_panels(data)
    return ComicStory(
        panels=panels,
        title=str(data.get("title") or DEFAULT_TITLE),
        art_style=str(data.get("artStyle") or DEFAULT_ART_STYLE),
    )


def parse_story_response(raw: str) -> ComicStory:
    """Parse a reply into a ComicStory, or return the fallback story."""
    try:
        return _parse(raw)
    except StoryFormatError as e:
        logger.warning(f"Failed to parse comic story response: {e}")
        return fallback_story()


class StoryResponseParser:
    """Pipeline stage: raw reply → ComicStory (never fatal)."""

    def process(self, raw: str) -> StageResult:
        try:
            story = _parse(raw)
        except StoryFormatError as e:
            logger.warning(f"Failed to parse comic story response: {e}")
            logger.debug(f"Raw response: {raw!r}")
            return StageResult.fallback(fallback_story(), str(e))

        logger.info(f"Parsed comic story '{story.title}' with {len(story.panels)} panels")
        return StageResult.success(story)


def validate_comic_result(result: ComicResult) -> tuple[bool, list[str]]:
    """Check a finished comic for missing pieces. Returns (is_valid, errors)."""
    errors = []

    if not result.title:
        errors.append("Missing comic title")

    if len(result.panels) != PANEL_COUNT:
        errors.append(f"Expected {PANEL_COUNT} panels, got {len(result.panels)}")

    for index, panel in enumerate(result.panels, start=1):
        if not panel.image_url:
            errors.append(f"Panel {index}: missing image URL")
        if not panel.visual_description:
            errors.append(f"Panel {index}: missing visual description")
        if panel.panel_number != index:
            errors.append(f"Panel {index}: incorrect panel number")

    return len(errors) == 0, errors
