"""
Comic Strip — Story Prompt Builder.

Turns a ComicBrief into the instruction sent to the text model:
a 4-panel script returned as a bare JSON object.
"""

import logging

from comic_strip.models import ComicBrief

logger = logging.getLogger(__name__)

# The master prompt that turns a brief into structured comic JSON
STORY_PROMPT = """You are a comic book writer. Create a 4-panel comic story with the following characters and specifications:

CHARACTER 1: {character1}
CHARACTER 2: {character2}
ART STYLE: {art_style}
{theme_line}
Create exactly 4 panels for a short comic strip. For each panel, provide:
1. Any dialogue or text that should appear in the panel
2. A detailed visual description for the image generation

Format your response as a JSON object with this exact structure:
{{
  "title": "A catchy title for the comic",
  "panels": [
    {{
      "panelNumber": 1,
      "dialogueText": "Text spoken by characters in this panel",
      "visualDescription": "Detailed description of what should be drawn in this panel, including character positions, actions, expressions, background, and artistic style"
    }},
    ... (repeat for panels 2, 3, 4)
  ]
}}

Guidelines:
- Each visual description should be detailed enough for image generation
- Include the art style ({art_style}) in each visual description
- Make sure the story flows logically across the 4 panels
- Keep dialogue concise and appropriate for comic bubbles
- Describe character expressions and body language
- Include background/setting details
- Make it engaging and complete in just 4 panels
- Only one character should speak in each panel, but both characters can be present
- Do not include speech bubbles in the visual descriptions!

IMPORTANT: Return ONLY the JSON object, no additional text or markdown formatting."""


def build_story_prompt(brief: ComicBrief) -> str:
    """Render the story prompt for a brief."""
    theme_line = f"THEME/SETTING: {brief.theme}\n" if brief.theme else ""
    return STORY_PROMPT.format(
        character1=brief.character1_description,
        character2=brief.character2_description,
        art_style=brief.art_style,
        theme_line=theme_line,
    )


class StoryPromptBuilder:
    """First pipeline stage: brief → chat messages for the text model."""

    def process(self, brief: ComicBrief) -> list[dict]:
        logger.info(
            f"Building comic story prompt for characters: "
            f"\"{brief.character1_description[:40]}\" and "
            f"\"{brief.character2_description[:40]}\""
        )
        return [{"role": "user", "content": build_story_prompt(brief)}]
