"""
Comic Strip — Data models.

Dataclasses for the four-panel comic flow:
ComicBrief → ComicStory → ComicResult, tracked by TrackedRequest.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

PANEL_COUNT = 4
DEFAULT_TITLE = "Untitled Comic"
DEFAULT_ART_STYLE = "comic book style"


# ============================================================
# Errors
# ============================================================

class BriefValidationError(ValueError):
    """A required brief field is missing or blank."""


class InvalidTransitionError(RuntimeError):
    """A request was moved backwards, sideways, or out of a terminal state."""


class ImageGenerationError(RuntimeError):
    """A single image-generation attempt failed (retryable)."""


class PipelineError(RuntimeError):
    """A request-level fault that ends the request in the error state."""


# ============================================================
# Brief
# ============================================================

def _required(payload: dict, key: str, message: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise BriefValidationError(message)
    return value.strip()


@dataclass(frozen=True)
class ComicBrief:
    """Characters, art style and optional theme for one comic."""
    character1_description: str
    character2_description: str
    art_style: str
    theme: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> "ComicBrief":
        """Build a trimmed brief from a request body, or raise BriefValidationError."""
        payload = payload or {}
        c1 = _required(payload, "character1Description", "Character 1 description is required")
        c2 = _required(payload, "character2Description", "Character 2 description is required")
        style = _required(payload, "artStyle", "Art style is required")

        theme = payload.get("theme")
        if isinstance(theme, str):
            theme = theme.strip() or None
        else:
            theme = None

        return cls(
            character1_description=c1,
            character2_description=c2,
            art_style=style,
            theme=theme,
        )

    def to_dict(self) -> dict:
        return {
            "character1Description": self.character1_description,
            "character2Description": self.character2_description,
            "artStyle": self.art_style,
            "theme": self.theme,
        }


# ============================================================
# Story + images
# ============================================================

@dataclass
class ComicPanel:
    """A single panel of the story script."""
    panel_number: int
    dialogue_text: str
    visual_description: str

    def to_dict(self) -> dict:
        return {
            "panelNumber": self.panel_number,
            "dialogueText": self.dialogue_text,
            "visualDescription": self.visual_description,
        }


@dataclass
class ComicStory:
    """Parsed story: always exactly four panels."""
    panels: list[ComicPanel]
    title: str = DEFAULT_TITLE
    art_style: str = DEFAULT_ART_STYLE

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artStyle": self.art_style,
            "panels": [p.to_dict() for p in self.panels],
        }


@dataclass
class ComicImagePanel(ComicPanel):
    """A story panel plus its generated image. Empty URL = generation failed."""
    image_url: str = ""

    @property
    def succeeded(self) -> bool:
        return bool(self.image_url)

    @classmethod
    def from_panel(cls, panel: ComicPanel, image_url: str = "") -> "ComicImagePanel":
        return cls(
            panel_number=panel.panel_number,
            dialogue_text=panel.dialogue_text,
            visual_description=panel.visual_description,
            image_url=image_url,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["imageUrl"] = self.image_url
        return data


@dataclass
class ComicResult:
    """Finished comic. Success is decided per panel by its image URL."""
    title: str
    art_style: str
    panels: list[ComicImagePanel] = field(default_factory=list)

    @property
    def successful_panels(self) -> int:
        return sum(1 for p in self.panels if p.succeeded)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artStyle": self.art_style,
            "panels": [p.to_dict() for p in self.panels],
        }


# ============================================================
# Stage results
# ============================================================

class StageOutcome(Enum):
    SUCCESS = "success"
    FALLBACK = "fallback"   # Recovered locally, value still usable
    FATAL = "fatal"         # Request must end in error


@dataclass
class StageResult:
    """Outcome of one pipeline stage."""
    outcome: StageOutcome
    value: Any = None
    error: str = ""

    @classmethod
    def success(cls, value: Any) -> "StageResult":
        return cls(StageOutcome.SUCCESS, value)

    @classmethod
    def fallback(cls, value: Any, error: str) -> "StageResult":
        return cls(StageOutcome.FALLBACK, value, error)

    @classmethod
    def fatal(cls, error: str) -> "StageResult":
        return cls(StageOutcome.FATAL, None, error)

    @property
    def ok(self) -> bool:
        return self.outcome is not StageOutcome.FATAL


# ============================================================
# Request lifecycle
# ============================================================

class RequestStatus(Enum):
    PENDING = "pending"
    GENERATING_STORY = "generating_story"
    GENERATING_IMAGES = "generating_images"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.ERROR)


# Forward edges only; ERROR is reachable from every non-terminal state
_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.GENERATING_STORY, RequestStatus.ERROR},
    RequestStatus.GENERATING_STORY: {RequestStatus.GENERATING_IMAGES, RequestStatus.ERROR},
    RequestStatus.GENERATING_IMAGES: {RequestStatus.COMPLETED, RequestStatus.ERROR},
    RequestStatus.COMPLETED: set(),
    RequestStatus.ERROR: set(),
}


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


@dataclass
class TrackedRequest:
    """One comic request as held by the ledger."""
    request_id: str
    brief: ComicBrief
    created_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    result: Optional[ComicResult] = None
    error: Optional[str] = None
    history: list[RequestStatus] = field(default_factory=list)

    def __post_init__(self):
        if not self.history:
            self.history.append(self.status)

    def _check_transition(self, status: RequestStatus):
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Request {self.request_id}: cannot go from "
                f"{self.status.value} to {status.value}"
            )

    def advance(self, status: RequestStatus):
        """Move to the next lifecycle state."""
        self._check_transition(status)
        self.status = status
        self.history.append(status)

    # Payload is set before status so pollers never see a bare terminal state
    def complete(self, result: ComicResult):
        self._check_transition(RequestStatus.COMPLETED)
        self.result = result
        self.advance(RequestStatus.COMPLETED)

    def fail(self, message: str):
        self._check_transition(RequestStatus.ERROR)
        self.error = message or "Unknown error occurred"
        self.advance(RequestStatus.ERROR)

    def to_status_dict(self) -> dict:
        """Serialize for the status endpoint."""
        data = {
            "requestId": self.request_id,
            "status": self.status.value,
            **self.brief.to_dict(),
            "createdAt": self.created_at.isoformat(),
        }
        if self.status is RequestStatus.COMPLETED and self.result:
            data["result"] = self.result.to_dict()
        if self.status is RequestStatus.ERROR and self.error:
            data["error"] = self.error
        return data

    def to_summary_dict(self, max_chars: int = 50) -> dict:
        """Serialize for the recent-comics listing."""
        return {
            "requestId": self.request_id,
            "status": self.status.value,
            "character1Description": _truncate(self.brief.character1_description, max_chars),
            "character2Description": _truncate(self.brief.character2_description, max_chars),
            "artStyle": self.brief.art_style,
            "createdAt": self.created_at.isoformat(),
            "hasResult": self.result is not None,
        }
