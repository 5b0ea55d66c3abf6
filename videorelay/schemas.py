"""Request/response models — the contract between the relay and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

from videorelay.config import Dimensions
from videorelay.errors import JobFailureKind


class Message(BaseModel):
    """One conversational turn. The last one in ``query`` drives the prompt."""

    role: str
    content: str


class ValidatedRequest(BaseModel):
    """Inbound payload after the validator accepted it."""

    query: list[Message]
    user_id: str
    conversation_id: str
    metadata: dict[str, Any] | None = None

    # Optional per-request generation overrides
    prompt_prefix: str | None = None
    prompt_suffix: str | None = None
    negativePrompt: str | None = None
    image_size: Dimensions | str | None = None
    num_inference_steps: int | None = None
    fps: int | None = None
    image_url: str | None = None

    @property
    def last_message(self) -> Message:
        return self.query[-1]


class JobSpec(BaseModel):
    """Everything the video backend needs for one job."""

    model_id: str
    prompt: str
    negative_prompt: str
    image_size: Dimensions | str
    num_inference_steps: int
    fps: int
    image_url: str | None = None

    def arguments(self) -> dict[str, Any]:
        """Argument mapping sent to the backend."""
        args: dict[str, Any] = {
            "prompt": self.prompt,
            "negative_prompt": self.negative_prompt,
            "image_size": (
                self.image_size.model_dump()
                if isinstance(self.image_size, Dimensions)
                else self.image_size
            ),
            "num_inference_steps": self.num_inference_steps,
            "fps": self.fps,
        }
        if self.image_url:
            args["image_url"] = self.image_url
        return args


@dataclass(frozen=True)
class VideoResult:
    video_url: str


@dataclass(frozen=True)
class JobFailure:
    error_kind: JobFailureKind
    message: str
    status_code: int = 500


JobResult = VideoResult | JobFailure


class OutgoingEvent(BaseModel):
    """A single SSE event in the response stream.

    Kinds:
        meta — content-type/capability descriptor, always first
        text — content fragment for the caller
        done — stream is complete
    """

    kind: Literal["meta", "text", "done"]
    payload: dict[str, Any] = {}


class GenerateVideoResponse(BaseModel):
    """Direct-mode response body, also used for every failure response."""

    videoUrl: str | None = None
    error: str | None = None

