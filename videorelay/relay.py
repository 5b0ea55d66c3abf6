"""Event relay — turns a JobResult into a JSON or SSE response.

Streamed mode walks a fixed state machine:

    START -> META_SENT -> TEXT_SENT* -> DONE_SENT -> CLOSED

Each emit method returns the encoded SSE frame. Emitting after ``done`` or
``close`` raises RelayClosed; emitting out of order raises RelayOrderError.
Failures never open a stream: they go straight out as a JSON error body.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse, StreamingResponse

from videorelay.errors import RelayClosed, RelayOrderError
from videorelay.schemas import (
    GenerateVideoResponse,
    JobFailure,
    JobResult,
    OutgoingEvent,
    VideoResult,
)

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

META_PAYLOAD = {"contentType": "text/plain", "capabilities": ["video_url"]}


class RelayState(str, Enum):
    START = "start"
    META_SENT = "meta_sent"
    TEXT_SENT = "text_sent"
    DONE_SENT = "done_sent"
    CLOSED = "closed"


def encode_event(event: OutgoingEvent) -> str:
    """Render one SSE frame: ``event: <kind>\\ndata: <json>\\n\\n``."""
    data = json.dumps(event.payload)
    return f"event: {event.kind}\ndata: {data}\n\n"


def video_message(url: str) -> str:
    return f"Here is your generated video: {url}"


class EventRelay:
    """One-shot SSE emitter for a single response."""

    def __init__(self) -> None:
        self.state = RelayState.START
        self.events: list[OutgoingEvent] = []

    def _emit(
        self,
        event: OutgoingEvent,
        allowed: tuple[RelayState, ...],
        next_state: RelayState,
    ) -> str:
        if self.state in (RelayState.DONE_SENT, RelayState.CLOSED):
            raise RelayClosed(f"Cannot emit '{event.kind}' event: stream is {self.state.value}")
        if self.state not in allowed:
            raise RelayOrderError(
                f"Cannot emit '{event.kind}' event in state {self.state.value}"
            )
        self.state = next_state
        self.events.append(event)
        return encode_event(event)

    def meta(self, payload: dict[str, Any] | None = None) -> str:
        return self._emit(
            OutgoingEvent(kind="meta", payload=payload or META_PAYLOAD),
            (RelayState.START,),
            RelayState.META_SENT,
        )

    def text(self, fragment: str) -> str:
        return self._emit(
            OutgoingEvent(kind="text", payload={"text": fragment}),
            (RelayState.META_SENT, RelayState.TEXT_SENT),
            RelayState.TEXT_SENT,
        )

    def done(self) -> str:
        return self._emit(
            OutgoingEvent(kind="done"),
            (RelayState.META_SENT, RelayState.TEXT_SENT),
            RelayState.DONE_SENT,
        )

    def close(self) -> None:
        """Release the stream. Safe to call more than once."""
        if self.state is not RelayState.CLOSED:
            logger.debug(f"Closing relay from state {self.state.value}")
        self.state = RelayState.CLOSED

    @property
    def closed(self) -> bool:
        return self.state is RelayState.CLOSED


async def stream_video(relay: EventRelay, result: VideoResult) -> AsyncGenerator[str, None]:
    """Yield meta, one text fragment with the URL, then done.

    The relay is closed on every exit path, including client disconnects
    that cancel the generator mid-stream.
    """
    try:
        yield relay.meta()
        yield relay.text(video_message(result.video_url))
        yield relay.done()
    finally:
        relay.close()


def failure_response(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=GenerateVideoResponse(videoUrl=None, error=message).model_dump(),
    )


def direct_response(result: JobResult) -> JSONResponse:
    """Single JSON document: ``{videoUrl, error}``."""
    match result:
        case VideoResult(video_url=url):
            return JSONResponse(content=GenerateVideoResponse(videoUrl=url).model_dump())
        case JobFailure(message=message, status_code=status):
            return failure_response(message, status)


def streamed_response(result: JobResult) -> JSONResponse | StreamingResponse:
    """SSE stream on success; JSON error body (no stream) on failure."""
    match result:
        case VideoResult():
            return StreamingResponse(
                stream_video(EventRelay(), result),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )
        case JobFailure(message=message, status_code=status):
            return failure_response(message, status)


def relay_result(result: JobResult, stream: bool) -> JSONResponse | StreamingResponse:
    return streamed_response(result) if stream else direct_response(result)
