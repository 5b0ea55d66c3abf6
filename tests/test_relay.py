from __future__ import annotations

import asyncio
import json

import pytest
from fastapi.responses import JSONResponse, StreamingResponse

from videorelay.errors import JobFailureKind, RelayClosed, RelayOrderError
from videorelay.relay import (
    EventRelay,
    RelayState,
    direct_response,
    relay_result,
    stream_video,
    streamed_response,
)
from videorelay.schemas import JobFailure, VideoResult

URL = "https://x/y.mp4"


def parse_frames(body: str) -> list[tuple[str, dict]]:
    frames = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        event_line, data_line = block.split("\n")
        assert event_line.startswith("event: ")
        assert data_line.startswith("data: ")
        frames.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return frames


async def _collect(relay: EventRelay, result: VideoResult) -> list[str]:
    return [frame async for frame in stream_video(relay, result)]


def test_stream_emits_meta_text_done_in_order() -> None:
    relay = EventRelay()

    frames = asyncio.run(_collect(relay, VideoResult(video_url=URL)))
    events = parse_frames("".join(frames))

    assert [kind for kind, _ in events] == ["meta", "text", "done"]
    assert events[2][1] == {}
    assert relay.closed


def test_text_event_contains_exact_url() -> None:
    frames = asyncio.run(_collect(EventRelay(), VideoResult(video_url=URL)))
    kind, payload = parse_frames(frames[1])[0]

    assert kind == "text"
    assert URL in payload["text"]


def test_frame_encoding() -> None:
    relay = EventRelay()

    assert relay.meta({"contentType": "text/plain"}) == (
        'event: meta\ndata: {"contentType": "text/plain"}\n\n'
    )


def test_state_transitions() -> None:
    relay = EventRelay()
    assert relay.state is RelayState.START

    relay.meta()
    assert relay.state is RelayState.META_SENT
    relay.text("one")
    relay.text("two")
    assert relay.state is RelayState.TEXT_SENT
    relay.done()
    assert relay.state is RelayState.DONE_SENT
    relay.close()
    assert relay.state is RelayState.CLOSED
    assert [e.kind for e in relay.events] == ["meta", "text", "text", "done"]


def test_done_may_follow_meta_directly() -> None:
    relay = EventRelay()
    relay.meta()
    relay.done()

    assert [e.kind for e in relay.events] == ["meta", "done"]


@pytest.mark.parametrize("emit", ["meta", "text", "done"])
def test_emit_after_close_raises(emit: str) -> None:
    relay = EventRelay()
    relay.close()

    with pytest.raises(RelayClosed):
        getattr(relay, emit)(*(["x"] if emit == "text" else []))


@pytest.mark.parametrize("emit", ["meta", "text", "done"])
def test_emit_after_done_raises(emit: str) -> None:
    relay = EventRelay()
    relay.meta()
    relay.done()

    with pytest.raises(RelayClosed):
        getattr(relay, emit)(*(["x"] if emit == "text" else []))


def test_text_before_meta_is_out_of_order() -> None:
    with pytest.raises(RelayOrderError):
        EventRelay().text("too early")


def test_meta_is_never_repeated() -> None:
    relay = EventRelay()
    relay.meta()

    with pytest.raises(RelayOrderError):
        relay.meta()


def test_close_is_idempotent() -> None:
    relay = EventRelay()
    relay.close()
    relay.close()

    assert relay.closed


def test_relay_closes_when_consumer_stops_early() -> None:
    relay = EventRelay()

    async def consume_one() -> None:
        gen = stream_video(relay, VideoResult(video_url=URL))
        await gen.__anext__()
        await gen.aclose()

    asyncio.run(consume_one())

    assert relay.closed
    assert [e.kind for e in relay.events] == ["meta"]


def test_direct_success() -> None:
    response = direct_response(VideoResult(video_url=URL))

    assert response.status_code == 200
    assert json.loads(response.body) == {"videoUrl": URL, "error": None}


@pytest.mark.parametrize("stream", [True, False])
def test_failure_never_opens_a_stream(stream: bool) -> None:
    failure = JobFailure(error_kind=JobFailureKind.EMPTY_RESULT, message="No video generated")

    response = relay_result(failure, stream)

    assert isinstance(response, JSONResponse)
    assert response.status_code >= 400
    assert json.loads(response.body) == {"videoUrl": None, "error": "No video generated"}


def test_streamed_success_headers() -> None:
    response = streamed_response(VideoResult(video_url=URL))

    assert isinstance(response, StreamingResponse)
    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["connection"] == "keep-alive"
