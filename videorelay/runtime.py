"""Runtime — bridges a validated request to the video backend.

Builds the job, submits it through a JobSubmitter and normalizes whatever
comes back into a JobResult. Backend failures never escape as exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from videorelay.errors import EmptyResultError, JobFailureKind, JobSubmissionError
from videorelay.jobs import JobSubmitter
from videorelay.schemas import JobFailure, JobResult, JobSpec, VideoResult

logger = logging.getLogger(__name__)


def extract_video_url(output: Any) -> str | None:
    """Return the first video URL in the backend output, or None.

    Accepts both result shapes the backend uses:
        {"videos": [{"url": "..."}]}
        {"video": {"url": "..."}}
    """
    if not isinstance(output, Mapping):
        return None

    videos = output.get("videos")
    if isinstance(videos, list) and videos:
        first = videos[0]
        if isinstance(first, Mapping) and first.get("url"):
            return str(first["url"])

    video = output.get("video")
    if isinstance(video, Mapping) and video.get("url"):
        return str(video["url"])

    return None


async def run_job(submitter: JobSubmitter, spec: JobSpec) -> JobResult:
    """Submit the job and wait for a terminal result."""
    try:
        output = await submitter.submit(spec)
        url = extract_video_url(output)
        if not url:
            raise EmptyResultError()
    except JobSubmissionError as e:
        logger.warning(f"Job submission failed ({e.kind.value}): {e.message}")
        return JobFailure(error_kind=JobFailureKind(e.kind.value), message=e.message)
    except EmptyResultError as e:
        logger.warning(f"Job finished without a video: model={spec.model_id}")
        return JobFailure(error_kind=JobFailureKind.EMPTY_RESULT, message=e.message)
    except Exception as e:
        logger.error(f"Unexpected job error: {e}", exc_info=True)
        return JobFailure(
            error_kind=JobFailureKind.API,
            message=f"Video generation failed: {e}",
        )

    logger.info(f"Job completed: model={spec.model_id}, url={url}")
    return VideoResult(video_url=url)
