"""Prompt builder — wraps the active user turn with configured text."""

from __future__ import annotations

from videorelay.config import RelayConfig
from videorelay.schemas import JobSpec, ValidatedRequest


def build_prompt(request: ValidatedRequest, config: RelayConfig) -> str:
    """Join prefix, the last message's content and suffix with single spaces.

    Config:  prefix="cinematic", suffix="4k"
    Query:   [..., {"role": "user", "content": "a cat"}]
    Result:  "cinematic a cat 4k"

    Request-level prompt_prefix/prompt_suffix win over the config values.
    Empty parts are dropped.
    """
    prefix = (
        request.prompt_prefix
        if request.prompt_prefix is not None
        else config.prompt.prefix
    )
    suffix = (
        request.prompt_suffix
        if request.prompt_suffix is not None
        else config.prompt.suffix
    )
    parts = [prefix, request.last_message.content, suffix]
    return " ".join(p for p in parts if p)


def build_job_spec(request: ValidatedRequest, config: RelayConfig) -> JobSpec:
    """Combine the prompt with generation defaults and request overrides."""
    defaults = config.generation

    def pick(value, default):
        return default if value is None else value

    return JobSpec(
        model_id=config.fal.model_id,
        prompt=build_prompt(request, config),
        negative_prompt=pick(request.negativePrompt, defaults.negative_prompt),
        image_size=pick(request.image_size, defaults.image_size),
        num_inference_steps=pick(request.num_inference_steps, defaults.num_inference_steps),
        fps=pick(request.fps, defaults.fps),
        image_url=request.image_url,
    )
