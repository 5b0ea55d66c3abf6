"""Request validator — turns an untyped JSON payload into a ValidatedRequest.

``validate`` never raises; it returns either ``ValidationOk`` or
``ValidationFailure`` and the HTTP layer decides what to do with it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from videorelay.config import Dimensions
from videorelay.schemas import Message, ValidatedRequest

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    MISSING_FIELD = "missing_field"
    MALFORMED_SHAPE = "malformed_shape"


@dataclass(frozen=True)
class ValidationFailure:
    kind: FailureKind
    field: str | None = None
    detail: str | None = None

    @property
    def message(self) -> str:
        if self.kind is FailureKind.MISSING_FIELD:
            return f"Missing required field '{self.field}'"
        if self.field:
            return f"Malformed field '{self.field}': {self.detail}"
        return f"Malformed request: {self.detail}"


@dataclass(frozen=True)
class ValidationOk:
    request: ValidatedRequest


def _missing(field: str) -> ValidationFailure:
    return ValidationFailure(FailureKind.MISSING_FIELD, field)


def _malformed(field: str | None, detail: str) -> ValidationFailure:
    return ValidationFailure(FailureKind.MALFORMED_SHAPE, field, detail)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _positive_int(value: Any) -> bool:
    # bool is a subclass of int in Python, so rule it out explicitly
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _check_required_string(payload: Mapping, field: str) -> ValidationFailure | None:
    value = payload.get(field)
    if _is_blank(value):
        return _missing(field)
    if not isinstance(value, str):
        return _malformed(field, f"expected string, got {type(value).__name__}")
    return None


def _parse_query(raw: Any) -> list[Message] | ValidationFailure:
    if raw is None:
        return _missing("query")
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        return _malformed("query", "expected a list of messages")
    if len(raw) == 0:
        return _missing("query")

    messages = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            return _malformed(f"query[{i}]", "expected an object with role and content")
        for key in ("role", "content"):
            value = item.get(key)
            if _is_blank(value):
                return _missing(f"query[{i}].{key}")
            if not isinstance(value, str):
                return _malformed(
                    f"query[{i}].{key}", f"expected string, got {type(value).__name__}"
                )
        messages.append(Message(role=item["role"], content=item["content"]))
    return messages


def _parse_image_size(raw: Any) -> Dimensions | str | ValidationFailure:
    if isinstance(raw, str) and raw.strip():
        return raw
    if isinstance(raw, Mapping):
        width, height = raw.get("width"), raw.get("height")
        if _positive_int(width) and _positive_int(height):
            return Dimensions(width=width, height=height)
    return _malformed(
        "image_size", "expected a preset name or {width, height} with positive integers"
    )


def _parse_optional(payload: Mapping) -> dict[str, Any] | ValidationFailure:
    options: dict[str, Any] = {}

    if "negativePrompt" not in payload and "negative_prompt" in payload:
        negative = payload["negative_prompt"]
    else:
        negative = payload.get("negativePrompt")

    strings = {
        "prompt_prefix": payload.get("prompt_prefix"),
        "prompt_suffix": payload.get("prompt_suffix"),
        "negativePrompt": negative,
        "image_url": payload.get("image_url"),
    }
    for name, value in strings.items():
        if value is None:
            continue
        if not isinstance(value, str):
            return _malformed(name, f"expected string, got {type(value).__name__}")
        options[name] = value

    for name in ("num_inference_steps", "fps"):
        value = payload.get(name)
        if value is None:
            continue
        if not _positive_int(value):
            return _malformed(name, "expected a positive integer")
        options[name] = value

    if payload.get("image_size") is not None:
        size = _parse_image_size(payload["image_size"])
        if isinstance(size, ValidationFailure):
            return size
        options["image_size"] = size

    metadata = payload.get("metadata")
    if metadata is not None:
        if not isinstance(metadata, Mapping):
            return _malformed("metadata", "expected an object")
        options["metadata"] = dict(metadata)

    return options


def validate(payload: Any) -> ValidationOk | ValidationFailure:
    """Check the payload shape and extract the fields needed for a job.

    Required: non-empty ``query`` list of {role, content} strings,
    non-empty ``user_id`` and ``conversation_id``. Optional generation
    parameters are type-checked when present.
    """
    if not isinstance(payload, Mapping):
        return _malformed(None, "request body must be a JSON object")

    query = _parse_query(payload.get("query"))
    if isinstance(query, ValidationFailure):
        return query

    for field in ("user_id", "conversation_id"):
        failure = _check_required_string(payload, field)
        if failure:
            return failure

    options = _parse_optional(payload)
    if isinstance(options, ValidationFailure):
        return options

    request = ValidatedRequest(
        query=query,
        user_id=payload["user_id"],
        conversation_id=payload["conversation_id"],
        **options,
    )
    logger.debug(
        f"Validated request: user={request.user_id}, "
        f"conversation={request.conversation_id}, turns={len(request.query)}"
    )
    return ValidationOk(request)
