"""Job submission — the fal.ai side of the relay.

Requires: the credential env var named in config (``FAL_KEY`` by default).
The SDK does the queueing and polling; this module only submits, logs
queue updates and translates backend errors into JobSubmissionError.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import fal_client
import httpx
from fal_client.client import FalClientError

from videorelay.config import RelayConfig, require_credentials
from videorelay.errors import JobErrorKind, JobSubmissionError
from videorelay.schemas import JobSpec

logger = logging.getLogger(__name__)


class JobSubmitter(Protocol):
    """Submit one job and wait for its raw output."""

    async def submit(self, spec: JobSpec) -> Mapping[str, Any]: ...


def _error_detail(exc: Exception) -> Any:
    """Pull the backend's ``detail`` out of a fal client error, if any."""
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            body = response.json()
        except (ValueError, AttributeError):
            body = None
        if isinstance(body, dict) and "detail" in body:
            return body["detail"]
    # Older SDK versions raise FalClientError(detail) directly
    if exc.args:
        return exc.args[0]
    return None


def _field_names(detail: Any) -> list[str]:
    if not isinstance(detail, list):
        return []
    fields = []
    for item in detail:
        if not isinstance(item, dict) or not item.get("loc"):
            continue
        loc = [str(part) for part in item["loc"] if part != "body"]
        if loc:
            fields.append(".".join(loc))
    return fields


def translate_error(exc: Exception) -> JobSubmissionError:
    """Map a fal client error onto the relay's error family.

    422-style ``detail: [{"loc": [...], "msg": ...}]`` payloads become
    FIELD_VALIDATION errors naming the fields; anything else is API.
    """
    detail = _error_detail(exc)
    fields = _field_names(detail)
    if fields:
        messages = [
            str(item.get("msg", "invalid value"))
            for item in detail
            if isinstance(item, dict) and item.get("msg")
        ]
        reason = "; ".join(messages) or "invalid value"
        return JobSubmissionError(
            f"Validation error on field(s) {', '.join(fields)}: {reason}",
            kind=JobErrorKind.FIELD_VALIDATION,
            fields=fields,
        )
    text = detail if isinstance(detail, str) and detail else str(exc) or type(exc).__name__
    return JobSubmissionError(f"Video API error: {text}")


class FalClientCache:
    """One ``fal_client.AsyncClient`` per credential, shared across requests.

    The SDK client lazily opens an ``httpx.AsyncClient`` (cached on the
    instance as ``_client``); ``aclose`` shuts those pools down.
    """

    def __init__(self) -> None:
        self._clients: dict[str, fal_client.AsyncClient] = {}

    def get(self, api_key: str) -> fal_client.AsyncClient:
        client = self._clients.get(api_key)
        if client is None:
            logger.info("Creating fal.ai client")
            client = fal_client.AsyncClient(key=api_key)
            self._clients[api_key] = client
        return client

    def __len__(self) -> int:
        return len(self._clients)

    async def aclose(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            http = vars(client).get("_client")
            if http is not None:
                await http.aclose()
        if clients:
            logger.info(f"Closed {len(clients)} fal.ai client(s)")


class FalJobSubmitter:
    """Runs jobs through ``fal_client.AsyncClient.subscribe``."""

    def __init__(self, client: Any, with_logs: bool = True) -> None:
        self._client = client
        self.with_logs = with_logs

    @classmethod
    def from_config(cls, config: RelayConfig, clients: FalClientCache) -> FalJobSubmitter:
        """Check the credential and reuse the shared client for it.

        Raises ConfigError when the credential is missing.
        """
        key = require_credentials(config)
        return cls(clients.get(key), with_logs=config.fal.with_logs)

    def _on_queue_update(self, update: Any) -> None:
        if isinstance(update, fal_client.Queued):
            logger.info(f"Queue update: position={update.position}")
        elif isinstance(update, fal_client.InProgress):
            for entry in update.logs or []:
                logger.debug(f"fal: {entry.get('message', entry)}")
        else:
            logger.info(f"Queue update: {update}")

    async def submit(self, spec: JobSpec) -> Mapping[str, Any]:
        logger.info(f"Submitting job: model={spec.model_id}")
        try:
            return await self._client.subscribe(
                spec.model_id,
                arguments=spec.arguments(),
                with_logs=self.with_logs,
                on_queue_update=self._on_queue_update,
            )
        except FalClientError as e:
            raise translate_error(e) from e
        except httpx.HTTPError as e:
            raise JobSubmissionError(f"Video API request failed: {e}") from e
