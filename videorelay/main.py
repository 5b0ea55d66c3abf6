"""videorelay — FastAPI app relaying chat requests to a video backend.

Loads config.yaml on startup. Exposes POST /api/fal/generate-video, which
answers with a JSON document or, on request, an SSE stream, plus
operational endpoints for health, config viewing, and hot-reload.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from videorelay.config import RelayConfig, get_config, load_config, reload_config
from videorelay.errors import RelayError, RequestValidationError, error_status
from videorelay.jobs import FalClientCache, FalJobSubmitter, JobSubmitter
from videorelay.prompt import build_job_spec
from videorelay.relay import failure_response, relay_result
from videorelay.runtime import run_job
from videorelay.validation import ValidationFailure, validate

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SubmitterFactory = Callable[[RelayConfig], JobSubmitter]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config on startup; close the shared fal.ai clients on shutdown."""
    config = load_config()
    logger.info(
        f"videorelay started (origins={config.allowed_origins}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"model={config.fal.model_id})"
    )
    try:
        yield
    finally:
        await app.state.fal_clients.aclose()
        logger.info("videorelay shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="videorelay", version="0.1.0", lifespan=lifespan)
app.state.fal_clients = FalClientCache()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    status = error_status(exc)
    if status >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return failure_response(exc.message, status)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return  # no key configured, auth disabled

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_submitter_factory(request: Request) -> SubmitterFactory:
    """How a JobSubmitter is built once the request has been validated.

    Submitters share the app-wide fal.ai clients. Tests override this to
    inject a fake backend.
    """
    clients: FalClientCache = request.app.state.fal_clients
    return lambda config: FalJobSubmitter.from_config(config, clients)


def wants_stream(request: Request) -> bool:
    flag = request.query_params.get("stream", "").lower()
    if flag in ("1", "true", "yes"):
        return True
    return "text/event-stream" in request.headers.get("accept", "")


# ---------------------------------------------------------------------------
# Generation endpoint
# ---------------------------------------------------------------------------


@app.post("/api/fal/generate-video", dependencies=[Depends(verify_api_key)])
async def generate_video(
    request: Request,
    make_submitter: SubmitterFactory = Depends(get_submitter_factory),
):
    """Validate the chat payload, run the video job, relay the result.

    Direct JSON by default; SSE when ``?stream=true`` or the client
    accepts ``text/event-stream``.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationError("Malformed request: body is not valid JSON")

    checked = validate(payload)
    if isinstance(checked, ValidationFailure):
        raise RequestValidationError(checked.message, field=checked.field)

    validated = checked.request
    config = get_config()
    submitter = make_submitter(config)  # raises ConfigError without credentials

    spec = build_job_spec(validated, config)
    logger.info(
        f"Generating video: user={validated.user_id}, "
        f"conversation={validated.conversation_id}, prompt={spec.prompt!r}"
    )
    result = await run_job(submitter, spec)
    return relay_result(result, stream=wants_stream(request))


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {"status": "healthy", "model": config.fal.model_id}


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, without secrets."""
    return get_config().public_view()


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload():
    """Hot-reload config.yaml without container restart."""
    try:
        new_config = reload_config()
        return {"status": "reloaded", "model": new_config.fal.model_id}
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
