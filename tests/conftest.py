from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# main.py loads config at import time; point it at the repo config.
os.environ.setdefault("VIDEORELAY_CONFIG", str(PROJECT_ROOT / "config.yaml"))

from fastapi.testclient import TestClient  # noqa: E402

from videorelay import config as config_module  # noqa: E402
from videorelay.main import app, get_submitter_factory  # noqa: E402
from videorelay.schemas import JobSpec  # noqa: E402

TEST_CONFIG = {
    "fal": {"model_id": "fal-ai/test-video-model", "credentials_env": "FAL_KEY"},
    "prompt": {"prefix": "cinematic", "suffix": "4k"},
    "generation": {
        "negative_prompt": "blurry",
        "image_size": {"width": 512, "height": 512},
        "num_inference_steps": 50,
        "fps": 30,
    },
}


class FakeSubmitter:
    """Stands in for the video backend."""

    def __init__(self, output: Mapping[str, Any] | None = None, error: Exception | None = None) -> None:
        self.output = output if output is not None else {}
        self.error = error
        self.specs: list[JobSpec] = []

    async def submit(self, spec: JobSpec) -> Mapping[str, Any]:
        self.specs.append(spec)
        if self.error is not None:
            raise self.error
        return self.output


def write_config(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return write_config(tmp_path / "config.yaml", TEST_CONFIG)


@pytest.fixture(autouse=True)
def relay_config(config_path: Path):
    return config_module.load_config(str(config_path))


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    return {
        "query": [
            {"role": "assistant", "content": "What should I make?"},
            {"role": "user", "content": "a cat"},
        ],
        "user_id": "user-1",
        "conversation_id": "conv-1",
        "metadata": {"source": "tests"},
    }


@pytest.fixture
def make_client():
    """Build a TestClient whose backend is the given submitter.

    Pass ``None`` to keep the real fal.ai submitter factory.
    """

    def _make(submitter: Any = None) -> TestClient:
        if submitter is not None:
            app.dependency_overrides[get_submitter_factory] = lambda: (lambda config: submitter)
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def fake_submitter():
    """Factory for FakeSubmitter instances."""
    return FakeSubmitter
