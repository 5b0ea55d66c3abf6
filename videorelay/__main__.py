"""Run the service with uvicorn: ``python -m videorelay``.

Bind address comes from VIDEORELAY_HOST / VIDEORELAY_PORT.
"""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "videorelay.main:app",
        host=os.environ.get("VIDEORELAY_HOST", "0.0.0.0"),
        port=int(os.environ.get("VIDEORELAY_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
