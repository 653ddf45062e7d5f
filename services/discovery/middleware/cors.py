"""
Browser access for the venue web client.

The caller id travels in X-User-Id rather than a cookie, so credentials are
off and the preflight only has to admit that header. X-Request-ID is
exposed so the client can quote it when reporting an error envelope.
"""

from collections.abc import Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.discovery.config import settings

API_METHODS = ["GET", "POST"]
CLIENT_HEADERS = ["Content-Type", "X-Request-ID", "X-User-Id"]


def setup_cors(app: FastAPI, origins: Sequence[str] | None = None) -> None:
    allowed = list(settings.cors_origins if origins is None else origins)
    if "*" in allowed:
        raise ValueError("CORS_ORIGINS must list explicit origins")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed,
        allow_credentials=False,
        allow_methods=API_METHODS,
        allow_headers=CLIENT_HEADERS,
        expose_headers=["X-Request-ID"],
        max_age=600,
    )
