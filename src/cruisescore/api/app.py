# src/cruisescore/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance, configures CORS and the error envelope.
Business logic lives in `cruisescore.api.routes` and `cruisescore.recommender`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from cruisescore.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title="CruiseScore API", version="0.1.0")

CORS_LOCALHOST = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def _cors_options() -> dict | None:
    """CORS for the site's browser calls, from env.

    - `CRUISESCORE_CORS_ORIGINS`: comma-separated allow-list (e.g. the production site)
    - `CRUISESCORE_CORS_ALLOW_ORIGIN_REGEX`: explicit origin regex
    - `CRUISESCORE_CORS_ALLOW_LOCAL=0`: drop the localhost default used when nothing else is set
    """
    origins = [o.strip() for o in os.getenv("CRUISESCORE_CORS_ORIGINS", "").split(",") if o.strip()]
    regex = os.getenv("CRUISESCORE_CORS_ALLOW_ORIGIN_REGEX", "").strip()
    allow_local = os.getenv("CRUISESCORE_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
    if not regex and not origins and allow_local:
        regex = CORS_LOCALHOST
    if not origins and not regex:
        return None
    return {"allow_origins": origins, "allow_origin_regex": regex or None}


cors = _cors_options()
if cors is not None:
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        **cors,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies/query params use the same `{error}` envelope as the routes."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(router)
