"""Image Gallery - FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all routes, and the ``main()`` CLI function
that launches the uvicorn server.

Architecture
------------
The application is stateless between requests:

- **Configuration** comes from :data:`imagegallery.core.config.config`
  (``IMAGEGALLERY_*`` environment variables).
- **All state** lives in the key-value store: gallery records under
  ``gallery:<id>`` with a 30 day expiry and the daily quota counter under
  ``quota:<date>``.
- **Gallery logic** is handled by
  :class:`~imagegallery.core.gallery_store.GalleryStore` and
  :class:`~imagegallery.core.quota.QuotaTracker`; route handlers only
  translate between HTTP and those objects.
- **HTML pages** are rendered by
  :class:`~imagegallery.api.rendering.PageRenderer`.
- **Images** stay on their original host; ``/img`` can proxy them.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
POST      ``/api/create-gallery``       Create a gallery (idempotent per id)
GET       ``/api/check/{id}``           Existence check
GET       ``/api/gallery/{id}``         Gallery record as JSON
GET       ``/gallery/{id}``             Gallery page
GET       ``/explore``, ``/plaza``      Listing of recent galleries
GET       ``/api/quota``                Daily quota usage
GET       ``/img``                      Image proxy
GET       ``/health``                   Health check
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    imagegallery

Direct invocation::

    python -m imagegallery.api.main
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response

from imagegallery import __version__
from imagegallery.api.models import (
    CheckGalleryResponse,
    CreateGalleryRequest,
    CreateGalleryResponse,
    ErrorResponse,
    ExistingGalleryResponse,
    QuotaResponse,
)
from imagegallery.api.rendering import PageRenderer
from imagegallery.core.config import GalleryConfig, config
from imagegallery.core.errors import (
    GalleryError,
    InvalidDataError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from imagegallery.core.gallery_store import CreateStatus, GalleryRecord, GalleryStore
from imagegallery.core.kv_store import Clock, KVStore, KVStoreError, create_store
from imagegallery.core.quota import QuotaTracker

logger = logging.getLogger(__name__)

SERVICE_NAME = "Image Gallery"

# ---------------------------------------------------------------------------
# Service wiring.
# ---------------------------------------------------------------------------


def configure_services(
    app: FastAPI,
    cfg: GalleryConfig,
    *,
    store: KVStore | None = None,
    clock: Clock = time.time,
) -> None:
    """Build the store, tracker, gallery store and renderer on ``app.state``.

    Args:
        app: The FastAPI application instance.
        cfg: Configuration to build from.
        store: Pre-built key-value store.  Built from ``cfg`` when omitted.
        clock: Time source shared by every component.
    """
    if store is None:
        store = create_store(cfg.kv_backend, cfg.db_path, max_keys=cfg.kv_max_keys)

    quota = QuotaTracker(
        store,
        limit=cfg.quota_limit,
        warn_ratio=cfg.quota_warn_ratio,
        ttl_seconds=cfg.quota_ttl_seconds,
        clock=clock,
    )
    app.state.config = cfg
    app.state.kv_store = store
    app.state.quota_tracker = quota
    app.state.gallery_store = GalleryStore(
        store,
        quota,
        ttl_seconds=cfg.gallery_ttl_seconds,
        default_title=cfg.default_title,
        default_author=cfg.default_author,
        default_list_limit=cfg.list_default_limit,
        max_list_limit=cfg.list_max_limit,
        max_workers=cfg.list_max_workers,
        clock=clock,
    )
    app.state.renderer = PageRenderer(
        cfg.templates_dir,
        proxy_images=cfg.proxy_images,
        ttl_days=cfg.gallery_ttl_days,
    )


async def _sweep_expired(store: KVStore, interval: int) -> None:
    """Periodically purge expired entries until cancelled."""
    while True:
        try:
            await asyncio.to_thread(store.purge_expired)
        except KVStoreError as exc:
            logger.error(f"Expired-key sweep failed: {exc}")
        await asyncio.sleep(interval)


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Builds the services from the global configuration unless they were
        already configured (the test suite installs its own), and starts the
        expired-key sweep.

    On shutdown:
        Cancels the sweep.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    if getattr(app.state, "gallery_store", None) is None:
        configure_services(app, config)
        logger.info(f"Services configured with the {config.kv_backend} backend.")

    sweeper = asyncio.create_task(
        _sweep_expired(app.state.kv_store, app.state.config.sweep_interval_seconds)
    )

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Image Gallery",
    description="Shareable, time-limited galleries of externally hosted images.",
    version=__version__,
    lifespan=lifespan,
)

# Galleries are created from bots and embedded in other sites, so any origin
# may call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ---------------------------------------------------------------------------
# Error handlers.
# ---------------------------------------------------------------------------


def _error_response(exc: GalleryError) -> JSONResponse:
    body = ErrorResponse(error=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(GalleryError)
async def gallery_error_handler(request: Request, exc: GalleryError) -> JSONResponse:
    """Render gallery errors as ``{success, error, message}``."""
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters as ``INVALID_DATA``."""
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error_response(InvalidDataError(detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ---------------------------------------------------------------------------
# Request helpers.
# ---------------------------------------------------------------------------


def _galleries(request: Request) -> GalleryStore:
    return request.app.state.gallery_store


def _renderer(request: Request) -> PageRenderer:
    return request.app.state.renderer


def _gallery_url(request: Request, gallery_id: str) -> str:
    """Build the public URL of a gallery page."""
    base = request.app.state.config.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/gallery/{gallery_id}"


def _parse_limit(raw: str | None) -> int | None:
    match = re.match(r"\s*([+-]?\d+)", raw or "")
    return int(match.group(1)) if match else None


def _check_admin_token(request: Request, authorization: str | None) -> None:
    """Compare the bearer token with ``admin_token`` when one is configured.

    Raises:
        UnauthorizedError: If a token is configured and does not match.
    """
    token = request.app.state.config.admin_token
    if not token:
        return
    expected = f"Bearer {token}"
    if authorization is None or not secrets.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        raise UnauthorizedError("Unauthorized")


# ---------------------------------------------------------------------------
# Gallery routes.
# ---------------------------------------------------------------------------


@app.post("/api/create-gallery")
def create_gallery(req: CreateGalleryRequest, request: Request) -> dict:
    """Create a gallery from a list of image URLs.

    Repeating the request with the same ``gallery_id`` returns the existing
    gallery with ``message: "ALREADY_EXISTS"``; the stored record is left
    untouched and the daily quota is not incremented again.

    Args:
        req: Validated :class:`CreateGalleryRequest` payload.

    Returns:
        :class:`CreateGalleryResponse` for a new gallery, or
        :class:`ExistingGalleryResponse`.

    Raises:
        InvalidDataError: 400 when ``images`` is missing or empty.
        QuotaExceededError: 429 when the store is over quota.
        ServerError: 500 for any other store failure.
    """
    galleries = _galleries(request)
    result = galleries.create(
        req.images,
        title=req.title,
        author=req.author,
        gallery_id=req.gallery_id,
        theme_colors=req.theme_colors,
    )
    url = _gallery_url(request, result.gallery_id)

    if result.status is CreateStatus.ALREADY_EXISTS:
        return ExistingGalleryResponse(gallery_id=result.gallery_id, gallery_url=url).model_dump()

    return CreateGalleryResponse(
        gallery_url=url,
        id=result.gallery_id,
        expires_in_days=galleries.ttl_days,
    ).model_dump()


@app.get("/api/check/{gallery_id}")
def check_gallery(gallery_id: str, request: Request):
    """Report whether a gallery exists.

    Returns:
        ``{exists: true, gallery_url, image_count, created}`` or
        ``{exists: false}``.  A store failure answers 500 with
        ``{exists: false, error}``.
    """
    try:
        check = _galleries(request).check(gallery_id)
    except ServerError as exc:
        return JSONResponse(status_code=500, content={"exists": False, "error": exc.message})

    if not check.exists:
        return {"exists": False}
    return CheckGalleryResponse(
        exists=True,
        gallery_url=_gallery_url(request, gallery_id),
        image_count=check.image_count,
        created=check.created,
    ).model_dump()


@app.get("/api/gallery/{gallery_id}")
def get_gallery_record(gallery_id: str, request: Request) -> dict:
    """Return a gallery record as JSON.

    Raises:
        NotFoundError: 404 if the gallery does not exist or has expired.
    """
    record = _galleries(request).get(gallery_id)
    if record is None:
        raise NotFoundError(f"Gallery {gallery_id} does not exist or has expired")
    return record.model_dump()


@app.get("/gallery/{gallery_id}", response_class=HTMLResponse)
def view_gallery(gallery_id: str, request: Request) -> HTMLResponse:
    """Serve the gallery page, or the not-found page with status 404."""
    record: GalleryRecord | None = _galleries(request).get(gallery_id)
    renderer = _renderer(request)

    if record is None:
        return HTMLResponse(content=renderer.render_not_found(), status_code=404)

    return HTMLResponse(
        content=renderer.render_gallery(record),
        headers={"Cache-Control": "public, max-age=3600"},
    )


@app.get("/explore", response_class=HTMLResponse)
@app.get("/plaza", response_class=HTMLResponse, include_in_schema=False)
def explore(request: Request, limit: str | None = None) -> HTMLResponse:
    """Serve the listing of recent galleries.

    Args:
        limit: Number of galleries to show (default 50, capped at 100).
            Only its leading digits are read; anything else means the
            default.
    """
    renderer = _renderer(request)
    galleries = _galleries(request)
    try:
        records = galleries.list_galleries(_parse_limit(limit))
    except ServerError as exc:
        return HTMLResponse(content=renderer.render_explore_error(exc.message), status_code=500)

    return HTMLResponse(
        content=renderer.render_explore(records, galleries.now_ms()),
        headers={"Cache-Control": "public, max-age=300"},
    )


# ---------------------------------------------------------------------------
# Quota, proxy and health routes.
# ---------------------------------------------------------------------------


@app.get("/api/quota")
def get_quota(request: Request, authorization: str | None = Header(default=None)) -> dict:
    """Return today's gallery creation usage.

    Raises:
        UnauthorizedError: 401 when ``admin_token`` is configured and the
            ``Authorization`` header does not carry it.
    """
    _check_admin_token(request, authorization)
    try:
        status = request.app.state.quota_tracker.read()
    except KVStoreError as exc:
        raise ServerError(str(exc)) from exc
    return QuotaResponse(**status.to_dict()).model_dump()


@app.get("/img")
async def image_proxy(request: Request, url: str | None = None) -> Response:
    """Fetch an external image and relay it with long-lived cache headers.

    Args:
        url: Absolute ``http`` or ``https`` image URL.
    """
    if not url:
        return Response("Missing url parameter", status_code=400)
    if not url.lower().startswith(("http://", "https://")):
        return Response("Only http(s) URLs can be proxied", status_code=400)

    timeout = request.app.state.config.proxy_timeout_seconds
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            upstream = await client.get(url)
    except httpx.HTTPError as exc:
        logger.error(f"Image proxy error for {url}: {exc}")
        return Response("Proxy error", status_code=500)

    if not upstream.is_success:
        return Response("Image not found", status_code=404)

    return Response(
        content=upstream.content,
        media_type=upstream.headers.get("content-type", "image/jpeg"),
        headers={"Cache-Control": "public, max-age=86400"},
    )


@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from
    :data:`~imagegallery.core.config.config` (``IMAGEGALLERY_SERVER_HOST``,
    ``IMAGEGALLERY_SERVER_PORT``, ``IMAGEGALLERY_LOG_LEVEL``).

    This function is registered as the ``imagegallery`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    uvicorn.run(
        "imagegallery.api.main:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
