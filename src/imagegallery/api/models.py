"""Pydantic request and response models for the Image Gallery API.

These models define the JSON schema for the API endpoints.  FastAPI uses
them for request validation, serialisation, and OpenAPI documentation.

Models
------
CreateGalleryRequest
    Payload for ``POST /api/create-gallery``.
CreateGalleryResponse / ExistingGalleryResponse
    Success bodies for a new and an already existing gallery.
ErrorResponse
    Body of every failed gallery operation.
CheckGalleryResponse
    Body of ``GET /api/check/{gallery_id}``.
QuotaResponse
    Body of ``GET /api/quota``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from imagegallery.core.gallery_store import ThemeColors


class CreateGalleryRequest(BaseModel):
    """Request body for the ``POST /api/create-gallery`` endpoint.

    Attributes:
        images: Absolute image URLs in display order.  Validated by the
            gallery store so that a missing or empty list is reported as
            ``INVALID_DATA``.
        title: Optional gallery title.
        author: Optional author name.
        gallery_id: Optional client-chosen identifier.  Repeating a request
            with the same identifier returns the existing gallery.
        theme_colors: Optional card colours for the explore page.
    """

    images: list[str] | None = Field(
        default=None,
        description="Image URLs in display order (at least one).",
    )
    title: str | None = Field(default=None, description="Gallery title.")
    author: str | None = Field(default=None, description="Gallery author.")
    gallery_id: str | None = Field(
        default=None,
        description="Client-chosen identifier.  Generated when omitted.",
    )
    theme_colors: ThemeColors | None = Field(
        default=None,
        description="Optional {primary, accent} colours.",
    )


class CreateGalleryResponse(BaseModel):
    success: bool = True
    gallery_url: str
    id: str
    expires_in_days: int


class ExistingGalleryResponse(BaseModel):
    success: bool = True
    gallery_id: str
    gallery_url: str
    message: str = "ALREADY_EXISTS"
    note: str = "Gallery already exists, nothing was created"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str


class CheckGalleryResponse(BaseModel):
    """Response body for ``GET /api/check/{gallery_id}``.

    ``gallery_url``, ``image_count`` and ``created`` are only present when
    the gallery exists.
    """

    exists: bool
    gallery_url: str | None = None
    image_count: int | None = None
    created: int | None = None


class QuotaResponse(BaseModel):
    date: str
    used: int
    limit: int
    remaining: int
    percentage: str
    warning: bool
