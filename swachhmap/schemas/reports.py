"""Schemas for civic issue reports."""
from __future__ import annotations

from datetime import datetime
from typing import Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..constants import ReportCategory
from .reviews import ReviewResponse


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ReportImage(BaseModel):
    url: str
    reference: str


class ReportCreateRequest(BaseModel):
    """Payload for a new report.

    ``new_images`` holds inline-encoded images (data URLs or bare base64).
    Either ``location`` or ``address`` must be present; an address alone is
    geocoded before anything is stored.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=3, max_length=1000)
    category: ReportCategory
    location: Location | None = None
    address: str | None = Field(default=None, max_length=300)
    new_images: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_position(self) -> "ReportCreateRequest":
        if self.location is None and not self.address:
            raise ValueError("Missing required fields: title, description, category, and location/address")
        return self


class AdminReportPatch(BaseModel):
    """Resolution-only changes; any other key rejects the whole patch."""

    model_config = ConfigDict(extra="forbid")

    resolved: bool | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = Field(default=None, max_length=255)


class OwnerReportPatch(BaseModel):
    """Content changes available to the report's owner."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=3, max_length=1000)
    category: ReportCategory | None = None
    location: Location | None = None
    address: str | None = Field(default=None, max_length=300)
    images_to_delete: list[str] = Field(default_factory=list)
    new_images: list[str] = Field(default_factory=list)


ReportPatch = Union[AdminReportPatch, OwnerReportPatch]


class ReportOwner(BaseModel):
    id: UUID
    username: str
    email: str | None = None


class ReportResponse(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    location: Location
    raw_address: str = ""
    image_url: str = ""
    images: list[ReportImage] = Field(default_factory=list)
    upvotes: int = 0
    resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime
    created_by: ReportOwner | None = None
    reviews: list[ReviewResponse] | None = None


class ReportSummary(BaseModel):
    """List entry with the owner's username denormalized."""

    id: UUID
    title: str
    description: str
    category: str
    location: Location
    raw_address: str = ""
    thumbnail: str = ""
    upvotes: int = 0
    status: str
    created_at: datetime
    created_by: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ReportListResponse(BaseModel):
    items: list[ReportSummary]
    pagination: Pagination


class ActionResponse(BaseModel):
    success: bool = True


__all__ = [
    "Location",
    "ReportImage",
    "ReportCreateRequest",
    "AdminReportPatch",
    "OwnerReportPatch",
    "ReportPatch",
    "ReportOwner",
    "ReportResponse",
    "ReportSummary",
    "Pagination",
    "ReportListResponse",
    "ActionResponse",
]
