"""Schemas for report reviews."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReviewCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    comment: str = Field(..., min_length=1, max_length=500)
    upvote: bool


class ReviewUpdateRequest(BaseModel):
    """Only the comment and the upvote flag of a review can change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    comment: str | None = Field(default=None, min_length=1, max_length=500)
    upvote: bool | None = None

    @model_validator(mode="after")
    def _require_change(self) -> "ReviewUpdateRequest":
        if self.comment is None and self.upvote is None:
            raise ValueError("Comment or upvote required")
        return self


class ReviewAuthor(BaseModel):
    id: UUID
    username: str


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    report_id: UUID
    comment: str
    upvote: bool
    created_at: datetime
    author: ReviewAuthor | None = None


class ReviewListResponse(BaseModel):
    items: list[ReviewResponse]


__all__ = [
    "ReviewCreateRequest",
    "ReviewUpdateRequest",
    "ReviewAuthor",
    "ReviewResponse",
    "ReviewListResponse",
]
