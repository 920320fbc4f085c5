"""Persistence helpers for reviews; callers own the commit."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Review, User

logger = logging.getLogger(__name__)


class ReviewConflictError(RuntimeError):
    """Raised when the author already reviewed the report."""


def find_by_report_and_author(db: Session, report_id: UUID, author_id: UUID) -> Review | None:
    return db.scalar(select(Review).where(Review.report_id == report_id, Review.author_id == author_id))


def get_review(db: Session, review_id: UUID) -> Review | None:
    return db.get(Review, review_id)


def create_review(db: Session, *, report_id: UUID, author_id: UUID, comment: str, upvote: bool) -> Review:
    """Insert a review; a duplicate (report, author) pair rolls back and raises a conflict."""

    review = Review(report_id=report_id, author_id=author_id, comment=comment, upvote=upvote)
    db.add(review)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Duplicate review rejected for report %s by %s", report_id, author_id)
        raise ReviewConflictError("You have already reviewed this report.") from exc
    return review


def update_review(db: Session, review: Review, *, comment: str | None = None, upvote: bool | None = None) -> Review:
    if comment is not None:
        review.comment = comment
    if upvote is not None:
        review.upvote = upvote
    db.add(review)
    db.flush()
    return review


def delete_review(db: Session, review: Review) -> None:
    db.delete(review)
    db.flush()


def delete_reviews_for_report(db: Session, report_id: UUID) -> int:
    result = db.execute(delete(Review).where(Review.report_id == report_id))
    return int(result.rowcount or 0)


def list_reviews_for_report(db: Session, report_id: UUID) -> list[dict[str, Any]]:
    """Return a report's reviews with author usernames, newest first."""

    rows = db.execute(
        select(Review, User.username)
        .outerjoin(User, Review.author_id == User.id)
        .where(Review.report_id == report_id)
        .order_by(Review.created_at.desc())
    ).all()
    return [
        {
            "id": review.id,
            "report_id": review.report_id,
            "comment": review.comment,
            "upvote": review.upvote,
            "created_at": review.created_at,
            "author": {"id": review.author_id, "username": username} if username else None,
        }
        for review, username in rows
    ]


__all__ = [
    "ReviewConflictError",
    "find_by_report_and_author",
    "get_review",
    "create_review",
    "update_review",
    "delete_review",
    "delete_reviews_for_report",
    "list_reviews_for_report",
]
