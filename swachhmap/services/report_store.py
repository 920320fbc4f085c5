"""Persistence helpers for reports.

Every function here stages its changes and flushes; committing is left to
the caller so several writes can land in one transaction.
"""
from __future__ import annotations

import math
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..constants import MAX_PAGE_SIZE
from ..models import Report, Review, User


def _location(report: Report) -> dict[str, float]:
    return {"lat": report.latitude, "lng": report.longitude}


def create_report(db: Session, **fields: Any) -> Report:
    report = Report(**fields)
    db.add(report)
    db.flush()
    return report


def get_report(db: Session, report_id: UUID, *, for_update: bool = False) -> Report | None:
    statement = select(Report).where(Report.id == report_id)
    if for_update:
        statement = statement.with_for_update().execution_options(populate_existing=True)
    return db.scalars(statement).first()


def list_reports(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    category: str | None = None,
    resolved: bool | None = None,
) -> tuple[int, list[dict[str, Any]]]:
    """Return the total match count and one page of summaries, newest first."""

    if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination parameters")

    filters = []
    if category:
        filters.append(Report.category == category)
    if resolved is not None:
        filters.append(Report.resolved == resolved)

    count_statement = select(func.count(Report.id))
    statement = select(Report, User.username.label("owner_username")).outerjoin(User, Report.created_by == User.id)
    if filters:
        count_statement = count_statement.where(*filters)
        statement = statement.where(*filters)

    total = int(db.scalar(count_statement) or 0)
    rows = db.execute(
        statement.order_by(Report.created_at.desc(), Report.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    items: list[dict[str, Any]] = []
    for report, owner_username in rows:
        items.append(
            {
                "id": report.id,
                "title": report.title,
                "description": report.description,
                "category": report.category,
                "location": _location(report),
                "raw_address": report.raw_address or "",
                "thumbnail": report.image_url or "",
                "upvotes": report.upvotes,
                "status": "resolved" if report.resolved else "pending",
                "created_at": report.created_at,
                "created_by": owner_username or "Unknown",
            }
        )
    return total, items


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def get_report_detail(db: Session, report_id: UUID, *, include_reviews: bool = False) -> dict[str, Any] | None:
    """Compose a report with its owner and, optionally, its reviews and their authors."""

    report = get_report(db, report_id)
    if report is None:
        return None

    owner = db.get(User, report.created_by)
    detail: dict[str, Any] = {
        "id": report.id,
        "title": report.title,
        "description": report.description,
        "category": report.category,
        "location": _location(report),
        "raw_address": report.raw_address or "",
        "image_url": report.image_url or "",
        "images": list(report.images or []),
        "upvotes": report.upvotes,
        "resolved": report.resolved,
        "resolved_at": report.resolved_at,
        "resolved_by": report.resolved_by,
        "created_at": report.created_at,
        "created_by": (
            {"id": owner.id, "username": owner.username, "email": owner.email} if owner is not None else None
        ),
    }

    if include_reviews:
        ordered_ids = [UUID(value) for value in report.review_ids or []]
        by_id: dict[UUID, tuple[Review, str | None]] = {}
        if ordered_ids:
            rows = db.execute(
                select(Review, User.username)
                .outerjoin(User, Review.author_id == User.id)
                .where(Review.id.in_(ordered_ids))
            ).all()
            by_id = {review.id: (review, username) for review, username in rows}
        reviews: list[dict[str, Any]] = []
        # Dangling references are skipped.
        for review_id in ordered_ids:
            if review_id not in by_id:
                continue
            review, username = by_id[review_id]
            reviews.append(
                {
                    "id": review.id,
                    "report_id": review.report_id,
                    "comment": review.comment,
                    "upvote": review.upvote,
                    "created_at": review.created_at,
                    "author": {"id": review.author_id, "username": username} if username else None,
                }
            )
        detail["reviews"] = reviews

    return detail


def apply_report_changes(db: Session, report: Report, changes: dict[str, Any]) -> Report:
    for field, value in changes.items():
        setattr(report, field, value)
    db.add(report)
    db.flush()
    return report


def increment_upvotes(db: Session, report_id: UUID, delta: int) -> None:
    """Adjust the upvote counter in a single UPDATE statement."""

    if delta == 0:
        return
    db.execute(
        update(Report)
        .where(Report.id == report_id)
        .values(upvotes=Report.upvotes + delta)
        .execution_options(synchronize_session="fetch")
    )


def append_review(db: Session, report_id: UUID, review_id: UUID) -> None:
    report = get_report(db, report_id, for_update=True)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    reference = str(review_id)
    if reference not in (report.review_ids or []):
        report.review_ids = [*(report.review_ids or []), reference]
    db.flush()


def remove_review(db: Session, report_id: UUID, review_id: UUID) -> None:
    report = get_report(db, report_id, for_update=True)
    if report is None:
        return
    reference = str(review_id)
    report.review_ids = [value for value in report.review_ids or [] if value != reference]
    db.flush()


def delete_report_if_permitted(db: Session, report_id: UUID, *, requester_id: UUID, allow_any: bool = False) -> bool:
    """Delete the report when ``requester_id`` owns it (or ``allow_any`` is set)."""

    report = get_report(db, report_id)
    if report is None:
        return False
    if report.created_by != requester_id and not allow_any:
        return False
    db.delete(report)
    db.flush()
    return True


__all__ = [
    "create_report",
    "get_report",
    "list_reports",
    "page_count",
    "get_report_detail",
    "apply_report_changes",
    "increment_upvotes",
    "append_review",
    "remove_review",
    "delete_report_if_permitted",
]
