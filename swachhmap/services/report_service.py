"""Report lifecycle: who may change what, plus geocoding and image handling around store writes."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..clients.mapbox_geocoding import GeocoderError, forward_geocode, reverse_geocode
from ..constants import ADMIN_FIELDS_ONLY_DETAIL, REPORT_FORBIDDEN_DETAIL
from ..errors import describe_validation_errors
from ..models import Report, Review, User
from ..schemas import (
    AdminReportPatch,
    OwnerReportPatch,
    ReportCreateRequest,
    ReportPatch,
    ReviewCreateRequest,
    ReviewUpdateRequest,
)
from . import report_store, review_store
from .auth_service import Identity
from .media_store import (
    MediaDeletionError,
    MediaNotFoundError,
    MediaStoreConfigurationError,
    MediaUploadError,
    StoredImage,
    remove_image,
    store_image,
)

logger = logging.getLogger(__name__)

_MAX_ADDRESS_LENGTH = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _not_found(detail: str = "Report not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _require_report(db: Session, report_id: UUID) -> Report:
    report = report_store.get_report(db, report_id)
    if report is None:
        raise _not_found()
    return report


def _commit(db: Session, failure_detail: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database commit failed: %s", failure_detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc


def _detail(db: Session, report_id: UUID, *, include_reviews: bool = False) -> dict[str, Any]:
    detail = report_store.get_report_detail(db, report_id, include_reviews=include_reviews)
    if detail is None:
        raise _not_found()
    return detail


async def _geocode_address(address: str) -> tuple[float, float]:
    try:
        coordinates = await forward_geocode(address)
    except GeocoderError as exc:
        logger.info("Geocoding rejected address %r: %s", address, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to geocode address: {exc}",
        ) from exc
    return coordinates.lat, coordinates.lng


async def _describe_location(lat: float, lng: float) -> str:
    """Best-effort place name for coordinates; failures leave the address blank."""

    try:
        place_name = await reverse_geocode(lat, lng)
    except GeocoderError as exc:
        logger.warning("Reverse geocoding failed for (%s, %s): %s", lat, lng, exc)
        return ""
    return (place_name or "")[:_MAX_ADDRESS_LENGTH]


async def _discard_images(references: list[str]) -> int:
    """Remove stored images one by one, returning how many could not be removed."""

    failures = 0
    for reference in references:
        try:
            await remove_image(reference)
        except MediaNotFoundError:
            logger.info("Image %s was already gone from storage", reference)
        except (MediaDeletionError, MediaStoreConfigurationError) as exc:
            failures += 1
            logger.warning("Could not remove image %s: %s", reference, exc)
    return failures


async def _upload_images(images: list[str]) -> list[StoredImage]:
    """Upload in order; if any upload fails, the ones already stored are removed."""

    uploaded: list[StoredImage] = []
    try:
        for image in images:
            uploaded.append(await store_image(image))
    except (MediaUploadError, MediaStoreConfigurationError) as exc:
        logger.warning("Image %d of %d failed to upload: %s", len(uploaded) + 1, len(images), exc)
        await _discard_images([item.reference for item in uploaded])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to upload image: {exc}",
        ) from exc
    except Exception:
        await _discard_images([item.reference for item in uploaded])
        raise
    return uploaded


def _image_entries(uploaded: list[StoredImage]) -> list[dict[str, str]]:
    return [{"url": item.url, "reference": item.reference} for item in uploaded]


def _primary_image_url(current: str, images: list[dict[str, str]]) -> str:
    urls = [image["url"] for image in images]
    if current and current in urls:
        return current
    return urls[0] if urls else ""


def get_report(db: Session, report_id: UUID, *, include_reviews: bool = False) -> dict[str, Any]:
    return _detail(db, report_id, include_reviews=include_reviews)


def list_reports(
    db: Session,
    *,
    page: int,
    limit: int,
    category: str | None = None,
    resolved: bool | None = None,
) -> dict[str, Any]:
    total, items = report_store.list_reports(db, page=page, limit=limit, category=category, resolved=resolved)
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": report_store.page_count(total, limit),
        },
    }


async def create_report(db: Session, *, identity: Identity, payload: ReportCreateRequest) -> dict[str, Any]:
    """Geocode if needed, upload the images, then persist the report.

    Nothing is written to the database unless every image upload succeeded,
    and uploaded images are removed again if the insert fails.
    """

    raw_address = (payload.address or "")[:_MAX_ADDRESS_LENGTH]
    if payload.location is not None:
        lat, lng = payload.location.lat, payload.location.lng
        if not raw_address:
            raw_address = await _describe_location(lat, lng)
    else:
        lat, lng = await _geocode_address(payload.address or "")

    uploaded = await _upload_images(payload.new_images)
    images = _image_entries(uploaded)

    try:
        report = report_store.create_report(
            db,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            latitude=lat,
            longitude=lng,
            raw_address=raw_address,
            images=images,
            image_url=images[0]["url"] if images else "",
            review_ids=[],
            upvotes=0,
            resolved=False,
            created_by=identity.user_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to persist report for user %s", identity.user_id)
        await _discard_images([item.reference for item in uploaded])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create report",
        ) from exc

    logger.info("Report %s created by %s with %d image(s)", report.id, identity.user_id, len(images))
    return _detail(db, report.id)


def build_report_patch(report: Report, identity: Identity, body: dict[str, Any]) -> ReportPatch:
    """Validate ``body`` against the patch shape the caller is allowed to send."""

    if identity.is_admin:
        try:
            return AdminReportPatch.model_validate(body)
        except ValidationError as exc:
            if any(error.get("type") == "extra_forbidden" for error in exc.errors()):
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ADMIN_FIELDS_ONLY_DETAIL) from exc
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=describe_validation_errors(exc.errors()),
            ) from exc

    if report.created_by != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=REPORT_FORBIDDEN_DETAIL)

    try:
        return OwnerReportPatch.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=describe_validation_errors(exc.errors()),
        ) from exc


def _no_changes() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes detected")


def _resolution_changes(patch: AdminReportPatch, identity: Identity) -> dict[str, Any]:
    changes = patch.model_dump(exclude_unset=True)
    if "resolved" in changes and changes["resolved"] is None:
        changes.pop("resolved")
    if not changes:
        raise _no_changes()

    if changes.get("resolved") is True:
        if changes.get("resolved_at") is None:
            changes["resolved_at"] = _utcnow()
        if not changes.get("resolved_by"):
            changes["resolved_by"] = identity.label
    elif changes.get("resolved") is False:
        changes.setdefault("resolved_at", None)
        changes.setdefault("resolved_by", None)
    return changes


async def update_report(db: Session, *, identity: Identity, report_id: UUID, body: dict[str, Any]) -> dict[str, Any]:
    report = _require_report(db, report_id)
    patch = build_report_patch(report, identity, body)

    if isinstance(patch, AdminReportPatch):
        resolution = _resolution_changes(patch, identity)
        report_store.apply_report_changes(db, report, resolution)
        _commit(db, "Failed to update report")
        logger.info("Admin %s updated resolution of report %s", identity.user_id, report_id)
        return _detail(db, report_id)

    changes: dict[str, Any] = {}
    for field in ("title", "description", "category"):
        value = getattr(patch, field)
        if value is not None and value != getattr(report, field):
            changes[field] = value

    if patch.location is not None:
        if (patch.location.lat, patch.location.lng) != (report.latitude, report.longitude):
            changes["latitude"] = patch.location.lat
            changes["longitude"] = patch.location.lng
        if patch.address and patch.address != report.raw_address:
            changes["raw_address"] = patch.address
    elif patch.address and patch.address != report.raw_address:
        lat, lng = await _geocode_address(patch.address)
        changes.update(latitude=lat, longitude=lng, raw_address=patch.address)

    current_images = list(report.images or [])
    doomed = set(patch.images_to_delete)
    removed = [image for image in current_images if image.get("reference") in doomed]
    kept = [image for image in current_images if image.get("reference") not in doomed]

    if not changes and not removed and not patch.new_images:
        raise _no_changes()

    uploaded = await _upload_images(patch.new_images)
    if removed or uploaded:
        images = kept + _image_entries(uploaded)
        changes["images"] = images
        changes["image_url"] = _primary_image_url(report.image_url or "", images)

    try:
        report_store.apply_report_changes(db, report, changes)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to update report %s", report_id)
        await _discard_images([item.reference for item in uploaded])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update report",
        ) from exc

    # The record no longer points at these; storage cleanup is best effort.
    failures = await _discard_images([image["reference"] for image in removed])
    if failures:
        logger.warning("%d image(s) of report %s could not be removed from storage", failures, report_id)
    logger.info("Report %s updated by owner %s", report_id, identity.user_id)
    return _detail(db, report_id)


async def delete_report(db: Session, *, identity: Identity, report_id: UUID) -> None:
    report = _require_report(db, report_id)
    if report.created_by != identity.user_id and not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=REPORT_FORBIDDEN_DETAIL)

    references = [image["reference"] for image in report.images or [] if image.get("reference")]
    failures = await _discard_images(references)
    if failures:
        logger.warning("%d image(s) of report %s could not be removed from storage", failures, report_id)

    try:
        removed_reviews = review_store.delete_reviews_for_report(db, report_id)
        deleted = report_store.delete_report_if_permitted(
            db,
            report_id,
            requester_id=identity.user_id,
            allow_any=identity.is_admin,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to delete report %s", report_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete report",
        ) from exc
    if not deleted:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete report")

    _commit(db, "Failed to delete report")
    logger.info("Report %s deleted by %s along with %d review(s)", report_id, identity.user_id, removed_reviews)


def resolve_report(db: Session, *, identity: Identity, report_id: UUID) -> dict[str, Any]:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    report = _require_report(db, report_id)

    report_store.apply_report_changes(
        db,
        report,
        {"resolved": True, "resolved_at": _utcnow(), "resolved_by": identity.label},
    )
    _commit(db, "Failed to resolve report")
    logger.info("Report %s resolved by %s", report_id, identity.label)
    return _detail(db, report_id)


def _review_payload(db: Session, review_id: UUID) -> dict[str, Any]:
    review = review_store.get_review(db, review_id)
    if review is None:
        raise _not_found("Review not found")
    author = db.get(User, review.author_id)
    return {
        "id": review.id,
        "report_id": review.report_id,
        "comment": review.comment,
        "upvote": review.upvote,
        "created_at": review.created_at,
        "author": {"id": author.id, "username": author.username} if author is not None else None,
    }


def _require_review(db: Session, report_id: UUID, review_id: UUID) -> Review:
    review = review_store.get_review(db, review_id)
    if review is None or review.report_id != report_id:
        raise _not_found("Review not found")
    return review


def list_reviews(db: Session, report_id: UUID) -> list[dict[str, Any]]:
    _require_report(db, report_id)
    return review_store.list_reviews_for_report(db, report_id)


def add_review(db: Session, *, identity: Identity, report_id: UUID, payload: ReviewCreateRequest) -> dict[str, Any]:
    """Attach a review and, for an upvote, bump the report's counter in the same transaction."""

    _require_report(db, report_id)
    if review_store.find_by_report_and_author(db, report_id, identity.user_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You have already reviewed this report.")

    try:
        review = review_store.create_review(
            db,
            report_id=report_id,
            author_id=identity.user_id,
            comment=payload.comment,
            upvote=payload.upvote,
        )
    except review_store.ReviewConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    review_id = review.id
    try:
        report_store.append_review(db, report_id, review_id)
        report_store.increment_upvotes(db, report_id, 1 if payload.upvote else 0)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to add review to report %s", report_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to add review") from exc

    logger.info("Review %s added to report %s by %s", review_id, report_id, identity.user_id)
    return _review_payload(db, review_id)


def edit_review(
    db: Session,
    *,
    identity: Identity,
    report_id: UUID,
    review_id: UUID,
    payload: ReviewUpdateRequest,
) -> dict[str, Any]:
    _require_report(db, report_id)
    review = _require_review(db, report_id, review_id)
    if review.author_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own review")

    delta = 0
    if payload.upvote is not None and payload.upvote != review.upvote:
        delta = 1 if payload.upvote else -1

    try:
        review_store.update_review(db, review, comment=payload.comment, upvote=payload.upvote)
        report_store.increment_upvotes(db, report_id, delta)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to update review %s", review_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update review") from exc

    return _review_payload(db, review_id)


def delete_review(db: Session, *, identity: Identity, report_id: UUID, review_id: UUID) -> None:
    report = _require_report(db, report_id)
    review = _require_review(db, report_id, review_id)
    if review.author_id != identity.user_id and report.created_by != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not allowed to delete this review")

    had_upvote = bool(review.upvote)
    try:
        report_store.remove_review(db, report_id, review_id)
        review_store.delete_review(db, review)
        report_store.increment_upvotes(db, report_id, -1 if had_upvote else 0)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to delete review %s", review_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete review") from exc

    logger.info("Review %s removed from report %s by %s", review_id, report_id, identity.user_id)


__all__ = [
    "build_report_patch",
    "create_report",
    "get_report",
    "list_reports",
    "update_report",
    "delete_report",
    "resolve_report",
    "list_reviews",
    "add_review",
    "edit_review",
    "delete_review",
]
