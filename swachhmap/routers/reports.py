"""Report and review endpoints."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..constants import DEFAULT_PAGE_SIZE
from ..database import get_session
from ..schemas import (
    ActionResponse,
    ReportCreateRequest,
    ReportListResponse,
    ReportResponse,
    ReviewCreateRequest,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdateRequest,
)
from ..services import Identity, get_current_identity
from ..services import report_service

router = APIRouter(prefix="/reports", tags=["reports"])


def _parse_id(raw: str, detail: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc


def _report_id(raw: str) -> UUID:
    return _parse_id(raw, "Invalid report ID")


def _review_id(raw: str) -> UUID:
    return _parse_id(raw, "Invalid review ID")


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report_endpoint(
    payload: ReportCreateRequest,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ReportResponse:
    report = await report_service.create_report(db, identity=identity, payload=payload)
    return ReportResponse.model_validate(report)


@router.get("", response_model=ReportListResponse)
async def list_reports_endpoint(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    category: str | None = Query(None),
    resolved: bool | None = Query(None),
    db: Session = Depends(get_session),
) -> ReportListResponse:
    listing = report_service.list_reports(db, page=page, limit=limit, category=category, resolved=resolved)
    return ReportListResponse.model_validate(listing)


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report_endpoint(
    report_id: str,
    include_reviews: bool = Query(False),
    db: Session = Depends(get_session),
) -> ReportResponse:
    report = report_service.get_report(db, _report_id(report_id), include_reviews=include_reviews)
    return ReportResponse.model_validate(report)


@router.patch("/{report_id}", response_model=ReportResponse)
async def update_report_endpoint(
    report_id: str,
    body: dict[str, Any] = Body(...),
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ReportResponse:
    report = await report_service.update_report(db, identity=identity, report_id=_report_id(report_id), body=body)
    return ReportResponse.model_validate(report)


@router.delete("/{report_id}", response_model=ActionResponse)
async def delete_report_endpoint(
    report_id: str,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ActionResponse:
    await report_service.delete_report(db, identity=identity, report_id=_report_id(report_id))
    return ActionResponse()


@router.patch("/{report_id}/resolve", response_model=ReportResponse)
async def resolve_report_endpoint(
    report_id: str,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ReportResponse:
    report = report_service.resolve_report(db, identity=identity, report_id=_report_id(report_id))
    return ReportResponse.model_validate(report)


@router.get("/{report_id}/reviews", response_model=ReviewListResponse)
async def list_reviews_endpoint(report_id: str, db: Session = Depends(get_session)) -> ReviewListResponse:
    items = report_service.list_reviews(db, _report_id(report_id))
    return ReviewListResponse.model_validate({"items": items})


@router.post("/{report_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def add_review_endpoint(
    report_id: str,
    payload: ReviewCreateRequest,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ReviewResponse:
    review = report_service.add_review(db, identity=identity, report_id=_report_id(report_id), payload=payload)
    return ReviewResponse.model_validate(review)


@router.patch("/{report_id}/reviews/{review_id}", response_model=ReviewResponse)
async def edit_review_endpoint(
    report_id: str,
    review_id: str,
    payload: ReviewUpdateRequest,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ReviewResponse:
    review = report_service.edit_review(
        db,
        identity=identity,
        report_id=_report_id(report_id),
        review_id=_review_id(review_id),
        payload=payload,
    )
    return ReviewResponse.model_validate(review)


@router.delete("/{report_id}/reviews/{review_id}", response_model=ActionResponse)
async def delete_review_endpoint(
    report_id: str,
    review_id: str,
    db: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> ActionResponse:
    report_service.delete_review(
        db,
        identity=identity,
        report_id=_report_id(report_id),
        review_id=_review_id(review_id),
    )
    return ActionResponse()


__all__ = ["router"]
