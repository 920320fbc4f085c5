"""Convenience exports for schema layer."""
from .auth import AuthResponse, IdentityResponse, LoginRequest, RegisterRequest
from .reports import (
    ActionResponse,
    AdminReportPatch,
    Location,
    OwnerReportPatch,
    Pagination,
    ReportCreateRequest,
    ReportImage,
    ReportListResponse,
    ReportOwner,
    ReportPatch,
    ReportResponse,
    ReportSummary,
)
from .reviews import (
    ReviewAuthor,
    ReviewCreateRequest,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdateRequest,
)

__all__ = [
    "AuthResponse",
    "IdentityResponse",
    "LoginRequest",
    "RegisterRequest",
    "ActionResponse",
    "AdminReportPatch",
    "Location",
    "OwnerReportPatch",
    "Pagination",
    "ReportCreateRequest",
    "ReportImage",
    "ReportListResponse",
    "ReportOwner",
    "ReportPatch",
    "ReportResponse",
    "ReportSummary",
    "ReviewAuthor",
    "ReviewCreateRequest",
    "ReviewListResponse",
    "ReviewResponse",
    "ReviewUpdateRequest",
]
