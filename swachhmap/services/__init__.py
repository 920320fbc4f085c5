"""Convenience exports for service layer."""
from .auth_service import (
    Identity,
    Session,
    authenticate,
    get_current_identity,
    get_optional_identity,
    issue_session,
    register_user,
    session_from_token,
    set_session_cookie,
)
from .media_store import (
    MediaDeletionError,
    MediaNotFoundError,
    MediaStoreConfigurationError,
    MediaUploadError,
    StoredImage,
    remove_image,
    store_image,
)
from .report_service import (
    add_review,
    create_report,
    delete_report,
    delete_review,
    edit_review,
    get_report,
    list_reports,
    list_reviews,
    resolve_report,
    update_report,
)
from .review_store import ReviewConflictError

__all__ = [
    "Identity",
    "Session",
    "authenticate",
    "get_current_identity",
    "get_optional_identity",
    "issue_session",
    "register_user",
    "session_from_token",
    "set_session_cookie",
    "MediaDeletionError",
    "MediaNotFoundError",
    "MediaStoreConfigurationError",
    "MediaUploadError",
    "StoredImage",
    "remove_image",
    "store_image",
    "add_review",
    "create_report",
    "delete_report",
    "delete_review",
    "edit_review",
    "get_report",
    "list_reports",
    "list_reviews",
    "resolve_report",
    "update_report",
    "ReviewConflictError",
]
