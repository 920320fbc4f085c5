"""Project-wide constant values."""
from __future__ import annotations

from typing import Literal

ReportCategory = Literal["garbage", "waterlogging", "other"]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

ADMIN_FIELDS_ONLY_DETAIL = "Admins can only update resolved status."
REPORT_FORBIDDEN_DETAIL = "You are not allowed to modify this report"

__all__ = [
    "ReportCategory",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "ADMIN_FIELDS_ONLY_DETAIL",
    "REPORT_FORBIDDEN_DETAIL",
]
