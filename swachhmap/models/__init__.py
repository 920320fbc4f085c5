"""Convenience exports for ORM models."""
from .report import Report
from .review import Review
from .user import User

__all__ = [
    "Report",
    "Review",
    "User",
]
