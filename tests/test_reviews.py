"""Tests for report reviews and the upvote counter they drive."""
from __future__ import annotations

import os
from typing import Iterator
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, func, select

# Ensure the database URL and JWT secret are available before importing application modules.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_reviews.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from swachhmap.database import Base, SessionLocal, engine  # noqa: E402
from swachhmap.main import app  # noqa: E402
from swachhmap.models import Report, Review, User  # noqa: E402
from swachhmap.services import report_service, review_store  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database(monkeypatch) -> Iterator[None]:
    with SessionLocal() as session:
        session.execute(delete(Review))
        session.execute(delete(Report))
        session.execute(delete(User))
        session.commit()

    async def _no_place_name(lat, lng, *, client=None):
        return None

    monkeypatch.setattr(report_service, "reverse_geocode", _no_place_name)
    yield


def _user_client(username: str) -> TestClient:
    client = TestClient(app)
    response = client.post(
        "/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "swachh-pass"},
    )
    assert response.status_code == 201
    return client


def _create_report(client: TestClient) -> str:
    response = client.post(
        "/reports",
        json={
            "title": "Blocked drain",
            "description": "Drain outside the school is blocked with plastic.",
            "category": "waterlogging",
            "location": {"lat": 19.07, "lng": 72.87},
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _stored_counts(report_id: str) -> tuple[int, int]:
    """Return the report's upvote counter and the number of upvoting reviews."""

    with SessionLocal() as session:
        report = session.get(Report, UUID(report_id))
        upvoting = session.scalar(
            select(func.count(Review.id)).where(Review.report_id == report.id, Review.upvote.is_(True))
        )
        return report.upvotes, int(upvoting or 0)


def test_add_review_increments_upvotes():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    report_id = _create_report(owner)

    response = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Still blocked", "upvote": True})

    assert response.status_code == 201
    body = response.json()
    assert body["comment"] == "Still blocked"
    assert body["upvote"] is True
    assert body["author"]["username"] == "sunil"
    assert owner.get(f"/reports/{report_id}").json()["upvotes"] == 1


def test_second_review_by_same_author_conflicts():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    report_id = _create_report(owner)
    reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Still blocked", "upvote": True})

    again = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Again", "upvote": True})

    assert again.status_code == 409
    assert again.json() == {"error": "You have already reviewed this report."}
    with SessionLocal() as session:
        assert session.scalar(select(func.count(Review.id))) == 1
    assert owner.get(f"/reports/{report_id}").json()["upvotes"] == 1


def test_upvote_counter_tracks_review_sequence():
    owner = _user_client("ravi")
    report_id = _create_report(owner)
    alice = _user_client("alice")
    bob = _user_client("bob")
    carol = _user_client("carol")

    alice_review = alice.post(f"/reports/{report_id}/reviews", json={"comment": "Agree", "upvote": True}).json()
    bob_review = bob.post(f"/reports/{report_id}/reviews", json={"comment": "Meh", "upvote": False}).json()
    carol.post(f"/reports/{report_id}/reviews", json={"comment": "Agree too", "upvote": True})
    assert _stored_counts(report_id) == (2, 2)

    bob.patch(f"/reports/{report_id}/reviews/{bob_review['id']}", json={"upvote": True})
    assert _stored_counts(report_id) == (3, 3)

    alice.patch(f"/reports/{report_id}/reviews/{alice_review['id']}", json={"upvote": False})
    assert _stored_counts(report_id) == (2, 2)

    # Comment-only edits leave the counter alone.
    bob.patch(f"/reports/{report_id}/reviews/{bob_review['id']}", json={"comment": "Actually yes"})
    assert _stored_counts(report_id) == (2, 2)

    assert bob.delete(f"/reports/{report_id}/reviews/{bob_review['id']}").status_code == 200
    assert _stored_counts(report_id) == (1, 1)

    assert alice.delete(f"/reports/{report_id}/reviews/{alice_review['id']}").status_code == 200
    assert _stored_counts(report_id) == (1, 1)


def test_edit_review_is_author_only():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    report_id = _create_report(owner)
    review = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Blocked", "upvote": True}).json()

    response = owner.patch(f"/reports/{report_id}/reviews/{review['id']}", json={"comment": "Edited by owner"})

    assert response.status_code == 403
    assert response.json() == {"error": "You can only edit your own review"}


def test_edit_review_requires_a_change():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    report_id = _create_report(owner)
    review = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Blocked", "upvote": True}).json()

    response = reviewer.patch(f"/reports/{report_id}/reviews/{review['id']}", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Comment or upvote required"}


def test_report_owner_may_delete_any_review_but_strangers_may_not():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    stranger = _user_client("mohan")
    report_id = _create_report(owner)
    review = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Blocked", "upvote": True}).json()

    assert stranger.delete(f"/reports/{report_id}/reviews/{review['id']}").status_code == 403

    removed = owner.delete(f"/reports/{report_id}/reviews/{review['id']}")
    assert removed.status_code == 200
    assert removed.json() == {"success": True}
    assert owner.get(f"/reports/{report_id}").json()["upvotes"] == 0


def test_review_must_belong_to_report():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    first_report = _create_report(owner)
    second_report = _create_report(owner)
    review = reviewer.post(f"/reports/{first_report}/reviews", json={"comment": "Blocked", "upvote": True}).json()

    wrong_report = reviewer.patch(f"/reports/{second_report}/reviews/{review['id']}", json={"comment": "Moved"})
    unknown = reviewer.patch(f"/reports/{first_report}/reviews/{uuid4()}", json={"comment": "Moved"})
    malformed = reviewer.delete(f"/reports/{first_report}/reviews/not-a-uuid")

    assert wrong_report.status_code == 404
    assert unknown.status_code == 404
    assert malformed.status_code == 400
    assert malformed.json() == {"error": "Invalid review ID"}


def test_review_on_missing_report_is_not_found():
    reviewer = _user_client("sunil")

    response = reviewer.post(f"/reports/{uuid4()}/reviews", json={"comment": "Where?", "upvote": True})

    assert response.status_code == 404


def test_reviews_are_listed_and_embedded():
    owner = _user_client("ravi")
    report_id = _create_report(owner)
    alice = _user_client("alice")
    bob = _user_client("bob")
    first = alice.post(f"/reports/{report_id}/reviews", json={"comment": "First", "upvote": True}).json()
    second = bob.post(f"/reports/{report_id}/reviews", json={"comment": "Second", "upvote": False}).json()

    with TestClient(app) as anonymous:
        listed = anonymous.get(f"/reports/{report_id}/reviews").json()["items"]
        detail = anonymous.get(f"/reports/{report_id}", params={"include_reviews": "true"}).json()

    assert [item["id"] for item in listed] == [second["id"], first["id"]]
    assert [item["id"] for item in detail["reviews"]] == [first["id"], second["id"]]
    assert [item["author"]["username"] for item in detail["reviews"]] == ["alice", "bob"]


def test_review_store_rejects_duplicate_pair():
    owner = _user_client("ravi")
    reviewer = _user_client("sunil")
    report_id = _create_report(owner)
    existing = reviewer.post(f"/reports/{report_id}/reviews", json={"comment": "Blocked", "upvote": True}).json()
    author_id = UUID(reviewer.get("/auth/me").json()["id"])

    with SessionLocal() as session:
        with pytest.raises(review_store.ReviewConflictError):
            review_store.create_review(
                session,
                report_id=UUID(report_id),
                author_id=author_id,
                comment="Sneaking in a second one",
                upvote=True,
            )

    with SessionLocal() as session:
        report = session.get(Report, UUID(report_id))
        assert report.upvotes == 1
        assert report.review_ids == [existing["id"]]
        assert session.scalar(select(func.count(Review.id))) == 1
