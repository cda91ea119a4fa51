"""Ranking tests against the SQLite-backed repository."""

from datetime import timedelta

import pytest

from rentmatch.common.errors import BadRequest, NotFound
from rentmatch.services.matching.service import MatchingService
from tests.conftest import NOW, add_profile


def test_business_matches_rank_by_score(marketplace, matching):
    results = matching.find_business_matches("client-1")

    assert [r.profile.id for r in results] == ["biz-1", "biz-2"]
    assert results[0].score > results[1].score
    assert results[0].factors.category == 1.0
    assert results[1].factors.category == 0.0


def test_client_matches_for_business(marketplace, matching):
    results = matching.find_client_matches("biz-1")
    assert [r.profile.id for r in results] == ["client-1"]


def test_no_candidates_returns_empty_list(session_factory, matching):
    add_profile(session_factory, "lonely-client", "client", categories=["tents"])
    assert matching.find_business_matches("lonely-client") == []


def test_unknown_or_wrong_role_subject_is_not_found(marketplace, matching):
    with pytest.raises(NotFound):
        matching.find_business_matches("nobody")
    with pytest.raises(NotFound):
        matching.find_business_matches("biz-1")


def test_inactive_candidates_are_skipped(marketplace, matching):
    add_profile(marketplace, "biz-gone", "business", categories=["electronics"], location="Cape Town", active=False)
    ids = [r.profile.id for r in matching.find_business_matches("client-1")]
    assert "biz-gone" not in ids


def test_ties_break_by_recent_activity_then_id(session_factory, matching):
    add_profile(session_factory, "c", "client", categories=["tents"])
    for profile_id, last_active in [
        ("b-old", NOW - timedelta(days=3)),
        ("b-new-2", NOW),
        ("b-new-1", NOW),
    ]:
        add_profile(session_factory, profile_id, "business", categories=["tents"], last_active_at=last_active)

    first = [r.profile.id for r in matching.find_business_matches("c")]
    second = [r.profile.id for r in matching.find_business_matches("c")]

    assert first == ["b-new-1", "b-new-2", "b-old"]
    assert first == second


def test_results_truncated_to_max_matches(session_factory, repository, settings):
    add_profile(session_factory, "c", "client", categories=["tents"])
    for n in range(5):
        add_profile(session_factory, f"b-{n}", "business", categories=["tents"])
    limited = MatchingService(repository, settings.model_copy(update={"max_matches": 3}))

    assert len(limited.find_business_matches("c")) == 3


def test_find_matches_validates_subject(marketplace, matching):
    with pytest.raises(BadRequest):
        matching.find_matches("admin", "client-1")
    with pytest.raises(BadRequest):
        matching.find_matches("client", " ")
    assert matching.find_matches("client", "client-1")[0].profile.id == "biz-1"
