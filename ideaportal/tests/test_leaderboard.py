from datetime import date, datetime, UTC

import pytest
from fastapi.testclient import TestClient

from ideaportal.data.ideas_manager import IdeasManager
from ideaportal.services.leaderboard import (
    SORT_OPTIONS,
    LeaderboardQuery,
    LeaderboardService,
    contributor_status,
    impact_score,
    resolve_time_window,
)
from ideaportal.services.voting_manager import VotingManager

# A Wednesday; that week starts on Monday 2026-10-12.
NOW = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


def _submit(db_session, owner, category="opportunity", created_at=None, status=None, **extra):
    manager = IdeasManager()
    idea = manager.create_idea(
        db_session,
        owner.id,
        {"title": extra.pop("title", "Idea"), "description": "d", "category": category, **extra},
    )
    if status:
        manager.change_status(db_session, idea.id, status)
    if created_at:
        idea.created_at = created_at
        db_session.commit()
    return idea


@pytest.fixture
def populated(db_session, alice, bob, make_user):
    carol = make_user("carol@ideaportal.test", display_name="Carol", department="Product")
    a1 = _submit(db_session, alice, "opportunity")
    _submit(db_session, alice, "challenge", status="implemented")
    _submit(db_session, alice, "pain-point")
    b1 = _submit(db_session, bob, "challenge")
    voting = VotingManager(db_session)
    voting.vote(a1.id, bob.id)
    voting.vote(a1.id, carol.id)
    voting.vote(b1.id, alice.id)
    return {"alice": alice, "bob": bob, "carol": carol}


def test_resolve_time_window_named_ranges():
    assert resolve_time_window("all-time", now=NOW) == (None, None)
    assert resolve_time_window(None, now=NOW) == (None, None)
    assert resolve_time_window("this-week", now=NOW) == (
        datetime(2026, 10, 12, tzinfo=UTC),
        NOW,
    )
    assert resolve_time_window("last-week", now=NOW) == (
        datetime(2026, 10, 5, tzinfo=UTC),
        datetime(2026, 10, 12, tzinfo=UTC),
    )
    assert resolve_time_window("this-month", now=NOW) == (
        datetime(2026, 10, 1, tzinfo=UTC),
        NOW,
    )
    assert resolve_time_window("last-month", now=NOW) == (
        datetime(2026, 9, 1, tzinfo=UTC),
        datetime(2026, 10, 1, tzinfo=UTC),
    )
    assert resolve_time_window("this-year", now=NOW) == (
        datetime(2026, 1, 1, tzinfo=UTC),
        NOW,
    )


def test_last_month_in_january_wraps_year():
    january = datetime(2027, 1, 20, tzinfo=UTC)
    assert resolve_time_window("last-month", now=january) == (
        datetime(2026, 12, 1, tzinfo=UTC),
        datetime(2027, 1, 1, tzinfo=UTC),
    )


def test_custom_range_includes_end_day():
    start, end = resolve_time_window(
        "custom", date(2026, 3, 1), date(2026, 3, 31), now=NOW
    )
    assert start == datetime(2026, 3, 1, tzinfo=UTC)
    assert end == datetime(2026, 4, 1, tzinfo=UTC)


@pytest.mark.parametrize(
    "time_range,start,end",
    [
        ("yesterday", None, None),
        ("custom", None, None),
        ("custom", date(2026, 3, 1), None),
        ("custom", date(2026, 3, 5), date(2026, 3, 1)),
    ],
)
def test_resolve_time_window_rejects_bad_input(time_range, start, end):
    with pytest.raises(ValueError):
        resolve_time_window(time_range, start, end, now=NOW)


def test_scoring_helpers():
    assert impact_score(3, 1, 2) == 13
    assert contributor_status(51, 0) == "Top Contributor"
    assert contributor_status(50, 3) == "Active Contributor"
    assert contributor_status(10, 2) == "New Contributor"


def test_leaderboard_rows(db_session, populated):
    rows = LeaderboardService(db_session).get_leaderboard(LeaderboardQuery())
    assert [row["display_name"] for row in rows] == ["Alice", "Bob"]

    alice_row, bob_row = rows
    assert alice_row["rank"] == 1
    assert alice_row["ideas_submitted"] == 3
    assert alice_row["ideas_implemented"] == 1
    assert alice_row["votes_received"] == 2
    assert alice_row["impact_score"] == 13
    assert alice_row["category_breakdown"] == {"ideas": 1, "challenges": 1, "pain_points": 1}
    assert alice_row["contributor_status"] == "Active Contributor"
    assert alice_row["department"] == "Product"
    assert alice_row["last_submission_date"] is not None

    assert bob_row["rank"] == 2
    assert bob_row["impact_score"] == 1 * 2 + 0 * 5 + 1
    assert bob_row["contributor_status"] == "New Contributor"


def test_users_without_submissions_are_not_ranked(db_session, populated):
    rows = LeaderboardService(db_session).get_leaderboard(LeaderboardQuery())
    assert populated["carol"].id not in {row["user_id"] for row in rows}


@pytest.mark.parametrize("sort_by", SORT_OPTIONS)
@pytest.mark.parametrize("category", [None, "all", "opportunity", "challenge", "pain-point"])
@pytest.mark.parametrize("time_range", ["all-time", "this-week", "this-year"])
def test_impact_formula_holds_for_every_filter(db_session, populated, sort_by, category, time_range):
    rows = LeaderboardService(db_session).get_leaderboard(
        LeaderboardQuery(time_range=time_range, category=category, sort_by=sort_by)
    )
    for row in rows:
        assert row["impact_score"] == (
            row["ideas_submitted"] * 2 + row["ideas_implemented"] * 5 + row["votes_received"]
        )
    assert [row["rank"] for row in rows] == list(range(1, len(rows) + 1))


def test_category_and_department_filters(db_session, populated):
    service = LeaderboardService(db_session)
    challenges = service.get_leaderboard(LeaderboardQuery(category="challenge"))
    assert {(row["display_name"], row["ideas_submitted"]) for row in challenges} == {
        ("Alice", 1),
        ("Bob", 1),
    }
    finance = service.get_leaderboard(LeaderboardQuery(department="Finance"))
    assert [row["display_name"] for row in finance] == ["Bob"]
    everyone = service.get_leaderboard(LeaderboardQuery(department="all"))
    assert len(everyone) == 2


def test_sort_orders_break_ties_by_user_id(db_session, alice, bob):
    _submit(db_session, alice)
    _submit(db_session, bob)
    rows = LeaderboardService(db_session).get_leaderboard(LeaderboardQuery(sort_by="votes"))
    assert [row["user_id"] for row in rows] == sorted([alice.id, bob.id])


def test_sort_by_implemented_and_impact(db_session, alice, bob):
    _submit(db_session, alice)
    _submit(db_session, alice)
    _submit(db_session, bob, status="implemented")
    service = LeaderboardService(db_session)

    by_ideas = service.get_leaderboard(LeaderboardQuery(sort_by="ideas"))
    assert by_ideas[0]["user_id"] == alice.id
    by_implemented = service.get_leaderboard(LeaderboardQuery(sort_by="implemented"))
    assert by_implemented[0]["user_id"] == bob.id
    by_impact = service.get_leaderboard(LeaderboardQuery(sort_by="impact"))
    assert [row["impact_score"] for row in by_impact] == [7, 4]


def test_top_contributor_status(db_session, alice):
    for _ in range(11):
        _submit(db_session, alice, status="implemented")
    row = LeaderboardService(db_session).get_leaderboard(LeaderboardQuery())[0]
    assert row["impact_score"] == 11 * 2 + 11 * 5
    assert row["contributor_status"] == "Top Contributor"


def test_time_ranges_filter_on_created_at(db_session, alice):
    _submit(db_session, alice, title="this week", created_at=datetime(2026, 10, 13, 9, tzinfo=UTC))
    _submit(db_session, alice, title="last week", created_at=datetime(2026, 10, 6, 9, tzinfo=UTC))
    _submit(db_session, alice, title="last month", created_at=datetime(2026, 9, 15, 9, tzinfo=UTC))
    service = LeaderboardService(db_session)

    def submitted(time_range, **kwargs):
        rows = service.get_leaderboard(LeaderboardQuery(time_range=time_range, **kwargs), now=NOW)
        return rows[0]["ideas_submitted"] if rows else 0

    assert submitted("this-week") == 1
    assert submitted("last-week") == 1
    assert submitted("this-month") == 2
    assert submitted("last-month") == 1
    assert submitted("this-year") == 3
    assert submitted("all-time") == 3
    assert submitted("custom", start_date=date(2026, 10, 6), end_date=date(2026, 10, 6)) == 1


def test_invalid_parameters_raise(db_session):
    service = LeaderboardService(db_session)
    with pytest.raises(ValueError):
        service.get_leaderboard(LeaderboardQuery(sort_by="karma"))
    with pytest.raises(ValueError):
        service.get_leaderboard(LeaderboardQuery(category="rant"))
    with pytest.raises(ValueError):
        service.get_leaderboard(LeaderboardQuery(time_range="custom"))


def test_leaderboard_api(client: TestClient, populated):
    response = client.get("/api/leaderboard", params={"sort_by": "impact"})
    assert response.status_code == 200, response.text
    rows = response.json()
    assert [row["rank"] for row in rows] == [1, 2]
    assert rows[0]["category_breakdown"]["pain_points"] == 1

    assert client.get("/api/leaderboard?time_range=custom").status_code == 400
    assert client.get("/api/leaderboard?time_range=forever").status_code == 400
    assert client.get("/api/leaderboard?sort_by=karma").status_code == 400
    assert client.get("/api/leaderboard?category=rant").status_code == 400
    custom = client.get(
        "/api/leaderboard",
        params={"time_range": "custom", "start_date": "2020-01-01", "end_date": "2099-12-31"},
    )
    assert custom.status_code == 200
    assert len(custom.json()) == 2
