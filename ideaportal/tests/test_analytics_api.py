from datetime import date, datetime, UTC

from fastapi.testclient import TestClient

from ideaportal.data.ideas_manager import IdeasManager
from ideaportal.services.analytics import MAX_VOLUME_DAYS, AnalyticsService

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


def _idea(db_session, owner, title="Idea", category="opportunity", **attrs):
    idea = IdeasManager().create_idea(
        db_session, owner.id, {"title": title, "description": "d", "category": category}
    )
    for key, value in attrs.items():
        setattr(idea, key, value)
    db_session.commit()
    return idea


def test_metrics_totals_and_category_filter(db_session, alice, client: TestClient):
    _idea(db_session, alice, status="implemented", cost_saved=1000, revenue_generated=250)
    _idea(db_session, alice, status="in-review", cost_saved=500)
    _idea(db_session, alice, category="challenge", status="in-review")

    everything = client.get("/api/metrics").json()
    assert everything == {
        "ideas_submitted": 3,
        "in_review": 2,
        "implemented": 1,
        "cost_saved": 1500,
        "revenue_generated": 250,
    }

    challenges = client.get("/api/metrics?category=challenge").json()
    assert challenges["ideas_submitted"] == 1
    assert challenges["cost_saved"] == 0

    # "idea" is an alias for opportunity
    ideas = client.get("/api/metrics?category=idea").json()
    assert ideas["ideas_submitted"] == 2

    assert client.get("/api/metrics?category=all").json()["ideas_submitted"] == 3
    assert client.get("/api/metrics?category=rant").status_code == 400


def test_empty_metrics_are_zero(client: TestClient):
    assert client.get("/api/metrics").json()["cost_saved"] == 0


def test_category_chart(db_session, alice, client: TestClient):
    _idea(db_session, alice)
    _idea(db_session, alice, category="pain-point")
    _idea(db_session, alice, category="pain-point")

    slices = client.get("/api/chart/categories").json()
    assert slices == [
        {"name": "Ideas", "value": 1, "fill": "#4CAF50"},
        {"name": "Challenges", "value": 0, "fill": "#2196F3"},
        {"name": "Pain Points", "value": 2, "fill": "#F44336"},
    ]


def test_status_chart_includes_empty_statuses(db_session, alice, client: TestClient):
    _idea(db_session, alice)
    _idea(db_session, alice, status="parked")

    slices = {item["name"]: item["value"] for item in client.get("/api/chart/statuses").json()}
    assert slices == {
        "submitted": 1,
        "in-review": 0,
        "merged": 0,
        "parked": 1,
        "implemented": 0,
    }


def test_submission_volume_is_cumulative(db_session, alice):
    _idea(db_session, alice, created_at=datetime(2026, 10, 1, 8, tzinfo=UTC))
    _idea(db_session, alice, created_at=datetime(2026, 10, 11, 9, tzinfo=UTC))
    _idea(db_session, alice, created_at=datetime(2026, 10, 13, 10, tzinfo=UTC))
    _idea(db_session, alice, created_at=datetime(2026, 10, 13, 23, 30, tzinfo=UTC))

    points = AnalyticsService(db_session).submission_volume(5, now=NOW)
    assert points == [
        {"date": date(2026, 10, 10), "count": 1},
        {"date": date(2026, 10, 11), "count": 2},
        {"date": date(2026, 10, 12), "count": 2},
        {"date": date(2026, 10, 13), "count": 4},
        {"date": date(2026, 10, 14), "count": 4},
    ]
    counts = [point["count"] for point in points]
    assert counts == sorted(counts)


def test_submission_volume_clamps_days(db_session):
    service = AnalyticsService(db_session)
    assert len(service.submission_volume(0, now=NOW)) == 1
    assert len(service.submission_volume(365, now=NOW)) == MAX_VOLUME_DAYS


def test_volume_endpoint(db_session, alice, client: TestClient):
    _idea(db_session, alice)
    response = client.get("/api/chart/volume?days=3")
    assert response.status_code == 200
    points = response.json()
    assert len(points) == 3
    assert points[-1]["count"] == 1
    assert client.get("/api/chart/volume").json()[-1]["count"] == 1
    assert len(client.get("/api/chart/volume?days=500").json()) == MAX_VOLUME_DAYS
    assert client.get("/api/chart/volume?days=0").status_code == 400


def test_recent_activity_newest_first(db_session, alice):
    older = _idea(db_session, alice, title="Older", created_at=datetime(2026, 1, 1, tzinfo=UTC))
    newer = _idea(db_session, alice, title="Newer")
    recent = AnalyticsService(db_session).recent_activity(limit=5)
    assert [idea.id for idea in recent] == [newer.id, older.id]


def test_search_groups_by_category(db_session, alice, client: TestClient):
    _idea(db_session, alice, title="Parking rota")
    _idea(db_session, alice, title="Parking shortage", category="pain-point")
    _idea(db_session, alice, title="Canteen hours", category="challenge")

    results = client.get("/api/search?q=PARKING").json()
    assert [item["title"] for item in results["ideas"]] == ["Parking rota"]
    assert [item["title"] for item in results["pain_points"]] == ["Parking shortage"]
    assert results["challenges"] == []


def test_search_requires_query(client: TestClient):
    assert client.get("/api/search").status_code == 400
    assert client.get("/api/search?q=%20%20").status_code == 400


def test_search_suggestions(db_session, alice, client: TestClient):
    idea = _idea(db_session, alice, title="Parking rota")
    assert client.get("/api/search/suggestions?q=p").json() == []
    assert client.get("/api/search/suggestions").json() == []
    suggestions = client.get("/api/search/suggestions?q=park").json()
    assert suggestions == [{"id": idea.id, "title": "Parking rota", "category": "opportunity"}]
