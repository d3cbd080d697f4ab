import pytest
from fastapi.testclient import TestClient

from ideaportal.models.idea import Idea
from ideaportal.models.notification import Notification
from ideaportal.models.user import User


@pytest.fixture
def idea(alice_client: TestClient, submit_idea):
    return submit_idea(alice_client, title="Automate month-end close", category="opportunity")


@pytest.mark.parametrize(
    "method,path_template,body",
    [
        ("get", "/api/admin/ideas", None),
        ("get", "/api/admin/ideas/category/challenge", None),
        ("get", "/api/admin/ideas/status/submitted", None),
        ("patch", "/api/admin/ideas/{id}/status", {"status": "implemented"}),
        ("patch", "/api/admin/ideas/{id}/assign", {"user_id": None}),
        ("patch", "/api/admin/ideas/{id}", {"admin_notes": "sneaky"}),
        ("get", "/api/admin/users", None),
        ("patch", "/api/admin/users/{bob}", {"role": "admin"}),
        ("delete", "/api/admin/users/{bob}", None),
        ("post", "/api/ideas/{id}/status", {"status": "implemented"}),
        ("post", "/api/ideas/{id}/assign", {"role": "reviewer", "user_id": "{bob}"}),
    ],
)
def test_non_admin_gets_403_without_side_effects(
    db_session, alice_client: TestClient, bob, idea, method, path_template, body
):
    path = path_template.format(id=idea["id"], bob=bob.id)
    if body and body.get("user_id") == "{bob}":
        body = {**body, "user_id": bob.id}
    kwargs = {"json": body} if body is not None else {}
    response = getattr(alice_client, method)(path, **kwargs)
    assert response.status_code == 403, response.text

    db_session.expire_all()
    stored = db_session.get(Idea, idea["id"])
    assert stored.status == "submitted"
    assert stored.admin_notes is None
    assert stored.reviewer_id is None
    stored_bob = db_session.get(User, bob.id)
    assert stored_bob is not None
    assert stored_bob.role == "user"


def test_staff_role_is_not_admin(make_user, login_as, idea):
    make_user("reviewer@ideaportal.test", role="reviewer")
    reviewer = login_as("reviewer@ideaportal.test")
    assert reviewer.get("/api/admin/ideas").status_code == 403
    assert (
        reviewer.post(f"/api/ideas/{idea['id']}/status", json={"status": "parked"}).status_code
        == 403
    )


def test_admin_routes_require_session(client: TestClient):
    assert client.get("/api/admin/ideas").status_code == 401


def test_admin_listing_has_no_status_default(admin_client: TestClient, idea):
    admin_client.patch(f"/api/admin/ideas/{idea['id']}/status", json={"status": "merged"})
    listed = admin_client.get("/api/admin/ideas").json()
    assert [item["status"] for item in listed] == ["merged"]

    by_status = admin_client.get("/api/admin/ideas/status/merged").json()
    assert [item["id"] for item in by_status] == [idea["id"]]
    by_category = admin_client.get("/api/admin/ideas/category/idea").json()
    assert [item["id"] for item in by_category] == [idea["id"]]


def test_status_change_validates_enum(admin_client: TestClient, idea):
    response = admin_client.post(f"/api/ideas/{idea['id']}/status", json={"status": "approved"})
    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)
    assert admin_client.get("/api/admin/ideas/status/approved").status_code == 400


def test_status_change_notifies_submitter(
    db_session, alice, admin_client: TestClient, idea
):
    response = admin_client.post(
        f"/api/ideas/{idea['id']}/status", json={"status": "implemented"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "implemented"

    # Setting the same status again is not a change.
    admin_client.post(f"/api/ideas/{idea['id']}/status", json={"status": "implemented"})

    notes = (
        db_session.query(Notification)
        .filter(Notification.user_id == alice.id, Notification.type == "status_change")
        .all()
    )
    assert len(notes) == 1
    assert notes[0].related_item_id == idea["id"]


def test_assign_role_to_user(db_session, alice, bob, admin_client: TestClient, idea):
    response = admin_client.post(
        f"/api/ideas/{idea['id']}/assign", json={"role": "reviewer", "user_id": bob.id}
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["reviewer_id"] == bob.id
    assert data["reviewer_info"]["display_name"] == "Bob"
    assert data["reviewer_info"]["pending"] is False

    recipients = {
        note.user_id
        for note in db_session.query(Notification).filter(Notification.type == "assignment")
    }
    assert recipients == {alice.id, bob.id}


def test_assign_role_by_email_is_pending(admin_client: TestClient, bob, idea):
    response = admin_client.post(
        f"/api/ideas/{idea['id']}/assign",
        json={"role": "implementer", "user_id": "email:Future.Hire@Example.com"},
    )
    assert response.status_code == 200, response.text
    info = response.json()["implementer_info"]
    assert info == {
        "id": 0,
        "display_name": "Pending: future.hire@example.com",
        "email": "future.hire@example.com",
        "department": None,
        "avatar_url": None,
        "pending": True,
    }

    # Switching to a real user clears the pending email.
    switched = admin_client.post(
        f"/api/ideas/{idea['id']}/assign", json={"role": "implementer", "user_id": bob.id}
    ).json()
    assert switched["implementer_id"] == bob.id
    assert switched["implementer_email"] is None

    # And back again clears the user id.
    pending_again = admin_client.post(
        f"/api/ideas/{idea['id']}/assign",
        json={"role": "implementer", "email": "someone@example.com"},
    ).json()
    assert pending_again["implementer_id"] is None
    assert pending_again["implementer_info"]["pending"] is True


def test_assign_role_validation(admin_client: TestClient, idea):
    neither = admin_client.post(f"/api/ideas/{idea['id']}/assign", json={"role": "reviewer"})
    assert neither.status_code == 400

    both = admin_client.post(
        f"/api/ideas/{idea['id']}/assign",
        json={"role": "reviewer", "user_id": 1, "email": "a@example.com"},
    )
    assert both.status_code == 400

    bad_role = admin_client.post(
        f"/api/ideas/{idea['id']}/assign", json={"role": "owner", "user_id": 1}
    )
    assert bad_role.status_code == 400

    unknown_user = admin_client.post(
        f"/api/ideas/{idea['id']}/assign", json={"role": "reviewer", "user_id": 99999}
    )
    assert unknown_user.status_code == 400

    missing_idea = admin_client.post(
        "/api/ideas/99999/assign", json={"role": "reviewer", "email": "a@example.com"}
    )
    assert missing_idea.status_code == 404


def test_general_assignee(db_session, bob, admin_client: TestClient, idea):
    response = admin_client.patch(
        f"/api/admin/ideas/{idea['id']}/assign", json={"user_id": bob.id}
    )
    assert response.status_code == 200, response.text
    assert response.json()["assigned_to"]["display_name"] == "Bob"
    assert (
        db_session.query(Notification)
        .filter(Notification.user_id == bob.id, Notification.type == "assignment")
        .count()
        == 1
    )

    cleared = admin_client.patch(
        f"/api/admin/ideas/{idea['id']}/assign", json={"user_id": None}
    )
    assert cleared.json()["assigned_to"] is None


def test_admin_field_update(admin_client: TestClient, idea):
    response = admin_client.patch(
        f"/api/admin/ideas/{idea['id']}",
        json={
            "admin_notes": "Pilot with finance in Q3",
            "impact_score": 8,
            "cost_saved": 12000,
            "revenue_generated": 0,
            "priority": "high",
        },
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["admin_notes"] == "Pilot with finance in Q3"
    assert data["impact_score"] == 8
    assert data["cost_saved"] == 12000
    assert data["revenue_generated"] == 0
    assert data["priority"] == "high"

    negative = admin_client.patch(f"/api/admin/ideas/{idea['id']}", json={"cost_saved": -5})
    assert negative.status_code == 400


def test_user_administration(admin_client: TestClient, admin_user, alice, bob):
    everyone = admin_client.get("/api/admin/users").json()
    assert {user["id"] for user in everyone} == {admin_user.id, alice.id, bob.id}

    promoted = admin_client.patch(
        f"/api/admin/users/{bob.id}", json={"role": "transformer", "department": "Sales"}
    )
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "transformer"
    assert promoted.json()["department"] == "Sales"

    transformers = admin_client.get("/api/admin/users?role=transformer").json()
    assert [user["id"] for user in transformers] == [bob.id]

    assert admin_client.patch("/api/admin/users/99999", json={"role": "user"}).status_code == 404
    assert admin_client.get("/api/admin/users?role=overlord").status_code == 400


def test_admin_cannot_delete_self(admin_client: TestClient, admin_user):
    response = admin_client.delete(f"/api/admin/users/{admin_user.id}")
    assert response.status_code == 400


def test_delete_user_cascades_and_keeps_counters(
    db_session, alice, bob, alice_client: TestClient, bob_client: TestClient,
    admin_client: TestClient, submit_idea,
):
    alices_idea = submit_idea(alice_client, title="Alice's idea")
    bobs_idea = submit_idea(bob_client, title="Bob's idea")
    bob_client.post(f"/api/ideas/{alices_idea['id']}/vote")
    bob_client.post(f"/api/ideas/{alices_idea['id']}/comments", json={"content": "Nice"})
    alice_client.post(f"/api/ideas/{bobs_idea['id']}/vote")

    response = admin_client.delete(f"/api/admin/users/{bob.id}")
    assert response.status_code == 204

    assert admin_client.get(f"/api/ideas/{bobs_idea['id']}").status_code == 404
    remaining = admin_client.get(f"/api/ideas/{alices_idea['id']}").json()
    assert remaining["votes"] == 0
    assert remaining["comments"] == []
    assert admin_client.delete(f"/api/admin/users/{bob.id}").status_code == 404
