import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ideaportal.data.ideas_manager import IdeasManager
from ideaportal.data.user_manager import UserManager
from ideaportal.database import Base
from ideaportal.models.notification import Notification
from ideaportal.models.vote import UserVote
from ideaportal.services.voting_manager import VotingManager
from ideaportal.utils.security import get_password_hash


def _idea(db_session, owner, **overrides):
    data = {
        "title": "Shared parking rota",
        "description": "Rotate the reserved spaces weekly.",
        "category": "opportunity",
    }
    data.update(overrides)
    return IdeasManager().create_idea(db_session, owner.id, data)


def test_vote_is_idempotent(db_session, alice, bob):
    idea = _idea(db_session, alice)
    voting = VotingManager(db_session)

    first = voting.vote(idea.id, bob.id)
    assert first.changed is True
    assert first.idea.votes == 1

    second = voting.vote(idea.id, bob.id)
    assert second.changed is False
    assert second.voted is True
    assert second.idea.votes == 1
    assert db_session.query(UserVote).filter(UserVote.idea_id == idea.id).count() == 1


def test_unvote_restores_previous_count(db_session, alice, bob, make_user):
    idea = _idea(db_session, alice)
    carol = make_user("carol@ideaportal.test")
    voting = VotingManager(db_session)
    voting.vote(idea.id, carol.id)
    before = voting.vote(idea.id, carol.id).idea.votes

    voting.vote(idea.id, bob.id)
    outcome = voting.unvote(idea.id, bob.id)

    assert outcome.changed is True
    assert outcome.idea.votes == before
    assert voting.has_voted(idea.id, bob.id) is False


def test_unvote_without_vote_is_noop(db_session, alice, bob):
    idea = _idea(db_session, alice)
    outcome = VotingManager(db_session).unvote(idea.id, bob.id)
    assert outcome.changed is False
    assert outcome.idea.votes == 0


def test_vote_missing_idea_returns_none(db_session, bob):
    assert VotingManager(db_session).vote(999999, bob.id) is None
    assert VotingManager(db_session).unvote(999999, bob.id) is None


def test_counter_matches_rows_after_mixed_activity(db_session, alice, make_user):
    idea = _idea(db_session, alice)
    voters = [make_user(f"voter{i}@ideaportal.test") for i in range(4)]
    voting = VotingManager(db_session)
    for voter in voters:
        voting.vote(idea.id, voter.id)
    voting.unvote(idea.id, voters[0].id)
    voting.unvote(idea.id, voters[0].id)
    voting.vote(idea.id, voters[1].id)

    db_session.refresh(idea)
    rows = db_session.query(UserVote).filter(UserVote.idea_id == idea.id).count()
    assert idea.votes == rows == 3


def test_top_ideas_and_user_votes(db_session, alice, bob):
    quiet = _idea(db_session, alice, title="Quiet idea")
    popular = _idea(db_session, alice, title="Popular idea")
    voting = VotingManager(db_session)
    voting.vote(popular.id, bob.id)

    top = voting.get_top_ideas(limit=2)
    assert [idea.id for idea in top] == [popular.id, quiet.id]
    assert [idea.id for idea in voting.get_user_voted_ideas(bob.id)] == [popular.id]


def test_slow_api_response_times_scenario(
    alice_client: TestClient, bob_client: TestClient, client: TestClient, submit_idea
):
    created = submit_idea(alice_client, title="Slow API Response Times", category="pain-point")
    assert created["status"] == "submitted"
    assert created["votes"] == 0

    listed = client.get("/api/ideas").json()
    match = next(item for item in listed if item["id"] == created["id"])
    assert match["votes"] == 0
    assert match["status"] == "submitted"
    assert match["category"] == "pain-point"

    first = bob_client.post(f"/api/ideas/{created['id']}/vote")
    assert first.status_code == 200, first.text
    assert first.json()["changed"] is True
    assert first.json()["idea"]["votes"] == 1

    again = bob_client.post(f"/api/ideas/{created['id']}/vote")
    assert again.json()["changed"] is False
    assert again.json()["idea"]["votes"] == 1

    removed = bob_client.delete(f"/api/ideas/{created['id']}/vote")
    assert removed.status_code == 200
    assert removed.json()["voted"] is False
    assert removed.json()["idea"]["votes"] == 0


def test_first_vote_notifies_owner_once(
    db_session, alice, alice_client: TestClient, bob_client: TestClient, submit_idea
):
    created = submit_idea(alice_client)
    bob_client.post(f"/api/ideas/{created['id']}/vote")
    bob_client.post(f"/api/ideas/{created['id']}/vote")

    notes = (
        db_session.query(Notification)
        .filter(Notification.user_id == alice.id, Notification.type == "vote")
        .all()
    )
    assert len(notes) == 1
    assert "Bob" in notes[0].message


def test_self_vote_does_not_notify(db_session, alice, alice_client: TestClient, submit_idea):
    created = submit_idea(alice_client)
    response = alice_client.post(f"/api/ideas/{created['id']}/vote")
    assert response.json()["idea"]["votes"] == 1
    assert db_session.query(Notification).filter(Notification.user_id == alice.id).count() == 0


def test_voting_requires_session(client: TestClient, alice_client: TestClient, submit_idea):
    created = submit_idea(alice_client)
    response = client.post(f"/api/ideas/{created['id']}/vote")
    assert response.status_code == 401


def test_vote_on_missing_idea_is_404(bob_client: TestClient):
    assert bob_client.post("/api/ideas/424242/vote").status_code == 404


@pytest.fixture
def standalone_session():
    """A session that owns its transactions, so a rollback only undoes pending work."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


def test_concurrent_duplicate_vote_is_a_noop(standalone_session, monkeypatch):
    users = UserManager()
    users.set_db(standalone_session)
    owner = users.add_user("owner@ideaportal.test", get_password_hash("Password123"), "Owner")
    voter = users.add_user("voter@ideaportal.test", get_password_hash("Password123"), "Voter")
    idea = _idea(standalone_session, owner)
    voting = VotingManager(standalone_session)
    voting.vote(idea.id, voter.id)

    # Another request inserted the row between the existence check and the insert.
    monkeypatch.setattr(VotingManager, "has_voted", lambda self, idea_id, user_id: False)
    outcome = voting.vote(idea.id, voter.id)

    assert outcome.changed is False
    assert outcome.voted is True
    rows = standalone_session.query(UserVote).filter(UserVote.idea_id == idea.id).count()
    assert outcome.idea.votes == rows == 1
