#!/usr/bin/env python3
"""
Fill an empty database with a few users, submissions, votes and comments
so the dashboard and leaderboard have something to show. All demo accounts
share the password given on the command line.
"""

import argparse
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ideaportal.database import Base, SessionLocal, engine, ensure_sqlite_schema
from ideaportal.data.challenge_manager import ChallengeManager
from ideaportal.data.comment_manager import CommentManager
from ideaportal.data.ideas_manager import IdeasManager
from ideaportal.data.user_manager import UserManager
from ideaportal.services.voting_manager import VotingManager
from ideaportal.utils.security import get_password_hash

DEMO_USERS = [
    ("maria@demo.local", "Maria Lopez", "Operations", "admin"),
    ("tom@demo.local", "Tom Becker", "Tech & Systems", "reviewer"),
    ("priya@demo.local", "Priya Nair", "Finance", "user"),
    ("sam@demo.local", "Sam Okafor", "Sales", "user"),
]

DEMO_ITEMS = [
    ("priya@demo.local", "Automate month-end reconciliation", "opportunity", "Finance", "implemented"),
    ("sam@demo.local", "Slow API Response Times", "pain-point", "Tech & Systems", "in-review"),
    ("tom@demo.local", "Cut onboarding time in half", "challenge", "Operations", "submitted"),
    ("sam@demo.local", "Self-service refund portal", "opportunity", "Sales", "submitted"),
    ("maria@demo.local", "Quarterly roadmap open house", "opportunity", "Product", "merged"),
    ("priya@demo.local", "Campaign approvals take weeks", "pain-point", "Marketing", "parked"),
    ("tom@demo.local", "Lower weekly meeting hours", "challenge", "Organisation Health", "in-review"),
    ("maria@demo.local", "Bundle pricing for renewals", "opportunity", "Commercial & Strategy", "submitted"),
    ("sam@demo.local", "Shared printer queue jams", "pain-point", "Other", "submitted"),
]


def seed(password: str) -> None:
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema(engine)
    db = SessionLocal()
    try:
        users = UserManager()
        users.set_db(db)
        if users.get_user_count():
            print("Database already has users; nothing seeded.")
            return

        accounts = {}
        for username, display_name, department, role in DEMO_USERS:
            accounts[username] = users.add_user(
                username=username,
                hashed_password=get_password_hash(password),
                display_name=display_name,
                department=department,
                role=role,
            )

        ideas = IdeasManager()
        created = []
        for owner, title, category, department, status in DEMO_ITEMS:
            idea = ideas.create_idea(
                db,
                accounts[owner].id,
                {
                    "title": title,
                    "description": f"{title}. Seeded for the demo dashboard.",
                    "category": category,
                    "department": department,
                },
            )
            ideas.change_status(db, idea.id, status)
            created.append(idea)

        voting = VotingManager(db)
        for idea in created:
            for account in accounts.values():
                if account.id != idea.submitted_by_id:
                    voting.vote(idea.id, account.id)

        CommentManager(db).add_comment(
            created[1], accounts["tom@demo.local"].id, "Seeing p95 above two seconds on search."
        )
        ChallengeManager(db).join(accounts["priya@demo.local"].id, created[2])
        print(f"Seeded {len(accounts)} users and {len(created)} submissions.")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--password", default="DemoPassword1")
    seed(parser.parse_args().password)
