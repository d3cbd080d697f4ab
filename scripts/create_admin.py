import argparse
import getpass
import os
import sys

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from ideaportal.database import Base, SessionLocal, engine, ensure_sqlite_schema
from ideaportal.data.user_manager import UserManager
from ideaportal.utils.password_validation import validate_password


def create_admin(username: str, password: str, display_name: str) -> int:
    ok, message = validate_password(password)
    if not ok:
        print(f"Refusing weak password: {message}")
        return 1

    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema(engine)

    db = SessionLocal()
    manager = UserManager()
    manager.set_db(db)
    try:
        existed = manager.get_user_by_username(username) is not None
        admin = manager.ensure_admin_exists(username, password, display_name)
    except (SQLAlchemyError, ValueError) as e:
        print(f"Failed to create admin: {e}")
        return 1
    finally:
        db.close()

    if existed:
        print(f"User {admin.username} already existed and now has the admin role.")
    else:
        print(f"Admin user {admin.username} created (id {admin.id}).")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin account.")
    parser.add_argument("username", help="email address used to sign in")
    parser.add_argument("--display-name", default="Administrator")
    parser.add_argument(
        "--password",
        help="password for a new account (prompted when omitted)",
    )
    args = parser.parse_args()
    password = args.password or getpass.getpass("Password: ")
    return create_admin(args.username, password, args.display_name)


if __name__ == "__main__":
    sys.exit(main())
