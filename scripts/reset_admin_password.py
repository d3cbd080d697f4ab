import argparse
import getpass
import os
import sys

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ideaportal.database import SessionLocal
from ideaportal.data.user_manager import UserManager
from ideaportal.utils.password_validation import validate_password
from ideaportal.utils.security import verify_password


def reset_password(username: str, new_password: str) -> int:
    ok, message = validate_password(new_password)
    if not ok:
        print(f"Refusing weak password: {message}")
        return 1

    db = SessionLocal()
    manager = UserManager()
    manager.set_db(db)
    try:
        user = manager.get_user_by_username(username)
        if not user:
            print(f"User {username} not found!")
            return 1
        manager.change_password(user.id, new_password)
        db.refresh(user)
        # Verify immediately
        print(f"Password reset for {user.username} (role {user.role}).")
        print(f"Verification check: {verify_password(new_password, user.hashed_password)}")
        return 0
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset the password of an account.")
    parser.add_argument("username")
    args = parser.parse_args()
    new_password = getpass.getpass("New password: ")
    if getpass.getpass("Repeat: ") != new_password:
        print("Passwords do not match.")
        return 1
    return reset_password(args.username, new_password)


if __name__ == "__main__":
    sys.exit(main())
