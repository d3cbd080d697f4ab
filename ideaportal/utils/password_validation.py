from typing import Optional, Tuple

MIN_PASSWORD_LENGTH = 8
# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 72


def validate_password(password: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Return (is_valid, error_message) for a proposed password."""
    if not password or not password.strip():
        return False, "Password is required."
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False, f"Password must be at most {MAX_PASSWORD_BYTES} bytes long."
    if not any(char.isalpha() for char in password):
        return False, "Password must contain at least one letter."
    if not any(char.isdigit() for char in password):
        return False, "Password must contain at least one digit."
    return True, None
