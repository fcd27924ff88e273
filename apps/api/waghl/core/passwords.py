import secrets
import string

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unknown or malformed hash format stored in the row.
        return False


_PASSWORD_GROUPS = (
    string.ascii_lowercase,
    string.ascii_uppercase,
    string.digits,
    "!@#$%^&*",
)


def generate_password(length: int = 12) -> str:
    """Random password with at least one character from every group."""
    alphabet = "".join(_PASSWORD_GROUPS)
    chars = [secrets.choice(group) for group in _PASSWORD_GROUPS]
    chars.extend(secrets.choice(alphabet) for _ in range(max(0, length - len(chars))))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
