import secrets
import string

from passlib.context import CryptContext


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SPECIAL_CHARACTERS = "!@#$%^&*?"
GENERATED_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


def dummy_verify() -> None:
    # burns the same bcrypt work as a real verification
    pwd_context.dummy_verify()


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    """
    Generate a random password that satisfies the password rules.

    The first four characters guarantee one lowercase letter, one uppercase
    letter, one special character and one digit; the rest is drawn from all
    four pools and the result is shuffled.
    """
    pools = [string.ascii_lowercase, string.ascii_uppercase, SPECIAL_CHARACTERS, string.digits]
    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    while len(chars) < length:
        chars.append(secrets.choice(alphabet))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
