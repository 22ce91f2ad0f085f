import hashlib
import re
import secrets

KEY_PREFIX = "sk_"
_TOKEN_BYTES = 16

_SECRET_PATTERN = re.compile(r"sk_[0-9a-f]{32}")


def generate_secret() -> str:
    return KEY_PREFIX + secrets.token_hex(_TOKEN_BYTES)


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode()).hexdigest()


def is_well_formed(secret: str) -> bool:
    return _SECRET_PATTERN.fullmatch(secret) is not None
