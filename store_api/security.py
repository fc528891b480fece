# store_api/security.py
import hashlib


def hash_password(password: str) -> str:
    """
    SHA-512 hex digest of a plaintext password.

    Deterministic and unsalted so stored digests stay comparable with
    existing rows. This is weak for credentials: do not reuse it for any
    new login or token flow.
    """
    return hashlib.sha512(password.encode("utf-8")).hexdigest()
