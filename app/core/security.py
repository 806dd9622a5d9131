import secrets

from passlib.hash import bcrypt


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.verify(password, password_hash)


def generate_otp() -> str:
    """ Six-digit numeric one-time code """
    return f"{secrets.randbelow(1_000_000):06d}"
