from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

_pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_ctx.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return _pwd_ctx.verify(plain_password, password_hash)


def _encode(payload: Dict[str, Any], *, secret: str, algorithm: str, expires: timedelta) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        **payload,
        "iat": int(now.timestamp()),
        "exp": int((now + expires).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def _decode(token: str, *, secret: str, algorithm: str, token_type: str) -> Dict[str, Any]:
    try:
        data = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise ValueError("invalid_token") from e
    if data.get("type") != token_type or "sub" not in data:
        raise ValueError("invalid_token_payload")
    return data


def create_session_token(*, subject: str, secret: str, algorithm: str = "HS256", expires_minutes: int = 60) -> str:
    return _encode(
        {"sub": subject, "type": "session"},
        secret=secret,
        algorithm=algorithm,
        expires=timedelta(minutes=expires_minutes),
    )


def decode_session_token(token: str, *, secret: str, algorithm: str = "HS256") -> str:
    """Return the account id carried by a valid session token."""

    return str(_decode(token, secret=secret, algorithm=algorithm, token_type="session")["sub"])


def create_blob_token(*, path: str, secret: str, algorithm: str = "HS256", ttl_seconds: int = 3600) -> str:
    return _encode(
        {"sub": path, "type": "blob"},
        secret=secret,
        algorithm=algorithm,
        expires=timedelta(seconds=ttl_seconds),
    )


def verify_blob_token(token: str, *, path: str, secret: str, algorithm: str = "HS256") -> None:
    """Raise ``ValueError`` unless ``token`` is a live signature for ``path``."""

    data = _decode(token, secret=secret, algorithm=algorithm, token_type="blob")
    if data["sub"] != path:
        raise ValueError("token_path_mismatch")
