import time
from dataclasses import dataclass
from typing import Literal

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from ridehail.core.config import settings


Role = Literal["passenger", "driver", "admin"]
ROLES: tuple[str, ...] = ("passenger", "driver", "admin")


def _now_s() -> int:
    return int(time.time())


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def create_access_token(*, sub: str, role: Role, extra: dict | None = None) -> str:
    now = _now_s()
    payload = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + settings.access_token_ttl_seconds,
        "sub": sub,
        "role": role,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


@dataclass(frozen=True)
class Principal:
    sub: str
    role: Role
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def decode_bearer_token(token: str) -> Principal:
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )
    role = payload.get("role", "passenger")
    if role not in ROLES:
        role = "passenger"
    email = payload.get("email")
    return Principal(
        sub=str(payload["sub"]),
        role=role,
        email=str(email) if email is not None else None,
    )
