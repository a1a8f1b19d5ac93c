from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ridehail.core.db import SessionLocal
from ridehail.core.security import Principal, decode_bearer_token


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def principal_from_token(token: str) -> Principal:
    try:
        return decode_bearer_token(token)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_principal(request: Request) -> Principal:
    auth = request.headers.get("authorization") or ""
    prefix = "bearer "
    if not auth.lower().startswith(prefix):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = auth[len(prefix) :].strip()
    return principal_from_token(token)


def require_passenger(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != "passenger":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Passenger role required")
    return principal


def require_driver(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != "driver":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Driver role required")
    return principal


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return principal
