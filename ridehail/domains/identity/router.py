from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, get_principal
from ridehail.core.security import Principal
from ridehail.domains.identity.schemas import LoginIn, ProfileOut, ProfileUpdateIn, SignupIn, TokenOut
from ridehail.domains.identity.service import get_profile, issue_token, login, signup, update_profile


router = APIRouter(prefix="/auth")


@router.post("/signup", response_model=TokenOut, status_code=201)
def signup_route(payload: SignupIn, db: Session = Depends(get_db)) -> TokenOut:
    user = signup(
        db,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
        phone=payload.phone,
    )
    return TokenOut(access_token=issue_token(user), user_id=user.id, role=user.role)


@router.post("/login", response_model=TokenOut)
def login_route(payload: LoginIn, db: Session = Depends(get_db)) -> TokenOut:
    user = login(db, email=payload.email, password=payload.password)
    return TokenOut(access_token=issue_token(user), user_id=user.id, role=user.role)


@router.get("/me", response_model=ProfileOut)
def me(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)) -> ProfileOut:
    return ProfileOut(**get_profile(db, principal.sub).to_public_dict())


@router.patch("/me", response_model=ProfileOut)
def update_me(
    payload: ProfileUpdateIn,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> ProfileOut:
    user = update_profile(db, principal.sub, full_name=payload.full_name, phone=payload.phone)
    return ProfileOut(**user.to_public_dict())
