from typing import Literal

from pydantic import BaseModel, Field


class SignupIn(BaseModel):
    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=128)
    role: Literal["passenger", "driver"] = "passenger"
    full_name: str | None = Field(default=None, max_length=128)
    phone: str | None = Field(default=None, min_length=6, max_length=32)


class LoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=128)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str


class ProfileOut(BaseModel):
    id: str
    email: str
    role: str
    full_name: str | None = None
    phone: str | None = None


class ProfileUpdateIn(BaseModel):
    full_name: str | None = Field(default=None, max_length=128)
    phone: str | None = Field(default=None, min_length=6, max_length=32)
