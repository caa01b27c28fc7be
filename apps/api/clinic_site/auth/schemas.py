from __future__ import annotations

from typing import Literal

from pydantic import EmailStr, Field

from clinic_site.core.schemas import CamelModel


Role = Literal["ADMIN", "EDITOR"]


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str = ""


class UserRead(CamelModel):
    id: int
    email: str
    role: Role


class AuthTokensRead(CamelModel):
    user: UserRead
    access_token: str
    refresh_token: str
