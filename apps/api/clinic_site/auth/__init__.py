from clinic_site.auth.api import router
from clinic_site.auth.models import RefreshToken, User
from clinic_site.auth.schemas import AuthTokensRead, LoginRequest, RefreshRequest, UserRead
from clinic_site.auth.service import AuthService, auth_service

__all__ = [
    "router",
    "User",
    "RefreshToken",
    "LoginRequest",
    "RefreshRequest",
    "UserRead",
    "AuthTokensRead",
    "AuthService",
    "auth_service",
]
