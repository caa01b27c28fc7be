from collections.abc import Callable

from fastapi import Depends

from clinic_site.core.auth import get_token_claims
from clinic_site.core.errors import ForbiddenError
from clinic_site.core.security import AccessTokenClaims


def require_roles(*roles: str) -> Callable[..., AccessTokenClaims]:
    allowed = frozenset(roles)

    async def checker(claims: AccessTokenClaims = Depends(get_token_claims)) -> AccessTokenClaims:
        if claims.role not in allowed:
            raise ForbiddenError("insufficient permissions")
        return claims

    return checker


require_manager = require_roles("ADMIN", "EDITOR")
