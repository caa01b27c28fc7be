from starlette.requests import Request

from clinic_site.context import bind_actor
from clinic_site.core.errors import UnauthorizedError
from clinic_site.core.security import AccessTokenClaims, decode_access_token


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def get_token_claims(request: Request) -> AccessTokenClaims:
    token = _bearer_token(request)
    if not token:
        raise UnauthorizedError()

    claims = decode_access_token(token)
    bind_actor(claims.user_id)
    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = str(claims.user_id)
    return claims
