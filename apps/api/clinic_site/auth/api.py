from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from clinic_site.auth.schemas import AuthTokensRead, LoginRequest, RefreshRequest, UserRead
from clinic_site.auth.service import auth_service
from clinic_site.core.auth import get_token_claims
from clinic_site.core.context import RequestContext, get_request_context
from clinic_site.core.database import get_db
from clinic_site.core.security import AccessTokenClaims


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthTokensRead)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> AuthTokensRead:
    return auth_service.login(
        db,
        email=payload.email,
        password=payload.password,
        ip=ctx.client_ip,
        user_agent=ctx.user_agent,
    )


@router.post("/refresh", response_model=AuthTokensRead)
def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> AuthTokensRead:
    return auth_service.refresh(
        db,
        refresh_token=payload.refresh_token,
        ip=ctx.client_ip,
        user_agent=ctx.user_agent,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(payload: RefreshRequest, db: Session = Depends(get_db)) -> Response:
    auth_service.logout(db, refresh_token=payload.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserRead)
def me(
    claims: AccessTokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> UserRead:
    return auth_service.get_current_user(db, claims.user_id)
