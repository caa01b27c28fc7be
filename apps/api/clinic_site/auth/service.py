from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import NoReturn

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from clinic_site.auth.models import RefreshToken, User
from clinic_site.auth.schemas import AuthTokensRead, UserRead
from clinic_site.core.config import get_settings
from clinic_site.core.errors import BadRequestError, UnauthorizedError
from clinic_site.core.security import (
    AccessTokenClaims,
    create_access_token,
    generate_refresh_token,
    hash_password,
    hash_token,
    verify_password,
)
from clinic_site.metrics import observe_login, observe_refresh


logger = logging.getLogger("clinic_site.auth")

INVALID_CREDENTIALS = "invalid email or password"
INVALID_REFRESH_TOKEN = "invalid refresh token"
INACTIVE_USER = "user not found or disabled"
MISSING_REFRESH_TOKEN = "refresh token is required"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


@lru_cache
def _timing_dummy_hash() -> str:
    # verified against when the email is unknown
    return hash_password("timing-equalizer")


@dataclass(slots=True)
class AuthService:
    def login(
        self,
        session: Session,
        *,
        email: str,
        password: str,
        ip: str,
        user_agent: str | None = None,
    ) -> AuthTokensRead:
        user = session.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))

        if user is None:
            verify_password(password, _timing_dummy_hash())
            self._reject_login("unknown_email")
        if not verify_password(password, user.password_hash):
            self._reject_login("bad_password", user_id=user.id)
        if not user.is_active:
            self._reject_login("inactive_user", user_id=user.id)

        now = utcnow()
        refresh_token = self._issue_refresh_token(session, user, ip=ip, user_agent=user_agent, now=now)
        session.commit()

        observe_login("success")
        logger.info("auth.login_succeeded", extra={"user_id": user.id, "role": user.role})
        return self._tokens(user, refresh_token, now)

    def refresh(
        self,
        session: Session,
        *,
        refresh_token: str,
        ip: str,
        user_agent: str | None = None,
    ) -> AuthTokensRead:
        if not refresh_token or not refresh_token.strip():
            raise BadRequestError(MISSING_REFRESH_TOKEN)

        now = utcnow()
        record = session.scalar(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
        )
        if record is None:
            self._reject_refresh("unknown_or_inactive_token")

        user = session.get(User, record.user_id)
        if user is None or not user.is_active:
            self._reject_refresh("inactive_user")

        # conditional revoke: a concurrent refresh of the same token matches zero rows
        result = session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record.id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        if result.rowcount != 1:
            session.rollback()
            self._reject_refresh("concurrent_rotation")

        successor = self._issue_refresh_token(session, user, ip=ip, user_agent=user_agent, now=now)
        session.commit()

        observe_refresh("success")
        logger.info("auth.refresh_rotated", extra={"user_id": user.id})
        return self._tokens(user, successor, now)

    def logout(self, session: Session, *, refresh_token: str) -> None:
        if not refresh_token or not refresh_token.strip():
            raise BadRequestError(MISSING_REFRESH_TOKEN)

        result = session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
        )
        session.commit()
        if result.rowcount:
            logger.info("auth.logout", extra={"status": "revoked"})

    def get_current_user(self, session: Session, user_id: int) -> UserRead:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError(INACTIVE_USER)
        return UserRead.model_validate(user)

    def ensure_admin(self, session: Session, *, email: str, password: str) -> User:
        """Create the administrator account, or reset its password, role and active flag."""
        normalized = normalize_email(email)
        user = session.scalar(select(User).where(func.lower(User.email) == normalized))
        if user is None:
            user = User(email=normalized, password_hash=hash_password(password), role="ADMIN", is_active=True)
            session.add(user)
        else:
            user.password_hash = hash_password(password)
            user.role = "ADMIN"
            user.is_active = True
        session.commit()
        session.refresh(user)
        return user

    def _issue_refresh_token(
        self,
        session: Session,
        user: User,
        *,
        ip: str,
        user_agent: str | None,
        now: datetime,
    ) -> str:
        token = generate_refresh_token()
        session.add(
            RefreshToken(
                user_id=user.id,
                token_hash=hash_token(token),
                issued_at=now,
                expires_at=now + timedelta(days=get_settings().jwt_refresh_ttl_days),
                ip=ip,
                user_agent=user_agent,
            )
        )
        return token

    @staticmethod
    def _tokens(user: User, refresh_token: str, now: datetime) -> AuthTokensRead:
        access_token = create_access_token(
            AccessTokenClaims(user_id=user.id, email=user.email, role=user.role),
            now=now,
        )
        return AuthTokensRead(
            user=UserRead.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
        )

    @staticmethod
    def _reject_login(reason: str, *, user_id: int | None = None) -> NoReturn:
        observe_login("failure")
        logger.info("auth.login_failed", extra={"reason": reason, "user_id": user_id})
        raise UnauthorizedError(INVALID_CREDENTIALS)

    @staticmethod
    def _reject_refresh(reason: str) -> NoReturn:
        observe_refresh("failure")
        logger.info("auth.refresh_rejected", extra={"reason": reason})
        raise UnauthorizedError(INVALID_REFRESH_TOKEN)


auth_service = AuthService()
