from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_site.auth import seed
from clinic_site.auth.models import RefreshToken, User
from clinic_site.auth.service import AuthService
from clinic_site.core.config import get_settings
from clinic_site.core.database import Base
from clinic_site.core.security import decode_access_token, hash_password, hash_token


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("BCRYPT_SALT_ROUNDS", "4")
    monkeypatch.setenv("JWT_REFRESH_TTL_DAYS", "30")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _create_user(
    session: Session,
    *,
    email: str = "a@b.com",
    password: str = "secret123",
    role: str = "ADMIN",
    is_active: bool = True,
) -> User:
    user = User(email=email, password_hash=hash_password(password), role=role, is_active=is_active)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _login(service: AuthService, session: Session, email: str = "a@b.com", password: str = "secret123"):
    return service.login(session, email=email, password=password, ip="10.0.0.1", user_agent="pytest")


def test_login_issues_access_token_and_persists_hashed_refresh_token(db_session: Session) -> None:
    service = AuthService()
    user = _create_user(db_session)

    result = _login(service, db_session)

    assert result.user.id == user.id
    assert result.user.email == "a@b.com"
    assert result.user.role == "ADMIN"
    assert len(result.refresh_token) == 64

    claims = decode_access_token(result.access_token)
    assert (claims.user_id, claims.email, claims.role) == (user.id, "a@b.com", "ADMIN")

    rows = db_session.scalars(select(RefreshToken).where(RefreshToken.user_id == user.id)).all()
    assert len(rows) == 1
    row = rows[0]
    assert row.token_hash == hash_token(result.refresh_token)
    assert row.token_hash != result.refresh_token
    assert row.revoked_at is None
    assert row.ip == "10.0.0.1"
    assert row.user_agent == "pytest"
    ttl = _as_utc(row.expires_at) - _as_utc(row.issued_at)
    assert ttl == timedelta(days=30)


def test_each_login_creates_a_new_refresh_token_row(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)

    first = _login(service, db_session)
    second = _login(service, db_session)

    assert first.refresh_token != second.refresh_token
    assert db_session.scalar(select(func.count(RefreshToken.id))) == 2


def test_login_failures_share_one_message(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)

    with pytest.raises(HTTPException) as unknown_email:
        _login(service, db_session, email="nobody@b.com")
    with pytest.raises(HTTPException) as wrong_password:
        _login(service, db_session, password="not-the-password")

    assert unknown_email.value.status_code == 401
    assert wrong_password.value.status_code == 401
    assert unknown_email.value.detail == wrong_password.value.detail
    assert db_session.scalar(select(func.count(RefreshToken.id))) == 0


@pytest.mark.parametrize("password", ["secret123", "wrong-password"])
def test_inactive_user_cannot_login(db_session: Session, password: str) -> None:
    service = AuthService()
    _create_user(db_session, is_active=False)

    with pytest.raises(HTTPException) as exc_info:
        _login(service, db_session, password=password)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "invalid email or password"


def test_login_email_lookup_ignores_case(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)

    result = _login(service, db_session, email="A@B.COM")

    assert result.user.email == "a@b.com"


def test_refresh_rotates_token_and_rejects_replay(db_session: Session) -> None:
    service = AuthService()
    user = _create_user(db_session)
    original = _login(service, db_session)

    rotated = service.refresh(db_session, refresh_token=original.refresh_token, ip="10.0.0.2", user_agent="pytest")

    assert rotated.refresh_token != original.refresh_token
    assert rotated.user.id == user.id
    assert decode_access_token(rotated.access_token).user_id == user.id

    consumed = db_session.scalar(select(RefreshToken).where(RefreshToken.token_hash == hash_token(original.refresh_token)))
    assert consumed is not None
    assert consumed.revoked_at is not None
    assert _as_utc(consumed.revoked_at) <= datetime.now(timezone.utc)

    active = db_session.scalars(
        select(RefreshToken).where(RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None))
    ).all()
    assert len(active) == 1
    assert active[0].token_hash == hash_token(rotated.refresh_token)
    assert active[0].ip == "10.0.0.2"

    with pytest.raises(HTTPException) as exc_info:
        service.refresh(db_session, refresh_token=original.refresh_token, ip="10.0.0.2")
    assert exc_info.value.status_code == 401


def test_rotation_chain_keeps_only_latest_token_usable(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)
    current = _login(service, db_session).refresh_token
    seen = [current]

    for _ in range(3):
        current = service.refresh(db_session, refresh_token=current, ip="10.0.0.1").refresh_token
        seen.append(current)

    for stale in seen[:-1]:
        with pytest.raises(HTTPException):
            service.refresh(db_session, refresh_token=stale, ip="10.0.0.1")
    assert service.refresh(db_session, refresh_token=seen[-1], ip="10.0.0.1").refresh_token


def test_expired_refresh_token_is_rejected(db_session: Session) -> None:
    service = AuthService()
    user = _create_user(db_session)
    now = datetime.now(timezone.utc)
    db_session.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_token("expired-token-value"),
            issued_at=now - timedelta(days=31),
            expires_at=now - timedelta(days=1),
            ip="10.0.0.1",
        )
    )
    db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        service.refresh(db_session, refresh_token="expired-token-value", ip="10.0.0.1")

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "invalid refresh token"


def test_unknown_and_revoked_tokens_share_one_message(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)
    issued = _login(service, db_session)
    service.refresh(db_session, refresh_token=issued.refresh_token, ip="10.0.0.1")

    with pytest.raises(HTTPException) as revoked:
        service.refresh(db_session, refresh_token=issued.refresh_token, ip="10.0.0.1")
    with pytest.raises(HTTPException) as unknown:
        service.refresh(db_session, refresh_token="f" * 64, ip="10.0.0.1")

    assert revoked.value.detail == unknown.value.detail


@pytest.mark.parametrize("value", ["", "   "])
def test_refresh_requires_a_value(db_session: Session, value: str) -> None:
    service = AuthService()

    with pytest.raises(HTTPException) as exc_info:
        service.refresh(db_session, refresh_token=value, ip="10.0.0.1")

    assert exc_info.value.status_code == 400


def test_refresh_fails_when_owner_was_deactivated(db_session: Session) -> None:
    service = AuthService()
    user = _create_user(db_session)
    issued = _login(service, db_session)

    user.is_active = False
    db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        service.refresh(db_session, refresh_token=issued.refresh_token, ip="10.0.0.1")
    assert exc_info.value.status_code == 401


def test_logout_revokes_presented_token_and_is_idempotent(db_session: Session) -> None:
    service = AuthService()
    _create_user(db_session)
    issued = _login(service, db_session)

    service.logout(db_session, refresh_token=issued.refresh_token)
    service.logout(db_session, refresh_token=issued.refresh_token)

    with pytest.raises(HTTPException) as exc_info:
        service.refresh(db_session, refresh_token=issued.refresh_token, ip="10.0.0.1")
    assert exc_info.value.status_code == 401


def test_get_current_user_rejects_missing_and_inactive_users(db_session: Session) -> None:
    service = AuthService()
    active = _create_user(db_session, email="active@b.com", role="EDITOR")
    inactive = _create_user(db_session, email="inactive@b.com", is_active=False)

    current = service.get_current_user(db_session, active.id)
    assert (current.id, current.email, current.role) == (active.id, "active@b.com", "EDITOR")

    for user_id in (inactive.id, 9999):
        with pytest.raises(HTTPException) as exc_info:
            service.get_current_user(db_session, user_id)
        assert exc_info.value.status_code == 401


def test_ensure_admin_creates_then_resets_account(db_session: Session) -> None:
    service = AuthService()

    created = service.ensure_admin(db_session, email="Admin@Clinic.test", password="first-pass")
    assert created.email == "admin@clinic.test"
    assert created.role == "ADMIN"

    created.is_active = False
    created.role = "EDITOR"
    db_session.commit()

    reset = service.ensure_admin(db_session, email="admin@clinic.test", password="second-pass")
    assert reset.id == created.id
    assert reset.is_active is True
    assert reset.role == "ADMIN"
    assert db_session.scalar(select(func.count(User.id))) == 1

    result = service.login(db_session, email="admin@clinic.test", password="second-pass", ip="10.0.0.1")
    assert result.user.role == "ADMIN"


def test_seed_admin_uses_configured_credentials(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ADMIN_EMAIL", "Owner@Clinic.test")
    monkeypatch.setenv("ADMIN_PASSWORD", "seeded-pass")
    get_settings.cache_clear()
    monkeypatch.setattr(seed, "SessionLocal", sessionmaker(bind=db_session.get_bind(), autocommit=False, autoflush=False))

    user_id = seed.seed_admin(AuthService())
    assert seed.seed_admin(AuthService()) == user_id

    user = db_session.get(User, user_id)
    assert user is not None
    assert user.email == "owner@clinic.test"
    assert user.role == "ADMIN"
    assert AuthService().login(db_session, email="owner@clinic.test", password="seeded-pass", ip="10.0.0.1").user.id == user_id


def test_login_matches_mixed_case_stored_email(db_session: Session) -> None:
    service = AuthService()
    user = _create_user(db_session, email="Doctor@Clinic.test")

    exact = _login(service, db_session, email="Doctor@Clinic.test")
    lowered = _login(service, db_session, email="doctor@clinic.test")

    assert exact.user.id == lowered.user.id == user.id
    assert exact.user.email == "Doctor@Clinic.test"


def test_emails_differing_only_in_case_cannot_coexist(db_session: Session) -> None:
    _create_user(db_session, email="Doctor@Clinic.test")

    with pytest.raises(IntegrityError):
        _create_user(db_session, email="doctor@clinic.test")
    db_session.rollback()


def test_ensure_admin_reuses_mixed_case_account(db_session: Session) -> None:
    service = AuthService()
    existing = _create_user(db_session, email="Owner@Clinic.test", role="EDITOR")

    admin = service.ensure_admin(db_session, email="owner@clinic.test", password="new-pass")

    assert admin.id == existing.id
    assert admin.role == "ADMIN"
    assert db_session.scalar(select(func.count(User.id))) == 1


def test_role_outside_admin_and_editor_is_rejected_by_the_database(db_session: Session) -> None:
    with pytest.raises(IntegrityError):
        _create_user(db_session, role="VIEWER")
    db_session.rollback()

    assert db_session.scalar(select(func.count(User.id))) == 0


def test_concurrent_refresh_of_one_token_mints_a_single_successor(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'auth.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    service = AuthService()

    with SessionLocal() as setup:
        _create_user(setup)
        issued = _login(service, setup).refresh_token

    first = SessionLocal()
    second = SessionLocal()
    winners = []
    execute = first.execute

    def execute_after_racing_refresh(statement, *args, **kwargs):
        # the competing request completes between the lookup and the conditional revoke
        if not winners:
            winners.append(service.refresh(second, refresh_token=issued, ip="10.0.0.2"))
        return execute(statement, *args, **kwargs)

    monkeypatch.setattr(first, "execute", execute_after_racing_refresh)
    try:
        with pytest.raises(HTTPException) as exc_info:
            service.refresh(first, refresh_token=issued, ip="10.0.0.1")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "invalid refresh token"
        assert len(winners) == 1

        active = second.scalars(select(RefreshToken).where(RefreshToken.revoked_at.is_(None))).all()
        assert [row.token_hash for row in active] == [hash_token(winners[0].refresh_token)]
    finally:
        first.close()
        second.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
