import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from greenlight_api.core.errors import AuthenticationFailedError, InternalError
from greenlight_api.core.security import hash_password
from greenlight_api.core.tokens import TokenScope
from greenlight_api.models.token import Token
from greenlight_api.models.user import User
from greenlight_api.services.tokens import (
    delete_all_for_user,
    get_user_for_token,
    new_token,
    purge_expired_once,
    purge_expired_tokens,
    run_token_purger,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _create_user(db: Session, email: str = "alice@example.com") -> User:
    user = User(name="Alice", email=email, password_hash=hash_password("pa55word", iterations=1000))
    db.add(user)
    db.flush()
    return user


def test_new_token_is_stored_as_fingerprint_only(db_session: Session):
    user = _create_user(db_session)
    issued = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    db_session.commit()

    stored = db_session.execute(select(Token)).scalar_one()
    assert stored.hash == issued.fingerprint
    assert stored.scope == "authentication"
    assert issued.plaintext.encode("utf-8") != stored.hash


def test_second_issuance_invalidates_first(db_session: Session):
    user = _create_user(db_session)
    first = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    second = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    db_session.commit()

    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext=first.plaintext, scope=TokenScope.AUTHENTICATION, now=T0)
    found = get_user_for_token(db_session, plaintext=second.plaintext, scope=TokenScope.AUTHENTICATION, now=T0)
    assert found.id == user.id

    count = db_session.execute(select(func.count()).select_from(Token)).scalar_one()
    assert count == 1


def test_issuance_only_replaces_same_scope(db_session: Session):
    user = _create_user(db_session)
    auth = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    new_token(db_session, user_id=user.id, scope=TokenScope.ACTIVATION, now=T0)
    db_session.commit()

    found = get_user_for_token(db_session, plaintext=auth.plaintext, scope=TokenScope.AUTHENTICATION, now=T0)
    assert found.id == user.id


def test_authentication_token_expires_after_24_hours(db_session: Session):
    user = _create_user(db_session)
    issued = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    db_session.commit()

    just_before = T0 + timedelta(hours=23, minutes=59)
    found = get_user_for_token(db_session, plaintext=issued.plaintext, scope=TokenScope.AUTHENTICATION, now=just_before)
    assert found.id == user.id

    # 认证成功不续期，过期后原样提交依然失败。
    after_expiry = T0 + timedelta(hours=24, seconds=1)
    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext=issued.plaintext, scope=TokenScope.AUTHENTICATION, now=after_expiry)


def test_token_is_not_valid_outside_its_scope(db_session: Session):
    user = _create_user(db_session)
    issued = new_token(db_session, user_id=user.id, scope=TokenScope.ACTIVATION, now=T0)
    db_session.commit()

    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext=issued.plaintext, scope=TokenScope.AUTHENTICATION, now=T0)


def test_unknown_and_malformed_plaintexts_fail(db_session: Session):
    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext="A" * 26, scope=TokenScope.AUTHENTICATION, now=T0)
    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext="nope", scope=TokenScope.AUTHENTICATION, now=T0)


def test_delete_all_for_user_only_touches_scope_and_user(db_session: Session):
    alice = _create_user(db_session)
    bob = _create_user(db_session, email="bob@example.com")
    alice_auth = new_token(db_session, user_id=alice.id, scope=TokenScope.AUTHENTICATION, now=T0)
    alice_activation = new_token(db_session, user_id=alice.id, scope=TokenScope.ACTIVATION, now=T0)
    bob_auth = new_token(db_session, user_id=bob.id, scope=TokenScope.AUTHENTICATION, now=T0)
    db_session.commit()

    deleted = delete_all_for_user(db_session, user_id=alice.id, scope=TokenScope.AUTHENTICATION)
    db_session.commit()

    assert deleted == 1
    with pytest.raises(AuthenticationFailedError):
        get_user_for_token(db_session, plaintext=alice_auth.plaintext, scope=TokenScope.AUTHENTICATION, now=T0)
    assert get_user_for_token(
        db_session, plaintext=alice_activation.plaintext, scope=TokenScope.ACTIVATION, now=T0
    ).id == alice.id
    assert get_user_for_token(db_session, plaintext=bob_auth.plaintext, scope=TokenScope.AUTHENTICATION, now=T0).id == bob.id


def test_purge_expired_tokens(db_session: Session):
    user = _create_user(db_session)
    new_token(db_session, user_id=user.id, scope=TokenScope.PASSWORD_RESET, now=T0)
    live = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=T0)
    db_session.commit()

    purged = purge_expired_tokens(db_session, now=T0 + timedelta(hours=1))
    db_session.commit()

    assert purged == 1
    assert get_user_for_token(
        db_session, plaintext=live.plaintext, scope=TokenScope.AUTHENTICATION, now=T0 + timedelta(hours=1)
    ).id == user.id


def _token_count(session_factory) -> int:
    db = session_factory()
    try:
        return db.execute(select(func.count()).select_from(Token)).scalar_one()
    finally:
        db.close()


def test_purge_expired_once_commits_in_own_session(db_session: Session, session_factory):
    user = _create_user(db_session)
    new_token(db_session, user_id=user.id, scope=TokenScope.PASSWORD_RESET, now=T0)
    db_session.commit()

    assert purge_expired_once(session_factory, now=T0 + timedelta(hours=1)) == 1
    assert _token_count(session_factory) == 0


def test_token_purger_keeps_running_after_failure(db_session: Session, session_factory):
    user = _create_user(db_session)
    long_ago = datetime.now(timezone.utc) - timedelta(days=30)
    new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=long_ago)
    db_session.commit()

    calls: list[int] = []

    def flaky_factory() -> Session:
        calls.append(1)
        # 只有第二次调用真正访问数据库，其余均模拟存储故障。
        if len(calls) != 2:
            raise InternalError()
        return session_factory()

    async def run_briefly() -> None:
        task = asyncio.create_task(run_token_purger(flaky_factory, 0.01))
        for _ in range(200):
            await asyncio.sleep(0.01)
            if len(calls) >= 3:
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run_briefly())

    assert len(calls) >= 3
    assert _token_count(session_factory) == 0
