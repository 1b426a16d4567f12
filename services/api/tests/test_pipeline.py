from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from greenlight_api.core.errors import (
    AuthenticationFailedError,
    EditConflictError,
    ForbiddenError,
    RateLimitedError,
)
from greenlight_api.core.rate_limit import RateLimiter
from greenlight_api.core.security import hash_password
from greenlight_api.core.tokens import TokenScope
from greenlight_api.models.user import ANONYMOUS_USER, User
from greenlight_api.services.permissions import PermissionCode, add_for_user
from greenlight_api.services.pipeline import AdmissionOutcome, RequestPipeline, outcome_for
from greenlight_api.services.tokens import new_token


def _active_reader(db: Session) -> tuple[User, str]:
    user = User(
        name="Alice",
        email="alice@example.com",
        password_hash=hash_password("pa55word", iterations=1000),
        activated=True,
    )
    db.add(user)
    db.flush()
    add_for_user(db, user.id, PermissionCode.MOVIES_READ)
    issued = new_token(db, user_id=user.id, scope=TokenScope.AUTHENTICATION)
    db.commit()
    return user, issued.plaintext


def test_admit_authenticated_reader(db_session: Session, fake_clock):
    user, token = _active_reader(db_session)
    pipeline = RequestPipeline(RateLimiter(rps=2, burst=4, clock=fake_clock))

    admission = pipeline.admit(
        db_session,
        client_key="10.0.0.1",
        authorization=f"Bearer {token}",
        required_permission=PermissionCode.MOVIES_READ,
    )

    assert admission.outcome is AdmissionOutcome.ADMITTED
    assert admission.user.id == user.id


def test_rate_limit_is_checked_before_authentication(db_session: Session, fake_clock):
    pipeline = RequestPipeline(RateLimiter(rps=1, burst=1, clock=fake_clock))
    pipeline.admit(db_session, client_key="10.0.0.1", authorization=None)

    # 令牌本身也无效，但限流先于认证执行。
    with pytest.raises(RateLimitedError):
        pipeline.admit(db_session, client_key="10.0.0.1", authorization="Bearer " + "A" * 26)


def test_authentication_failure_is_not_rewritten(db_session: Session, fake_clock):
    pipeline = RequestPipeline(RateLimiter(rps=2, burst=4, clock=fake_clock))

    with pytest.raises(AuthenticationFailedError):
        pipeline.admit(
            db_session,
            client_key="10.0.0.1",
            authorization="Bearer " + "A" * 26,
            required_permission=PermissionCode.MOVIES_READ,
        )


def test_anonymous_request_to_protected_action_is_forbidden(db_session: Session, fake_clock):
    pipeline = RequestPipeline(RateLimiter(rps=2, burst=4, clock=fake_clock))

    anonymous = pipeline.admit(db_session, client_key="10.0.0.1", authorization=None)
    assert anonymous.user is ANONYMOUS_USER

    with pytest.raises(ForbiddenError):
        pipeline.admit(
            db_session,
            client_key="10.0.0.1",
            authorization=None,
            required_permission=PermissionCode.MOVIES_READ,
        )


def test_expired_token_fails_authentication(db_session: Session, fake_clock):
    user, _ = _active_reader(db_session)
    issued_at = datetime.now(timezone.utc) - timedelta(hours=24, minutes=1)
    stale = new_token(db_session, user_id=user.id, scope=TokenScope.AUTHENTICATION, now=issued_at)
    db_session.commit()
    pipeline = RequestPipeline(RateLimiter(rps=2, burst=4, clock=fake_clock))

    with pytest.raises(AuthenticationFailedError):
        pipeline.authenticate(db_session, f"Bearer {stale.plaintext}")


def test_disabled_limiter_admits_everything(db_session: Session, fake_clock):
    pipeline = RequestPipeline(RateLimiter(rps=1, burst=1, enabled=False, clock=fake_clock))

    for _ in range(20):
        pipeline.check_rate_limit("10.0.0.1")
    assert len(pipeline.limiter) == 0


def test_outcome_for_maps_admission_errors():
    assert outcome_for(RateLimitedError(0.5)) is AdmissionOutcome.RATE_LIMITED
    assert outcome_for(AuthenticationFailedError()) is AdmissionOutcome.UNAUTHENTICATED
    assert outcome_for(ForbiddenError()) is AdmissionOutcome.UNAUTHORIZED
    with pytest.raises(ValueError):
        outcome_for(EditConflictError())
