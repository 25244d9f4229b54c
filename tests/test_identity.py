"""Unit tests for auth/platform.py, auth/strategies.py and auth/sessions.py.

Covers:
- Platform header decoding, claim extraction and role substring mapping
- External id binding on first platform login, never overwritten later
- Not found (404) and blocked (403) platform users
- Strategy ordering: platform header wins over a valid bearer token
- Failure collapsing in IdentityResolver
- SessionRegistry validate / destroy_all_for_user / sweep_expired / stats
"""

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from auth.models import AuthType
from auth.platform import PlatformHeaderStrategy, decode_principal, extract_claims, map_external_role
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.strategies import NOT_APPLICABLE, Failed, IdentityResolver, Resolved, SessionTokenStrategy
from core.errors import ForbiddenError, NotFoundError, UnauthenticatedError
from tests.helpers import bearer, make_user

HEADER = "x-ms-client-principal"
WS = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims"
ROLE_URI = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"


def _encode(principal) -> str:
    return base64.b64encode(json.dumps(principal).encode("utf-8")).decode("ascii")


def _principal(email=None, external_id=None, roles=None, name=None) -> str:
    claims = []
    if email:
        claims.append({"typ": f"{WS}/emailaddress", "val": email})
    if name:
        claims.append({"typ": "name", "val": name})
    if external_id:
        claims.append({"typ": f"{WS}/nameidentifier", "val": external_id})
    if roles:
        claims.append({"typ": ROLE_URI, "val": roles})
    raw = json.dumps({"auth_typ": "aad", "claims": claims}).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Claims and role mapping
# ---------------------------------------------------------------------------


def test_decode_principal_rejects_garbage():
    with pytest.raises(UnauthenticatedError):
        decode_principal("not-base64-json!!")


@pytest.mark.parametrize("claims", [5, True, "email", {"typ": "email"}])
def test_decode_principal_rejects_non_list_claims(claims):
    with pytest.raises(UnauthenticatedError):
        decode_principal(_encode({"auth_typ": "aad", "claims": claims}))


def test_decode_principal_defaults_missing_claims():
    assert decode_principal(_encode({"auth_typ": "aad"}))["claims"] == []


def test_extract_claims_falls_back_for_email_and_external_id():
    claims = extract_claims(json.loads(base64.b64decode(_principal(name="ann@example.com"))))
    assert claims.email == "ann@example.com"
    assert claims.external_id == "ann@example.com"

    claims = extract_claims(json.loads(base64.b64decode(_principal(email="bob@example.com", roles="Editors, X"))))
    assert claims.external_id == "bob@example.com"
    assert claims.roles == ["Editors", "X"]


@pytest.mark.parametrize(
    "external, expected",
    [
        ("Global Admin", "admin"),
        ("administrative-assistant", "admin"),
        ("Content.Editor", "editor"),
        ("editor-author", "editor"),
        ("Authors", "author"),
        ("Reader", "viewer"),
    ],
)
def test_map_external_role_substrings(external, expected):
    assert map_external_role(external) == expected


# ---------------------------------------------------------------------------
# Platform header strategy
# ---------------------------------------------------------------------------


def test_platform_login_binds_external_id_once(store):
    uid = make_user(store, "carol", "author")
    strategy = PlatformHeaderStrategy(store)

    identity = strategy.authenticate({HEADER: _principal(email="carol@example.com", external_id="oid-1")})
    assert identity.user_id == uid
    assert identity.auth_key == "oid-1"
    assert identity.auth_type is AuthType.PLATFORM_HEADER
    assert store.get_by_id(uid).auth_key == "oid-1"

    # A later login with another id still resolves by email but keeps the first key.
    again = strategy.authenticate({HEADER: _principal(email="carol@example.com", external_id="oid-2")})
    assert again.user_id == uid
    assert store.get_by_id(uid).auth_key == "oid-1"


def test_platform_name_only_principal_binds_name_as_external_id(store):
    uid = make_user(store, "nina", "viewer")
    identity = PlatformHeaderStrategy(store).authenticate({HEADER: _principal(name="nina@example.com")})
    assert identity.user_id == uid
    assert identity.auth_key == "nina@example.com"
    assert store.get_by_id(uid).auth_key == "nina@example.com"


def test_platform_lookup_prefers_external_id(store):
    bound = make_user(store, "dave", "viewer", auth_key="oid-dave")
    make_user(store, "erin", "viewer")
    strategy = PlatformHeaderStrategy(store)

    identity = strategy.authenticate({HEADER: _principal(email="erin@example.com", external_id="oid-dave")})
    assert identity.user_id == bound


def test_platform_role_claim_overrides_stored_role(store):
    make_user(store, "fay", "viewer")
    strategy = PlatformHeaderStrategy(store)
    identity = strategy.authenticate({HEADER: _principal(email="fay@example.com", roles="CMS-Editors")})
    assert identity.role == "editor"

    identity = strategy.authenticate({HEADER: _principal(email="fay@example.com")})
    assert identity.role == "viewer"


def test_platform_unknown_user_is_not_found(store):
    with pytest.raises(NotFoundError):
        PlatformHeaderStrategy(store).authenticate({HEADER: _principal(email="ghost@example.com")})


def test_platform_blocked_user_is_forbidden(store):
    make_user(store, "gus", "admin", blocked=True)
    with pytest.raises(ForbiddenError):
        PlatformHeaderStrategy(store).authenticate({HEADER: _principal(email="gus@example.com")})


def test_platform_attempt_outcomes(store):
    strategy = PlatformHeaderStrategy(store)
    assert strategy.attempt({}) is NOT_APPLICABLE
    outcome = strategy.attempt({HEADER: _principal(email="nobody@example.com")})
    assert isinstance(outcome, Failed)
    assert outcome.error.status_code == 404


# ---------------------------------------------------------------------------
# Session token strategy and the resolver
# ---------------------------------------------------------------------------


def test_session_strategy_resolves_and_rejects(store):
    uid = make_user(store, "hana", "editor")
    strategy = SessionTokenStrategy(store)

    outcome = strategy.attempt({"authorization": bearer(uid, "hana", "editor")["Authorization"]})
    assert isinstance(outcome, Resolved)
    assert outcome.identity.role == "editor"
    assert outcome.identity.auth_type is AuthType.SESSION

    assert strategy.attempt({}) is NOT_APPLICABLE
    failed = strategy.attempt({"authorization": "Bearer not-a-jwt"})
    assert isinstance(failed, Failed)
    assert failed.error.status_code == 401


def test_session_strategy_rejects_deleted_user(store):
    uid = make_user(store, "ivan", "editor")
    token = bearer(uid, "ivan", "editor")["Authorization"]
    store.delete_user(uid)
    with pytest.raises(UnauthenticatedError):
        SessionTokenStrategy(store).authenticate(token[len("Bearer ") :])


def test_platform_header_wins_over_valid_bearer(store):
    platform_uid = make_user(store, "jay", "admin")
    bearer_uid = make_user(store, "kim", "viewer")
    sessions = SessionRegistry(store)
    resolver = IdentityResolver([PlatformHeaderStrategy(store), SessionTokenStrategy(store)], sessions)

    identity = resolver.resolve(
        {
            HEADER: _principal(email="jay@example.com"),
            "authorization": bearer(bearer_uid, "kim", "viewer")["Authorization"],
        }
    )
    assert identity.user_id == platform_uid
    assert identity.session_id is not None
    assert sessions.get(identity.session_id).auth_type is AuthType.PLATFORM_HEADER


def test_resolver_falls_through_failed_platform_to_bearer(store):
    uid = make_user(store, "lea", "author")
    resolver = IdentityResolver([PlatformHeaderStrategy(store), SessionTokenStrategy(store)])
    identity = resolver.resolve(
        {HEADER: "%%garbage%%", "authorization": bearer(uid, "lea", "author")["Authorization"]}
    )
    assert identity.user_id == uid
    assert identity.session_id is None


def test_resolver_falls_through_non_list_claims_to_bearer(store):
    uid = make_user(store, "max", "editor")
    strategy = PlatformHeaderStrategy(store)
    bad_header = _encode({"auth_typ": "aad", "claims": 5})

    failed = strategy.attempt({HEADER: bad_header})
    assert isinstance(failed, Failed)
    assert failed.error.status_code == 401

    resolver = IdentityResolver([strategy, SessionTokenStrategy(store)])
    identity = resolver.resolve({HEADER: bad_header, "authorization": bearer(uid, "max", "editor")["Authorization"]})
    assert identity.user_id == uid
    assert identity.auth_type is AuthType.SESSION


def test_resolver_error_rules(store):
    resolver = IdentityResolver([PlatformHeaderStrategy(store), SessionTokenStrategy(store)])

    with pytest.raises(UnauthenticatedError, match="No authentication credentials provided"):
        resolver.resolve({})

    # One failure is re-raised unchanged.
    with pytest.raises(NotFoundError):
        resolver.resolve({HEADER: _principal(email="nobody@example.com")})

    # Several failures collapse into a generic 401.
    with pytest.raises(UnauthenticatedError, match="Authentication failed"):
        resolver.resolve({HEADER: _principal(email="nobody@example.com"), "authorization": "Bearer bad"})


# ---------------------------------------------------------------------------
# SessionRegistry
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _open(sessions: SessionRegistry, uid: str, role: str = "editor") -> str:
    return sessions.create(user_id=uid, email="u@example.com", username="u", role=role, auth_type=AuthType.SESSION)


def test_validate_refreshes_role_and_destroys_for_missing_user(store):
    uid = make_user(store, "mia", "editor")
    sessions = SessionRegistry(store)
    sid = _open(sessions, uid)

    store.update_user(uid, role="admin")
    assert sessions.validate(sid).role == "admin"

    store.delete_user(uid)
    assert sessions.validate(sid) is None
    assert sessions.get(sid) is None


def test_validate_destroys_session_of_blocked_user(store):
    uid = make_user(store, "ned", "editor")
    sessions = SessionRegistry(store)
    sid = _open(sessions, uid)
    store.update_user(uid, blocked=True)
    assert sessions.validate(sid) is None
    assert sessions.stats()["total_sessions"] == 0


def test_destroy_all_for_user_counts_only_that_user(store):
    sessions = SessionRegistry(store)
    for _ in range(3):
        _open(sessions, "user-a")
    other = _open(sessions, "user-b")

    assert sessions.stats() == {"total_sessions": 4, "active_users": 2}
    assert sessions.destroy_all_for_user("user-a") == 3
    assert sessions.get_user_sessions("user-a") == []
    assert sessions.get(other) is not None


def test_sweep_expired_uses_last_access(store):
    clock = FakeClock()
    sessions = SessionRegistry(store, idle_seconds=3600, clock=clock)
    idle = _open(sessions, "user-a")
    busy = _open(sessions, "user-b")

    clock.now += timedelta(minutes=50)
    sessions.get(busy)
    clock.now += timedelta(minutes=20)

    assert sessions.sweep_expired() == 1
    assert sessions.get(idle) is None
    assert sessions.get(busy) is not None


def test_session_ids_are_unique_and_prefixed(store):
    sessions = SessionRegistry(store)
    ids = {_open(sessions, "user-a") for _ in range(20)}
    assert len(ids) == 20
    assert all(sid.startswith("sess_") for sid in ids)
