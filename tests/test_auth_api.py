from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import select

from crm.auth.google import GoogleOAuthError, GoogleProfile
from crm.auth.security import decode_access_token
from crm.db.enums import AuthProviderEnum
from crm.db.models import OAuthState, User
from crm.main import app
from crm.routers.auth import get_google_client


class FakeGoogleClient:
    def __init__(self, profile: GoogleProfile | None = None, error: GoogleOAuthError | None = None) -> None:
        self.profile = profile
        self.error = error
        self.codes: list[str] = []

    def build_authorize_url(self, *, state: str) -> str:
        return f"https://accounts.google.test/auth?state={state}"

    async def exchange_code(self, *, code: str) -> str:
        self.codes.append(code)
        if self.error:
            raise self.error
        return "google-access-token"

    async def fetch_profile(self, *, access_token: str) -> GoogleProfile:
        assert access_token == "google-access-token"
        return self.profile


@pytest.fixture()
def google_client():
    client = FakeGoogleClient(
        profile=GoogleProfile(
            google_id="google-123",
            email="Jane.Doe@Example.com",
            name="Jane Doe",
            avatar="https://example.com/jane.png",
        )
    )
    app.dependency_overrides[get_google_client] = lambda: client
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_google_client, None)


def test_register_returns_token_and_user(api_client):
    response = api_client.post(
        "/api/auth/register",
        json={"name": "New Marketer", "email": "New@Example.com", "password": "secret123"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["role"] == "user"
    assert decode_access_token(data["token"])["sub"] == data["user"]["id"]


def test_register_rejects_duplicate_email(api_client, user):
    response = api_client.post(
        "/api/auth/register",
        json={"name": "Again", "email": "user@example.com", "password": "secret123"},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "User already exists with this email"}


def test_register_validates_password_length(api_client, db_session):
    response = api_client.post(
        "/api/auth/register",
        json={"name": "Shorty", "email": "short@example.com", "password": "123"},
    )

    assert response.status_code == 400
    assert response.json()["message"].startswith("password")


def test_login_and_me(api_client, user):
    login = api_client.post("/api/auth/login", json={"email": "USER@example.com", "password": "secret123"})

    assert login.status_code == 200
    token = login.json()["data"]["token"]
    me = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    profile = me.json()["data"]["user"]
    assert profile["id"] == user.id
    assert profile["lastLogin"] is not None


def test_login_with_wrong_password(api_client, user):
    response = api_client.post("/api/auth/login", json={"email": "user@example.com", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_login_rejects_deactivated_user(api_client, user, db_session):
    user.is_active = False
    db_session.commit()

    response = api_client.post("/api/auth/login", json={"email": "user@example.com", "password": "secret123"})

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated"


def test_token_of_deactivated_user_is_rejected(api_client, user, user_headers, db_session):
    user.is_active = False
    db_session.commit()

    response = api_client.get("/api/auth/me", headers=user_headers)

    assert response.status_code == 401
    assert response.json()["message"] == "Token is not valid"


def test_invalid_token_is_rejected(api_client, db_session):
    response = api_client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_google_login_redirects_with_persisted_state(api_client, google_client, db_session):
    response = api_client.get("/api/auth/google", follow_redirects=False)

    assert response.status_code == 302
    state = parse_qs(urlparse(response.headers["location"]).query)["state"][0]
    assert db_session.get(OAuthState, state) is not None


def test_google_callback_creates_user_and_redirects_with_token(api_client, google_client, db_session):
    db_session.add(OAuthState(state="state-1"))
    db_session.commit()

    response = api_client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": "state-1"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == "http://frontend.test/auth/success"
    token = parse_qs(location.query)["token"][0]

    db_session.expire_all()
    created = db_session.scalars(select(User).where(User.google_id == "google-123")).one()
    assert created.email == "jane.doe@example.com"
    assert created.provider == AuthProviderEnum.google
    assert decode_access_token(token)["sub"] == created.id
    assert db_session.get(OAuthState, "state-1") is None
    assert google_client.codes == ["auth-code"]


def test_google_callback_links_existing_local_account(api_client, google_client, user, db_session):
    google_client.profile = GoogleProfile(google_id="google-456", email="user@example.com", name="Marketing User")
    db_session.add(OAuthState(state="state-2"))
    db_session.commit()

    response = api_client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": "state-2"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    db_session.expire_all()
    linked = db_session.get(User, user.id)
    assert linked.google_id == "google-456"


def test_google_callback_rejects_unknown_state(api_client, google_client):
    response = api_client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": "forged"},
        follow_redirects=False,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid OAuth state"
    assert google_client.codes == []


def test_google_callback_surfaces_google_errors(api_client, google_client, db_session):
    google_client.error = GoogleOAuthError(message="Google token exchange failed with status 400", status_code=400)
    db_session.add(OAuthState(state="state-3"))
    db_session.commit()

    response = api_client.get(
        "/api/auth/google/callback",
        params={"code": "bad-code", "state": "state-3"},
        follow_redirects=False,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Google token exchange failed with status 400"


def test_google_callback_with_consent_error_redirects_to_login(api_client, google_client):
    response = api_client.get(
        "/api/auth/google/callback",
        params={"error": "access_denied"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == "http://frontend.test/login?error=google_auth_failed"
