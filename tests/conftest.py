import copy
import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

TEST_DB_PATH = ROOT_DIR / "test_crm.db"

os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("JWT_SECRET_KEY", "test_jwt_secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test_google_secret")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CAMPAIGN_SEND_DELAY_SECONDS", "0")
os.environ.setdefault("SCHEDULER_POLL_SECONDS", "0")
os.environ.setdefault("DEBUG_ENDPOINTS_ENABLED", "true")

import pytest  # noqa: E402
from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from crm.auth.security import create_access_token, hash_password  # noqa: E402
from crm.db.base import SessionLocal, engine  # noqa: E402
from crm.db.enums import UserRoleEnum  # noqa: E402
from crm.db.models import AudienceSegment, Campaign, OAuthState, User  # noqa: E402
from crm.db.repositories.users import UsersRepository  # noqa: E402
import crm.main as main_module  # noqa: E402

TEST_PASSWORD = "secret123"


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    engine.dispose()
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    command.upgrade(alembic_cfg, "head")
    yield
    engine.dispose()


def _clear_tables(session) -> None:
    session.execute(delete(Campaign))
    session.execute(delete(AudienceSegment))
    session.execute(delete(OAuthState))
    # Customers reference their admin through created_by.
    session.execute(delete(User).where(User.role == UserRoleEnum.customer))
    session.execute(delete(User))
    session.commit()


@pytest.fixture()
def db_session():
    session = SessionLocal()
    _clear_tables(session)
    try:
        yield session
    finally:
        session.rollback()
        _clear_tables(session)
        session.close()


@pytest.fixture()
def api_client(db_session):
    with TestClient(main_module.app) as client:
        yield client


def _make_user(session, *, name: str, email: str, role: UserRoleEnum) -> User:
    return UsersRepository(session).create(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )


def _auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(subject=user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def user(db_session) -> User:
    return _make_user(db_session, name="Marketing User", email="user@example.com", role=UserRoleEnum.user)


@pytest.fixture()
def other_user(db_session) -> User:
    return _make_user(db_session, name="Other User", email="other@example.com", role=UserRoleEnum.user)


@pytest.fixture()
def admin(db_session) -> User:
    return _make_user(db_session, name="Demo Admin", email="admin@example.com", role=UserRoleEnum.admin)


@pytest.fixture()
def user_headers(user) -> dict[str, str]:
    return _auth_headers(user)


@pytest.fixture()
def other_headers(other_user) -> dict[str, str]:
    return _auth_headers(other_user)


@pytest.fixture()
def admin_headers(admin) -> dict[str, str]:
    return _auth_headers(admin)


SEGMENT_PAYLOAD = {
    "name": "VIP Customers",
    "description": "Customers who spent more than 10k",
    "rules": [
        {"field": "totalSpent", "operator": ">", "value": "10000", "logic": "OR"},
        {"field": "visits", "operator": ">=", "value": "5", "logic": "AND"},
    ],
    "tags": ["vip"],
}


def campaign_payload(segment_id: str, **overrides) -> dict:
    payload = {
        "name": "Spring Launch",
        "description": "Announce the spring collection",
        "type": "email",
        "audienceSegment": segment_id,
        "content": {"subject": "Spring is here", "message": "Hello {{name}}, check out our new arrivals."},
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def segment_payload() -> dict:
    return copy.deepcopy(SEGMENT_PAYLOAD)


@pytest.fixture()
def make_campaign_payload():
    return campaign_payload


@pytest.fixture()
def segment(api_client, user_headers, segment_payload) -> dict:
    response = api_client.post("/api/audience", json=segment_payload, headers=user_headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["segment"]


@pytest.fixture()
def campaign(api_client, user_headers, segment) -> dict:
    response = api_client.post("/api/campaigns", json=campaign_payload(segment["id"]), headers=user_headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["campaign"]
