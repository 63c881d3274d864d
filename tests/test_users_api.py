from crm.db.enums import UserRoleEnum
from crm.db.repositories.users import UsersRepository


def test_profile_round_trip(api_client, user_headers):
    response = api_client.put(
        "/api/users/profile",
        json={"name": "Renamed User", "preferences": {"theme": "dark", "notifications": {"email": False}}},
        headers=user_headers,
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Profile updated successfully"

    profile = api_client.get("/api/users/profile", headers=user_headers).json()["data"]["user"]
    assert profile["name"] == "Renamed User"
    assert profile["preferences"] == {"theme": "dark", "notifications": {"email": False}}


def test_profile_rejects_unknown_theme(api_client, user_headers):
    response = api_client.put("/api/users/profile", json={"preferences": {"theme": "neon"}}, headers=user_headers)

    assert response.status_code == 400


def test_dashboard_summarises_owned_work(api_client, user_headers, segment, campaign):
    api_client.post(f"/api/campaigns/{campaign['id']}/send", headers=user_headers)

    response = api_client.get("/api/users/dashboard", headers=user_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["stats"]["campaigns"] == {"total": 1, "active": 0, "completed": 1}
    assert data["stats"]["segments"] == {"total": 1, "totalAudience": segment["audienceSize"]}
    assert data["stats"]["performance"]["messagesSent"] == segment["audienceSize"]
    assert data["recentCampaigns"][0]["id"] == campaign["id"]


def test_list_users_is_admin_only_and_hides_customers(api_client, user, admin, admin_headers, user_headers, db_session):
    UsersRepository(db_session).create(name="Shopper", email="shopper@example.com", role=UserRoleEnum.customer)

    assert api_client.get("/api/users", headers=user_headers).status_code == 403

    response = api_client.get("/api/users", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert {u["email"] for u in body["data"]["users"]} == {"user@example.com", "admin@example.com"}


def test_upsert_admin_promotes_existing_user(db_session, user):
    promoted = UsersRepository(db_session).upsert_admin(
        name="ignored", email="USER@example.com", password_hash="hash"
    )

    assert promoted.id == user.id
    assert promoted.role == UserRoleEnum.admin


def test_upsert_admin_creates_missing_user(db_session):
    created = UsersRepository(db_session).upsert_admin(name="Demo Admin", email="demo@example.com", password_hash="hash")

    assert created.role == UserRoleEnum.admin
    assert created.email_verified is True
