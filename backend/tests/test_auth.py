import pytest


def test_login_success_and_me(client, seeded_users):
    response = client.post(
        "/auth/login",
        json={
            "email": seeded_users["doctor"]["email"],
            "password": seeded_users["doctor"]["password"],
        },
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["token_type"] == "bearer"
    assert payload["data"]["user"]["role"] == "doctor"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {payload['data']['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == seeded_users["doctor"]["email"]


def test_login_invalid_password(client, seeded_users):
    response = client.post(
        "/auth/login",
        json={"email": seeded_users["doctor"]["email"], "password": "wrong-pass"},
    )
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid credentials"}


def test_auth_required_for_protected_endpoints(client, seeded_users):
    _ = seeded_users
    response = client.get("/ward-admin/beds")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_token_rejected(client, seeded_users):
    _ = seeded_users
    bad = client.get("/auth/me", headers={"Authorization": "Bearer invalid.token.value"})
    assert bad.status_code == 401


def test_role_gates(client, nurse_headers, doctor_headers, pharmacist_headers, admin_headers):
    assert client.get("/pharmacist/stock", headers=nurse_headers).status_code == 403
    assert client.get("/pharmacist/stock", headers=pharmacist_headers).status_code == 200
    assert client.get("/pharmacist/stock", headers=admin_headers).status_code == 200
    assert client.get("/ward-admin/supplies", headers=doctor_headers).status_code == 403
    assert client.get("/ward-admin/supplies", headers=nurse_headers).status_code == 200


@pytest.mark.anyio
async def test_register_login_and_me(async_client, seeded_users):
    admin_login = await async_client.post(
        "/auth/login",
        json={
            "email": seeded_users["admin"]["email"],
            "password": seeded_users["admin"]["password"],
        },
    )
    assert admin_login.status_code == 200
    admin_headers = {"Authorization": f"Bearer {admin_login.json()['data']['access_token']}"}

    register = await async_client.post(
        "/auth/register",
        headers=admin_headers,
        json={
            "first_name": "New",
            "last_name": "Pharmacist",
            "email": "new-pharmacist@wardbridge.local",
            "password": "new-pharm-123",
            "role": "pharmacist",
            "department": "Pharmacy",
        },
    )
    assert register.status_code == 201, register.text
    payload = register.json()["data"]
    assert payload["name"] == "New Pharmacist"
    assert payload["role"] == "pharmacist"

    login = await async_client.post(
        "/auth/login",
        json={"email": "new-pharmacist@wardbridge.local", "password": "new-pharm-123"},
    )
    assert login.status_code == 200, login.text
    token = login.json()["data"]["access_token"]

    me = await async_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "new-pharmacist@wardbridge.local"


@pytest.mark.anyio
async def test_register_requires_admin_and_duplicate_rejected(async_client, seeded_users):
    nurse_login = await async_client.post(
        "/auth/login",
        json={
            "email": seeded_users["nurse"]["email"],
            "password": seeded_users["nurse"]["password"],
        },
    )
    nurse_headers = {"Authorization": f"Bearer {nurse_login.json()['data']['access_token']}"}
    body = {
        "first_name": "User",
        "email": "user-one@wardbridge.local",
        "password": "password-123",
        "role": "doctor",
        "department": "Medicine",
    }

    forbidden = await async_client.post("/auth/register", headers=nurse_headers, json=body)
    assert forbidden.status_code == 403

    admin_login = await async_client.post(
        "/auth/login",
        json={
            "email": seeded_users["admin"]["email"],
            "password": seeded_users["admin"]["password"],
        },
    )
    admin_headers = {"Authorization": f"Bearer {admin_login.json()['data']['access_token']}"}

    first = await async_client.post("/auth/register", headers=admin_headers, json=body)
    assert first.status_code == 201, first.text

    duplicate = await async_client.post("/auth/register", headers=admin_headers, json=body)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Email already registered"


def test_list_users_filters_by_role(client, seeded_users, nurse_headers):
    response = client.get("/auth/users", params={"role": "doctor"}, headers=nurse_headers)
    assert response.status_code == 200
    emails = {user["email"] for user in response.json()["data"]}
    assert emails == {seeded_users["doctor"]["email"], seeded_users["doctor2"]["email"]}
