# tests/modules/people/test_users_api.py
from httpx import AsyncClient
from fastapi import status

from conftest import insert_person, session_headers


async def test_login_sets_cookie_and_returns_session(test_client: AsyncClient, db_client):
    await insert_person(db_client, "PROMOTOR", username="pablo", password="clave123", full_name="Pablo Promotor")

    response = await test_client.post("/endpoints/auth/login", json={"username": "pablo", "password": "clave123"})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["ok"] is True
    assert body["role"] == "promoter"
    assert body["home"] == "/mi/resumen"
    assert body["modules"] == ["dashboard", "sales"]
    assert "atlas_session" in response.headers.get("set-cookie", "")


async def test_login_rejects_bad_password_and_inactive_users(test_client: AsyncClient, db_client):
    await insert_person(db_client, "ADMIN", username="root", password="clave123")
    await insert_person(db_client, "ADMIN", username="old", password="clave123", active=False)

    wrong = await test_client.post("/endpoints/auth/login", json={"username": "root", "password": "nope"})
    assert wrong.status_code == status.HTTP_401_UNAUTHORIZED
    assert wrong.json()["error"] == "invalid_credentials"

    inactive = await test_client.post("/endpoints/auth/login", json={"username": "old", "password": "clave123"})
    assert inactive.status_code == status.HTTP_403_FORBIDDEN
    assert inactive.json()["error"] == "inactive_user"


async def test_modules_endpoint_reflects_role(test_client: AsyncClient, advisor_headers):
    response = await test_client.get("/endpoints/modules", headers=advisor_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True, "role": "advisor", "modules": ["dashboard", "sales"]}


async def test_users_admin_requires_configuration_module(test_client: AsyncClient, advisor_headers):
    response = await test_client.get("/endpoints/users", headers=advisor_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"ok": False, "error": "forbidden"}


async def test_create_user_generates_credentials_once(test_client: AsyncClient, admin_headers):
    response = await test_client.post(
        "/endpoints/users", headers=admin_headers, json={"full_name": "  Lucía Gómez ", "fenix_role": "vendedora"}
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    created = body["data"]
    assert created["full_name"] == "Lucía Gómez"
    assert created["fenix_role"] == "VENDEDORA"
    assert created["email"].endswith("@atlas.local")
    assert len(body["initial_password"]) == 10

    login = await test_client.post(
        "/endpoints/auth/login", json={"username": created["username"], "password": body["initial_password"]}
    )
    assert login.status_code == status.HTTP_200_OK

    fetched = await test_client.get(f"/endpoints/users/{created['id']}", headers=admin_headers)
    assert "password_hash" not in fetched.json()["data"]


async def test_create_user_with_taken_username_is_conflict(test_client: AsyncClient, db_client, admin_headers):
    await insert_person(db_client, "ASESOR", username="marta")

    response = await test_client.post(
        "/endpoints/users", headers=admin_headers,
        json={"full_name": "Marta Dos", "username": "marta", "password": "secreto1"},
    )

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "Ya existe el usuario marta (activo)."


async def test_create_user_requires_name(test_client: AsyncClient, admin_headers):
    response = await test_client.post("/endpoints/users", headers=admin_headers, json={"full_name": "  "})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "full_name_required"


async def test_user_actions(test_client: AsyncClient, db_client, admin_headers):
    person = await insert_person(db_client, "ASESOR", username="leo")
    url = f"/endpoints/users/{person['id']}"

    toggled = await test_client.post(url, headers=admin_headers, json={"action": "toggle"})
    assert toggled.json() == {"ok": True, "active": False}

    short = await test_client.post(url, headers=admin_headers, json={"action": "reset-password", "newPassword": "123"})
    assert short.status_code == status.HTTP_400_BAD_REQUEST

    reset = await test_client.post(url, headers=admin_headers, json={"action": "reset-password", "newPassword": "nueva123"})
    assert reset.status_code == status.HTTP_200_OK

    unknown = await test_client.post(url, headers=admin_headers, json={"action": "promote"})
    assert unknown.status_code == status.HTTP_400_BAD_REQUEST
    assert unknown.json()["error"] == "unsupported_action"

    deleted = await test_client.delete(url, headers=admin_headers)
    assert deleted.json() == {"ok": True}
    missing = await test_client.get(url, headers=admin_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


async def test_update_user_changes_role_and_username(test_client: AsyncClient, db_client, admin_headers):
    person = await insert_person(db_client, "ASESOR", username="rita")

    response = await test_client.patch(
        f"/endpoints/users/{person['id']}", headers=admin_headers,
        json={"fenix_role": "lider", "username": " Rita.Lider "},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["fenix_role"] == "LIDER"
    assert data["username"] == "rita.lider"
    stored = await db_client["people"].find_one({"_id": person["id"]})
    assert stored["username_flat"] == "ritalider"


async def test_list_users_filters_by_query(test_client: AsyncClient, db_client, admin_headers):
    await insert_person(db_client, "ASESOR", full_name="Carla Quispe", username="carla")
    await insert_person(db_client, "ASESOR", full_name="Diego Mamani", username="diego")

    response = await test_client.get("/endpoints/users", headers=admin_headers, params={"q": "quispe"})

    body = response.json()
    assert body["total"] == 1
    assert body["data"][0]["username"] == "carla"


async def test_me_uses_session_cookie(test_client: AsyncClient, db_client):
    person = await insert_person(db_client, "COORDINADORA", full_name="Cora")
    response = await test_client.get("/endpoints/me", headers=session_headers(person))
    body = response.json()
    assert body["person_id"] == person["id"]
    assert body["role"] == "coordinator"
    assert body["home"] == "/logistica"
