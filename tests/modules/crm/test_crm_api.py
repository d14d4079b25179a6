# tests/modules/crm/test_crm_api.py
from datetime import datetime

from httpx import AsyncClient
from fastapi import status

from atlas_core.core.config import settings
from atlas_core.modules.crm.services import lifetime_values
from conftest import insert_person, session_headers


def test_lifetime_values_per_customer():
    stats = lifetime_values([
        {"customer_id": "c1", "amount": 100, "created_at": datetime(2024, 5, 1)},
        {"customer_id": "c1", "amount": None, "created_at": datetime(2024, 5, 3)},
        {"customer_id": "c2", "amount": 40.5, "created_at": None},
        {"customer_id": None, "amount": 999},
    ])
    assert stats["c1"] == {"ltv": 100.0, "orders_count": 2, "last_order_at": datetime(2024, 5, 3)}
    assert stats["c2"]["ltv"] == 40.5
    assert len(stats) == 2


async def test_customer_lifecycle(test_client: AsyncClient, db_client, admin_headers):
    created = await test_client.post(
        "/endpoints/customers", headers=admin_headers, json={"name": " Tienda Sol ", "phone": "70000000"}
    )
    assert created.status_code == status.HTTP_201_CREATED
    customer = created.json()["customer"]
    assert customer["name"] == "Tienda Sol"

    await db_client["orders"].insert_many([
        {"_id": "o1", "customer_id": customer["id"], "amount": 120, "created_at": datetime(2024, 5, 1)},
        {"_id": "o2", "customer_id": customer["id"], "amount": 80, "created_at": datetime(2024, 5, 2)},
    ])

    listed = await test_client.get("/endpoints/customers", headers=admin_headers, params={"q": "sol"})
    body = listed.json()
    assert body["total"] == 1
    assert body["data"][0]["ltv"] == 200
    assert body["data"][0]["orders_count"] == 2

    detail = await test_client.get(f"/endpoints/customers/{customer['id']}", headers=admin_headers)
    assert {o["id"] for o in detail.json()["orders"]} == {"o1", "o2"}

    patched = await test_client.patch(
        f"/endpoints/customers/{customer['id']}", headers=admin_headers, json={"segment": " VIP "}
    )
    assert patched.json()["customer"]["segment"] == "VIP"


async def test_customer_validation_and_not_found(test_client: AsyncClient, admin_headers):
    nameless = await test_client.post("/endpoints/customers", headers=admin_headers, json={"name": "  "})
    assert nameless.status_code == status.HTTP_400_BAD_REQUEST
    assert nameless.json()["error"] == "El nombre es obligatorio"

    missing = await test_client.get("/endpoints/customers/nope", headers=admin_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND

    empty_patch = await test_client.patch("/endpoints/customers/nope", headers=admin_headers, json={})
    assert empty_patch.json()["error"] == "nothing_to_update"


async def test_demo_mode_serves_sample_customers(test_client: AsyncClient, admin_headers, monkeypatch):
    monkeypatch.setattr(settings, "DEMO_MODE", True)
    response = await test_client.get("/endpoints/customers", headers=admin_headers, params={"page_size": 5})
    body = response.json()
    assert body["total"] == 12
    assert len(body["data"]) == 5


async def test_opportunities_default_stage_and_names(test_client: AsyncClient, db_client, admin_headers):
    await db_client["customers"].insert_one({"_id": "c1", "name": "Farmacia Norte"})

    created = await test_client.post(
        "/endpoints/opportunities", headers=admin_headers,
        json={"title": "Pedido trimestral", "customer_id": "c1", "amount": 1500},
    )
    assert created.status_code == status.HTTP_201_CREATED
    opportunity = created.json()["opportunity"]
    assert opportunity["stage"] == "LEAD"
    assert opportunity["currency"] == "BOB"
    assert opportunity["customer_name"] == "Farmacia Norte"

    moved = await test_client.patch(
        f"/endpoints/opportunities/{opportunity['id']}", headers=admin_headers, json={"stage": "won"}
    )
    assert moved.json()["opportunity"]["stage"] == "WON"

    listed = await test_client.get("/endpoints/opportunities", headers=admin_headers, params={"stage": "WON"})
    assert [o["title"] for o in listed.json()["data"]] == ["Pedido trimestral"]


async def test_crm_requires_sales_module(test_client: AsyncClient, db_client):
    logistics = await insert_person(db_client, "LOGISTICA")
    response = await test_client.get("/endpoints/customers", headers=session_headers(logistics))
    assert response.status_code == status.HTTP_403_FORBIDDEN
