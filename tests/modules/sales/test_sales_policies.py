# tests/modules/sales/test_sales_policies.py
from datetime import date

from httpx import AsyncClient
from fastapi import status

from atlas_core.core.config import settings
from atlas_core.core.repository import utcnow
from atlas_core.core.security import SessionUser
from atlas_core.core.timeutils import local_today
from atlas_core.modules.sales.services import (
    as_iso_date,
    order_delete_denial,
    promoter_sale_delete_denial,
    stock_total,
    summarize_promoter_sales,
    summary_range,
)
from conftest import insert_person, session_headers

ADVISOR = SessionUser(person_id="p-adv", role="advisor", raw_role="ASESOR", name="Vera Vendedora")
LEADER = SessionUser(person_id="p-lead", role="leader", raw_role="LIDER", name="Luis Lider")


# --- Policies ---

def test_pending_order_can_be_deleted_by_owner_or_seller_name():
    assert order_delete_denial({"status": "pending", "sales_user_id": "p-adv"}, ADVISOR) is None
    assert order_delete_denial({"status": "pending", "seller": " vera vendedora "}, ADVISOR) is None
    assert order_delete_denial({"status": "pending", "sales_user_id": "other"}, ADVISOR) is not None
    assert order_delete_denial({"status": "pending", "sales_user_id": "other"}, LEADER) is None


def test_validated_order_needs_an_approver():
    order = {"status": "validated", "sales_user_id": "p-adv"}
    assert "aprobador" in order_delete_denial(order, ADVISOR)
    assert order_delete_denial(order, LEADER) is None


def test_promoter_sale_deletion():
    approved = {"approval_status": "approved", "promoter_person_id": "p-adv", "approved_by": "Luis Lider"}
    assert promoter_sale_delete_denial(approved, ADVISOR) is not None
    assert promoter_sale_delete_denial(approved, LEADER) is None
    assert promoter_sale_delete_denial(
        approved, SessionUser(person_id="x", role="advisor", name="luis lider")
    ) is None

    pending = {"approval_status": "pending", "promoter_person_id": "p-adv"}
    assert promoter_sale_delete_denial(pending, ADVISOR) is None
    assert promoter_sale_delete_denial(pending, SessionUser(person_id="x", role="promoter")) is not None


# --- Helpers ---

def test_summary_dates():
    assert as_iso_date("05/03/2024") == "2024-03-05"
    assert as_iso_date("2024-03-05T10:00:00") == "2024-03-05"
    assert summary_range("01/03/2024", "2024-03-31") == ("2024-03-01", "2024-03-31")
    assert summary_range("", "2024-03-31", today=date(2024, 5, 31)) == ("2024-05-01", "2024-05-31")


def test_promoter_sales_grouping():
    rows = summarize_promoter_sales([
        {"sale_date": "2024-05-02", "promoter_name": "Ana", "quantity": 2, "unit_price": 10, "origin": "lapaz"},
        {"sale_date": "2024-05-02", "promoter_name": "Ana", "quantity": 1, "unit_price": 5, "origin": "tienda"},
        {"sale_date": "2024-05-01", "promoter_name": None, "quantity": 1, "unit_price": 7, "origin": "mars"},
    ])
    assert [(r.sale_date, r.promoter_name) for r in rows] == [("2024-05-01", "—"), ("2024-05-02", "Ana")]
    ana = rows[1]
    assert (ana.items, ana.total_bs, ana.lapaz, ana.tienda) == (3, 25, 20, 5)


def test_stock_total_accepts_numbers_and_branch_maps():
    assert stock_total({"centro": 3, "norte": None, "sur": 2.5}) == 5.5
    assert stock_total("7") == 7.0
    assert stock_total("n/a") == 0.0


# --- Endpoints ---

async def test_advisor_deletes_own_pending_order_with_items(test_client: AsyncClient, db_client, advisor, advisor_headers):
    await db_client["orders"].insert_one({"_id": "o1", "status": "pending", "sales_user_id": advisor["id"]})
    await db_client["order_items"].insert_many([{"_id": "i1", "order_id": "o1"}, {"_id": "i2", "order_id": "o1"}])

    response = await test_client.delete("/endpoints/orders/o1", headers=advisor_headers)

    assert response.status_code == status.HTTP_200_OK
    assert await db_client["orders"].count_documents({}) == 0
    assert await db_client["order_items"].count_documents({}) == 0


async def test_advisor_cannot_delete_validated_order(test_client: AsyncClient, db_client, advisor, advisor_headers):
    await db_client["orders"].insert_one({"_id": "o2", "status": "validated", "sales_user_id": advisor["id"]})

    response = await test_client.delete("/endpoints/orders/o2", headers=advisor_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert await db_client["orders"].count_documents({"_id": "o2"}) == 1


async def test_delete_unknown_order(test_client: AsyncClient, admin_headers):
    response = await test_client.delete("/endpoints/orders/nope", headers=admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "venta no encontrada"


async def test_promoter_sale_decision_needs_approver(test_client: AsyncClient, db_client, advisor_headers):
    await db_client["promoter_sales"].insert_one({"_id": "s1", "approval_status": "pending"})
    leader = await insert_person(db_client, "LIDER", full_name="Luis Lider")

    denied = await test_client.patch("/endpoints/promoters/sales/s1", headers=advisor_headers, json={"status": "approved"})
    assert denied.status_code == status.HTTP_403_FORBIDDEN

    invalid = await test_client.patch(
        "/endpoints/promoters/sales/s1", headers=session_headers(leader), json={"status": "maybe"}
    )
    assert invalid.status_code == status.HTTP_400_BAD_REQUEST

    approved = await test_client.patch(
        "/endpoints/promoters/sales/s1", headers=session_headers(leader),
        json={"status": "approved", "approver": "Luis Lider", "ticket": " T-9 "},
    )
    assert approved.json() == {"ok": True, "status": "approved"}
    stored = await db_client["promoter_sales"].find_one({"_id": "s1"})
    assert stored["approval_ticket"] == "T-9"
    assert stored["approved_by"] == "Luis Lider"


async def test_promoter_summary_endpoint(test_client: AsyncClient, db_client, admin_headers):
    await db_client["promoter_sales"].insert_many([
        {"_id": "a", "sale_date": "2024-05-02", "promoter_name": "Ana", "quantity": 2, "unit_price": 10,
         "origin": "lapaz", "approval_status": "approved"},
        {"_id": "b", "sale_date": "2024-05-02", "promoter_name": "Ana", "quantity": 5, "unit_price": 10,
         "origin": "lapaz", "approval_status": "pending"},
    ])

    response = await test_client.get(
        "/endpoints/promoters/summary", headers=admin_headers, params={"from": "01/05/2024", "to": "31/05/2024"}
    )

    body = response.json()
    assert body["range"] == {"from": "2024-05-01", "to": "2024-05-31"}
    assert len(body["rows"]) == 1
    assert body["rows"][0]["total_bs"] == 20

    everything = await test_client.get(
        "/endpoints/promoters/summary", headers=admin_headers,
        params={"from": "2024-05-01", "to": "2024-05-31", "status": "all"},
    )
    assert everything.json()["rows"][0]["total_bs"] == 70


async def test_product_search_and_inventory(test_client: AsyncClient, db_client, admin_headers):
    await db_client["products"].insert_many([
        {"_id": "p1", "code": "CAF-01", "name": "Café molido", "retail_price": 35, "stock": {"centro": 4, "norte": 2}},
        {"_id": "p2", "code": "TE-01", "name": "Té verde", "retail_price": 20, "stock": 40},
    ])

    short = await test_client.get("/endpoints/products", headers=admin_headers, params={"q": "c"})
    assert short.json() == {"ok": True, "items": []}

    found = await test_client.get("/endpoints/products", headers=admin_headers, params={"q": "caf"})
    assert [p["code"] for p in found.json()["items"]] == ["CAF-01"]

    inventory = await test_client.get("/endpoints/inventory/summary", headers=admin_headers)
    totals = {p["id"]: p["total_quantity"] for p in inventory.json()["products"]}
    assert totals == {"p1": 6, "p2": 40}


async def test_sales_report_rows_per_item(test_client: AsyncClient, db_client, admin_headers):
    await db_client["orders"].insert_one({
        "_id": "o1", "order_no": 7, "seller": "Vera", "status": "pending", "created_at": utcnow(),
    })
    await db_client["order_items"].insert_many([
        {"_id": "i1", "order_id": "o1", "product_name": "Café", "quantity": 2, "subtotal": 70},
        {"_id": "i2", "order_id": "o1", "product_name": "Té", "quantity": 1, "subtotal": 20},
    ])

    response = await test_client.get("/endpoints/sales-report", headers=admin_headers, params={"days": 7})

    rows = response.json()["data"]
    assert {r["product_name"] for r in rows} == {"Café", "Té"}
    assert all(r["order_date"].endswith("Z") for r in rows)
    assert rows[0]["seller_full_name"] == "Vera"


async def test_reports_need_dashboard_module(test_client: AsyncClient, db_client, monkeypatch):
    monkeypatch.setattr(settings, "DISABLED_MODULES", ["dashboard"])
    person = await insert_person(db_client, "ADMIN")
    response = await test_client.get("/endpoints/stats/today-returns", headers=session_headers(person))
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_today_returns(test_client: AsyncClient, db_client, admin_headers):
    today = local_today().isoformat()
    await db_client["product_returns"].insert_many([
        {"_id": "r1", "return_date": today, "return_amount": 15},
        {"_id": "r2", "return_date": today, "return_amount": 5.5},
        {"_id": "r3", "return_date": "2000-01-01", "return_amount": 100},
    ])

    response = await test_client.get("/endpoints/stats/today-returns", headers=admin_headers)

    assert response.json() == {"ok": True, "date": today, "count": 2, "amount": 20.5}
