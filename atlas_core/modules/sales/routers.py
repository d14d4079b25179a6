# atlas_core/modules/sales/routers.py
from fastapi import APIRouter, Body, Depends, Path, Query

from atlas_core.core.security import CurrentSession, require_approver, require_module
from atlas_core.models.api_common import OkResponse
from atlas_core.modules.people.repository import PeopleRepository, get_people_repository
from .models import PromoterSaleDecisionAPI, PromoterSummaryResponse, TodayReturnsResponse
from .services import SalesService, get_sales_service

orders_router = APIRouter()
my_router = APIRouter()
promoters_router = APIRouter()
products_router = APIRouter(dependencies=[Depends(require_module("inventory"))])
inventory_router = APIRouter()
reports_router = APIRouter(dependencies=[Depends(require_module("dashboard"))])

SalesAccess = Depends(require_module("sales"))


# --- Orders ---

@orders_router.delete("/{order_id}", response_model=OkResponse, tags=["Sales"])
async def delete_order(
    session: CurrentSession,
    order_id: str = Path(...),
    sales_service: SalesService = Depends(get_sales_service),
):
    """Pending sales: owner or approver. Validated sales: approvers only."""
    await sales_service.delete_order(order_id, session)
    return OkResponse()


# --- Promoter sales ---

@my_router.delete("/promoter-sales/{sale_id}", response_model=OkResponse, tags=["Promoters"])
async def delete_my_promoter_sale(
    session: CurrentSession,
    sale_id: str = Path(...),
    sales_service: SalesService = Depends(get_sales_service),
):
    await sales_service.delete_promoter_sale(sale_id, session)
    return OkResponse()


@promoters_router.patch("/sales/{sale_id}", dependencies=[Depends(require_approver)], tags=["Promoters"])
async def decide_promoter_sale(
    sale_id: str = Path(...),
    payload: PromoterSaleDecisionAPI = Body(...),
    sales_service: SalesService = Depends(get_sales_service),
):
    decided = await sales_service.decide_promoter_sale(sale_id, payload)
    return {"ok": True, "status": decided}


@promoters_router.get("/summary", response_model=PromoterSummaryResponse, dependencies=[SalesAccess], tags=["Promoters"])
async def promoters_summary(
    date_from: str = Query("", alias="from"),
    date_to: str = Query("", alias="to"),
    status: str = Query(""),
    sales_service: SalesService = Depends(get_sales_service),
):
    """Daily totals per promoter. Dates as DD/MM/YYYY or YYYY-MM-DD; last 30 days by default."""
    date_range, rows = await sales_service.promoter_summary(date_from, date_to, status)
    return PromoterSummaryResponse(range=date_range, rows=rows)


@promoters_router.get("/list", dependencies=[SalesAccess], tags=["Promoters"])
async def promoters_list(people_repo: PeopleRepository = Depends(get_people_repository)):
    names = await people_repo.list_active_names()
    return {"ok": True, "items": [{"name": name} for name in names if name.strip()]}


# --- Catalog ---

@products_router.get("", tags=["Inventory"])
async def search_products(
    q: str = Query(""),
    limit: int = Query(8, ge=1, le=100),
    sales_service: SalesService = Depends(get_sales_service),
):
    return {"ok": True, "items": await sales_service.search_products(q, limit)}


@inventory_router.get("/summary", tags=["Inventory"])
async def inventory_summary(
    session: CurrentSession,
    sales_service: SalesService = Depends(get_sales_service),
):
    products = await sales_service.inventory_summary()
    return {"ok": True, "products": [p.model_dump() for p in products]}


# --- Reports ---

@reports_router.get("/sales-summary", tags=["Reports"])
async def sales_summary(sales_service: SalesService = Depends(get_sales_service)):
    return {"ok": True, "data": await sales_service.sales_summary()}


@reports_router.get("/sales-report", tags=["Reports"])
async def sales_report(
    days: int = Query(90, ge=0),
    limit: int = Query(500, ge=1, le=5000),
    sales_service: SalesService = Depends(get_sales_service),
):
    rows = await sales_service.sales_report(days, limit)
    return {"ok": True, "data": [r.model_dump() for r in rows]}


@reports_router.get("/returns-report", tags=["Reports"])
async def returns_report(
    date_from: str = Query("", alias="from"),
    date_to: str = Query("", alias="to"),
    limit: int = Query(200, ge=1, le=5000),
    sales_service: SalesService = Depends(get_sales_service),
):
    return {"ok": True, "data": await sales_service.returns_report(date_from, date_to, limit)}


@reports_router.get("/stats/today-returns", response_model=TodayReturnsResponse, tags=["Reports"])
async def today_returns(sales_service: SalesService = Depends(get_sales_service)):
    day, count, amount = await sales_service.today_returns()
    return TodayReturnsResponse(date=day, count=count, amount=amount)
