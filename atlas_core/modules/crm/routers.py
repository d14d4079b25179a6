# atlas_core/modules/crm/routers.py
from fastapi import APIRouter, Body, Depends, Path, Query, status

from atlas_core.core.security import require_module
from .models import (
    CustomerCreateAPI,
    CustomerListResponse,
    CustomerUpdateAPI,
    OpportunityCreateAPI,
    OpportunityUpdateAPI,
)
from .services import CustomerService, OpportunityService, get_customer_service, get_opportunity_service

SalesAccess = Depends(require_module("sales"))

customers_router = APIRouter(dependencies=[SalesAccess])
opportunities_router = APIRouter(dependencies=[SalesAccess])


# --- Customers ---

@customers_router.get("", response_model=CustomerListResponse, tags=["CRM"])
async def list_customers(
    q: str = Query(""),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    customer_service: CustomerService = Depends(get_customer_service),
):
    """Customers, newest first, each with lifetime value from its orders."""
    data, total = await customer_service.list_customers(q, page, page_size)
    return CustomerListResponse(data=data, page=page, page_size=page_size, total=total)


@customers_router.post("", status_code=status.HTTP_201_CREATED, tags=["CRM"])
async def create_customer(
    payload: CustomerCreateAPI = Body(...),
    customer_service: CustomerService = Depends(get_customer_service),
):
    customer = await customer_service.create_customer(payload)
    return {"ok": True, "customer": customer.model_dump(mode="json")}


@customers_router.get("/{customer_id}", tags=["CRM"])
async def get_customer(
    customer_id: str = Path(...),
    customer_service: CustomerService = Depends(get_customer_service),
):
    detail = await customer_service.get_customer_detail(customer_id)
    return {"ok": True, **detail}


@customers_router.patch("/{customer_id}", tags=["CRM"])
async def update_customer(
    customer_id: str = Path(...),
    payload: CustomerUpdateAPI = Body(...),
    customer_service: CustomerService = Depends(get_customer_service),
):
    customer = await customer_service.update_customer(customer_id, payload)
    return {"ok": True, "customer": customer}


# --- Opportunities ---

@opportunities_router.get("", tags=["CRM"])
async def list_opportunities(
    stage: str = Query(""),
    q: str = Query(""),
    opportunity_service: OpportunityService = Depends(get_opportunity_service),
):
    data = await opportunity_service.list_opportunities(stage, q)
    return {"ok": True, "data": [o.model_dump(mode="json") for o in data]}


@opportunities_router.post("", status_code=status.HTTP_201_CREATED, tags=["CRM"])
async def create_opportunity(
    payload: OpportunityCreateAPI = Body(...),
    opportunity_service: OpportunityService = Depends(get_opportunity_service),
):
    opportunity = await opportunity_service.create_opportunity(payload)
    return {"ok": True, "opportunity": opportunity.model_dump(mode="json")}


@opportunities_router.patch("/{opportunity_id}", tags=["CRM"])
async def update_opportunity(
    opportunity_id: str = Path(...),
    payload: OpportunityUpdateAPI = Body(...),
    opportunity_service: OpportunityService = Depends(get_opportunity_service),
):
    opportunity = await opportunity_service.update_opportunity(opportunity_id, payload)
    return {"ok": True, "opportunity": opportunity.model_dump(mode="json")}
