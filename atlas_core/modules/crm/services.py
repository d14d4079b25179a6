# atlas_core/modules/crm/services.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.repository import new_id, utcnow
from atlas_core.modules.crm.demo import filter_demo_customers
from atlas_core.modules.crm.models import (
    CustomerAPI,
    CustomerCreateAPI,
    CustomerUpdateAPI,
    OpportunityAPI,
    OpportunityCreateAPI,
    OpportunityUpdateAPI,
)
from atlas_core.modules.crm.repository import (
    CustomerRepository,
    OpportunityRepository,
    get_customer_repository,
    get_opportunity_repository,
)

DEFAULT_STAGE = "LEAD"
DEFAULT_CURRENCY = "BOB"


def _timestamp_key(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value is not None else ""


def lifetime_values(orders: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Sums `orders.amount` per customer, with order count and latest order time."""
    stats: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        customer_id = order.get("customer_id")
        if not customer_id:
            continue
        current = stats.setdefault(customer_id, {"ltv": 0.0, "orders_count": 0, "last_order_at": None})
        current["ltv"] += float(order.get("amount") or 0)
        current["orders_count"] += 1
        created = order.get("created_at")
        if created is not None and (
            current["last_order_at"] is None or _timestamp_key(created) > _timestamp_key(current["last_order_at"])
        ):
            current["last_order_at"] = created
    return stats


class CustomerService:
    def __init__(self, repo: CustomerRepository, opportunity_repo: OpportunityRepository):
        self.repo = repo
        self.opportunity_repo = opportunity_repo

    async def list_customers(self, q: str, page: int, page_size: int) -> Tuple[List[CustomerAPI], int]:
        skip = (page - 1) * page_size
        if settings.DEMO_MODE:
            data = filter_demo_customers(q)
            return [CustomerAPI.model_validate(c) for c in data[skip:skip + page_size]], len(data)

        rows, total = await self.repo.search(q.strip(), skip, page_size)
        stats = lifetime_values(await self.repo.orders_for_customers([r["id"] for r in rows])) if rows else {}
        customers = [
            CustomerAPI.model_validate({**row, **stats.get(row["id"], {})})
            for row in rows
        ]
        return customers, total

    async def create_customer(self, data: CustomerCreateAPI) -> CustomerAPI:
        if not data.name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El nombre es obligatorio")

        if settings.DEMO_MODE:
            return CustomerAPI(
                id=f"cust-demo-{new_id()[:8]}",
                name=data.name,
                email=data.email,
                phone=data.phone,
                channel=data.channel or "Retail",
                segment=data.segment or "Prospecto",
                created_at=utcnow(),
            )

        created = await self.repo.create(data.model_dump())
        logger.bind(service="CustomerService").info(f"Customer created: {created['id']}")
        return CustomerAPI.model_validate(created)

    async def get_customer_detail(self, customer_id: str) -> Dict[str, Any]:
        customer = await self.repo.get_by_id(customer_id)
        if not customer:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        orders = await self.repo.recent_orders(customer_id)
        opportunities = await self.opportunity_repo.search(customer_id=customer_id, limit=20)
        return {"customer": customer, "orders": orders, "opportunities": opportunities}

    async def update_customer(self, customer_id: str, data: CustomerUpdateAPI) -> Optional[Dict[str, Any]]:
        patch = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if isinstance(value, str):
                value = value.strip()
                patch[field] = value if field == "name" else (value or None)
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing_to_update")
        updated = await self.repo.update(customer_id, patch)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        return updated


class OpportunityService:
    def __init__(self, repo: OpportunityRepository, customer_repo: CustomerRepository):
        self.repo = repo
        self.customer_repo = customer_repo

    async def _enrich(self, rows: List[Dict[str, Any]]) -> List[OpportunityAPI]:
        customer_ids = sorted({r["customer_id"] for r in rows if r.get("customer_id")})
        owner_ids = sorted({r["owner_id"] for r in rows if r.get("owner_id")})
        customers = await self.customer_repo.names_by_id(customer_ids)
        owners = await self.repo.owner_names(owner_ids)
        return [
            OpportunityAPI.model_validate({
                **row,
                "customer_name": customers.get(row.get("customer_id") or ""),
                "owner_name": owners.get(row.get("owner_id") or ""),
            })
            for row in rows
        ]

    async def list_opportunities(self, stage: str, q: str) -> List[OpportunityAPI]:
        rows = await self.repo.search(stage=stage.strip(), q=q.strip())
        return await self._enrich(rows)

    async def create_opportunity(self, data: OpportunityCreateAPI) -> OpportunityAPI:
        if not data.title:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El título es obligatorio")
        payload = data.model_dump()
        payload["stage"] = (data.stage or DEFAULT_STAGE).upper()
        payload["currency"] = data.currency or DEFAULT_CURRENCY
        created = await self.repo.create(payload)
        logger.bind(service="OpportunityService").info(f"Opportunity created: {created['id']} stage={payload['stage']}")
        return (await self._enrich([created]))[0]

    async def update_opportunity(self, opportunity_id: str, data: OpportunityUpdateAPI) -> OpportunityAPI:
        patch = data.model_dump(exclude_unset=True)
        # Only owner_id may be cleared explicitly
        patch = {k: v for k, v in patch.items() if v is not None or k == "owner_id"}
        for field in ("title", "description"):
            if field in patch:
                patch[field] = patch[field].strip()
        if "stage" in patch:
            patch["stage"] = patch["stage"].upper()
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing_to_update")
        updated = await self.repo.update(opportunity_id, patch)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        return (await self._enrich([updated]))[0]


async def get_customer_service(
    repo: CustomerRepository = Depends(get_customer_repository),
    opportunity_repo: OpportunityRepository = Depends(get_opportunity_repository),
) -> CustomerService:
    return CustomerService(repo, opportunity_repo)


async def get_opportunity_service(
    repo: OpportunityRepository = Depends(get_opportunity_repository),
    customer_repo: CustomerRepository = Depends(get_customer_repository),
) -> OpportunityService:
    return OpportunityService(repo, customer_repo)
