# atlas_core/modules/assistant/context.py
"""Builds the compact business context handed to the model."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger

from atlas_core.modules.assistant.models import BusinessContext, CriticalProduct

Fetcher = Callable[[str], Awaitable[Optional[Any]]]

CONTEXT_CHAR_LIMIT = 8000
CRITICAL_STOCK_THRESHOLD = 10
NO_CRITICAL_NOTE = "sin críticos detectados en el resumen"

INTERNAL_FETCH_TIMEOUT = 20.0


def make_internal_fetcher(origin: str, cookie: Optional[str], timeout: float = INTERNAL_FETCH_TIMEOUT) -> Fetcher:
    """GETs `origin + path` with the caller's cookie. Any failure or non-2xx yields None."""
    headers = {"cookie": cookie} if cookie else {}
    base = origin.rstrip("/")

    async def fetch(path: str) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(f"{base}{path}", headers=headers)
            if not response.is_success:
                logger.bind(service="AssistantContext").debug(f"{path} answered HTTP {response.status_code}.")
                return None
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.bind(service="AssistantContext").warning(f"Context fetch {path} failed: {e}")
            return None

    return fetch


def context_paths(scope: str) -> Dict[str, Optional[str]]:
    sales = scope in ("sales", "general")
    inventory = scope in ("inventory", "general")
    return {
        "me": "/endpoints/me",
        "overview": "/endpoints/metrics/overview",
        "sales_report": "/endpoints/sales-report" if sales else None,
        "returns_report": "/endpoints/returns-report",
        "customers": "/endpoints/customers?page_size=50" if sales else None,
        "opportunities": "/endpoints/opportunities" if sales else None,
        "inventory": "/endpoints/inventory/summary" if inventory else None,
    }


async def gather_sources(fetch: Fetcher, scope: str) -> Dict[str, Optional[Any]]:
    """Runs every fetch for `scope` concurrently; skipped and failed sources are None."""
    paths = context_paths(scope)

    async def _skip() -> None:
        return None

    results = await asyncio.gather(*(fetch(path) if path else _skip() for path in paths.values()))
    return dict(zip(paths.keys(), results))


def _ok_rows(payload: Any, key: str) -> Optional[List[Any]]:
    if isinstance(payload, dict) and payload.get("ok") and isinstance(payload.get(key), list):
        return payload[key]
    return None


def critical_inventory(products: List[Dict[str, Any]]) -> List[CriticalProduct]:
    rows = []
    for product in products:
        try:
            total = float(product.get("total_quantity") or 0)
        except (TypeError, ValueError):
            total = 0.0
        rows.append(CriticalProduct(name=product.get("name"), sku=product.get("sku"), total=total))
    critical = [row for row in rows if row.total < CRITICAL_STOCK_THRESHOLD]
    critical.sort(key=lambda row: row.total)
    return critical[:10]


def build_context(sources: Dict[str, Optional[Any]]) -> BusinessContext:
    context = BusinessContext()

    overview = sources.get("overview")
    if overview is not None and not (isinstance(overview, dict) and overview.get("ok") is False):
        context.overview = overview

    sales = _ok_rows(sources.get("sales_report"), "data")
    if sales is not None:
        context.sales_sample = sales[:20]

    returns = _ok_rows(sources.get("returns_report"), "data")
    if returns is not None:
        context.returns_sample = returns[:10]

    customers = _ok_rows(sources.get("customers"), "data")
    if customers is not None:
        context.top_customers = [
            {"name": c.get("name"), "ltv": c.get("ltv"), "orders": c.get("orders_count"), "segment": c.get("segment")}
            for c in customers[:10]
        ]

    me = sources.get("me")
    if isinstance(me, dict) and me.get("ok"):
        context.user = {key: me.get(key) for key in ("role", "raw_role", "site_id", "site_name", "local")}

    opportunities = _ok_rows(sources.get("opportunities"), "data")
    if opportunities is not None:
        context.pipeline = [
            {"title": o.get("title"), "stage": o.get("stage"), "amount": o.get("amount"), "customer": o.get("customer_name")}
            for o in opportunities[:25]
        ]

    products = _ok_rows(sources.get("inventory"), "products")
    if products is not None:
        context.inventory_critical = critical_inventory(products) or NO_CRITICAL_NOTE

    return context


def context_snippet(context: BusinessContext) -> str:
    """JSON of the populated sections, cut hard at CONTEXT_CHAR_LIMIT characters."""
    payload = context.model_dump(mode="json", exclude_none=True)
    return json.dumps(payload, ensure_ascii=False, default=str)[:CONTEXT_CHAR_LIMIT]
